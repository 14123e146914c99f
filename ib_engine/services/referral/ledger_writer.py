"""
Commission ledger writer.

Creates at most one commission record per idempotency key.
"""

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.models.commission_record import CommissionRecord
from ib_engine.models.enums import CommissionStatus, DistributionType
from ib_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)


def trade_event_key(trade_id: str) -> str:
    """Idempotency discriminator for a trade event."""
    return f"trade:{trade_id}"


def joining_event_key(new_user_id: int) -> str:
    """Idempotency discriminator for a user's joining deposit."""
    return f"joining:{new_user_id}"


@dataclass(frozen=True)
class CommissionKey:
    """Identifies one commission obligation."""

    event_key: str
    beneficiary_id: int
    level: int
    distribution_type: DistributionType


@dataclass(frozen=True)
class RecordFields:
    """Non-key record columns."""

    source_user_id: int
    base_amount: Decimal
    rate: Decimal
    commission_amount: Decimal
    trade_id: str | None = None
    symbol: str | None = None
    lot_size: Decimal | None = None
    description: str = ""


class LedgerWriter:
    """Writes commission records idempotently."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger writer."""
        self.session = session
        self.record_repo = CommissionRecordRepository(session)

    async def record_if_absent(
        self, key: CommissionKey, fields: RecordFields
    ) -> CommissionRecord | None:
        """
        Create the record for key unless it already exists.

        The database unique constraint decides; there is no separate
        pre-check that a concurrent writer could slip past.

        Args:
            key: Idempotency key
            fields: Remaining record values, stored verbatim

        Returns:
            Created record, or None if this obligation was already recorded
        """
        record_id = await self.record_repo.insert_if_absent(
            event_key=key.event_key,
            beneficiary_id=key.beneficiary_id,
            level=key.level,
            distribution_type=key.distribution_type.value,
            source_user_id=fields.source_user_id,
            trade_id=fields.trade_id,
            base_amount=fields.base_amount,
            rate=fields.rate,
            commission_amount=fields.commission_amount,
            status=CommissionStatus.CREDITED.value,
            symbol=fields.symbol,
            lot_size=fields.lot_size,
            description=fields.description,
        )

        if record_id is None:
            logger.info(
                "Commission already recorded",
                extra={
                    "event_key": key.event_key,
                    "beneficiary_id": key.beneficiary_id,
                    "level": key.level,
                    "distribution_type": key.distribution_type.value,
                },
            )
            return None

        return await self.record_repo.get_by_id(record_id)
