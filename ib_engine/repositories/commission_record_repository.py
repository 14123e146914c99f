"""
Commission record repository.

Data access layer for CommissionRecord model.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ib_engine.models.commission_record import CommissionRecord
from ib_engine.models.enums import CommissionStatus, DistributionType
from ib_engine.repositories.base import BaseRepository


IDEMPOTENCY_COLUMNS = (
    "event_key",
    "beneficiary_id",
    "level",
    "distribution_type",
)


class CommissionRecordRepository(BaseRepository[CommissionRecord]):
    """Commission record repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission record repository."""
        super().__init__(CommissionRecord, session)

    async def insert_if_absent(self, **data: Any) -> int | None:
        """
        Insert a record unless its idempotency key already exists.

        Uses INSERT ... ON CONFLICT DO NOTHING RETURNING id, so two
        concurrent writers of the same key cannot both succeed.

        Args:
            **data: Column values (must include every key column)

        Returns:
            New record ID, or None if the key was already present
        """
        stmt = (
            self.insert_stmt()
            .values(**data)
            .on_conflict_do_nothing(index_elements=list(IDEMPOTENCY_COLUMNS))
            .returning(CommissionRecord.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_key(
        self,
        event_key: str,
        beneficiary_id: int,
        level: int,
        distribution_type: DistributionType,
    ) -> CommissionRecord | None:
        """Get the record stored under an idempotency key."""
        return await self.get_by(
            event_key=event_key,
            beneficiary_id=beneficiary_id,
            level=level,
            distribution_type=distribution_type.value,
        )

    async def get_income_totals(
        self, beneficiary_id: int | None = None
    ) -> dict[str, dict[str, Decimal | int]]:
        """
        Sum credited commissions per distribution type.

        Args:
            beneficiary_id: Restrict to one beneficiary (None = all users)

        Returns:
            Dict mapping distribution type to {"total", "count"}
        """
        stmt = (
            select(
                CommissionRecord.distribution_type,
                func.coalesce(
                    func.sum(CommissionRecord.commission_amount),
                    Decimal("0"),
                ).label("total"),
                func.count(CommissionRecord.id).label("count"),
            )
            .where(
                CommissionRecord.status == CommissionStatus.CREDITED.value
            )
            .group_by(CommissionRecord.distribution_type)
        )
        if beneficiary_id is not None:
            stmt = stmt.where(CommissionRecord.beneficiary_id == beneficiary_id)

        result = await self.session.execute(stmt)

        # Build result dict with all types (default to 0)
        totals: dict[str, dict[str, Decimal | int]] = {
            dist_type.value: {"total": Decimal("0"), "count": 0}
            for dist_type in DistributionType
        }
        for row in result.all():
            totals[row.distribution_type] = {
                "total": Decimal(row.total),
                "count": row.count,
            }
        return totals

    async def get_level_breakdown(self, beneficiary_id: int) -> list[dict]:
        """
        Credited commission totals grouped by level and type.

        Args:
            beneficiary_id: Beneficiary user ID

        Returns:
            List of {"level", "distribution_type", "total", "count"}
            ordered by level
        """
        stmt = (
            select(
                CommissionRecord.level,
                CommissionRecord.distribution_type,
                func.sum(CommissionRecord.commission_amount).label("total"),
                func.count(CommissionRecord.id).label("count"),
            )
            .where(
                CommissionRecord.beneficiary_id == beneficiary_id,
                CommissionRecord.status == CommissionStatus.CREDITED.value,
            )
            .group_by(
                CommissionRecord.level, CommissionRecord.distribution_type
            )
            .order_by(
                CommissionRecord.level, CommissionRecord.distribution_type
            )
        )
        result = await self.session.execute(stmt)
        return [
            {
                "level": row.level,
                "distribution_type": row.distribution_type,
                "total": Decimal(row.total),
                "count": row.count,
            }
            for row in result.all()
        ]

    async def get_total_credited(self, beneficiary_id: int) -> Decimal:
        """Total credited commission for one beneficiary."""
        stmt = select(
            func.coalesce(
                func.sum(CommissionRecord.commission_amount), Decimal("0")
            )
        ).where(
            CommissionRecord.beneficiary_id == beneficiary_id,
            CommissionRecord.status == CommissionStatus.CREDITED.value,
        )
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def find_paginated(
        self,
        page: int,
        per_page: int,
        beneficiary_id: int | None = None,
        distribution_type: DistributionType | None = None,
    ) -> tuple[list[CommissionRecord], int]:
        """
        Find records newest first with pagination.

        Args:
            page: Page number (1-indexed)
            per_page: Items per page
            beneficiary_id: Optional beneficiary filter
            distribution_type: Optional type filter

        Returns:
            Tuple of (records, total_count)
        """
        conditions = []
        if beneficiary_id is not None:
            conditions.append(CommissionRecord.beneficiary_id == beneficiary_id)
        if distribution_type is not None:
            conditions.append(
                CommissionRecord.distribution_type == distribution_type.value
            )

        count_stmt = select(func.count(CommissionRecord.id)).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(CommissionRecord)
            .options(
                selectinload(CommissionRecord.beneficiary),
                selectinload(CommissionRecord.source_user),
            )
            .where(*conditions)
            .order_by(
                CommissionRecord.created_at.desc(),
                CommissionRecord.id.desc(),
            )
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total
