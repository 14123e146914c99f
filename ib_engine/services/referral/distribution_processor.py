"""
Commission distribution processor.

Turns a trade or a joining deposit into commission records up the referral
chain and credits each beneficiary's wallet.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.models.enums import DistributionType
from ib_engine.services.plan_service import PlanRates, PlanService
from ib_engine.services.referral.chain_manager import (
    ChainEntry,
    ReferralChainManager,
)
from ib_engine.services.referral.commission_calculator import (
    CommissionCalculator,
    CommissionQuote,
)
from ib_engine.services.referral.events import TradeEvent
from ib_engine.services.referral.ledger_writer import (
    CommissionKey,
    LedgerWriter,
    RecordFields,
    joining_event_key,
    trade_event_key,
)
from ib_engine.services.wallet_service import WalletService


REASON_NO_ACTIVE_PLAN = "no_active_plan"
REASON_NO_REFERRAL_CHAIN = "no_referral_chain"


@dataclass
class CreditedCommission:
    """One beneficiary credited by a distribution run."""

    user_id: int
    username: str | None
    level: int
    rate: Decimal
    amount: Decimal


@dataclass
class DistributionResult:
    """Outcome of one distribution run."""

    processed: bool
    distribution_type: DistributionType
    reason: str | None = None
    commissions_generated: int = 0
    duplicates_skipped: int = 0
    failed_levels: list[int] = field(default_factory=list)
    total_distributed: Decimal = Decimal("0")
    results: list[CreditedCommission] = field(default_factory=list)

    @classmethod
    def not_processed(
        cls, distribution_type: DistributionType, reason: str
    ) -> "DistributionResult":
        """Result for a run with nothing to distribute."""
        return cls(
            processed=False,
            distribution_type=distribution_type,
            reason=reason,
        )

    @property
    def partial(self) -> bool:
        """True if at least one chain entry failed."""
        return bool(self.failed_levels)


class CommissionDistributor:
    """
    Distribution orchestrator.

    Each chain entry runs in its own transaction: the record insert and the
    wallet credit commit together, and a persistence failure on one entry
    is rolled back and logged without stopping the remaining entries.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize distributor.

        Args:
            session: Async database session owned by this run
        """
        self.session = session
        self.plan_service = PlanService(session)
        self.chain_manager = ReferralChainManager(session)
        self.calculator = CommissionCalculator()
        self.ledger = LedgerWriter(session)
        self.wallet_service = WalletService(session)

    async def process_referral_income(
        self, trade: TradeEvent
    ) -> DistributionResult:
        """
        Distribute REFERRAL_INCOME for a closed trade.

        Args:
            trade: Trade event

        Returns:
            DistributionResult
        """
        logger.info(
            "Processing referral income",
            extra={
                "trade_id": trade.event_id,
                "trader_user_id": trade.trader_user_id,
                "symbol": trade.symbol,
                "quantity": str(trade.quantity),
            },
        )

        def build(entry: ChainEntry, quote: CommissionQuote) -> RecordFields:
            return RecordFields(
                source_user_id=trade.trader_user_id,
                trade_id=trade.event_id,
                base_amount=quote.base_amount,
                rate=quote.rate,
                commission_amount=quote.commission_amount,
                symbol=trade.symbol,
                lot_size=trade.quantity,
                description=(
                    f"Level {entry.level} referral income from "
                    f"{trade.symbol} trade"
                ),
            )

        return await self._distribute(
            distribution_type=DistributionType.REFERRAL_INCOME,
            source_user_id=trade.trader_user_id,
            event_key=trade_event_key(trade.event_id),
            base_amount=trade.quantity,
            build_fields=build,
        )

    async def process_direct_joining_income(
        self, new_user_id: int, deposit_amount: Decimal
    ) -> DistributionResult:
        """
        Distribute DIRECT_JOINING for a new user's deposit.

        Paid once per new user: the idempotency key is derived from the new
        user, so a repeated or second deposit credits nothing.

        Args:
            new_user_id: User who made the deposit
            deposit_amount: Deposit amount

        Returns:
            DistributionResult (total_distributed filled in)
        """
        logger.info(
            "Processing direct joining income",
            extra={
                "new_user_id": new_user_id,
                "deposit_amount": str(deposit_amount),
            },
        )

        def build(entry: ChainEntry, quote: CommissionQuote) -> RecordFields:
            return RecordFields(
                source_user_id=new_user_id,
                base_amount=quote.base_amount,
                rate=quote.rate,
                commission_amount=quote.commission_amount,
                description=(
                    f"Level {entry.level} direct joining income "
                    f"({quote.rate.normalize():f}% of {deposit_amount})"
                ),
            )

        return await self._distribute(
            distribution_type=DistributionType.DIRECT_JOINING,
            source_user_id=new_user_id,
            event_key=joining_event_key(new_user_id),
            base_amount=deposit_amount,
            build_fields=build,
        )

    async def _distribute(
        self,
        distribution_type: DistributionType,
        source_user_id: int,
        event_key: str,
        base_amount: Decimal,
        build_fields: Callable[[ChainEntry, CommissionQuote], RecordFields],
    ) -> DistributionResult:
        """Shared state machine for both entry points."""
        plan = await self.plan_service.get_active_plan(distribution_type)
        if plan is None or not plan.is_active:
            logger.info(
                "No active commission plan",
                extra={"distribution_type": distribution_type.value},
            )
            return DistributionResult.not_processed(
                distribution_type, REASON_NO_ACTIVE_PLAN
            )

        rates = PlanRates.from_plan(plan)
        chain = await self.chain_manager.resolve_chain(
            source_user_id, rates.max_levels
        )
        if not chain:
            logger.info(
                "No referral chain found",
                extra={
                    "source_user_id": source_user_id,
                    "distribution_type": distribution_type.value,
                },
            )
            return DistributionResult.not_processed(
                distribution_type, REASON_NO_REFERRAL_CHAIN
            )

        result = DistributionResult(
            processed=True, distribution_type=distribution_type
        )

        for entry in chain:
            if entry.level > rates.max_levels:
                continue

            quote = self.calculator.calculate(rates, entry.level, base_amount)
            if quote is None:
                continue

            key = CommissionKey(
                event_key=event_key,
                beneficiary_id=entry.user_id,
                level=entry.level,
                distribution_type=distribution_type,
            )

            try:
                credited = await self._record_and_credit(
                    key, build_fields(entry, quote), quote
                )
            except SQLAlchemyError as e:
                await self.session.rollback()
                result.failed_levels.append(entry.level)
                logger.exception(
                    "Failed to distribute level {level} commission: {error}",
                    level=entry.level,
                    error=str(e),
                    extra={
                        "event_key": event_key,
                        "beneficiary_id": entry.user_id,
                        "level": entry.level,
                    },
                )
                continue

            if not credited:
                result.duplicates_skipped += 1
                continue

            result.commissions_generated += 1
            result.total_distributed += quote.commission_amount
            result.results.append(
                CreditedCommission(
                    user_id=entry.user_id,
                    username=entry.username,
                    level=entry.level,
                    rate=quote.rate,
                    amount=quote.commission_amount,
                )
            )

        logger.info(
            "Commission distribution complete",
            extra={
                "event_key": event_key,
                "distribution_type": distribution_type.value,
                "plan_version": rates.version,
                "commissions_generated": result.commissions_generated,
                "duplicates_skipped": result.duplicates_skipped,
                "failed_levels": result.failed_levels,
                "total_distributed": str(result.total_distributed),
            },
        )
        return result

    async def _record_and_credit(
        self,
        key: CommissionKey,
        fields: RecordFields,
        quote: CommissionQuote,
    ) -> bool:
        """
        Record one obligation and credit it in a single transaction.

        Returns:
            True if credited, False if the key was already recorded
        """
        record = await self.ledger.record_if_absent(key, fields)
        if record is None:
            await self.session.commit()
            return False

        await self.wallet_service.credit_commission(
            key.beneficiary_id, quote.commission_amount
        )
        await self.session.commit()

        logger.info(
            f"Level {key.level} commission credited",
            extra={
                "beneficiary_id": key.beneficiary_id,
                "distribution_type": key.distribution_type.value,
                "rate": str(quote.rate),
                "amount": str(quote.commission_amount),
            },
        )
        return True
