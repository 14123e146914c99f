"""
Commission distribution tasks.

Consume trade-closed and deposit-confirmed messages and run the
distribution orchestrator. Outcomes are logged here and never reach the
producer: a failed distribution must not fail the trade or the deposit.
"""

from decimal import Decimal
from typing import Any

import dramatiq
from dramatiq.middleware import CurrentMessage
from loguru import logger
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.config.business_constants import (
    DRAMATIQ_TIME_LIMIT_DISTRIBUTION,
)
from ib_engine.services.referral.distribution_processor import (
    CommissionDistributor,
    DistributionResult,
)
from ib_engine.services.referral.events import DepositEvent, TradeEvent
from ib_engine.utils.db_decorators import with_rollback_on_error
from jobs.async_runner import create_local_session, run_async
from jobs.broker import broker  # noqa: F401


def _message_id() -> str | None:
    message = CurrentMessage.get_current_message()
    return message.message_id if message else None


def _log_result(result: DistributionResult, **context: Any) -> None:
    extra = {
        **context,
        "message_id": _message_id(),
        "distribution_type": result.distribution_type.value,
        "commissions_generated": result.commissions_generated,
        "duplicates_skipped": result.duplicates_skipped,
        "total_distributed": str(result.total_distributed),
    }
    if not result.processed:
        logger.info(
            "Distribution skipped: {reason}", reason=result.reason, extra=extra
        )
    elif result.partial:
        logger.warning(
            "Distribution partially failed at levels {levels}",
            levels=result.failed_levels,
            extra=extra,
        )
    else:
        logger.info("Distribution finished", extra=extra)


@with_rollback_on_error
async def _distribute_referral_income(
    session: AsyncSession, trade: TradeEvent
) -> DistributionResult:
    return await CommissionDistributor(session).process_referral_income(trade)


@with_rollback_on_error
async def _distribute_direct_joining_income(
    session: AsyncSession, deposit: DepositEvent
) -> DistributionResult:
    return await CommissionDistributor(
        session
    ).process_direct_joining_income(deposit.user_id, deposit.amount)


async def _run_referral_income(trade: TradeEvent) -> DistributionResult:
    async with create_local_session() as session:
        return await _distribute_referral_income(session, trade)


async def _run_direct_joining_income(
    deposit: DepositEvent,
) -> DistributionResult:
    async with create_local_session() as session:
        return await _distribute_direct_joining_income(session, deposit)


@dramatiq.actor(max_retries=0, time_limit=DRAMATIQ_TIME_LIMIT_DISTRIBUTION)
def distribute_referral_income(trade: dict[str, Any]) -> None:
    """
    Distribute REFERRAL_INCOME for a closed trade.

    Args:
        trade: Serialised TradeEvent (quantity as a decimal string)
    """
    try:
        event = TradeEvent.model_validate(trade)
    except ValidationError as e:
        logger.error(
            "Discarding malformed trade event: {error}",
            error=str(e),
            extra={"message_id": _message_id()},
        )
        return

    try:
        result = run_async(_run_referral_income(event))
    except Exception as e:
        logger.exception(
            "Referral income distribution failed: {error}",
            error=str(e),
            extra={"trade_id": event.event_id, "message_id": _message_id()},
        )
        return

    _log_result(result, trade_id=event.event_id)


@dramatiq.actor(max_retries=0, time_limit=DRAMATIQ_TIME_LIMIT_DISTRIBUTION)
def distribute_direct_joining_income(user_id: int, amount: str) -> None:
    """
    Distribute DIRECT_JOINING for a new user's confirmed deposit.

    Args:
        user_id: User who made the deposit
        amount: Deposit amount as a decimal string
    """
    try:
        event = DepositEvent(user_id=user_id, amount=Decimal(amount))
    except (ValidationError, ArithmeticError) as e:
        logger.error(
            "Discarding malformed deposit event: {error}",
            error=str(e),
            extra={"user_id": user_id, "message_id": _message_id()},
        )
        return

    try:
        result = run_async(_run_direct_joining_income(event))
    except Exception as e:
        logger.exception(
            "Direct joining distribution failed: {error}",
            error=str(e),
            extra={"new_user_id": event.user_id, "message_id": _message_id()},
        )
        return

    _log_result(result, new_user_id=event.user_id)
