"""
Distribution producers.

Called by the trading and payments collaborators when a trade closes or a
deposit is confirmed. The event is validated, enqueued and the call returns
immediately; distribution happens in the worker.
"""

from decimal import Decimal
from typing import Any

from loguru import logger

from ib_engine.services.referral.events import DepositEvent, TradeEvent


def dispatch_trade_closed(trade: TradeEvent | dict[str, Any]) -> TradeEvent:
    """
    Enqueue REFERRAL_INCOME distribution for a closed trade.

    Args:
        trade: TradeEvent or raw dict

    Returns:
        The validated event

    Raises:
        pydantic.ValidationError: If the event is malformed
    """
    from jobs.tasks.commission_distribution import distribute_referral_income

    event = (
        trade if isinstance(trade, TradeEvent)
        else TradeEvent.model_validate(trade)
    )
    distribute_referral_income.send(event.model_dump(mode="json"))

    logger.debug(
        "Trade queued for referral income",
        extra={"trade_id": event.event_id},
    )
    return event


def dispatch_deposit_confirmed(
    user_id: int, amount: Decimal
) -> DepositEvent:
    """
    Enqueue DIRECT_JOINING distribution for a confirmed deposit.

    Args:
        user_id: User who made the deposit
        amount: Deposit amount

    Returns:
        The validated event

    Raises:
        pydantic.ValidationError: If the event is malformed
    """
    from jobs.tasks.commission_distribution import (
        distribute_direct_joining_income,
    )

    event = DepositEvent(user_id=user_id, amount=amount)
    distribute_direct_joining_income.send(event.user_id, str(event.amount))

    logger.debug(
        "Deposit queued for direct joining income",
        extra={"user_id": event.user_id, "amount": str(event.amount)},
    )
    return event
