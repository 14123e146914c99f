"""
Distribution trigger events.

Signals consumed from the trading and payments collaborators.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class TradeEvent(BaseModel):
    """A closed trade that pays REFERRAL_INCOME up the trader's chain."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(min_length=1, max_length=64)
    trader_user_id: int = Field(gt=0)
    symbol: str = Field(min_length=1, max_length=20)
    quantity: Decimal = Field(gt=0, description="Traded volume in lots")


class DepositEvent(BaseModel):
    """A new user's confirmed deposit that pays DIRECT_JOINING."""

    model_config = ConfigDict(frozen=True)

    user_id: int = Field(gt=0)
    amount: Decimal = Field(gt=0)
