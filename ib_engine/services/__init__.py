"""
Services.

Business logic layer.
"""

from ib_engine.services.base_service import BaseService, transaction
from ib_engine.services.plan_service import (
    PlanRates,
    PlanService,
    PlanUpdate,
    get_rate_for_level,
)
from ib_engine.services.referral_service import ReferralService
from ib_engine.services.wallet_service import WalletService, WalletSummary


__all__ = [
    # Base
    "BaseService",
    "transaction",
    # Plans
    "PlanRates",
    "PlanService",
    "PlanUpdate",
    "get_rate_for_level",
    # Referral facade
    "ReferralService",
    # Wallet
    "WalletService",
    "WalletSummary",
]
