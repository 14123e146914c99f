"""
Referral services package.

Contains modular services for commission distribution:
- chain_manager: Upline resolution, downline traversal, referrer attachment
- code_manager: Referral code issuance and validation
- commission_calculator: Per-level commission amounts
- ledger_writer: Idempotent commission records
- distribution_processor: Orchestrates a distribution run
- statistics: Dashboards, history and admin listings
"""

from ib_engine.services.referral.chain_manager import (
    ChainEntry,
    DownlineTree,
    ReferralChainManager,
)
from ib_engine.services.referral.code_manager import (
    ReferralCodeManager,
    ReferralCodeValidation,
)
from ib_engine.services.referral.commission_calculator import (
    CommissionCalculator,
    CommissionQuote,
)
from ib_engine.services.referral.distribution_processor import (
    CommissionDistributor,
    CreditedCommission,
    DistributionResult,
)
from ib_engine.services.referral.events import DepositEvent, TradeEvent
from ib_engine.services.referral.ledger_writer import LedgerWriter
from ib_engine.services.referral.statistics import ReferralStatisticsManager


__all__ = [
    # Events
    "DepositEvent",
    "TradeEvent",
    # Managers
    "ReferralChainManager",
    "ReferralCodeManager",
    "ReferralStatisticsManager",
    "ChainEntry",
    "DownlineTree",
    "ReferralCodeValidation",
    # Distribution
    "CommissionCalculator",
    "CommissionQuote",
    "CommissionDistributor",
    "CreditedCommission",
    "DistributionResult",
    "LedgerWriter",
]
