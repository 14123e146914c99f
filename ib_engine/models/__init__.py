"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from ib_engine.models.base import Base
from ib_engine.models.commission_plan import CommissionPlan, CommissionPlanLevel
from ib_engine.models.commission_record import CommissionRecord
from ib_engine.models.enums import (
    CommissionStatus,
    CommissionType,
    DistributionType,
)
from ib_engine.models.user import User
from ib_engine.models.wallet import IBWallet


__all__ = [
    "Base",
    "CommissionPlan",
    "CommissionPlanLevel",
    "CommissionRecord",
    "CommissionStatus",
    "CommissionType",
    "DistributionType",
    "IBWallet",
    "User",
]
