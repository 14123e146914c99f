"""
Enumerations shared by commission models and services.
"""

from enum import StrEnum


class DistributionType(StrEnum):
    """Commission distribution type (also the plan variant)."""

    REFERRAL_INCOME = "REFERRAL_INCOME"  # Per-lot on closed trades
    DIRECT_JOINING = "DIRECT_JOINING"  # Percent of the joining deposit


class CommissionType(StrEnum):
    """How plan rates are interpreted."""

    PER_LOT = "PER_LOT"
    FIXED = "FIXED"
    PERCENT = "PERCENT"


class CommissionStatus(StrEnum):
    """Commission record status."""

    CREDITED = "CREDITED"
    REVERSED = "REVERSED"
