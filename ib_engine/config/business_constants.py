"""
Business logic constants for the IB commission engine.

Central location for plan defaults and limits used across the application.
"""

from decimal import Decimal

# Plan level bounds
MIN_PLAN_LEVELS = 1
MAX_PLAN_LEVELS = 25

# Hard depth limit for any upward chain walk
REFERRAL_CHAIN_HARD_LIMIT = MAX_PLAN_LEVELS

# Referral code alphabet
REFERRAL_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# Default Referral Income plan: per-lot amounts paid on every closed trade
DEFAULT_REFERRAL_INCOME_PLAN = {
    "name": "Referral Income Plan",
    "description": (
        "Commission earned from trading activity of the referral network"
    ),
    "max_levels": 11,
    "commission_type": "PER_LOT",
    "total_distribution": None,
    "levels": {
        1: Decimal("4"),
        2: Decimal("3"),
        3: Decimal("3"),
        4: Decimal("2"),
        5: Decimal("2"),
        6: Decimal("1"),
        7: Decimal("1"),
        8: Decimal("0.5"),
        9: Decimal("0.5"),
        10: Decimal("0.5"),
        11: Decimal("0.5"),
    },
}

# Default Direct Joining plan: percent of the new user's deposit
DEFAULT_DIRECT_JOINING_PLAN = {
    "name": "Direct Joining Income Plan",
    "description": (
        "Commission earned when new users join through a referral link"
    ),
    "max_levels": 18,
    "commission_type": "PERCENT",
    "total_distribution": Decimal("90"),
    "levels": {
        1: Decimal("15"),
        2: Decimal("10"),
        3: Decimal("5"),
        **{level: Decimal("4") for level in range(4, 19)},
    },
}


# =============================================================================
# DRAMATIQ TASK TIME LIMITS (milliseconds)
# =============================================================================

# Distribution runs touch at most 25 chain entries
DRAMATIQ_TIME_LIMIT_DISTRIBUTION = 120_000
