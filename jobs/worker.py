"""
Worker entry point.

Run with: dramatiq jobs.worker
"""

from ib_engine.config.logging import setup_logging

setup_logging()

from jobs.broker import broker  # noqa: E402, F401
from jobs.tasks.commission_distribution import (  # noqa: E402, F401
    distribute_direct_joining_income,
    distribute_referral_income,
)
