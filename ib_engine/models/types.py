"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for amounts, balances, commissions
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Plan rate type: per-lot amount or percentage depending on plan
# Same precision as money so per-lot rates and percents share one column
RateType = DECIMAL(18, 8)
