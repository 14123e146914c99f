"""
Commission calculator.

Pure computation of one chain entry's commission. Never touches state.
"""

from dataclasses import dataclass
from decimal import Decimal

from ib_engine.models.enums import DistributionType
from ib_engine.services.plan_service import PlanRates


@dataclass(frozen=True)
class CommissionQuote:
    """Amounts persisted verbatim by the ledger writer."""

    base_amount: Decimal
    rate: Decimal
    commission_amount: Decimal


class CommissionCalculator:
    """
    Commission calculator for both distribution types.

    The plan variant decides the formula:
    - REFERRAL_INCOME: quantity * rate (rate is an amount per lot)
    - DIRECT_JOINING: deposit * rate / 100 (rate is a percentage)

    The plan's commission_type is a stored label for admins and does not
    change the amount.
    """

    def calculate(
        self, plan: PlanRates, level: int, base_amount: Decimal
    ) -> CommissionQuote | None:
        """
        Quote the commission for one level.

        Args:
            plan: Active plan snapshot
            level: Beneficiary level
            base_amount: Lots traded or deposit amount

        Returns:
            CommissionQuote, or None when the rate or the resulting amount
            is not positive (the entry is skipped)
        """
        rate = plan.rate_for_level(level)
        if rate <= 0:
            return None

        if plan.variant == DistributionType.DIRECT_JOINING:
            amount = base_amount * rate / 100
        else:
            amount = base_amount * rate

        if amount <= 0:
            return None

        return CommissionQuote(
            base_amount=base_amount,
            rate=rate,
            commission_amount=amount,
        )

    def calculate_referral_income(
        self, plan: PlanRates, level: int, quantity: Decimal
    ) -> CommissionQuote | None:
        """Quote a REFERRAL_INCOME commission on a trade of quantity lots."""
        return self.calculate(plan, level, quantity)

    def calculate_direct_joining(
        self, plan: PlanRates, level: int, deposit_amount: Decimal
    ) -> CommissionQuote | None:
        """Quote a DIRECT_JOINING commission on a joining deposit."""
        return self.calculate(plan, level, deposit_amount)
