"""
Referral service.

Entry point for the admin and query layers: plans, referral codes, chain
attachment, dashboards, history and wallet views. Distribution itself runs
in the background workers through CommissionDistributor.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.config.settings import settings
from ib_engine.models.enums import DistributionType
from ib_engine.repositories.user_repository import UserRepository
from ib_engine.services.base_service import BaseService, transaction
from ib_engine.services.plan_service import PlanService, PlanUpdate
from ib_engine.services.referral.chain_manager import (
    DownlineTree,
    ReferralChainManager,
)
from ib_engine.services.referral.code_manager import (
    ReferralCodeManager,
    ReferralCodeValidation,
)
from ib_engine.services.referral.distribution_processor import (
    CommissionDistributor,
    DistributionResult,
)
from ib_engine.services.referral.events import TradeEvent
from ib_engine.services.referral.statistics import ReferralStatisticsManager
from ib_engine.services.wallet_service import WalletService, WalletSummary


class ReferralService(BaseService):
    """Referral service for commission plans, codes and reporting."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral service."""
        super().__init__(session)
        self.plan_service = PlanService(session)
        self.chain_manager = ReferralChainManager(session)
        self.code_manager = ReferralCodeManager(session)
        self.stats_manager = ReferralStatisticsManager(session)
        self.wallet_service = WalletService(session)
        self.distributor = CommissionDistributor(session)
        self.user_repo = UserRepository(session)

    # Plans

    async def get_plan(self, variant: DistributionType) -> dict[str, Any]:
        """Get the active plan for a variant (creates the default)."""
        return await self.plan_service.get_plan(variant)

    async def update_plan(
        self,
        variant: DistributionType,
        update: PlanUpdate | dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply an administrative plan update.

        Raises:
            PlanValidationError: If the update is malformed
        """
        return await self.plan_service.update_plan(variant, update)

    async def get_plan_history(
        self, variant: DistributionType
    ) -> list[dict[str, Any]]:
        """All stored versions of a plan variant, newest first."""
        return await self.plan_service.get_plan_history(variant)

    # Referral codes and chain

    @transaction
    async def ensure_referral_code(self, user_id: int) -> str:
        """
        Get the user's referral code, issuing one if needed.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        return await self.code_manager.ensure_referral_code(user_id)

    async def get_referral_code(self, user_id: int) -> dict[str, Any]:
        """
        Get the user's code, shareable link and direct referral count.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        code = await self.ensure_referral_code(user_id)
        direct = await self.user_repo.count_direct_referrals(user_id)
        return {
            "referral_code": code,
            "referral_link": settings.build_referral_link(code),
            "direct_referrals": direct,
        }

    async def validate_referral_code(
        self, referral_code: str
    ) -> ReferralCodeValidation:
        """Check whether a referral code belongs to a user."""
        return await self.code_manager.validate_referral_code(referral_code)

    @transaction
    async def register_with_referral(
        self, user_id: int, referral_code: str
    ) -> int:
        """
        Attach the code owner as the user's referrer.

        Returns:
            Referrer user ID

        Raises:
            UserNotFoundError: If the user does not exist
            InvalidReferralCodeError: If no user owns the code
            ReferrerAlreadySetError: If the user already has a referrer
            ReferralLoopError: If the edge would close a cycle
        """
        referrer = await self.chain_manager.register_with_referral(
            user_id, referral_code
        )
        return referrer.id

    async def get_downline_tree(
        self, user_id: int, max_depth: int | None = None
    ) -> DownlineTree | None:
        """
        Get a user's downline up to max_depth levels.

        The depth defaults to the configured default and is capped at the
        configured maximum.
        """
        if max_depth is None:
            max_depth = settings.downline_default_depth
        max_depth = max(1, min(max_depth, settings.downline_max_depth))
        return await self.chain_manager.get_downline_tree(user_id, max_depth)

    # Dashboards and history

    async def get_user_referral_stats(self, user_id: int) -> dict[str, Any]:
        """
        Get a user's referral dashboard.

        Issues the referral code first if the user has none, so the
        dashboard always carries a shareable link.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        await self.ensure_referral_code(user_id)
        stats = await self.stats_manager.get_user_referral_stats(user_id)
        await self.commit()
        return stats

    async def get_commission_history(
        self,
        user_id: int,
        page: int = 1,
        limit: int | None = None,
        distribution_type: DistributionType | None = None,
    ) -> dict[str, Any]:
        """Get a beneficiary's commission history, newest first."""
        return await self.stats_manager.get_commission_history(
            user_id, page, limit, distribution_type
        )

    @transaction
    async def get_wallet_summary(self, user_id: int) -> WalletSummary:
        """Get the user's wallet balances (creates the wallet if missing)."""
        return await self.wallet_service.get_summary(user_id)

    async def get_admin_stats(self) -> dict[str, Any]:
        """Platform-wide commission statistics."""
        return await self.stats_manager.get_admin_stats()

    async def list_commissions(
        self,
        page: int = 1,
        limit: int | None = None,
        distribution_type: DistributionType | None = None,
        beneficiary_id: int | None = None,
    ) -> dict[str, Any]:
        """List commission records across all users."""
        return await self.stats_manager.list_commissions(
            page, limit, distribution_type, beneficiary_id
        )

    async def list_referrers(
        self,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        """List users holding a referral code with their performance."""
        return await self.stats_manager.list_referrers(page, limit, search)

    # Distribution

    async def process_referral_income(
        self, trade: TradeEvent
    ) -> DistributionResult:
        """Distribute REFERRAL_INCOME for a closed trade."""
        return await self.distributor.process_referral_income(trade)

    async def process_direct_joining_income(
        self, new_user_id: int, deposit_amount: Decimal
    ) -> DistributionResult:
        """Distribute DIRECT_JOINING for a new user's deposit."""
        return await self.distributor.process_direct_joining_income(
            new_user_id, deposit_amount
        )
