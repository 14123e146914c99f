"""
Referral statistics module.

Read-only queries behind the user dashboard and the admin views: income
totals, per-level breakdown, commission history and referrer listings.
"""

import math
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.config.settings import settings
from ib_engine.models.commission_record import CommissionRecord
from ib_engine.models.enums import DistributionType
from ib_engine.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from ib_engine.repositories.user_repository import UserRepository
from ib_engine.services.wallet_service import WalletService
from ib_engine.utils.exceptions import UserNotFoundError


def clamp_page(page: int, limit: int | None) -> tuple[int, int]:
    """
    Normalise pagination input.

    Args:
        page: Requested page (values below 1 become 1)
        limit: Requested page size (None uses the configured default)

    Returns:
        Tuple of (page, limit) within configured bounds
    """
    if limit is None:
        limit = settings.history_page_size
    limit = max(1, min(limit, settings.history_max_page_size))
    return max(1, page), limit


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    """Pagination block returned alongside a page of rows."""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


def commission_to_dict(record: CommissionRecord) -> dict[str, Any]:
    """Serialisable view of one commission record."""
    return {
        "id": record.id,
        "beneficiary_id": record.beneficiary_id,
        "beneficiary_name": (
            record.beneficiary.username if record.beneficiary else None
        ),
        "source_user_id": record.source_user_id,
        "source_user_name": (
            record.source_user.username if record.source_user else None
        ),
        "trade_id": record.trade_id,
        "level": record.level,
        "distribution_type": record.distribution_type,
        "base_amount": record.base_amount,
        "rate": record.rate,
        "commission_amount": record.commission_amount,
        "status": record.status,
        "symbol": record.symbol,
        "lot_size": record.lot_size,
        "description": record.description,
        "created_at": record.created_at,
    }


class ReferralStatisticsManager:
    """Manages referral statistics and history queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics manager."""
        self.session = session
        self.user_repo = UserRepository(session)
        self.record_repo = CommissionRecordRepository(session)
        self.wallet_service = WalletService(session)

    async def get_user_referral_stats(self, user_id: int) -> dict[str, Any]:
        """
        Get the referral dashboard for a user.

        Args:
            user_id: User ID

        Returns:
            Dict with code, link, direct referral count, wallet summary,
            income totals per distribution type and per-level breakdown

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        code = user.referral_code
        direct_referrals = await self.user_repo.count_direct_referrals(user_id)
        wallet = await self.wallet_service.get_summary(user_id)
        totals = await self.record_repo.get_income_totals(user_id)
        breakdown = await self.record_repo.get_level_breakdown(user_id)

        referral_income = totals[DistributionType.REFERRAL_INCOME.value]
        joining_income = totals[DistributionType.DIRECT_JOINING.value]

        return {
            "referral_code": code,
            "referral_link": (
                settings.build_referral_link(code) if code else None
            ),
            "direct_referrals": direct_referrals,
            "wallet": wallet,
            "referral_income": referral_income,
            "direct_joining_income": joining_income,
            "total_income": (
                referral_income["total"] + joining_income["total"]
            ),
            "level_breakdown": breakdown,
        }

    async def get_commission_history(
        self,
        user_id: int,
        page: int = 1,
        limit: int | None = None,
        distribution_type: DistributionType | None = None,
    ) -> dict[str, Any]:
        """
        Get a beneficiary's commission records, newest first.

        Args:
            user_id: Beneficiary user ID
            page: Page number (1-indexed)
            limit: Page size
            distribution_type: Optional type filter

        Returns:
            Dict with commissions and pagination
        """
        page, limit = clamp_page(page, limit)
        records, total = await self.record_repo.find_paginated(
            page,
            limit,
            beneficiary_id=user_id,
            distribution_type=distribution_type,
        )
        return {
            "commissions": [commission_to_dict(r) for r in records],
            "pagination": pagination(page, limit, total),
        }

    async def list_commissions(
        self,
        page: int = 1,
        limit: int | None = None,
        distribution_type: DistributionType | None = None,
        beneficiary_id: int | None = None,
    ) -> dict[str, Any]:
        """
        List commission records across all users (admin view).

        Args:
            page: Page number (1-indexed)
            limit: Page size
            distribution_type: Optional type filter
            beneficiary_id: Optional beneficiary filter

        Returns:
            Dict with commissions and pagination
        """
        page, limit = clamp_page(page, limit)
        records, total = await self.record_repo.find_paginated(
            page,
            limit,
            beneficiary_id=beneficiary_id,
            distribution_type=distribution_type,
        )
        return {
            "commissions": [commission_to_dict(r) for r in records],
            "pagination": pagination(page, limit, total),
        }

    async def get_admin_stats(self) -> dict[str, Any]:
        """
        Platform-wide commission statistics.

        Returns:
            Dict with totals per distribution type and user counts
        """
        totals = await self.record_repo.get_income_totals()
        referral_income = totals[DistributionType.REFERRAL_INCOME.value]
        joining_income = totals[DistributionType.DIRECT_JOINING.value]

        return {
            "total_referral_income": referral_income["total"],
            "referral_income_count": referral_income["count"],
            "total_direct_joining_income": joining_income["total"],
            "direct_joining_income_count": joining_income["count"],
            "total_distributed": (
                referral_income["total"] + joining_income["total"]
            ),
            "total_referrers": await self.user_repo.count_with_referral_code(),
            "total_referred": await self.user_repo.count_referred(),
        }

    async def list_referrers(
        self,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        """
        List users holding a referral code with their performance.

        Args:
            page: Page number (1-indexed)
            limit: Page size
            search: Optional match on username, email or code

        Returns:
            Dict with referrers and pagination
        """
        page, limit = clamp_page(page, limit)
        users, total = await self.user_repo.find_referrers_paginated(
            page, limit, search=search
        )

        referrers = []
        for user in users:
            direct = await self.user_repo.count_direct_referrals(user.id)
            earned: Decimal = await self.record_repo.get_total_credited(
                user.id
            )
            referrers.append({
                "user_id": user.id,
                "username": user.username,
                "email": user.email,
                "referral_code": user.referral_code,
                "direct_referrals": direct,
                "total_earnings": earned,
                "created_at": user.created_at,
            })

        return {
            "referrers": referrers,
            "pagination": pagination(page, limit, total),
        }
