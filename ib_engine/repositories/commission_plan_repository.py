"""
Commission plan repository.

Data access layer for CommissionPlan and its level rows.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.models.commission_plan import CommissionPlan, CommissionPlanLevel
from ib_engine.models.enums import DistributionType
from ib_engine.repositories.base import BaseRepository


class CommissionPlanRepository(BaseRepository[CommissionPlan]):
    """Commission plan repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission plan repository."""
        super().__init__(CommissionPlan, session)

    async def get_active(
        self, variant: DistributionType
    ) -> CommissionPlan | None:
        """
        Get the active plan for a variant.

        Args:
            variant: Plan variant

        Returns:
            Active plan with levels loaded, or None
        """
        stmt = select(CommissionPlan).where(
            CommissionPlan.variant == variant.value,
            CommissionPlan.is_active == True,  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_versions(
        self, variant: DistributionType
    ) -> list[CommissionPlan]:
        """
        Get every stored version of a variant, newest first.

        Args:
            variant: Plan variant

        Returns:
            List of plans ordered by version descending
        """
        stmt = (
            select(CommissionPlan)
            .where(CommissionPlan.variant == variant.value)
            .order_by(CommissionPlan.version.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_plan(
        self,
        variant: DistributionType,
        levels: dict[int, Decimal],
        version: int = 1,
        **fields: Any,
    ) -> CommissionPlan:
        """
        Create an active plan with its level table.

        Args:
            variant: Plan variant
            levels: Level -> rate mapping
            version: Version number
            **fields: name, description, max_levels, commission_type,
                total_distribution

        Returns:
            Created plan
        """
        plan = CommissionPlan(
            variant=variant.value,
            version=version,
            is_active=True,
            levels=[
                CommissionPlanLevel(level=level, rate=rate)
                for level, rate in sorted(levels.items())
            ],
            **fields,
        )
        self.session.add(plan)
        await self.session.flush()
        return plan

    async def deactivate(self, plan_id: int) -> None:
        """
        Deactivate a plan version.

        Plans are never deleted, only deactivated.

        Args:
            plan_id: Plan ID
        """
        stmt = (
            update(CommissionPlan)
            .where(CommissionPlan.id == plan_id)
            .values(is_active=False)
        )
        await self.session.execute(stmt)
        await self.session.flush()
