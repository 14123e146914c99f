"""
Commission plan service.

Active plan lookup with lazy defaults, per-level rate lookup and
presence-aware administrative updates.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.config.business_constants import (
    DEFAULT_DIRECT_JOINING_PLAN,
    DEFAULT_REFERRAL_INCOME_PLAN,
    MAX_PLAN_LEVELS,
    MIN_PLAN_LEVELS,
)
from ib_engine.models.commission_plan import CommissionPlan
from ib_engine.models.enums import CommissionType, DistributionType
from ib_engine.repositories.commission_plan_repository import (
    CommissionPlanRepository,
)
from ib_engine.services.base_service import BaseService, transaction
from ib_engine.utils.exceptions import PlanValidationError


DEFAULT_PLANS: dict[DistributionType, dict[str, Any]] = {
    DistributionType.REFERRAL_INCOME: DEFAULT_REFERRAL_INCOME_PLAN,
    DistributionType.DIRECT_JOINING: DEFAULT_DIRECT_JOINING_PLAN,
}

ALLOWED_COMMISSION_TYPES: dict[DistributionType, frozenset[CommissionType]] = {
    DistributionType.REFERRAL_INCOME: frozenset(
        {CommissionType.PER_LOT, CommissionType.FIXED}
    ),
    DistributionType.DIRECT_JOINING: frozenset(
        {CommissionType.PERCENT, CommissionType.FIXED}
    ),
}

# Fields that may not be explicitly cleared
_NON_NULLABLE_FIELDS = (
    "name", "description", "max_levels", "commission_type", "levels",
)


class PlanLevelInput(BaseModel):
    """One row of a replacement level table."""

    model_config = ConfigDict(extra="forbid")

    level: int = Field(ge=1, le=MAX_PLAN_LEVELS)
    rate: Decimal = Field(ge=0)


class PlanUpdate(BaseModel):
    """
    Administrative plan update.

    Only fields the caller actually supplied are applied; presence is read
    from ``model_fields_set``, so ``rate=0`` or ``total_distribution=0`` are
    real values rather than "leave unchanged".
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    max_levels: int | None = Field(
        default=None, ge=MIN_PLAN_LEVELS, le=MAX_PLAN_LEVELS
    )
    commission_type: CommissionType | None = None
    total_distribution: Decimal | None = Field(default=None, ge=0)
    levels: list[PlanLevelInput] | None = None

    @field_validator("levels")
    @classmethod
    def validate_unique_levels(
        cls, v: list[PlanLevelInput] | None
    ) -> list[PlanLevelInput] | None:
        """Reject a level table that lists the same level twice."""
        if v is None:
            return v
        seen = [row.level for row in v]
        if len(seen) != len(set(seen)):
            raise ValueError("levels must not repeat a level number")
        return v


@dataclass(frozen=True)
class PlanRates:
    """
    Detached snapshot of a plan's rate configuration.

    Distribution runs commit and roll back per chain entry, which expires
    ORM instances; the snapshot keeps the plan usable across those
    boundaries.
    """

    plan_id: int
    variant: DistributionType
    version: int
    max_levels: int
    commission_type: CommissionType
    rates: Mapping[int, Decimal]

    @classmethod
    def from_plan(cls, plan: CommissionPlan) -> "PlanRates":
        """Snapshot a loaded plan."""
        return cls(
            plan_id=plan.id,
            variant=plan.distribution_type,
            version=plan.version,
            max_levels=plan.max_levels,
            commission_type=plan.rate_type,
            rates=MappingProxyType(plan.rate_table()),
        )

    def rate_for_level(self, level: int) -> Decimal:
        """Configured rate for level, 0 when not configured."""
        return self.rates.get(level, Decimal("0"))


def get_rate_for_level(plan: CommissionPlan, level: int) -> Decimal:
    """
    Get the configured rate for a level.

    Unconfigured levels (including levels past the table) pay nothing.

    Args:
        plan: Commission plan with levels loaded
        level: Referral level

    Returns:
        Configured rate or Decimal("0")
    """
    for row in plan.levels:
        if row.level == level:
            return row.rate
    return Decimal("0")


def plan_to_dict(plan: CommissionPlan) -> dict[str, Any]:
    """Serialisable snapshot of a plan for the admin layer."""
    return {
        "id": plan.id,
        "variant": plan.variant,
        "name": plan.name,
        "description": plan.description,
        "max_levels": plan.max_levels,
        "commission_type": plan.commission_type,
        "total_distribution": plan.total_distribution,
        "is_active": plan.is_active,
        "version": plan.version,
        "levels": [
            {"level": row.level, "rate": row.rate} for row in plan.levels
        ],
        "updated_at": plan.updated_at,
    }


class PlanService(BaseService):
    """Commission plan store."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize plan service."""
        super().__init__(session)
        self.plan_repo = CommissionPlanRepository(session)

    async def get_active_plan(
        self, variant: DistributionType
    ) -> CommissionPlan:
        """
        Get the active plan, creating the built-in default on first read.

        Two first readers may both try to create the default; the partial
        unique index lets only one commit and the other re-reads it.

        Args:
            variant: Plan variant

        Returns:
            Active plan
        """
        plan = await self.plan_repo.get_active(variant)
        if plan is not None:
            return plan

        defaults = dict(DEFAULT_PLANS[variant])
        levels = defaults.pop("levels")

        try:
            plan = await self.plan_repo.create_plan(
                variant, levels, version=1, **defaults
            )
            await self.commit()
        except IntegrityError:
            await self.rollback()
            plan = await self.plan_repo.get_active(variant)
            if plan is None:
                raise
            return plan

        self.logger.info(
            "Default commission plan created",
            extra={
                "variant": variant.value,
                "plan_id": plan.id,
                "max_levels": plan.max_levels,
            },
        )
        return plan

    async def get_plan(self, variant: DistributionType) -> dict[str, Any]:
        """
        Get the active plan configuration.

        Args:
            variant: Plan variant

        Returns:
            Plan snapshot dict
        """
        return plan_to_dict(await self.get_active_plan(variant))

    async def get_plan_history(
        self, variant: DistributionType
    ) -> list[dict[str, Any]]:
        """All stored versions of a variant, newest first."""
        plans = await self.plan_repo.get_versions(variant)
        return [plan_to_dict(plan) for plan in plans]

    @staticmethod
    def parse_update(data: PlanUpdate | dict[str, Any]) -> PlanUpdate:
        """
        Validate raw update input.

        Raises:
            PlanValidationError: If the input is malformed
        """
        if isinstance(data, PlanUpdate):
            return data
        try:
            return PlanUpdate.model_validate(data)
        except ValidationError as e:
            raise PlanValidationError(str(e)) from e

    async def update_plan(
        self,
        variant: DistributionType,
        data: PlanUpdate | dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply an administrative update as a new plan version.

        The current version is deactivated and a new active version is
        written with supplied fields overlaid on the current ones. A
        supplied level table replaces the old one wholesale. Validation
        happens before any write, so a rejected update leaves the stored
        plan unmodified.

        Args:
            variant: Plan variant
            data: PlanUpdate or raw dict

        Returns:
            Snapshot of the new active version

        Raises:
            PlanValidationError: If the update is malformed
        """
        update = self.parse_update(data)
        current = await self.get_active_plan(variant)

        supplied = update.model_fields_set
        for field_name in _NON_NULLABLE_FIELDS:
            if field_name in supplied and getattr(update, field_name) is None:
                raise PlanValidationError(f"{field_name} cannot be null")

        fields: dict[str, Any] = {
            "name": current.name,
            "description": current.description,
            "max_levels": current.max_levels,
            "commission_type": current.commission_type,
            "total_distribution": current.total_distribution,
        }
        for field_name in fields:
            if field_name in supplied:
                fields[field_name] = getattr(update, field_name)

        commission_type = CommissionType(fields["commission_type"])
        if commission_type not in ALLOWED_COMMISSION_TYPES[variant]:
            raise PlanValidationError(
                f"commission_type {commission_type.value} is not valid "
                f"for {variant.value} plans"
            )
        fields["commission_type"] = commission_type.value

        if "levels" in supplied:
            levels = {row.level: row.rate for row in update.levels}
        else:
            levels = current.rate_table()

        plan = await self._write_new_version(current, variant, levels, fields)

        self.logger.info(
            "Commission plan updated",
            extra={
                "variant": variant.value,
                "plan_id": plan.id,
                "version": plan.version,
                "fields": sorted(supplied),
            },
        )
        return plan_to_dict(plan)

    @transaction
    async def _write_new_version(
        self,
        current: CommissionPlan,
        variant: DistributionType,
        levels: dict[int, Decimal],
        fields: dict[str, Any],
    ) -> CommissionPlan:
        """Deactivate the current version and insert its successor."""
        await self.plan_repo.deactivate(current.id)
        return await self.plan_repo.create_plan(
            variant, levels, version=current.version + 1, **fields
        )
