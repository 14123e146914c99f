"""
Commission plan models.

Versioned per-variant plans with an ordered level -> rate table.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ib_engine.models.base import Base
from ib_engine.models.enums import CommissionType, DistributionType
from ib_engine.models.types import MoneyType, RateType


class CommissionPlan(Base):
    """
    CommissionPlan entity.

    One row per plan version. Exactly one plan per variant may be active;
    the partial unique index enforces it at the database level.

    Attributes:
        id: Primary key
        variant: REFERRAL_INCOME or DIRECT_JOINING
        name: Display name
        description: Free text description
        max_levels: Deepest level paid (1-25)
        commission_type: PER_LOT, FIXED or PERCENT
        total_distribution: Informational total percent (joining plans)
        is_active: Whether this plan is the active one for its variant
        version: Incremented on every administrative update
        levels: Level -> rate rows ordered by level
    """

    __tablename__ = "commission_plans"
    __table_args__ = (
        CheckConstraint(
            'max_levels >= 1 AND max_levels <= 25',
            name='check_commission_plan_max_levels_range'
        ),
        Index(
            "uq_commission_plans_active_variant",
            "variant",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    variant: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(
        Text, nullable=False, default=""
    )
    max_levels: Mapped[int] = mapped_column(Integer, nullable=False)
    commission_type: Mapped[str] = mapped_column(
        String(20), nullable=False
    )
    total_distribution: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    version: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    levels: Mapped[list["CommissionPlanLevel"]] = relationship(
        "CommissionPlanLevel",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="CommissionPlanLevel.level",
        lazy="selectin",
    )

    @property
    def distribution_type(self) -> DistributionType:
        """Variant as enum."""
        return DistributionType(self.variant)

    @property
    def rate_type(self) -> CommissionType:
        """Commission type as enum."""
        return CommissionType(self.commission_type)

    def rate_table(self) -> dict[int, Decimal]:
        """Level -> rate mapping in level order."""
        return {row.level: row.rate for row in self.levels}

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionPlan(id={self.id}, variant={self.variant}, "
            f"version={self.version}, is_active={self.is_active})>"
        )


class CommissionPlanLevel(Base):
    """Rate for one level of a commission plan."""

    __tablename__ = "commission_plan_levels"
    __table_args__ = (
        UniqueConstraint(
            "plan_id", "level", name="uq_commission_plan_levels_plan_level"
        ),
        CheckConstraint('level >= 1', name='check_plan_level_positive'),
        CheckConstraint('rate >= 0', name='check_plan_level_rate_non_negative'),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    plan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("commission_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(
        RateType, nullable=False, default=Decimal("0")
    )

    plan: Mapped["CommissionPlan"] = relationship(
        "CommissionPlan", back_populates="levels"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionPlanLevel(plan_id={self.plan_id}, "
            f"level={self.level}, rate={self.rate})>"
        )
