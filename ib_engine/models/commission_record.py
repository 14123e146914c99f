"""
CommissionRecord model.

Immutable ledger entry for one commission obligation.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ib_engine.models.base import Base
from ib_engine.models.enums import CommissionStatus
from ib_engine.models.types import MoneyType, RateType

if TYPE_CHECKING:
    from ib_engine.models.user import User


class CommissionRecord(Base):
    """
    CommissionRecord entity.

    One row per (event, beneficiary, level, distribution type). The unique
    constraint on that tuple is the idempotency key: a second insert for the
    same obligation is a no-op.

    Attributes:
        id: Primary key
        beneficiary_id: User credited with the commission
        source_user_id: User whose activity generated it
        trade_id: Originating trade event id (None for deposits)
        event_key: Idempotency discriminator ("trade:<id>" / "joining:<user>")
        level: Referral level of the beneficiary (1 = direct referrer)
        distribution_type: REFERRAL_INCOME or DIRECT_JOINING
        base_amount: Lots traded or deposit amount
        rate: Plan rate applied
        commission_amount: Amount credited
        status: CREDITED or REVERSED
        symbol: Traded symbol (trade records only)
        lot_size: Traded quantity (trade records only)
        description: Human readable summary
        created_at: When the record was written
    """

    __tablename__ = "commission_records"
    __table_args__ = (
        UniqueConstraint(
            "event_key",
            "beneficiary_id",
            "level",
            "distribution_type",
            name="uq_commission_records_idempotency_key",
        ),
        CheckConstraint('level >= 1', name='check_commission_level_positive'),
        CheckConstraint(
            'commission_amount > 0',
            name='check_commission_amount_positive'
        ),
        Index(
            "idx_commission_records_beneficiary_created",
            "beneficiary_id",
            "created_at",
        ),
        Index(
            "idx_commission_records_beneficiary_type_status",
            "beneficiary_id",
            "distribution_type",
            "status",
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    beneficiary_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trade_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    event_key: Mapped[str] = mapped_column(String(80), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    distribution_type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )

    # Amounts
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    rate: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CommissionStatus.CREDITED.value,
    )

    # Trade details
    symbol: Mapped[str | None] = mapped_column(String(20), nullable=True)
    lot_size: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )

    description: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    beneficiary: Mapped["User"] = relationship(
        "User", foreign_keys=[beneficiary_id]
    )
    source_user: Mapped["User"] = relationship(
        "User", foreign_keys=[source_user_id]
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionRecord(id={self.id}, event_key={self.event_key}, "
            f"beneficiary_id={self.beneficiary_id}, level={self.level}, "
            f"amount={self.commission_amount})>"
        )
