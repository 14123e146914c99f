"""
IB wallet model.

Per-user running commission balance.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ib_engine.models.base import Base
from ib_engine.models.types import MoneyType

if TYPE_CHECKING:
    from ib_engine.models.user import User


class IBWallet(Base):
    """
    IBWallet entity.

    balance = total_earned - total_withdrawn - pending_withdrawal >= 0.
    Never assign balance fields directly: use the atomic increments in
    WalletRepository.
    """

    __tablename__ = "ib_wallets"
    __table_args__ = (
        CheckConstraint(
            'balance >= 0', name='check_ib_wallet_balance_non_negative'
        ),
        CheckConstraint(
            'total_earned >= 0',
            name='check_ib_wallet_total_earned_non_negative'
        ),
        CheckConstraint(
            'total_withdrawn >= 0',
            name='check_ib_wallet_total_withdrawn_non_negative'
        ),
        CheckConstraint(
            'pending_withdrawal >= 0',
            name='check_ib_wallet_pending_withdrawal_non_negative'
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Balances
    balance: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_earned: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_withdrawn: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    pending_withdrawal: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
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

    user: Mapped["User"] = relationship("User", back_populates="wallet")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<IBWallet(user_id={self.user_id}, balance={self.balance}, "
            f"total_earned={self.total_earned})>"
        )
