"""
Wallet repository.

Data access layer for IBWallet model. Every balance mutation is a single
UPDATE with column arithmetic, never a read-modify-write.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.models.wallet import IBWallet
from ib_engine.repositories.base import BaseRepository


class WalletRepository(BaseRepository[IBWallet]):
    """Wallet repository with atomic balance operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize wallet repository."""
        super().__init__(IBWallet, session)

    async def get_by_user_id(self, user_id: int) -> IBWallet | None:
        """
        Get wallet by owner.

        Args:
            user_id: Owner user ID

        Returns:
            Wallet or None
        """
        stmt = (
            select(IBWallet)
            .where(IBWallet.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_if_absent(self, user_id: int) -> None:
        """
        Create a zero wallet unless one exists.

        ON CONFLICT on the unique user_id keeps concurrent first accesses
        from creating two wallets.

        Args:
            user_id: Owner user ID
        """
        stmt = (
            self.insert_stmt()
            .values(
                user_id=user_id,
                balance=Decimal("0"),
                total_earned=Decimal("0"),
                total_withdrawn=Decimal("0"),
                pending_withdrawal=Decimal("0"),
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await self.session.execute(stmt)

    async def increment_earned(self, user_id: int, amount: Decimal) -> bool:
        """
        Atomically add a commission to balance and total_earned.

        Args:
            user_id: Owner user ID
            amount: Positive amount

        Returns:
            True if a wallet row was updated
        """
        stmt = (
            update(IBWallet)
            .where(IBWallet.user_id == user_id)
            .values(
                balance=IBWallet.balance + amount,
                total_earned=IBWallet.total_earned + amount,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def move_balance_to_pending(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically reserve part of the balance for a withdrawal.

        Returns:
            False if the wallet is missing or the balance is too low
        """
        stmt = (
            update(IBWallet)
            .where(IBWallet.user_id == user_id, IBWallet.balance >= amount)
            .values(
                balance=IBWallet.balance - amount,
                pending_withdrawal=IBWallet.pending_withdrawal + amount,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def settle_pending(self, user_id: int, amount: Decimal) -> bool:
        """
        Atomically move a reserved amount to total_withdrawn.

        Returns:
            False if the wallet is missing or not enough is pending
        """
        stmt = (
            update(IBWallet)
            .where(
                IBWallet.user_id == user_id,
                IBWallet.pending_withdrawal >= amount,
            )
            .values(
                pending_withdrawal=IBWallet.pending_withdrawal - amount,
                total_withdrawn=IBWallet.total_withdrawn + amount,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def release_pending(self, user_id: int, amount: Decimal) -> bool:
        """
        Atomically return a reserved amount to the balance.

        Returns:
            False if the wallet is missing or not enough is pending
        """
        stmt = (
            update(IBWallet)
            .where(
                IBWallet.user_id == user_id,
                IBWallet.pending_withdrawal >= amount,
            )
            .values(
                pending_withdrawal=IBWallet.pending_withdrawal - amount,
                balance=IBWallet.balance + amount,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0
