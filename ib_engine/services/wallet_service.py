"""
Wallet service.

Per-user commission wallet: lazy creation, atomic credit and the debit
primitives used by the external withdrawal flow.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from ib_engine.models.wallet import IBWallet
from ib_engine.repositories.wallet_repository import WalletRepository
from ib_engine.services.base_service import BaseService
from ib_engine.utils.exceptions import InsufficientBalanceError


@dataclass
class WalletSummary:
    """Wallet balance summary."""

    user_id: int
    balance: Decimal
    total_earned: Decimal
    total_withdrawn: Decimal
    pending_withdrawal: Decimal

    @classmethod
    def from_wallet(cls, wallet: IBWallet) -> "WalletSummary":
        """Build summary from wallet row."""
        return cls(
            user_id=wallet.user_id,
            balance=wallet.balance,
            total_earned=wallet.total_earned,
            total_withdrawn=wallet.total_withdrawn,
            pending_withdrawal=wallet.pending_withdrawal,
        )


def _require_positive(amount: Decimal) -> None:
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")


class WalletService(BaseService):
    """
    Wallet ledger.

    Methods flush changes into the caller's transaction and never commit;
    the caller decides the transaction boundary.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize wallet service."""
        super().__init__(session)
        self.wallet_repo = WalletRepository(session)

    async def get_or_create(self, user_id: int) -> IBWallet:
        """
        Get the user's wallet, creating a zero wallet on first access.

        Args:
            user_id: Owner user ID

        Returns:
            Wallet
        """
        wallet = await self.wallet_repo.get_by_user_id(user_id)
        if wallet is not None:
            return wallet

        await self.wallet_repo.insert_if_absent(user_id)
        wallet = await self.wallet_repo.get_by_user_id(user_id)

        self.logger.debug(
            "Wallet ensured", extra={"user_id": user_id}
        )
        return wallet

    async def credit_commission(
        self, user_id: int, amount: Decimal
    ) -> IBWallet:
        """
        Atomically add a commission to balance and total_earned.

        Args:
            user_id: Beneficiary user ID
            amount: Commission amount (> 0)

        Returns:
            Wallet after the credit

        Raises:
            ValueError: If amount is not positive
        """
        _require_positive(amount)

        await self.wallet_repo.insert_if_absent(user_id)
        await self.wallet_repo.increment_earned(user_id, amount)
        wallet = await self.wallet_repo.get_by_user_id(user_id)

        self.logger.debug(
            "Wallet credited",
            extra={"user_id": user_id, "amount": str(amount)},
        )
        return wallet

    async def reserve_withdrawal(
        self, user_id: int, amount: Decimal
    ) -> IBWallet:
        """
        Move part of the balance to pending_withdrawal.

        Raises:
            ValueError: If amount is not positive
            InsufficientBalanceError: If the balance is too low
        """
        _require_positive(amount)
        if not await self.wallet_repo.move_balance_to_pending(user_id, amount):
            raise InsufficientBalanceError(
                f"Wallet of user {user_id} cannot reserve {amount}"
            )
        return await self.wallet_repo.get_by_user_id(user_id)

    async def complete_withdrawal(
        self, user_id: int, amount: Decimal
    ) -> IBWallet:
        """
        Settle a reserved withdrawal into total_withdrawn.

        Raises:
            ValueError: If amount is not positive
            InsufficientBalanceError: If less than amount is pending
        """
        _require_positive(amount)
        if not await self.wallet_repo.settle_pending(user_id, amount):
            raise InsufficientBalanceError(
                f"Wallet of user {user_id} has less than {amount} pending"
            )
        return await self.wallet_repo.get_by_user_id(user_id)

    async def cancel_withdrawal(
        self, user_id: int, amount: Decimal
    ) -> IBWallet:
        """
        Return a reserved withdrawal to the balance.

        Raises:
            ValueError: If amount is not positive
            InsufficientBalanceError: If less than amount is pending
        """
        _require_positive(amount)
        if not await self.wallet_repo.release_pending(user_id, amount):
            raise InsufficientBalanceError(
                f"Wallet of user {user_id} has less than {amount} pending"
            )
        return await self.wallet_repo.get_by_user_id(user_id)

    async def get_summary(self, user_id: int) -> WalletSummary:
        """
        Get wallet balance summary (creates the wallet if missing).

        Args:
            user_id: Owner user ID

        Returns:
            WalletSummary
        """
        return WalletSummary.from_wallet(await self.get_or_create(user_id))
