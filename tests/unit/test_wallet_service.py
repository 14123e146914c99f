"""
Unit tests for WalletService.

Tests cover:
- Lazy wallet creation
- Commission credit
- Withdrawal primitives and their guards
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from ib_engine.services.wallet_service import WalletService, WalletSummary
from ib_engine.utils.exceptions import InsufficientBalanceError


@pytest.fixture
def mock_wallet():
    """Wallet row with some history."""
    wallet = MagicMock()
    wallet.user_id = 7
    wallet.balance = Decimal("60")
    wallet.total_earned = Decimal("100")
    wallet.total_withdrawn = Decimal("30")
    wallet.pending_withdrawal = Decimal("10")
    return wallet


@pytest.fixture
def wallet_service(mock_session, mock_wallet):
    """WalletService with a mocked repository."""
    service = WalletService(mock_session)
    service.wallet_repo = MagicMock()
    service.wallet_repo.get_by_user_id = AsyncMock(return_value=mock_wallet)
    service.wallet_repo.insert_if_absent = AsyncMock()
    service.wallet_repo.increment_earned = AsyncMock(return_value=True)
    service.wallet_repo.move_balance_to_pending = AsyncMock(return_value=True)
    service.wallet_repo.settle_pending = AsyncMock(return_value=True)
    service.wallet_repo.release_pending = AsyncMock(return_value=True)
    return service


class TestGetOrCreate:
    """Test lazy creation."""

    @pytest.mark.asyncio
    async def test_existing_wallet_not_inserted(
        self, wallet_service, mock_wallet
    ):
        """An existing wallet is returned without an insert."""
        wallet = await wallet_service.get_or_create(7)
        assert wallet is mock_wallet
        wallet_service.wallet_repo.insert_if_absent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_wallet_inserted(self, wallet_service, mock_wallet):
        """A missing wallet is inserted then re-read."""
        wallet_service.wallet_repo.get_by_user_id.side_effect = [
            None, mock_wallet
        ]
        wallet = await wallet_service.get_or_create(7)
        assert wallet is mock_wallet
        wallet_service.wallet_repo.insert_if_absent.assert_awaited_once_with(7)


class TestCreditCommission:
    """Test commission credit."""

    @pytest.mark.asyncio
    async def test_credit_increments(self, wallet_service):
        """Credit ensures the wallet then increments it."""
        await wallet_service.credit_commission(7, Decimal("12.5"))
        wallet_service.wallet_repo.insert_if_absent.assert_awaited_once_with(7)
        wallet_service.wallet_repo.increment_earned.assert_awaited_once_with(
            7, Decimal("12.5")
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    async def test_non_positive_rejected(self, wallet_service, amount):
        """Zero and negative credits are rejected."""
        with pytest.raises(ValueError):
            await wallet_service.credit_commission(7, amount)
        wallet_service.wallet_repo.increment_earned.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_credit_never_commits(self, wallet_service, mock_session):
        """The caller owns the transaction."""
        await wallet_service.credit_commission(7, Decimal("1"))
        mock_session.commit.assert_not_awaited()


class TestWithdrawalPrimitives:
    """Test reserve, complete and cancel."""

    @pytest.mark.asyncio
    async def test_reserve_insufficient_balance(self, wallet_service):
        """A failed guard raises InsufficientBalanceError."""
        wallet_service.wallet_repo.move_balance_to_pending.return_value = False
        with pytest.raises(InsufficientBalanceError):
            await wallet_service.reserve_withdrawal(7, Decimal("1000"))

    @pytest.mark.asyncio
    async def test_complete_more_than_pending(self, wallet_service):
        """Settling more than is pending raises."""
        wallet_service.wallet_repo.settle_pending.return_value = False
        with pytest.raises(InsufficientBalanceError):
            await wallet_service.complete_withdrawal(7, Decimal("50"))

    @pytest.mark.asyncio
    async def test_cancel_more_than_pending(self, wallet_service):
        """Releasing more than is pending raises."""
        wallet_service.wallet_repo.release_pending.return_value = False
        with pytest.raises(InsufficientBalanceError):
            await wallet_service.cancel_withdrawal(7, Decimal("50"))

    @pytest.mark.asyncio
    async def test_reserve_success(self, wallet_service, mock_wallet):
        """A successful reserve returns the re-read wallet."""
        wallet = await wallet_service.reserve_withdrawal(7, Decimal("20"))
        assert wallet is mock_wallet


class TestSummary:
    """Test wallet summary."""

    @pytest.mark.asyncio
    async def test_summary_fields(self, wallet_service):
        """Summary mirrors the wallet balances."""
        summary = await wallet_service.get_summary(7)
        assert summary == WalletSummary(
            user_id=7,
            balance=Decimal("60"),
            total_earned=Decimal("100"),
            total_withdrawn=Decimal("30"),
            pending_withdrawal=Decimal("10"),
        )
