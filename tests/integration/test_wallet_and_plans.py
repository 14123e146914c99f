"""Integration tests for the wallet ledger and the plan store."""

import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from ib_engine.models import Base, CommissionPlan, IBWallet, User
from ib_engine.models.enums import DistributionType
from ib_engine.services.plan_service import PlanService
from ib_engine.services.wallet_service import WalletService
from ib_engine.utils.exceptions import (
    InsufficientBalanceError,
    PlanValidationError,
)


class TestWalletLedger:
    """Test wallet operations against the database."""

    @pytest.mark.asyncio
    async def test_created_with_zero_balance(self, session, create_user):
        """First access creates an empty wallet."""
        user = await create_user()

        summary = await WalletService(session).get_summary(user.id)

        assert summary.balance == Decimal("0")
        assert summary.total_earned == Decimal("0")

    @pytest.mark.asyncio
    async def test_repeated_get_or_create(self, session, create_user):
        """Repeated access keeps a single wallet."""
        user = await create_user()
        service = WalletService(session)

        for _ in range(3):
            await service.get_or_create(user.id)
        await session.commit()

        count = (await session.execute(
            select(func.count(IBWallet.id)).where(IBWallet.user_id == user.id)
        )).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_withdrawal_cycle(self, session, create_user):
        """Reserve, complete and cancel keep the balance identity."""
        user = await create_user()
        service = WalletService(session)
        await service.credit_commission(user.id, Decimal("100"))

        await service.reserve_withdrawal(user.id, Decimal("40"))
        await service.complete_withdrawal(user.id, Decimal("30"))
        wallet = await service.cancel_withdrawal(user.id, Decimal("10"))
        await session.commit()

        assert wallet.balance == Decimal("70")
        assert wallet.total_withdrawn == Decimal("30")
        assert wallet.pending_withdrawal == Decimal("0")
        assert wallet.balance == (
            wallet.total_earned - wallet.total_withdrawn
            - wallet.pending_withdrawal
        )

    @pytest.mark.asyncio
    async def test_reserve_beyond_balance(self, session, create_user):
        """Over-reserving raises and leaves the wallet unchanged."""
        user = await create_user()
        service = WalletService(session)
        await service.credit_commission(user.id, Decimal("25"))
        await session.commit()

        with pytest.raises(InsufficientBalanceError):
            await service.reserve_withdrawal(user.id, Decimal("25.5"))

        summary = await service.get_summary(user.id)
        assert summary.balance == Decimal("25")
        assert summary.pending_withdrawal == Decimal("0")


@pytest_asyncio.fixture
async def file_session_maker(tmp_path):
    """File-backed database with a single pooled connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'wallets.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=1,
        max_overflow=0,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    await engine.dispose()


@pytest.mark.slow
class TestConcurrentWallets:
    """Test many sessions touching one wallet."""

    @pytest.mark.asyncio
    async def test_concurrent_get_or_create(self, file_session_maker):
        """Parallel first access yields exactly one zero wallet."""
        async with file_session_maker() as session:
            user = User(username="new")
            session.add(user)
            await session.commit()

        async def access():
            async with file_session_maker() as session:
                await WalletService(session).get_or_create(user.id)
                await session.commit()

        await asyncio.gather(*(access() for _ in range(10)))

        async with file_session_maker() as session:
            wallets = (await session.execute(
                select(IBWallet).where(IBWallet.user_id == user.id)
            )).scalars().all()
        assert len(wallets) == 1
        assert wallets[0].balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_concurrent_credits_not_lost(self, file_session_maker):
        """Every parallel credit lands in the balance."""
        async with file_session_maker() as session:
            user = User(username="earner")
            session.add(user)
            await session.commit()

        async def credit():
            async with file_session_maker() as session:
                await WalletService(session).credit_commission(
                    user.id, Decimal("1.5")
                )
                await session.commit()

        await asyncio.gather(*(credit() for _ in range(20)))

        async with file_session_maker() as session:
            summary = await WalletService(session).get_summary(user.id)
        assert summary.total_earned == Decimal("30")
        assert summary.balance == Decimal("30")


class TestPlanStore:
    """Test plan lookup and updates."""

    @pytest.mark.asyncio
    async def test_default_plans_created_lazily(self, session):
        """First read creates the built-in defaults."""
        service = PlanService(session)

        referral = await service.get_plan(DistributionType.REFERRAL_INCOME)
        joining = await service.get_plan(DistributionType.DIRECT_JOINING)

        assert referral["max_levels"] == 11
        assert referral["commission_type"] == "PER_LOT"
        assert referral["levels"][0] == {"level": 1, "rate": Decimal("4")}
        assert joining["max_levels"] == 18
        assert joining["commission_type"] == "PERCENT"
        assert len(joining["levels"]) == 18

    @pytest.mark.asyncio
    async def test_second_read_reuses_plan(self, session):
        """Only one default is ever created."""
        service = PlanService(session)
        first = await service.get_active_plan(DistributionType.REFERRAL_INCOME)
        second = await service.get_active_plan(
            DistributionType.REFERRAL_INCOME
        )

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_update_creates_new_version(self, session):
        """An update deactivates the old version."""
        service = PlanService(session)
        before = await service.get_plan(DistributionType.REFERRAL_INCOME)

        after = await service.update_plan(
            DistributionType.REFERRAL_INCOME,
            {"max_levels": 5, "name": "Tiered"},
        )

        assert after["version"] == before["version"] + 1
        assert after["max_levels"] == 5
        assert after["name"] == "Tiered"
        assert after["levels"] == before["levels"]

        history = await service.get_plan_history(
            DistributionType.REFERRAL_INCOME
        )
        assert [p["is_active"] for p in history] == [True, False]

    @pytest.mark.asyncio
    async def test_explicit_zero_rate_stored(self, session):
        """A zero rate in the update is stored as zero."""
        service = PlanService(session)

        plan = await service.update_plan(
            DistributionType.DIRECT_JOINING,
            {"levels": [{"level": 1, "rate": 0}, {"level": 2, "rate": 10}]},
        )

        assert plan["levels"] == [
            {"level": 1, "rate": Decimal("0")},
            {"level": 2, "rate": Decimal("10")},
        ]

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_plan(self, session):
        """A rejected update changes nothing."""
        service = PlanService(session)
        before = await service.get_plan(DistributionType.DIRECT_JOINING)

        with pytest.raises(PlanValidationError):
            await service.update_plan(
                DistributionType.DIRECT_JOINING, {"max_levels": 40}
            )

        after = await service.get_plan(DistributionType.DIRECT_JOINING)
        assert after == before
        plans = (await session.execute(
            select(func.count(CommissionPlan.id))
        )).scalar()
        assert plans == 1
