"""
Integration tests for commission distribution.

Covers both entry points end to end against SQLite: records, wallet
credits, idempotency and the outcomes with nothing to distribute.
"""

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

from ib_engine.models import Base, CommissionRecord, DistributionType, User
from ib_engine.repositories.wallet_repository import WalletRepository
from ib_engine.services.plan_service import PlanService
from ib_engine.services.referral.distribution_processor import (
    REASON_NO_REFERRAL_CHAIN,
    CommissionDistributor,
)
from ib_engine.services.referral.events import TradeEvent


def trade_for(user: User, event_id: str = "T-1", quantity: str = "2.5"):
    return TradeEvent(
        event_id=event_id,
        trader_user_id=user.id,
        symbol="EURUSD",
        quantity=Decimal(quantity),
    )


async def count_records(session: AsyncSession, **filters) -> int:
    stmt = select(func.count(CommissionRecord.id)).filter_by(**filters)
    return (await session.execute(stmt)).scalar()


async def total_earned(session: AsyncSession, user_id: int) -> Decimal:
    wallet = await WalletRepository(session).get_by_user_id(user_id)
    return wallet.total_earned if wallet else Decimal("0")


class TestReferralIncome:
    """Test REFERRAL_INCOME distribution."""

    @pytest.mark.asyncio
    async def test_level_one_earns_four_per_lot(self, session, create_chain):
        """A 2.5 lot trade pays 10 to the direct referrer."""
        top, middle, trader = await create_chain(3)

        result = await CommissionDistributor(
            session
        ).process_referral_income(trade_for(trader))

        assert result.processed is True
        assert result.commissions_generated == 2
        assert result.total_distributed == Decimal("17.5")
        assert await total_earned(session, middle.id) == Decimal("10")
        assert await total_earned(session, top.id) == Decimal("7.5")

    @pytest.mark.asyncio
    async def test_same_trade_twice_credits_once(self, session, create_chain):
        """Reprocessing a trade creates no new records or credits."""
        _, middle, trader = await create_chain(3)
        distributor = CommissionDistributor(session)

        await distributor.process_referral_income(trade_for(trader))
        second = await distributor.process_referral_income(trade_for(trader))

        assert second.processed is True
        assert second.commissions_generated == 0
        assert second.duplicates_skipped == 2
        assert await count_records(
            session,
            trade_id="T-1",
            beneficiary_id=middle.id,
            level=1,
            distribution_type=DistributionType.REFERRAL_INCOME.value,
        ) == 1
        assert await total_earned(session, middle.id) == Decimal("10")

    @pytest.mark.asyncio
    async def test_distinct_trades_both_credited(
        self, session, create_chain
    ):
        """Different trade ids are independent obligations."""
        _, middle, trader = await create_chain(3)
        distributor = CommissionDistributor(session)

        await distributor.process_referral_income(trade_for(trader, "T-1"))
        await distributor.process_referral_income(trade_for(trader, "T-2"))

        assert await total_earned(session, middle.id) == Decimal("20")

    @pytest.mark.asyncio
    async def test_no_referrer(self, session, create_user):
        """A trader without referrer creates nothing."""
        trader = await create_user()

        result = await CommissionDistributor(
            session
        ).process_referral_income(trade_for(trader))

        assert result.processed is False
        assert result.reason == REASON_NO_REFERRAL_CHAIN
        assert await count_records(session) == 0

    @pytest.mark.asyncio
    async def test_levels_within_plan(self, session, create_chain):
        """A 15-deep upline is paid on 11 levels at most."""
        users = await create_chain(16)

        result = await CommissionDistributor(
            session
        ).process_referral_income(trade_for(users[-1], quantity="1"))

        levels = [c.level for c in result.results]
        assert levels == list(range(1, 12))
        assert await count_records(session) == 11

    @pytest.mark.asyncio
    async def test_zero_rate_level_not_recorded(
        self, session, create_chain
    ):
        """A level configured at 0 is skipped."""
        top, middle, trader = await create_chain(3)
        await PlanService(session).update_plan(
            DistributionType.REFERRAL_INCOME,
            {"levels": [{"level": 1, "rate": 0}, {"level": 2, "rate": 3}]},
        )

        result = await CommissionDistributor(
            session
        ).process_referral_income(trade_for(trader))

        assert [c.user_id for c in result.results] == [top.id]
        assert await total_earned(session, middle.id) == Decimal("0")

    @pytest.mark.asyncio
    async def test_record_fields(self, session, create_chain):
        """Records carry the trade details verbatim."""
        _, middle, trader = await create_chain(3)

        await CommissionDistributor(session).process_referral_income(
            trade_for(trader, "T-9")
        )

        record = (await session.execute(
            select(CommissionRecord).where(
                CommissionRecord.beneficiary_id == middle.id
            )
        )).scalar_one()
        assert record.event_key == "trade:T-9"
        assert record.trade_id == "T-9"
        assert record.source_user_id == trader.id
        assert record.symbol == "EURUSD"
        assert record.lot_size == Decimal("2.5")
        assert record.rate == Decimal("4")
        assert record.status == "CREDITED"

    @pytest.mark.asyncio
    async def test_fixed_plan_still_pays_per_lot(
        self, session, create_chain
    ):
        """Relabelling the plan FIXED keeps rate x quantity."""
        _, middle, trader = await create_chain(3)
        await PlanService(session).update_plan(
            DistributionType.REFERRAL_INCOME, {"commission_type": "FIXED"}
        )

        await CommissionDistributor(session).process_referral_income(
            trade_for(trader, quantity="2")
        )

        assert await total_earned(session, middle.id) == Decimal("8")


class TestDirectJoining:
    """Test DIRECT_JOINING distribution."""

    @pytest.mark.asyncio
    async def test_level_one_earns_fifteen_percent(
        self, session, create_chain
    ):
        """A 1000 deposit pays 150 to the direct referrer."""
        top, middle, new_user = await create_chain(3)

        result = await CommissionDistributor(
            session
        ).process_direct_joining_income(new_user.id, Decimal("1000"))

        assert result.processed is True
        assert result.total_distributed == Decimal("250")
        assert await total_earned(session, middle.id) == Decimal("150")
        assert await total_earned(session, top.id) == Decimal("100")

    @pytest.mark.asyncio
    async def test_paid_once_per_new_user(self, session, create_chain):
        """A second deposit by the same user pays nothing."""
        _, middle, new_user = await create_chain(3)
        distributor = CommissionDistributor(session)

        await distributor.process_direct_joining_income(
            new_user.id, Decimal("1000")
        )
        second = await distributor.process_direct_joining_income(
            new_user.id, Decimal("5000")
        )

        assert second.commissions_generated == 0
        assert second.duplicates_skipped == 2
        assert await total_earned(session, middle.id) == Decimal("150")

    @pytest.mark.asyncio
    async def test_fixed_plan_still_pays_percent(
        self, session, create_chain
    ):
        """Relabelling the plan FIXED keeps deposit x rate / 100."""
        top, middle, new_user = await create_chain(3)
        await PlanService(session).update_plan(
            DistributionType.DIRECT_JOINING, {"commission_type": "FIXED"}
        )

        await CommissionDistributor(
            session
        ).process_direct_joining_income(new_user.id, Decimal("1000"))

        assert await total_earned(session, middle.id) == Decimal("150")
        assert await total_earned(session, top.id) == Decimal("100")

    @pytest.mark.asyncio
    async def test_eighteen_levels(self, session, create_chain):
        """The default plan pays 18 levels totalling 90 percent."""
        users = await create_chain(20)

        result = await CommissionDistributor(
            session
        ).process_direct_joining_income(users[-1].id, Decimal("1000"))

        assert result.commissions_generated == 18
        assert result.total_distributed == Decimal("900")

    @pytest.mark.asyncio
    async def test_cyclic_chain_bounded(self, session, create_user):
        """A -> B -> A pays exactly 18 levels and terminates."""
        a = await create_user()
        b = await create_user(referrer=a)
        a.referrer_id = b.id
        await session.commit()

        result = await CommissionDistributor(
            session
        ).process_direct_joining_income(a.id, Decimal("1000"))

        assert result.commissions_generated == 18
        assert sorted({c.user_id for c in result.results}) == sorted(
            [a.id, b.id]
        )


@pytest_asyncio.fixture
async def file_session_maker(tmp_path):
    """File-backed database with a single pooled connection.

    Tasks interleave at transaction boundaries, which is where the
    idempotency and atomic credit guarantees have to hold.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ib_engine.db'}",
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


async def build_line(session_maker, length: int) -> list[int]:
    ids: list[int] = []
    async with session_maker() as session:
        referrer_id = None
        for n in range(length):
            user = User(username=f"u{n}", referrer_id=referrer_id)
            session.add(user)
            await session.commit()
            referrer_id = user.id
            ids.append(user.id)
    return ids


@pytest.mark.slow
class TestConcurrentDistribution:
    """Test interleaved runs on separate sessions."""

    @pytest.mark.asyncio
    async def test_same_trade_in_parallel(self, file_session_maker):
        """Two workers on one trade credit each level once."""
        top, middle, trader = await build_line(file_session_maker, 3)
        trade = TradeEvent(
            event_id="T-P", trader_user_id=trader, symbol="EURUSD",
            quantity=Decimal("2.5"),
        )

        async with file_session_maker() as session:
            await PlanService(session).get_active_plan(
                DistributionType.REFERRAL_INCOME
            )

        async def run():
            async with file_session_maker() as session:
                return await CommissionDistributor(
                    session
                ).process_referral_income(trade)

        first, second = await asyncio.gather(run(), run())

        assert first.commissions_generated + second.commissions_generated == 2
        assert first.duplicates_skipped + second.duplicates_skipped == 2
        async with file_session_maker() as session:
            assert await count_records(session) == 2
            assert await total_earned(session, middle) == Decimal("10")
            assert await total_earned(session, top) == Decimal("7.5")
