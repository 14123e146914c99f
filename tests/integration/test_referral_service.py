"""Integration tests for the ReferralService facade."""

import re
from decimal import Decimal

import pytest

from ib_engine.models.enums import DistributionType
from ib_engine.services.referral.events import TradeEvent
from ib_engine.services.referral_service import ReferralService
from ib_engine.utils.exceptions import UserNotFoundError


@pytest.fixture
def service(session):
    """ReferralService bound to the test session."""
    return ReferralService(session)


async def seed_earnings(service, create_chain):
    """Three-user line with one trade and one joining deposit."""
    top, middle, trader = await create_chain(3)
    await service.process_referral_income(TradeEvent(
        event_id="T-1", trader_user_id=trader.id, symbol="EURUSD",
        quantity=Decimal("2.5"),
    ))
    await service.process_direct_joining_income(trader.id, Decimal("1000"))
    return top, middle, trader


class TestReferralCodes:
    """Test code issuance through the facade."""

    @pytest.mark.asyncio
    async def test_code_issued_once(self, service, create_user):
        """The first call issues a code and later calls return it."""
        user = await create_user()

        first = await service.ensure_referral_code(user.id)
        second = await service.ensure_referral_code(user.id)

        assert re.fullmatch(r"REF[A-Z0-9]{6}", first)
        assert first == second

    @pytest.mark.asyncio
    async def test_existing_code_never_overwritten(
        self, service, create_user
    ):
        """A pre-assigned code is kept."""
        user = await create_user(referral_code="LEGACY01")
        assert await service.ensure_referral_code(user.id) == "LEGACY01"

    @pytest.mark.asyncio
    async def test_get_referral_code(self, service, create_user):
        """Code view includes link and direct referral count."""
        user = await create_user()
        await create_user(referrer=user)

        data = await service.get_referral_code(user.id)

        assert data["referral_link"] == (
            f"https://app.example.com/register?ref={data['referral_code']}"
        )
        assert data["direct_referrals"] == 1

    @pytest.mark.asyncio
    async def test_unknown_user(self, service):
        """Unknown users raise UserNotFoundError."""
        with pytest.raises(UserNotFoundError):
            await service.ensure_referral_code(9999)

    @pytest.mark.asyncio
    async def test_register_then_validate(self, service, create_user):
        """A validated code can be used to register."""
        referrer = await create_user(username="alice")
        code = await service.ensure_referral_code(referrer.id)
        newcomer = await create_user()

        validation = await service.validate_referral_code(code)
        referrer_id = await service.register_with_referral(newcomer.id, code)

        assert validation.valid is True
        assert validation.referrer_name == "alice"
        assert referrer_id == referrer.id


class TestDashboards:
    """Test statistics and history."""

    @pytest.mark.asyncio
    async def test_user_referral_stats(self, service, create_chain):
        """Dashboard totals reflect both distribution types."""
        _, middle, _ = await seed_earnings(service, create_chain)

        stats = await service.get_user_referral_stats(middle.id)

        assert stats["referral_code"] is not None
        assert stats["referral_link"].endswith(stats["referral_code"])
        assert stats["direct_referrals"] == 1
        assert stats["referral_income"]["total"] == Decimal("10")
        assert stats["direct_joining_income"]["total"] == Decimal("150")
        assert stats["total_income"] == Decimal("160")
        assert stats["wallet"].balance == Decimal("160")
        assert [
            (row["level"], row["distribution_type"])
            for row in stats["level_breakdown"]
        ] == [(1, "DIRECT_JOINING"), (1, "REFERRAL_INCOME")]

    @pytest.mark.asyncio
    async def test_commission_history(self, service, create_chain):
        """History is paginated and filterable by type."""
        _, middle, _ = await seed_earnings(service, create_chain)

        page = await service.get_commission_history(middle.id, limit=1)
        joining = await service.get_commission_history(
            middle.id, distribution_type=DistributionType.DIRECT_JOINING
        )

        assert page["pagination"] == {
            "page": 1, "limit": 1, "total": 2, "pages": 2
        }
        assert len(page["commissions"]) == 1
        assert joining["pagination"]["total"] == 1
        assert joining["commissions"][0]["commission_amount"] == Decimal(
            "150"
        )

    @pytest.mark.asyncio
    async def test_page_size_clamped(self, service, create_chain):
        """Oversized pages are clamped to the configured maximum."""
        _, middle, _ = await seed_earnings(service, create_chain)

        page = await service.get_commission_history(
            middle.id, page=0, limit=10_000
        )

        assert page["pagination"]["page"] == 1
        assert page["pagination"]["limit"] == 200

    @pytest.mark.asyncio
    async def test_admin_stats(self, service, create_chain):
        """Platform totals sum every credited record."""
        await seed_earnings(service, create_chain)

        stats = await service.get_admin_stats()

        assert stats["total_referral_income"] == Decimal("17.5")
        assert stats["total_direct_joining_income"] == Decimal("250")
        assert stats["total_referred"] == 2

    @pytest.mark.asyncio
    async def test_list_commissions_and_referrers(
        self, service, create_chain
    ):
        """Admin listings include names and per-user earnings."""
        top, middle, _ = await seed_earnings(service, create_chain)
        await service.ensure_referral_code(top.id)
        await service.ensure_referral_code(middle.id)

        commissions = await service.list_commissions(beneficiary_id=top.id)
        referrers = await service.list_referrers()

        assert commissions["pagination"]["total"] == 2
        assert {c["beneficiary_name"] for c in commissions["commissions"]} == {
            top.username
        }
        earnings = {
            r["user_id"]: r["total_earnings"] for r in referrers["referrers"]
        }
        assert earnings == {top.id: Decimal("107.5"), middle.id: Decimal("160")}

    @pytest.mark.asyncio
    async def test_downline_depth_capped(self, service, create_chain):
        """Requested depth is capped at the configured maximum."""
        users = await create_chain(14)

        tree = await service.get_downline_tree(users[0].id, max_depth=50)

        assert tree.max_depth == 10
        assert max(n.level for n in tree.downlines) == 10

    @pytest.mark.asyncio
    async def test_wallet_summary(self, service, create_user):
        """Wallet summary creates the wallet on first access."""
        user = await create_user()
        summary = await service.get_wallet_summary(user.id)
        assert summary.user_id == user.id
        assert summary.balance == Decimal("0")
