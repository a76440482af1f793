"""Points ledger against a real database session."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from careerxp.db.models import PointsLedger
from careerxp.gamification.constants import PointsSource, SpendType
from careerxp.gamification.exceptions import MissingSourceId
from careerxp.gamification.points_service import INSUFFICIENT_BALANCE, PointsLedgerService


@pytest.fixture
def ledger(session_factory, config, clock) -> PointsLedgerService:
    return PointsLedgerService(session_factory, config, clock=clock)


async def entries(session_factory, developer_id: str = "dev-1") -> list[PointsLedger]:
    async with session_factory() as db:
        result = await db.execute(select(PointsLedger).where(PointsLedger.developer_id == developer_id))
        return list(result.scalars())


class TestSpend:
    @pytest.mark.asyncio
    async def test_spend_debits_balance_and_writes_entry(self, ledger, make_developer, session_factory):
        await make_developer()
        result = await ledger.spend("dev-1", SpendType.JOB_QUERY)
        assert result.success
        assert result.cost == 3
        assert result.balance == 7

        rows = await entries(session_factory)
        assert [(r.amount, r.spend_type) for r in rows] == [(-3, "JOB_QUERY")]

    @pytest.mark.asyncio
    async def test_insufficient_balance_is_declined_without_writes(
        self, ledger, config, make_developer, load_developer, session_factory
    ):
        """Spending 10 with 7 available leaves the balance at 7."""
        await make_developer(points_used=3)
        await config.update_points_costs({"PREMIUM_ANALYSIS": 10})

        result = await ledger.spend("dev-1", SpendType.PREMIUM_ANALYSIS)

        assert not result.success
        assert result.reason == INSUFFICIENT_BALANCE
        assert result.cost == 10
        assert result.balance == 7
        developer = await load_developer()
        assert developer.points_used == 3
        assert await entries(session_factory) == []

    @pytest.mark.asyncio
    async def test_tier_discount_rounds_up(self, ledger, make_developer):
        await make_developer(subscription_tier="PRO", points_monthly=200)
        result = await ledger.spend("dev-1", SpendType.BULK_APPLICATION)
        assert result.cost == 7  # 8 * 0.85 = 6.8

    @pytest.mark.asyncio
    async def test_cover_letter_needs_source_id(self, ledger, make_developer):
        await make_developer()
        with pytest.raises(MissingSourceId):
            await ledger.spend("dev-1", SpendType.COVER_LETTER)

    @pytest.mark.asyncio
    async def test_spend_keeps_metadata(self, ledger, make_developer, session_factory):
        await make_developer()
        await ledger.spend("dev-1", SpendType.COVER_LETTER, "job-9", {"company": "Acme"})
        rows = await entries(session_factory)
        assert rows[0].entry_metadata == {"company": "Acme"}
        assert rows[0].source_id == "job-9"

    @pytest.mark.asyncio
    async def test_due_reset_applies_before_spend(self, ledger, make_developer, load_developer, clock):
        await make_developer(points_used=10, points_reset_date=clock() - timedelta(days=1))
        result = await ledger.spend("dev-1", SpendType.JOB_QUERY)
        assert result.success
        assert result.balance == 7
        developer = await load_developer()
        assert developer.points_used == 3


class TestBalance:
    @pytest.mark.asyncio
    async def test_fresh_balance(self, ledger, make_developer):
        await make_developer()
        balance = await ledger.get_balance("dev-1")
        assert balance.available == 10
        assert balance.tier == "FREE"
        assert balance.efficiency == 1.0

    @pytest.mark.asyncio
    async def test_monthly_reset(self, ledger, make_developer, load_developer, clock):
        await make_developer(points_used=10, points_reset_date=clock() - timedelta(hours=1))
        balance = await ledger.get_balance("dev-1")
        assert balance.used == 0
        assert balance.available == 10
        developer = await load_developer()
        assert developer.points_used == 0


class TestAward:
    @pytest.mark.asyncio
    async def test_award_raises_available_points(self, ledger, make_developer):
        await make_developer()
        assert await ledger.award("dev-1", PointsSource.ACHIEVEMENT_BONUS, 10, "first_analysis") == 10
        balance = await ledger.get_balance("dev-1")
        assert balance.earned == 10
        assert balance.available == 20

    @pytest.mark.asyncio
    async def test_same_award_twice_is_a_no_op(self, ledger, make_developer, session_factory):
        await make_developer()
        await ledger.award("dev-1", PointsSource.ACHIEVEMENT_BONUS, 10, "first_analysis")
        assert await ledger.award("dev-1", PointsSource.ACHIEVEMENT_BONUS, 10, "first_analysis") is None
        assert len(await entries(session_factory)) == 1


class TestReporting:
    @pytest.mark.asyncio
    async def test_usage(self, ledger, make_developer):
        await make_developer()
        await ledger.spend("dev-1", SpendType.JOB_QUERY)
        await ledger.award("dev-1", PointsSource.PROMOTIONAL, 15, "launch")
        usage = await ledger.usage("dev-1")
        assert usage["total_spent"] == 3
        assert usage["total_earned"] == 15

    @pytest.mark.asyncio
    async def test_upgrade_incentive(self, ledger, make_developer):
        await make_developer(subscription_tier="STARTER")
        incentive = await ledger.upgrade_incentive("dev-1")
        assert incentive["target_tier"] == "PRO"
        assert incentive["additional_points"] == 125

    @pytest.mark.asyncio
    async def test_no_incentive_at_top_tier(self, ledger, make_developer):
        await make_developer(subscription_tier="EXPERT")
        assert await ledger.upgrade_incentive("dev-1") is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_balance_covering_one_spend_admits_one(
        self, ledger, make_developer, load_developer, session_factory
    ):
        """Two spends of 8 against a balance of 10: exactly one succeeds."""
        await make_developer()

        results = await asyncio.gather(
            ledger.spend("dev-1", SpendType.BULK_APPLICATION),
            ledger.spend("dev-1", SpendType.BULK_APPLICATION),
        )

        assert sorted(r.success for r in results) == [False, True]
        declined = next(r for r in results if not r.success)
        assert declined.reason == INSUFFICIENT_BALANCE
        assert declined.balance == 2
        assert (await load_developer()).points_used == 8
        assert [r.amount for r in await entries(session_factory)] == [-8]

    @pytest.mark.asyncio
    async def test_concurrent_spends_within_balance_both_debit(self, ledger, make_developer, load_developer):
        await make_developer()

        results = await asyncio.gather(
            ledger.spend("dev-1", SpendType.JOB_QUERY),
            ledger.spend("dev-1", SpendType.PREMIUM_ANALYSIS),
        )

        assert all(r.success for r in results)
        assert (await load_developer()).points_used == 8

    @pytest.mark.asyncio
    async def test_concurrent_awards_both_credit(self, ledger, make_developer, load_developer):
        await make_developer()

        await asyncio.gather(
            ledger.award("dev-1", PointsSource.ACHIEVEMENT_BONUS, 10, "first_analysis"),
            ledger.award("dev-1", PointsSource.PROMOTIONAL, 15, "launch"),
        )

        assert (await load_developer()).points_earned == 25
