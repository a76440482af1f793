"""Streak state machine, milestone bonuses and recovery."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from careerxp.db.models import XPLedger
from careerxp.gamification.streak_service import (
    BROKEN,
    EXTENDED,
    NEW,
    UNCHANGED,
    StreakService,
    is_milestone,
    milestone_bonus,
    next_milestone,
    recovery_cost,
)


@pytest.fixture
def streaks(session_factory, clock) -> StreakService:
    return StreakService(session_factory, clock=clock)


async def xp_entries(session_factory, source: str) -> list[XPLedger]:
    async with session_factory() as db:
        result = await db.execute(select(XPLedger).where(XPLedger.source == source))
        return list(result.scalars())


class TestMilestoneMath:
    def test_milestones(self):
        assert is_milestone(7)
        assert is_milestone(21)
        assert not is_milestone(6)
        assert not is_milestone(0)

    def test_largest_bonus_wins(self):
        assert milestone_bonus(7) == 35
        assert milestone_bonus(14) == 70
        assert milestone_bonus(100) == 500

    def test_next_milestone(self):
        assert next_milestone(0) == 7
        assert next_milestone(7) == 14

    def test_recovery_cost_capped(self):
        assert recovery_cost(10) == 100
        assert recovery_cost(80) == 500


class TestTransitions:
    @pytest.mark.asyncio
    async def test_first_activity_starts_streak(self, streaks, make_developer):
        await make_developer()
        update = await streaks.record_activity("dev-1")
        assert update.status == NEW
        assert update.streak == 1

    @pytest.mark.asyncio
    async def test_second_activity_same_day_is_unchanged(self, streaks, make_developer, clock):
        await make_developer()
        await streaks.record_activity("dev-1")
        clock.advance(hours=5)
        update = await streaks.record_activity("dev-1")
        assert update.status == UNCHANGED
        assert update.streak == 1

    @pytest.mark.asyncio
    async def test_next_day_extends(self, streaks, make_developer, clock):
        await make_developer(streak=3, longest_streak=3, last_activity_date=clock() - timedelta(days=1))
        update = await streaks.record_activity("dev-1")
        assert update.status == EXTENDED
        assert update.streak == 4
        assert update.longest_streak == 4

    @pytest.mark.asyncio
    async def test_calendar_days_not_hours(self, streaks, make_developer, clock):
        """23:59 yesterday to 00:01 today is the next day."""
        clock.now = clock.now.replace(hour=0, minute=1)
        await make_developer(streak=2, longest_streak=2, last_activity_date=clock() - timedelta(minutes=2))
        update = await streaks.record_activity("dev-1")
        assert update.status == EXTENDED
        assert update.streak == 3

    @pytest.mark.asyncio
    async def test_gap_breaks_streak_keeps_longest(self, streaks, make_developer, clock):
        await make_developer(streak=12, longest_streak=12, last_activity_date=clock() - timedelta(days=3))
        update = await streaks.record_activity("dev-1")
        assert update.status == BROKEN
        assert update.streak == 1
        assert update.longest_streak == 12


class TestMilestones:
    @pytest.mark.asyncio
    async def test_day_seven_awards_bonus_once(self, streaks, make_developer, load_developer, clock, session_factory):
        await make_developer(streak=6, longest_streak=6, last_activity_date=clock() - timedelta(days=1))

        update = await streaks.record_activity("dev-1")
        assert update.streak == 7
        assert update.milestone == 7
        assert update.bonus_xp == 35

        clock.advance(hours=2)
        await streaks.record_activity("dev-1")

        bonuses = await xp_entries(session_factory, "STREAK_BONUS")
        assert len(bonuses) == 1
        assert bonuses[0].amount == 35
        developer = await load_developer()
        assert developer.total_xp == 35

    @pytest.mark.asyncio
    async def test_milestone_not_repeated_within_a_day(self, streaks, make_developer, clock, session_factory):
        """Re-reaching the same length inside 24 hours credits nothing."""
        await make_developer(streak=6, longest_streak=6, last_activity_date=clock() - timedelta(days=1))
        await streaks.record_activity("dev-1")

        clock.advance(hours=13)  # next calendar day, still inside 24 hours
        await streaks.reset("dev-1")
        await make_developer(streak=6, last_activity_date=clock() - timedelta(days=1))
        update = await streaks.record_activity("dev-1")

        assert update.milestone == 7
        assert update.grant is None
        assert len(await xp_entries(session_factory, "STREAK_BONUS")) == 1


class TestRecovery:
    @pytest.mark.asyncio
    async def test_recover_missed_day(self, streaks, make_developer, load_developer, clock, session_factory):
        await make_developer(
            streak=10, longest_streak=10, total_xp=500, last_activity_date=clock() - timedelta(days=2)
        )
        result = await streaks.recover("dev-1")
        assert result.success
        assert result.cost == 100

        developer = await load_developer()
        assert developer.total_xp == 400
        entries = await xp_entries(session_factory, "STREAK_RECOVERY")
        assert [e.amount for e in entries] == [-100]

        update = await streaks.record_activity("dev-1")
        assert update.status == EXTENDED
        assert update.streak == 11

    @pytest.mark.asyncio
    async def test_not_eligible_when_active_yesterday(self, streaks, make_developer, clock):
        await make_developer(streak=5, total_xp=500, last_activity_date=clock() - timedelta(days=1))
        result = await streaks.recover("dev-1")
        assert not result.success
        assert result.reason == "NOT_ELIGIBLE"

    @pytest.mark.asyncio
    async def test_insufficient_xp(self, streaks, make_developer, load_developer, clock):
        await make_developer(streak=10, total_xp=50, last_activity_date=clock() - timedelta(days=2))
        result = await streaks.recover("dev-1")
        assert not result.success
        assert result.reason == "INSUFFICIENT_XP"
        assert (await load_developer()).total_xp == 50


class TestStats:
    @pytest.mark.asyncio
    async def test_rank_and_next_milestone(self, streaks, make_developer):
        await make_developer("dev-1", streak=5)
        await make_developer("dev-2", streak=9)
        stats = await streaks.stats("dev-1")
        assert stats["rank"] == 2
        assert stats["next_milestone"] == 7
        assert stats["daily_bonus"] == 10

    @pytest.mark.asyncio
    async def test_reset_keeps_longest(self, streaks, make_developer, load_developer):
        await make_developer(streak=9, longest_streak=9)
        await streaks.reset("dev-1")
        developer = await load_developer()
        assert developer.streak == 0
        assert developer.longest_streak == 9
