"""Badge evaluation and at-most-once awarding."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from careerxp.db.models import Badge, UserBadge, XPLedger
from careerxp.gamification import badge_service
from careerxp.gamification.badge_catalog import BADGE_CATALOG
from careerxp.gamification.badge_index import build_index
from careerxp.gamification.badge_service import BadgeEvaluator, seed_badges
from careerxp.gamification.constants import EventType


@pytest.fixture
def evaluator(session_factory, clock) -> BadgeEvaluator:
    return BadgeEvaluator(session_factory, build_index(), clock=clock)


async def count(session_factory, model, **filters) -> int:
    async with session_factory() as db:
        stmt = select(func.count()).select_from(model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(model, name) == value)
        return (await db.execute(stmt)).scalar_one()


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_first_analysis_awarded(self, evaluator, make_developer, load_developer, session_factory):
        await make_developer(cv_analyses_completed=1)

        awards = await evaluator.evaluate("dev-1", EventType.CV_ANALYSIS_COMPLETED)

        assert [a.badge_id for a in awards] == ["first_analysis"]
        assert awards[0].xp == 100
        developer = await load_developer()
        assert developer.badges_earned == 1
        assert developer.total_xp == 100
        assert await count(session_factory, XPLedger, source="BADGE_EARNED", source_id="first_analysis") == 1

    @pytest.mark.asyncio
    async def test_already_earned_is_skipped(self, evaluator, make_developer, session_factory):
        await make_developer(cv_analyses_completed=1)
        await evaluator.evaluate("dev-1", EventType.CV_ANALYSIS_COMPLETED)
        assert await evaluator.evaluate("dev-1", EventType.CV_ANALYSIS_COMPLETED) == []
        assert await count(session_factory, UserBadge, badge_id="first_analysis") == 1

    @pytest.mark.asyncio
    async def test_threshold_not_met(self, evaluator, make_developer):
        await make_developer(cv_analyses_completed=9)
        awards = await evaluator.evaluate("dev-1", EventType.CV_ANALYSIS_COMPLETED)
        assert "analysis_veteran" not in [a.badge_id for a in awards]

    @pytest.mark.asyncio
    async def test_early_adopter_by_signup_rank(self, evaluator, make_developer):
        await make_developer(cv_uploads=1)
        awards = await evaluator.evaluate("dev-1", EventType.CV_UPLOADED)
        assert {a.badge_id for a in awards} == {"cv_analyzer", "early_adopter"}

    @pytest.mark.asyncio
    async def test_badge_xp_can_level_up(self, evaluator, make_developer):
        await make_developer(cv_analyses_completed=1, total_xp=0)
        award = (await evaluator.evaluate("dev-1", EventType.CV_ANALYSIS_COMPLETED))[0]
        assert award.old_level == 1
        assert award.new_level == 2

    @pytest.mark.asyncio
    async def test_catalog_row_created_on_award(self, evaluator, make_developer, session_factory):
        await make_developer(cv_analyses_completed=1)
        await evaluator.evaluate("dev-1", EventType.CV_ANALYSIS_COMPLETED)
        assert await count(session_factory, Badge, id="first_analysis") == 1


class TestAtMostOnce:
    @pytest.mark.asyncio
    async def test_losing_race_is_a_no_op(
        self, evaluator, make_developer, load_developer, session_factory, monkeypatch
    ):
        """The second writer passes the existence check but hits the unique constraint."""
        await make_developer()
        badge = BADGE_CATALOG["first_analysis"]
        assert await evaluator.award("dev-1", badge) is not None

        async def never_earned(*_args):
            return False

        monkeypatch.setattr(badge_service, "has_badge", never_earned)
        assert await evaluator.award("dev-1", badge) is None

        assert await count(session_factory, UserBadge, badge_id="first_analysis") == 1
        assert await count(session_factory, XPLedger, source="BADGE_EARNED") == 1
        assert (await load_developer()).badges_earned == 1

    @pytest.mark.asyncio
    async def test_concurrent_awards_keep_every_increment(
        self, evaluator, make_developer, load_developer, session_factory
    ):
        """Two badges awarded at once: both counts and both XP rewards land."""
        await make_developer()
        badges = [BADGE_CATALOG["first_analysis"], BADGE_CATALOG["analysis_veteran"]]

        awards = await asyncio.gather(*(evaluator.award("dev-1", badge) for badge in badges))

        assert all(award is not None for award in awards)
        developer = await load_developer()
        assert developer.badges_earned == 2
        assert developer.total_xp == sum(badge.xp_reward for badge in badges)
        async with session_factory() as db:
            ledger_total = (await db.execute(
                select(func.sum(XPLedger.amount)).where(XPLedger.developer_id == "dev-1")
            )).scalar_one()
        assert developer.total_xp == ledger_total

    @pytest.mark.asyncio
    async def test_special_badge(self, evaluator, make_developer):
        await make_developer()
        award = await evaluator.award_special_badge("dev-1", "beta_tester")
        assert award is not None
        assert award.badge_id == "beta_tester"
        assert await evaluator.award_special_badge("dev-1", "no_such_badge") is None


class TestCatalogQueries:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, session_factory, clock):
        assert await seed_badges(session_factory, clock()) == len(BADGE_CATALOG)
        assert await seed_badges(session_factory, clock()) == 0

    @pytest.mark.asyncio
    async def test_list_badges_marks_earned(self, evaluator, make_developer):
        await make_developer(cv_analyses_completed=1)
        await evaluator.evaluate("dev-1", EventType.CV_ANALYSIS_COMPLETED)
        listing = {b["id"]: b for b in await evaluator.list_badges("dev-1")}
        assert listing["first_analysis"]["earned"]
        assert listing["first_analysis"]["earned_at"] is not None
        assert not listing["analysis_veteran"]["earned"]
