"""Badge evaluation and at-most-once awarding."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careerxp.db.models import Badge, Developer, UserBadge
from careerxp.db.transactions import add_to_developer, developer_transaction, transaction
from careerxp.gamification.badge_catalog import BADGE_CATALOG, BadgeDefinition
from careerxp.gamification.badge_index import BadgeContext, EventBadgeIndex
from careerxp.gamification.constants import EventType, XPSource
from careerxp.gamification.exceptions import DeveloperNotFound, DuplicateAward
from careerxp.gamification.requirements import DeveloperSnapshot, EarlyAdopter, is_satisfied
from careerxp.gamification.timeutil import Clock, as_utc, utcnow
from careerxp.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_WINDOW = timedelta(days=7)


@dataclass(frozen=True)
class BadgeAward:
    badge_id: str
    xp: int
    old_level: int
    new_level: int


def snapshot_of(developer: Developer, signup_rank: int | None = None) -> DeveloperSnapshot:
    return DeveloperSnapshot(
        developer_id=developer.id,
        total_xp=developer.total_xp,
        level=developer.current_level,
        streak=developer.streak,
        contact_info=dict(developer.contact_info or {}),
        profile_sections=frozenset(developer.profile_sections or ()),
        skills_count=developer.skills_count,
        cv_uploads=developer.cv_uploads,
        cv_analyses_completed=developer.cv_analyses_completed,
        best_cv_score=developer.best_cv_score,
        suggestions_accepted=developer.suggestions_accepted,
        applications_submitted=developer.applications_submitted,
        applications_today=developer.applications_today,
        challenges_completed=developer.challenges_completed,
        signup_rank=signup_rank,
    )


def context_of(developer: Developer, now: datetime) -> BadgeContext:
    last = developer.last_activity_date
    return BadgeContext(
        is_weekend=now.weekday() >= 5,
        has_recent_activity=last is not None and as_utc(now) - as_utc(last) <= RECENT_ACTIVITY_WINDOW,
        level=developer.current_level,
        streak=developer.streak,
    )


def is_hidden_badge_triggered(badge: BadgeDefinition, event_type: EventType) -> bool:
    """Reveal rule for hidden badges. None are revealed yet."""
    return False


async def earned_badge_ids(db: AsyncSession, developer_id: str) -> set[str]:
    result = await db.execute(select(UserBadge.badge_id).where(UserBadge.developer_id == developer_id))
    return set(result.scalars())


async def has_badge(db: AsyncSession, developer_id: str, badge_id: str) -> bool:
    result = await db.execute(
        select(UserBadge.id).where(UserBadge.developer_id == developer_id, UserBadge.badge_id == badge_id)
    )
    return result.scalar_one_or_none() is not None


async def signup_rank(db: AsyncSession, developer: Developer) -> int:
    """1-based position of the developer by sign-up time."""
    result = await db.execute(
        select(func.count(Developer.id)).where(Developer.created_at <= developer.created_at)
    )
    return result.scalar_one()


def _badge_row(badge: BadgeDefinition, now: datetime) -> Badge:
    return Badge(
        id=badge.id,
        name=badge.name,
        description=badge.description,
        category=badge.category,
        tier=badge.tier,
        rarity=badge.rarity,
        xp_reward=badge.xp_reward,
        hidden=badge.hidden,
        created_at=now,
    )


async def award_badge(
    db: AsyncSession,
    developer: Developer,
    badge: BadgeDefinition,
    now: datetime,
    trigger_event: str | None = None,
) -> BadgeAward | None:
    """Award a badge inside the caller's developer transaction.

    Returns the award, or None if already earned.
    1. Insert into user_badges (UNIQUE(developer_id, badge_id))
    2. Grant badge XP (idempotent via idempotency_key)
    3. Update developers.badges_earned

    Raises:
        DuplicateAward: a concurrent award won the race; roll back.
    """
    if await has_badge(db, developer.id, badge.id):
        return None

    db.add(UserBadge(
        developer_id=developer.id,
        badge_id=badge.id,
        earned_at=now,
        trigger_event=trigger_event,
    ))
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateAward(f"badge:{badge.id}:{developer.id}") from exc

    level_before = developer.current_level
    grant = await grant_xp(
        db,
        developer,
        XPSource.BADGE_EARNED,
        badge.xp_reward,
        now,
        source_id=badge.id,
        description=f'Earned badge: "{badge.name}"',
        apply_multipliers=False,
    )
    await add_to_developer(db, developer, now, badges_earned=1)
    return BadgeAward(
        badge_id=badge.id,
        xp=grant.amount if grant else 0,
        old_level=grant.old_level if grant else level_before,
        new_level=grant.new_level if grant else level_before,
    )


async def seed_badges(session_factory: async_sessionmaker[AsyncSession], now: datetime | None = None) -> int:
    """Insert catalog rows that are missing and refresh the ones that changed."""
    now = now or utcnow()
    inserted = 0
    async with transaction(session_factory) as db:
        existing = {b.id: b for b in (await db.execute(select(Badge))).scalars()}
        for badge in BADGE_CATALOG.values():
            row = existing.get(badge.id)
            if row is None:
                db.add(_badge_row(badge, now))
                inserted += 1
                continue
            row.name = badge.name
            row.description = badge.description
            row.category = badge.category
            row.tier = badge.tier
            row.rarity = badge.rarity
            row.xp_reward = badge.xp_reward
            row.hidden = badge.hidden
    if inserted:
        logger.info("Seeded %d badge definitions", inserted)
    return inserted


class BadgeEvaluator:
    """Evaluates the candidate badges for an event and awards new ones."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        index: EventBadgeIndex,
        timeout: float | None = 10.0,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.index = index
        self.timeout = timeout
        self._clock = clock

    async def evaluate(self, developer_id: str, event_type: EventType) -> list[BadgeAward]:
        """Award every candidate badge the developer now qualifies for.

        Returns the awards made (may be empty).
        """
        now = self._clock()
        async with self.session_factory() as db:
            developer = await db.get(Developer, developer_id)
            if developer is None:
                raise DeveloperNotFound(developer_id)
            earned = await earned_badge_ids(db, developer_id)

            candidates: list[BadgeDefinition] = []
            for badge_id in self.index.contextual_candidates(event_type, context_of(developer, now)):
                badge = self.index.catalog[badge_id]
                if badge_id in earned:
                    continue
                if badge.hidden and not is_hidden_badge_triggered(badge, event_type):
                    continue
                candidates.append(badge)

            if not candidates:
                return []

            rank = None
            if any(isinstance(badge.requirement, EarlyAdopter) for badge in candidates):
                rank = await signup_rank(db, developer)
            snapshot = snapshot_of(developer, signup_rank=rank)

        awarded: list[BadgeAward] = []
        for badge in candidates:
            if not is_satisfied(badge.requirement, snapshot):
                continue
            award = await self.award(developer_id, badge, trigger_event=event_type.value)
            if award is not None:
                awarded.append(award)
        return awarded

    async def _ensure_catalog_row(self, badge: BadgeDefinition) -> None:
        async with self.session_factory() as db:
            if await db.get(Badge, badge.id) is not None:
                return
        try:
            async with transaction(self.session_factory, self.timeout) as db:
                db.add(_badge_row(badge, self._clock()))
        except IntegrityError:
            # Inserted concurrently by another award
            logger.debug("Badge row %s already present", badge.id)

    async def award(self, developer_id: str, badge: BadgeDefinition, trigger_event: str | None = None) -> BadgeAward | None:
        """Award one badge in its own transaction. None if already earned."""
        await self._ensure_catalog_row(badge)
        now = self._clock()
        try:
            async with developer_transaction(self.session_factory, developer_id, self.timeout) as (db, dev):
                awarded = await award_badge(db, dev, badge, now, trigger_event)
        except DuplicateAward:
            logger.info("Badge %s already awarded to %s (concurrent)", badge.id, developer_id)
            return None
        if awarded is not None:
            logger.info("Badge %s awarded to %s", badge.id, developer_id)
        return awarded

    async def award_special_badge(self, developer_id: str, badge_id: str) -> BadgeAward | None:
        """Manual award for badges no event unlocks (beta testers, feedback)."""
        badge = self.index.catalog.get(badge_id)
        if badge is None:
            logger.warning("Badge not found: %s", badge_id)
            return None
        return await self.award(developer_id, badge, trigger_event="MANUAL")

    async def list_badges(self, developer_id: str) -> list[dict]:
        """Catalog with earned flags for a developer; hidden badges only once earned."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(UserBadge.badge_id, UserBadge.earned_at).where(UserBadge.developer_id == developer_id)
            )
            earned = dict(result.all())
        return [
            {
                "id": badge.id,
                "name": badge.name,
                "description": badge.description,
                "category": badge.category,
                "tier": badge.tier,
                "rarity": badge.rarity,
                "xp_reward": badge.xp_reward,
                "earned": badge.id in earned,
                "earned_at": earned.get(badge.id),
            }
            for badge in self.index.catalog.values()
            if not badge.hidden or badge.id in earned
        ]
