"""Event pipeline: authorize, award XP and points, advance streaks, evaluate badges.

Every developer action flows through ``EventManager.submit_event``. Security
failures propagate to the caller; any other failure inside a step is logged
and the remaining steps still run, so a rewards fault never blocks the
action that triggered it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careerxp.auth.gateway import AuthGateway
from careerxp.db.models import Developer
from careerxp.db.transactions import add_to_developer, developer_transaction, retry_serializable, transaction
from careerxp.gamification.badge_service import BadgeEvaluator
from careerxp.gamification.config_service import ConfigService
from careerxp.gamification.constants import (
    EVENT_BONUS_POINTS,
    STREAK_ELIGIBLE_EVENTS,
    EventType,
    XPSource,
)
from careerxp.gamification.exceptions import DuplicateAward, InvalidData, SecurityError
from careerxp.gamification.notifier import Notifier
from careerxp.gamification.points_service import award_bonus_points
from careerxp.gamification.query_cache import QueryCache
from careerxp.gamification.requirements import CONTACT_FIELDS
from careerxp.gamification.streak_service import StreakUpdate, record_activity
from careerxp.gamification.timeutil import Clock, utc_day, utcnow
from careerxp.gamification.xp_calculator import xp_for_source
from careerxp.gamification.xp_service import XPGrant, get_or_create_developer, grant_xp

logger = logging.getLogger(__name__)

# Event -> (XP source, payload field carrying the source id)
EVENT_XP_SOURCES: dict[EventType, tuple[XPSource, str | None]] = {
    EventType.CV_UPLOADED: (XPSource.CV_UPLOAD, "cv_id"),
    EventType.CV_ANALYSIS_COMPLETED: (XPSource.CV_ANALYSIS, "analysis_id"),
    EventType.CV_IMPROVEMENT_APPLIED: (XPSource.CV_IMPROVEMENT, "suggestion_id"),
    EventType.APPLICATION_SUBMITTED: (XPSource.APPLICATION_SUBMIT, "application_id"),
    EventType.PROFILE_SECTION_UPDATED: (XPSource.PROFILE_UPDATE, "section_type"),
    EventType.SKILL_ADDED: (XPSource.SKILL_ADD, "skill_id"),
    EventType.DAILY_LOGIN: (XPSource.DAILY_LOGIN, None),
    EventType.CHALLENGE_COMPLETED: (XPSource.CHALLENGE_COMPLETE, "challenge_id"),
}

MAX_SUB_EVENT_DEPTH = 3


@dataclass
class EventOutcome:
    """What one event (and the sub-events it raised) changed."""

    event_type: EventType
    developer_id: str
    xp_awarded: int = 0
    level_up: tuple[int, int] | None = None
    points_awarded: int = 0
    streak: StreakUpdate | None = None
    badges: list[str] = field(default_factory=list)
    sub_events: list[EventOutcome] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)

    def total_xp_awarded(self) -> int:
        return self.xp_awarded + sum(sub.total_xp_awarded() for sub in self.sub_events)

    def total_points_awarded(self) -> int:
        return self.points_awarded + sum(sub.total_points_awarded() for sub in self.sub_events)

    def all_badges(self) -> list[str]:
        badges = list(self.badges)
        for sub in self.sub_events:
            badges.extend(sub.all_badges())
        return badges

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "xp_awarded": self.total_xp_awarded(),
            "points_awarded": self.total_points_awarded(),
            "level_up": (
                {"old_level": self.level_up[0], "new_level": self.level_up[1]} if self.level_up else None
            ),
            "streak": self.streak.streak if self.streak else None,
            "streak_milestone": self.streak.milestone if self.streak else None,
            "badges_earned": self.all_badges(),
            "failed_steps": self.failed_steps,
        }


def _source_id_for(event_type: EventType, field_name: str | None, data: Mapping[str, Any]) -> str | None:
    if field_name is None:
        return None
    value = data.get(field_name)
    if value is None and event_type == EventType.SKILL_ADDED:
        value = data.get("skill_name")
    return str(value) if value is not None else None


def _description_for(event_type: EventType, data: Mapping[str, Any]) -> str | None:
    if event_type == EventType.APPLICATION_SUBMITTED and data.get("role_title"):
        return f"Applied to {data['role_title']}"
    if event_type == EventType.PROFILE_SECTION_UPDATED and data.get("section_type"):
        return f"Updated profile section: {data['section_type']}"
    if event_type == EventType.SKILL_ADDED and data.get("skill_name"):
        return f"Added skill: {data['skill_name']}"
    return None


def update_counters(
    developer: Developer, event_type: EventType, data: Mapping[str, Any], now: datetime
) -> dict[str, int]:
    """Maintain the aggregate fields badge requirements read.

    Non-additive fields are set on ``developer``; the additive counters are
    returned as increments for the caller to apply in SQL.
    """
    if event_type == EventType.CV_UPLOADED:
        return {"cv_uploads": 1}
    if event_type == EventType.CV_ANALYSIS_COMPLETED:
        score = data.get("score")
        if isinstance(score, (int, float)):
            developer.best_cv_score = max(developer.best_cv_score, int(score))
        return {"cv_analyses_completed": 1}
    if event_type == EventType.CV_IMPROVEMENT_APPLIED:
        return {"suggestions_accepted": 1}
    if event_type == EventType.APPLICATION_SUBMITTED:
        day = utc_day(now).isoformat()
        if developer.applications_day != day:
            developer.applications_day = day
            developer.applications_today = 0
        return {"applications_submitted": 1, "applications_today": 1}
    if event_type == EventType.PROFILE_SECTION_UPDATED:
        section = data.get("section_type")
        if section and section not in developer.profile_sections:
            # Reassign so the JSON column is flagged dirty
            developer.profile_sections = [*developer.profile_sections, section]
        contact = data.get("contact_info")
        if isinstance(contact, Mapping):
            merged = dict(developer.contact_info)
            merged.update({k: v for k, v in contact.items() if k in CONTACT_FIELDS and v})
            developer.contact_info = merged
        return {}
    if event_type == EventType.SKILL_ADDED:
        return {"skills_count": 1}
    if event_type == EventType.CHALLENGE_COMPLETED:
        return {"challenges_completed": 1}
    return {}


class EventManager:
    """Orchestrates the reward pipeline for each submitted event."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: AuthGateway,
        config: ConfigService,
        evaluator: BadgeEvaluator,
        query_cache: QueryCache,
        notifier: Notifier | None = None,
        timeout: float | None = 10.0,
        retries: int = 3,
        clock: Clock = utcnow,
        max_depth: int = MAX_SUB_EVENT_DEPTH,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.config = config
        self.evaluator = evaluator
        self.query_cache = query_cache
        self.notifier = notifier
        self.timeout = timeout
        self.retries = retries
        self.max_depth = max_depth
        self._clock = clock

    async def submit_event(
        self,
        event_type: EventType | str,
        event_data: Mapping[str, Any],
        caller_id: str | None,
    ) -> EventOutcome:
        """Entry point for developer actions.

        Raises:
            SecurityError: authentication, authorization, rate limit or
                payload validation failed. Nothing was awarded.
        """
        try:
            event_type = EventType(event_type)
        except ValueError as exc:
            msg = f"Unknown event type: {event_type}"
            raise InvalidData(msg) from exc

        developer_id = await self.gateway.authorize(event_type, event_data, caller_id)
        await self.ensure_developer(developer_id)
        return await self._process(event_type, dict(event_data), developer_id, depth=0)

    async def ensure_developer(self, developer_id: str) -> None:
        try:
            async with transaction(self.session_factory, self.timeout) as db:
                _, created = await get_or_create_developer(db, developer_id, self._clock())
        except IntegrityError:
            # Created concurrently by another request
            return
        if created:
            logger.info("Created gamification state for %s", developer_id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _process(
        self,
        event_type: EventType,
        data: dict[str, Any],
        developer_id: str,
        depth: int,
    ) -> EventOutcome:
        outcome = EventOutcome(event_type=event_type, developer_id=developer_id)
        pending: list[tuple[EventType, dict[str, Any]]] = []

        await self._step("award_xp", outcome, lambda: self._award_xp(outcome, data, pending))
        await self._step("award_points", outcome, lambda: self._award_points(outcome, data))
        await self._step("update_streak", outcome, lambda: self._update_streak(outcome, pending))
        await self._step("evaluate_badges", outcome, lambda: self._evaluate_badges(outcome, pending))
        await self._step("invalidate_cache", outcome, lambda: self.query_cache.invalidate_developer(developer_id))
        await self._step("publish", outcome, lambda: self._publish(outcome))

        for sub_type, sub_data in pending:
            if depth + 1 > self.max_depth:
                logger.warning("Sub-event %s dropped at depth %d for %s", sub_type.value, depth + 1, developer_id)
                continue
            outcome.sub_events.append(await self._process(sub_type, sub_data, developer_id, depth + 1))
        return outcome

    async def _step(self, name: str, outcome: EventOutcome, fn: Callable[[], Awaitable[Any]]) -> None:
        try:
            await fn()
        except SecurityError:
            raise
        except DuplicateAward:
            logger.info("Step %s for %s lost a race; award already recorded", name, outcome.developer_id)
        except Exception:
            logger.exception("Step %s failed for %s (%s)", name, outcome.developer_id, outcome.event_type.value)
            outcome.failed_steps.append(name)

    def _queue_level_up(self, pending: list, developer_id: str, old_level: int, new_level: int) -> None:
        pending.append((
            EventType.LEVEL_UP,
            {"user_id": developer_id, "old_level": old_level, "new_level": new_level},
        ))

    async def _award_xp(self, outcome: EventOutcome, data: dict[str, Any], pending: list) -> None:
        mapping = EVENT_XP_SOURCES.get(outcome.event_type)
        if mapping is None:
            return
        source, field_name = mapping
        source_id = _source_id_for(outcome.event_type, field_name, data)

        # Read configuration before opening the developer transaction
        rewards = await self.config.get_xp_rewards()
        tiers = await self.config.get_subscription_tiers()

        async def attempt() -> XPGrant | None:
            now = self._clock()
            async with developer_transaction(self.session_factory, outcome.developer_id, self.timeout) as (db, dev):
                tier = tiers.get(dev.subscription_tier) or tiers.get("FREE", {})
                grant = await grant_xp(
                    db,
                    dev,
                    source,
                    xp_for_source(source.value, rewards),
                    now,
                    source_id=source_id,
                    description=_description_for(outcome.event_type, data),
                    tier_multiplier=float(tier.get("xp_multiplier", 1.0)),
                    maximums=rewards,
                )
                if grant is not None:
                    increments = update_counters(dev, outcome.event_type, data, now)
                    if increments:
                        await add_to_developer(db, dev, now, **increments)
                return grant

        grant = await retry_serializable(attempt, self.retries)
        if grant is None:
            return
        outcome.xp_awarded = grant.amount
        if grant.leveled_up:
            outcome.level_up = (grant.old_level, grant.new_level)
            self._queue_level_up(pending, outcome.developer_id, grant.old_level, grant.new_level)

    def _points_source_id(self, event_type: EventType, data: Mapping[str, Any]) -> str | None:
        if event_type == EventType.CHALLENGE_COMPLETED:
            return data.get("challenge_id")
        if event_type == EventType.BADGE_EARNED:
            return data.get("badge_id")
        if event_type == EventType.LEVEL_UP:
            return f"level_{data.get('new_level')}"
        if event_type == EventType.STREAK_MILESTONE:
            return f"streak_{data.get('streak')}_{data.get('day')}"
        return None

    async def _award_points(self, outcome: EventOutcome, data: dict[str, Any]) -> None:
        bonus = EVENT_BONUS_POINTS.get(outcome.event_type)
        if bonus is None:
            return
        source, amount = bonus
        source_id = self._points_source_id(outcome.event_type, data)

        async def attempt() -> int | None:
            now = self._clock()
            async with developer_transaction(self.session_factory, outcome.developer_id, self.timeout) as (db, dev):
                return await award_bonus_points(db, dev, source, amount, now, source_id=source_id)

        credited = await retry_serializable(attempt, self.retries)
        if credited:
            outcome.points_awarded = credited

    async def _update_streak(self, outcome: EventOutcome, pending: list) -> None:
        if outcome.event_type not in STREAK_ELIGIBLE_EVENTS:
            return

        async def attempt() -> StreakUpdate:
            async with developer_transaction(self.session_factory, outcome.developer_id, self.timeout) as (db, dev):
                return await record_activity(db, dev, self._clock())

        update = await retry_serializable(attempt, self.retries)
        outcome.streak = update
        if update.grant is None:
            return
        pending.append((
            EventType.STREAK_MILESTONE,
            {
                "user_id": outcome.developer_id,
                "streak": update.milestone,
                "bonus_xp": update.bonus_xp,
                "day": utc_day(self._clock()).isoformat(),
            },
        ))
        if update.grant.leveled_up:
            self._queue_level_up(pending, outcome.developer_id, update.grant.old_level, update.grant.new_level)

    async def _evaluate_badges(self, outcome: EventOutcome, pending: list) -> None:
        awards = await self.evaluator.evaluate(outcome.developer_id, outcome.event_type)
        for award in awards:
            outcome.badges.append(award.badge_id)
            pending.append((
                EventType.BADGE_EARNED,
                {"user_id": outcome.developer_id, "badge_id": award.badge_id},
            ))
        leveled = [a for a in awards if a.new_level > a.old_level]
        if leveled:
            self._queue_level_up(
                pending,
                outcome.developer_id,
                min(a.old_level for a in leveled),
                max(a.new_level for a in leveled),
            )

    async def _publish(self, outcome: EventOutcome) -> None:
        if self.notifier is None:
            return
        if not (outcome.xp_awarded or outcome.points_awarded or outcome.badges or
                (outcome.streak and outcome.streak.changed)):
            return
        await self.notifier.publish(
            outcome.developer_id,
            outcome.event_type.value,
            {
                "xp_awarded": outcome.xp_awarded,
                "points_awarded": outcome.points_awarded,
                "badges": outcome.badges,
                "level_up": list(outcome.level_up) if outcome.level_up else None,
                "streak": outcome.streak.streak if outcome.streak else None,
            },
        )
