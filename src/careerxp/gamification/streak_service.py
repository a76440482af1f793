"""Daily activity streaks: increment, reset, milestone bonuses and recovery.

Transitions use calendar days (UTC); time of day is ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careerxp.db.models import Developer, XPLedger
from careerxp.db.transactions import developer_transaction
from careerxp.gamification.constants import (
    STREAK_MILESTONE_BONUSES,
    STREAK_RECOVERY_MAX_COST,
    STREAK_RECOVERY_XP_PER_DAY,
    XPSource,
)
from careerxp.gamification.timeutil import Clock, utc_day, utcnow
from careerxp.gamification.xp_calculator import streak_bonus
from careerxp.gamification.xp_service import XPGrant, append_xp_entry, grant_xp

logger = logging.getLogger(__name__)

NEW = "new"
EXTENDED = "extended"
BROKEN = "broken"
UNCHANGED = "unchanged"


@dataclass(frozen=True)
class StreakUpdate:
    status: str
    streak: int
    longest_streak: int
    milestone: int | None = None
    bonus_xp: int = 0
    grant: XPGrant | None = None

    @property
    def changed(self) -> bool:
        return self.status != UNCHANGED


@dataclass(frozen=True)
class RecoveryResult:
    success: bool
    cost: int
    streak: int
    reason: str | None = None


def is_milestone(streak: int) -> bool:
    return streak > 0 and any(streak % length == 0 for length in STREAK_MILESTONE_BONUSES)


def milestone_bonus(streak: int) -> int:
    """Largest bonus among the milestone lengths that divide ``streak``."""
    if streak <= 0:
        return 0
    return max((bonus for length, bonus in STREAK_MILESTONE_BONUSES.items() if streak % length == 0), default=0)


def next_milestone(streak: int) -> int:
    candidate = max(streak, 0) + 1
    while not is_milestone(candidate):
        candidate += 1
    return candidate


def recovery_cost(streak: int) -> int:
    return min(streak * STREAK_RECOVERY_XP_PER_DAY, STREAK_RECOVERY_MAX_COST)


async def _milestone_already_awarded(db: AsyncSession, developer_id: str, streak: int, now: datetime) -> bool:
    result = await db.execute(
        select(XPLedger.id).where(
            XPLedger.developer_id == developer_id,
            XPLedger.source == XPSource.STREAK_BONUS.value,
            XPLedger.source_id == f"streak_{streak}",
            XPLedger.created_at >= now - timedelta(hours=24),
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def record_activity(db: AsyncSession, developer: Developer, now: datetime) -> StreakUpdate:
    """Advance the streak state machine for today, inside the caller's transaction.

    Second and later calls on the same day are no-ops. A milestone bonus is
    credited in the same transaction as the streak change.
    """
    today = utc_day(now)
    last = developer.last_activity_date

    if last is None:
        status, streak = NEW, 1
    else:
        last_day = utc_day(last)
        if last_day >= today:
            return StreakUpdate(UNCHANGED, developer.streak, developer.longest_streak)
        if last_day == today - timedelta(days=1):
            status, streak = EXTENDED, developer.streak + 1
        else:
            status, streak = BROKEN, 1

    developer.streak = streak
    developer.longest_streak = max(developer.longest_streak, streak)
    developer.last_activity_date = now
    developer.updated_at = now

    if status == BROKEN:
        logger.info("Streak broken for %s, restarting at 1", developer.id)

    if not is_milestone(streak):
        return StreakUpdate(status, streak, developer.longest_streak)

    if await _milestone_already_awarded(db, developer.id, streak, now):
        return StreakUpdate(status, streak, developer.longest_streak, milestone=streak)

    bonus = milestone_bonus(streak)
    grant = await grant_xp(
        db,
        developer,
        XPSource.STREAK_BONUS,
        bonus,
        now,
        source_id=f"streak_{streak}",
        description=f"{streak}-day streak milestone",
        apply_multipliers=False,
        idempotency_key=f"streak_bonus:{developer.id}:{streak}:{today.isoformat()}",
    )
    logger.info("Streak milestone %d for %s (+%d XP)", streak, developer.id, bonus)
    return StreakUpdate(
        status,
        streak,
        developer.longest_streak,
        milestone=streak,
        bonus_xp=grant.amount if grant else 0,
        grant=grant,
    )


class StreakService:
    """Transactional streak operations for one developer at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float | None = 10.0,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.timeout = timeout
        self._clock = clock

    async def record_activity(self, developer_id: str) -> StreakUpdate:
        now = self._clock()
        async with developer_transaction(self.session_factory, developer_id, self.timeout) as (db, dev):
            return await record_activity(db, dev, now)

    async def recover(self, developer_id: str) -> RecoveryResult:
        """Buy back a single missed day with XP.

        Allowed only when the last activity was the day before yesterday.
        The XP debit and the backdated activity date commit together.
        """
        now = self._clock()
        today = utc_day(now)
        async with developer_transaction(self.session_factory, developer_id, self.timeout) as (db, dev):
            last = dev.last_activity_date
            if last is None or dev.streak <= 0 or utc_day(last) != today - timedelta(days=2):
                return RecoveryResult(success=False, cost=0, streak=dev.streak, reason="NOT_ELIGIBLE")

            cost = recovery_cost(dev.streak)
            if dev.total_xp < cost:
                return RecoveryResult(success=False, cost=cost, streak=dev.streak, reason="INSUFFICIENT_XP")

            await append_xp_entry(
                db,
                dev,
                -cost,
                XPSource.STREAK_RECOVERY,
                f"recovery_{today.isoformat()}",
                f"Recovered {dev.streak}-day streak",
                now,
                idempotency_key=f"streak_recovery:{developer_id}:{today.isoformat()}",
            )
            dev.last_activity_date = now - timedelta(days=1)
            logger.info("Streak recovered for %s at a cost of %d XP", developer_id, cost)
            return RecoveryResult(success=True, cost=cost, streak=dev.streak)

    async def stats(self, developer_id: str) -> dict:
        async with self.session_factory() as db:
            dev = await db.get(Developer, developer_id)
            if dev is None:
                return {}
            ahead = await db.execute(select(func.count(Developer.id)).where(Developer.streak > dev.streak))
            rank = (ahead.scalar_one() or 0) + 1
        return {
            "current_streak": dev.streak,
            "longest_streak": dev.longest_streak,
            "last_activity_date": dev.last_activity_date,
            "rank": rank,
            "next_milestone": next_milestone(dev.streak),
            "daily_bonus": streak_bonus(dev.streak),
        }

    async def reset(self, developer_id: str) -> None:
        """Administrative reset of the current streak (longest is kept)."""
        async with developer_transaction(self.session_factory, developer_id, self.timeout) as (_db, dev):
            dev.streak = 0
            dev.last_activity_date = None
            dev.updated_at = self._clock()
        logger.info("Streak reset for %s", developer_id)
