"""XP and level math. Pure functions, no state.

Levels 1-10 come from LEVEL_THRESHOLDS. From level 11 on the curve is
``xp_for_level(L) = (L - 1) ** 2 * 50``; the table is chosen so that
level 10 ends exactly where that curve reaches level 11, which keeps
``xp_for_level(compute_level(x)) <= x < xp_for_level(compute_level(x) + 1)``
true for every x >= 0.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone

from careerxp.gamification.constants import (
    DEFAULT_XP_REWARDS,
    SOURCE_ID_REQUIRED_XP,
    XPSource,
)
from careerxp.gamification.exceptions import ExceedsSourceMaximum, InvalidAmount, MissingSourceId
from careerxp.gamification.timeutil import as_utc

LEVEL_THRESHOLDS: list[dict] = [
    {"level": 1, "title": "Newcomer", "xp_required": 0, "benefits": ["Basic profile features"]},
    {"level": 2, "title": "Apprentice", "xp_required": 100, "benefits": ["Enhanced CV analysis"]},
    {"level": 3, "title": "Developer", "xp_required": 250, "benefits": ["Priority support"]},
    {"level": 4, "title": "Professional", "xp_required": 450, "benefits": ["Advanced insights"]},
    {"level": 5, "title": "Expert", "xp_required": 700, "benefits": ["Profile visibility boost"]},
    {"level": 6, "title": "Practitioner", "xp_required": 1000, "benefits": ["Custom badges"]},
    {"level": 7, "title": "Specialist", "xp_required": 1400, "benefits": ["Mentorship opportunities"]},
    {"level": 8, "title": "Senior", "xp_required": 1900, "benefits": ["Career consultation"]},
    {"level": 9, "title": "Lead", "xp_required": 2500, "benefits": ["Platform beta access"]},
    {"level": 10, "title": "Principal", "xp_required": 3200, "benefits": ["VIP status"]},
]

_TABLE_BY_LEVEL: dict[int, dict] = {row["level"]: row for row in LEVEL_THRESHOLDS}
MAX_TABLE_LEVEL = LEVEL_THRESHOLDS[-1]["level"]
XP_PER_LEVEL_SQUARED = 50

PROFILE_TIER_THRESHOLDS: list[tuple[str, int]] = [
    ("DIAMOND", 2000),
    ("PLATINUM", 1000),
    ("GOLD", 500),
    ("SILVER", 200),
    ("BRONZE", 0),
]

# Consistency bonus window (hours since last activity)
TIME_BONUS_MIN_HOURS = 1
TIME_BONUS_MAX_HOURS = 24
TIME_BONUS_MULTIPLIER = 1.10


def _curve_xp(level: int) -> int:
    return (level - 1) ** 2 * XP_PER_LEVEL_SQUARED


_CURVE_START_XP = _curve_xp(MAX_TABLE_LEVEL + 1)


def compute_level(total_xp: int) -> int:
    """Highest level whose required XP is <= total_xp."""
    total_xp = max(0, total_xp)
    if total_xp >= _CURVE_START_XP:
        return math.isqrt(total_xp // XP_PER_LEVEL_SQUARED) + 1
    for row in reversed(LEVEL_THRESHOLDS):
        if total_xp >= row["xp_required"]:
            return row["level"]
    return 1


def xp_for_level(level: int) -> int:
    """Total XP needed to reach ``level``."""
    if level <= 1:
        return 0
    row = _TABLE_BY_LEVEL.get(level)
    if row is not None:
        return row["xp_required"]
    return _curve_xp(level)


def level_progress(total_xp: int, level: int) -> float:
    """Fraction of the way from ``level`` to the next one, clamped to [0, 1]."""
    current = xp_for_level(level)
    nxt = xp_for_level(level + 1)
    if nxt == current:
        return 1.0
    return min(max((total_xp - current) / (nxt - current), 0.0), 1.0)


def level_info(level: int) -> dict:
    """Title and benefits for a level."""
    row = _TABLE_BY_LEVEL.get(level)
    if row is not None:
        return {"title": row["title"], "benefits": list(row["benefits"])}
    return {
        "title": f"Level {level} Master",
        "benefits": ["Advanced platform features", "Exclusive recognition"],
    }


def profile_tier(total_xp: int) -> str:
    """BRONZE..DIAMOND badge frame derived from total XP."""
    for tier, threshold in PROFILE_TIER_THRESHOLDS:
        if total_xp >= threshold:
            return tier
    return "BRONZE"


def streak_bonus(streak: int) -> int:
    """Daily streak bonus: 0 below 3 days, then +5 per two days, capped at 50."""
    if streak < 3:
        return 0
    return min(streak // 2 * 5, 50)


def time_multiplier(last_activity: datetime | None, now: datetime | None = None) -> float:
    """1.10 when returning 1-24 hours after the last activity, else 1.0."""
    if last_activity is None:
        return 1.0
    now = now or datetime.now(timezone.utc)
    hours = (as_utc(now) - as_utc(last_activity)).total_seconds() / 3600
    if TIME_BONUS_MIN_HOURS <= hours <= TIME_BONUS_MAX_HOURS:
        return TIME_BONUS_MULTIPLIER
    return 1.0


def xp_for_source(source: str, rewards: Mapping[str, int] | None = None) -> int:
    """Configured XP reward for a source (0 if unknown)."""
    return (rewards if rewards is not None else DEFAULT_XP_REWARDS).get(source, 0)


def validate_award(
    source: str,
    amount: int,
    source_id: str | None = None,
    maximums: Mapping[str, int] | None = None,
) -> None:
    """Reject an XP award before it reaches the ledger.

    Raises:
        InvalidAmount: amount is negative.
        ExceedsSourceMaximum: amount is above the source's configured reward.
        MissingSourceId: the source is per-object and no source_id was given.
    """
    if amount < 0:
        msg = f"XP amount must be non-negative, got {amount}"
        raise InvalidAmount(msg)

    if source != XPSource.ADMIN_ADJUSTMENT:
        maximum = (maximums if maximums is not None else DEFAULT_XP_REWARDS).get(source)
        if maximum is not None and amount > maximum:
            raise ExceedsSourceMaximum(str(source), amount, maximum)

    if source in SOURCE_ID_REQUIRED_XP and not source_id:
        raise MissingSourceId(str(source))


def next_milestone(total_xp: int) -> dict:
    """Nearest upcoming level or profile-tier threshold."""
    level = compute_level(total_xp)
    level_xp = xp_for_level(level + 1)
    candidates = [("level", f"Level {level + 1}", level_xp)]
    for tier, threshold in reversed(PROFILE_TIER_THRESHOLDS):
        if threshold > total_xp:
            candidates.append(("tier", tier.title(), threshold))
            break
    kind, name, target = min(candidates, key=lambda c: c[2])
    return {"type": kind, "name": name, "xp_required": target, "xp_remaining": target - total_xp}


def compute_profile(total_xp: int) -> dict:
    """Level, progress and tier summary for a total XP value."""
    level = compute_level(total_xp)
    current_xp = xp_for_level(level)
    next_xp = xp_for_level(level + 1)
    return {
        "level": level,
        "title": level_info(level)["title"],
        "level_progress": level_progress(total_xp, level),
        "tier": profile_tier(total_xp),
        "current_level_xp": current_xp,
        "next_level_xp": next_xp,
        "xp_to_next_level": max(0, next_xp - total_xp),
    }
