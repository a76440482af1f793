"""Closed vocabularies and default reward tables."""

from __future__ import annotations

from enum import Enum


class EventType(str, Enum):
    """Rewardable developer actions accepted by the event pipeline."""

    CV_UPLOADED = "CV_UPLOADED"
    CV_ANALYSIS_COMPLETED = "CV_ANALYSIS_COMPLETED"
    CV_IMPROVEMENT_APPLIED = "CV_IMPROVEMENT_APPLIED"
    APPLICATION_SUBMITTED = "APPLICATION_SUBMITTED"
    PROFILE_SECTION_UPDATED = "PROFILE_SECTION_UPDATED"
    SKILL_ADDED = "SKILL_ADDED"
    DAILY_LOGIN = "DAILY_LOGIN"
    ACHIEVEMENT_UNLOCKED = "ACHIEVEMENT_UNLOCKED"
    LEVEL_UP = "LEVEL_UP"
    STREAK_MILESTONE = "STREAK_MILESTONE"
    BADGE_EARNED = "BADGE_EARNED"
    CHALLENGE_COMPLETED = "CHALLENGE_COMPLETED"


class XPSource(str, Enum):
    """Ledger source for XP entries."""

    PROFILE_UPDATE = "PROFILE_UPDATE"
    CV_UPLOAD = "CV_UPLOAD"
    CV_ANALYSIS = "CV_ANALYSIS"
    CV_IMPROVEMENT = "CV_IMPROVEMENT"
    APPLICATION_SUBMIT = "APPLICATION_SUBMIT"
    SKILL_ADD = "SKILL_ADD"
    ACHIEVEMENT_ADD = "ACHIEVEMENT_ADD"
    DAILY_LOGIN = "DAILY_LOGIN"
    STREAK_BONUS = "STREAK_BONUS"
    CHALLENGE_COMPLETE = "CHALLENGE_COMPLETE"
    BADGE_EARNED = "BADGE_EARNED"
    LEVEL_UP = "LEVEL_UP"
    REFERRAL = "REFERRAL"
    STREAK_RECOVERY = "STREAK_RECOVERY"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class PointsSource(str, Enum):
    """Ledger source for bonus point awards."""

    STREAK_BONUS = "STREAK_BONUS"
    LEVEL_BONUS = "LEVEL_BONUS"
    ACHIEVEMENT_BONUS = "ACHIEVEMENT_BONUS"
    PROMOTIONAL = "PROMOTIONAL"
    REFERRAL = "REFERRAL"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class SpendType(str, Enum):
    """Paid actions that consume points."""

    JOB_QUERY = "JOB_QUERY"
    COVER_LETTER = "COVER_LETTER"
    OUTREACH_MESSAGE = "OUTREACH_MESSAGE"
    CV_SUGGESTION = "CV_SUGGESTION"
    BULK_APPLICATION = "BULK_APPLICATION"
    PREMIUM_ANALYSIS = "PREMIUM_ANALYSIS"


class SubscriptionTier(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    STARTER = "STARTER"
    PRO = "PRO"
    EXPERT = "EXPERT"


# Ordered lowest to highest
TIER_ORDER: list[SubscriptionTier] = list(SubscriptionTier)

# ---------------------------------------------------------------------------
# XP
# ---------------------------------------------------------------------------

# Default reward per source; also the per-award maximum used by validation
DEFAULT_XP_REWARDS: dict[str, int] = {
    XPSource.PROFILE_UPDATE: 15,
    XPSource.CV_UPLOAD: 25,
    XPSource.CV_ANALYSIS: 50,
    XPSource.CV_IMPROVEMENT: 75,
    XPSource.APPLICATION_SUBMIT: 100,
    XPSource.SKILL_ADD: 10,
    XPSource.ACHIEVEMENT_ADD: 20,
    XPSource.DAILY_LOGIN: 5,
    XPSource.CHALLENGE_COMPLETE: 50,
    XPSource.REFERRAL: 200,
    XPSource.STREAK_BONUS: 500,
    XPSource.BADGE_EARNED: 1000,
    XPSource.LEVEL_UP: 0,
}

# Sources that may be credited more than once for the same object
REPEATABLE_XP_SOURCES: frozenset[XPSource] = frozenset({
    XPSource.PROFILE_UPDATE,
    XPSource.SKILL_ADD,
    XPSource.DAILY_LOGIN,
    XPSource.STREAK_BONUS,
})

# Sources that only make sense against a specific object
SOURCE_ID_REQUIRED_XP: frozenset[XPSource] = frozenset({
    XPSource.CV_UPLOAD,
    XPSource.CV_ANALYSIS,
    XPSource.CV_IMPROVEMENT,
    XPSource.APPLICATION_SUBMIT,
    XPSource.CHALLENGE_COMPLETE,
    XPSource.BADGE_EARNED,
})

# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------

DEFAULT_POINTS_COSTS: dict[str, int] = {
    SpendType.JOB_QUERY: 3,
    SpendType.COVER_LETTER: 1,
    SpendType.OUTREACH_MESSAGE: 1,
    SpendType.CV_SUGGESTION: 1,
    SpendType.BULK_APPLICATION: 8,
    SpendType.PREMIUM_ANALYSIS: 5,
}

SOURCE_ID_REQUIRED_SPEND: frozenset[SpendType] = frozenset({
    SpendType.COVER_LETTER,
    SpendType.OUTREACH_MESSAGE,
    SpendType.CV_SUGGESTION,
})

DEFAULT_SUBSCRIPTION_TIERS: dict[str, dict] = {
    SubscriptionTier.FREE: {"monthly_points": 10, "xp_multiplier": 1.0, "price": 0.0},
    SubscriptionTier.BASIC: {"monthly_points": 30, "xp_multiplier": 1.2, "price": 4.99},
    SubscriptionTier.STARTER: {"monthly_points": 75, "xp_multiplier": 1.5, "price": 9.99},
    SubscriptionTier.PRO: {"monthly_points": 200, "xp_multiplier": 1.75, "price": 19.99},
    SubscriptionTier.EXPERT: {"monthly_points": 500, "xp_multiplier": 2.0, "price": 39.99},
}

TIER_EFFICIENCY: dict[str, float] = {
    SubscriptionTier.FREE: 1.0,
    SubscriptionTier.BASIC: 0.95,
    SubscriptionTier.STARTER: 0.90,
    SubscriptionTier.PRO: 0.85,
    SubscriptionTier.EXPERT: 0.80,
}

POINTS_AWARD_MAXIMUM = 100
POINTS_SOURCE_CAPS: dict[str, int] = {
    PointsSource.STREAK_BONUS: 50,
    PointsSource.LEVEL_BONUS: 25,
}

# Bonus points credited by the event pipeline
EVENT_BONUS_POINTS: dict[EventType, tuple[PointsSource, int]] = {
    EventType.CHALLENGE_COMPLETED: (PointsSource.PROMOTIONAL, 15),
    EventType.BADGE_EARNED: (PointsSource.ACHIEVEMENT_BONUS, 10),
    EventType.LEVEL_UP: (PointsSource.LEVEL_BONUS, 5),
    EventType.STREAK_MILESTONE: (PointsSource.STREAK_BONUS, 2),
}

POINTS_RESET_DAYS = 30

# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------

STREAK_ELIGIBLE_EVENTS: frozenset[EventType] = frozenset({
    EventType.DAILY_LOGIN,
    EventType.CV_ANALYSIS_COMPLETED,
    EventType.APPLICATION_SUBMITTED,
    EventType.PROFILE_SECTION_UPDATED,
})

# streak length -> XP bonus; the largest applicable entry wins
STREAK_MILESTONE_BONUSES: dict[int, int] = {
    7: 35,
    14: 70,
    30: 150,
    50: 250,
    100: 500,
}

STREAK_RECOVERY_XP_PER_DAY = 10
STREAK_RECOVERY_MAX_COST = 500
