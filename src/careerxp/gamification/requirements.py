"""Typed badge requirements and their evaluation.

Each requirement kind is its own frozen dataclass. ``parse_requirement``
turns the catalog's (kind, threshold, data) triple into one of them;
unknown kinds become ``Unrecognized`` and never evaluate as satisfied.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger(__name__)

CONTACT_FIELDS: tuple[str, ...] = ("name", "email", "phone", "location", "linkedin", "github", "website")
REQUIRED_CONTACT_FIELDS: tuple[str, ...] = ("name", "email", "phone", "location", "linkedin", "github")
LINK_FIELDS: tuple[str, ...] = ("linkedin", "github")
PROFILE_SECTIONS: tuple[str, ...] = ("about", "skills", "experience", "education")


@dataclass(frozen=True)
class ProfileCompletion:
    percent: int


@dataclass(frozen=True)
class ContactInfoComplete:
    pass


@dataclass(frozen=True)
class ContactLinks:
    pass


@dataclass(frozen=True)
class SkillCount:
    count: int


@dataclass(frozen=True)
class CvUploadCount:
    count: int


@dataclass(frozen=True)
class CvAnalysisCount:
    count: int


@dataclass(frozen=True)
class CvScoreThreshold:
    score: int


@dataclass(frozen=True)
class SuggestionsAccepted:
    count: int


@dataclass(frozen=True)
class SuggestionsGenerated:
    count: int


@dataclass(frozen=True)
class ApplicationsSubmitted:
    count: int


@dataclass(frozen=True)
class DailyApplications:
    count: int


@dataclass(frozen=True)
class ApplicationQuality:
    percent: int
    min_applications: int


@dataclass(frozen=True)
class ActivityStreak:
    days: int


@dataclass(frozen=True)
class ChallengesCompleted:
    count: int


@dataclass(frozen=True)
class PerfectChallengeStreak:
    days: int


@dataclass(frozen=True)
class LevelReached:
    level: int


@dataclass(frozen=True)
class EarlyAdopter:
    max_rank: int


@dataclass(frozen=True)
class BetaParticipation:
    pass


@dataclass(frozen=True)
class FeedbackSubmitted:
    count: int


@dataclass(frozen=True)
class SeasonalActivity:
    actions: int
    season: str


@dataclass(frozen=True)
class WeekendActivity:
    actions: int


@dataclass(frozen=True)
class Unrecognized:
    kind: str
    data: Mapping[str, Any] = field(default_factory=dict)


Requirement = Union[
    ProfileCompletion,
    ContactInfoComplete,
    ContactLinks,
    SkillCount,
    CvUploadCount,
    CvAnalysisCount,
    CvScoreThreshold,
    SuggestionsAccepted,
    SuggestionsGenerated,
    ApplicationsSubmitted,
    DailyApplications,
    ApplicationQuality,
    ActivityStreak,
    ChallengesCompleted,
    PerfectChallengeStreak,
    LevelReached,
    EarlyAdopter,
    BetaParticipation,
    FeedbackSubmitted,
    SeasonalActivity,
    WeekendActivity,
    Unrecognized,
]

# Kinds with no data source yet; they never unlock
PLACEHOLDER_KINDS: tuple[type, ...] = (
    SuggestionsGenerated,
    ApplicationQuality,
    PerfectChallengeStreak,
    BetaParticipation,
    FeedbackSubmitted,
    SeasonalActivity,
    WeekendActivity,
)


def parse_requirement(kind: str, threshold: int = 0, data: Mapping[str, Any] | None = None) -> Requirement:
    """Build a typed requirement from the catalog's loose triple."""
    data = data or {}
    match kind:
        case "profile_completion":
            return ProfileCompletion(threshold)
        case "contact_info_complete":
            return ContactInfoComplete()
        case "contact_links":
            return ContactLinks()
        case "skill_count":
            return SkillCount(threshold)
        case "cv_upload_count":
            return CvUploadCount(threshold)
        case "cv_analysis_count":
            return CvAnalysisCount(threshold)
        case "cv_score_threshold":
            return CvScoreThreshold(threshold)
        case "suggestions_accepted":
            return SuggestionsAccepted(threshold)
        case "suggestions_generated":
            return SuggestionsGenerated(threshold)
        case "applications_submitted":
            return ApplicationsSubmitted(threshold)
        case "daily_applications":
            return DailyApplications(threshold)
        case "application_quality":
            return ApplicationQuality(threshold, int(data.get("min_applications", 0)))
        case "activity_streak":
            return ActivityStreak(threshold)
        case "challenges_completed":
            return ChallengesCompleted(threshold)
        case "perfect_challenge_streak":
            return PerfectChallengeStreak(threshold)
        case "level_reached":
            return LevelReached(threshold)
        case "early_adopter":
            return EarlyAdopter(threshold)
        case "beta_participation":
            return BetaParticipation()
        case "feedback_submitted":
            return FeedbackSubmitted(threshold)
        case "seasonal_activity":
            return SeasonalActivity(threshold, str(data.get("season", "")))
        case "weekend_activity":
            return WeekendActivity(threshold)
        case _:
            return Unrecognized(kind, dict(data))


@dataclass(frozen=True)
class DeveloperSnapshot:
    """Aggregate state a requirement is evaluated against."""

    developer_id: str
    total_xp: int = 0
    level: int = 1
    streak: int = 0
    contact_info: Mapping[str, Any] = field(default_factory=dict)
    profile_sections: frozenset[str] = frozenset()
    skills_count: int = 0
    cv_uploads: int = 0
    cv_analyses_completed: int = 0
    best_cv_score: int = 0
    suggestions_accepted: int = 0
    applications_submitted: int = 0
    applications_today: int = 0
    challenges_completed: int = 0
    signup_rank: int | None = None


def profile_completion_percent(snapshot: DeveloperSnapshot) -> float:
    """Share of contact fields and profile sections that are filled in."""
    completed = sum(1 for name in CONTACT_FIELDS if snapshot.contact_info.get(name))
    for section in PROFILE_SECTIONS:
        if section in snapshot.profile_sections or (section == "skills" and snapshot.skills_count > 0):
            completed += 1
    total = len(CONTACT_FIELDS) + len(PROFILE_SECTIONS)
    return completed / total * 100


def is_satisfied(requirement: Requirement, snapshot: DeveloperSnapshot) -> bool:
    """Evaluate a requirement. Placeholders and unknown kinds are never satisfied."""
    match requirement:
        case ProfileCompletion(percent=percent):
            return profile_completion_percent(snapshot) >= percent
        case ContactInfoComplete():
            return all(snapshot.contact_info.get(name) for name in REQUIRED_CONTACT_FIELDS)
        case ContactLinks():
            return all(snapshot.contact_info.get(name) for name in LINK_FIELDS)
        case SkillCount(count=count):
            return snapshot.skills_count >= count
        case CvUploadCount(count=count):
            return snapshot.cv_uploads >= count
        case CvAnalysisCount(count=count):
            return snapshot.cv_analyses_completed >= count
        case CvScoreThreshold(score=score):
            return snapshot.best_cv_score >= score
        case SuggestionsAccepted(count=count):
            return snapshot.suggestions_accepted >= count
        case ApplicationsSubmitted(count=count):
            return snapshot.applications_submitted >= count
        case DailyApplications(count=count):
            return snapshot.applications_today >= count
        case ActivityStreak(days=days):
            return snapshot.streak >= days
        case ChallengesCompleted(count=count):
            return snapshot.challenges_completed >= count
        case LevelReached(level=level):
            return snapshot.level >= level
        case EarlyAdopter(max_rank=max_rank):
            return snapshot.signup_rank is not None and snapshot.signup_rank <= max_rank
        case Unrecognized(kind=kind):
            logger.warning("Unrecognized badge requirement kind %r, skipping", kind)
            return False
        case _ if isinstance(requirement, PLACEHOLDER_KINDS):
            return False
        case _:
            logger.warning("Unhandled badge requirement %r, skipping", requirement)
            return False
