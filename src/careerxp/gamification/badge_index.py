"""Event type -> candidate badge ids, precomputed once.

Badge evaluation only looks at badges an event could plausibly unlock,
then prunes further by the developer's current context.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from careerxp.gamification.badge_catalog import BADGE_CATALOG, BadgeDefinition
from careerxp.gamification.constants import EventType
from careerxp.gamification.requirements import ActivityStreak, LevelReached, WeekendActivity

logger = logging.getLogger(__name__)

EVENT_BADGE_MAP: dict[EventType, tuple[str, ...]] = {
    EventType.PROFILE_SECTION_UPDATED: (
        "profile_starter",
        "profile_complete",
        "contact_complete",
        "networking_ninja",
    ),
    EventType.SKILL_ADDED: ("skill_showcase", "skill_collector"),
    EventType.CV_UPLOADED: ("cv_analyzer", "first_analysis", "early_adopter"),
    EventType.CV_ANALYSIS_COMPLETED: (
        "first_analysis",
        "analysis_veteran",
        "perfectionist",
        "cv_optimizer",
        "streak_starter",
        "consistency_builder",
    ),
    EventType.CV_IMPROVEMENT_APPLIED: ("ai_collaborator", "ai_power_user", "suggestion_master", "cv_optimizer"),
    EventType.APPLICATION_SUBMITTED: (
        "first_application",
        "application_spree",
        "quality_applicant",
        "job_hunter",
        "application_quality",
        "weekend_warrior",
        "consistency_builder",
    ),
    EventType.DAILY_LOGIN: (
        "streak_starter",
        "streak_champion",
        "dedication_legend",
        "consistency_builder",
        "streak_maintainer",
        "weekend_warrior",
    ),
    EventType.CHALLENGE_COMPLETED: (
        "challenge_rookie",
        "challenge_hunter",
        "perfectionist_challenger",
        "consistency_builder",
    ),
    EventType.ACHIEVEMENT_UNLOCKED: ("level_10", "level_25", "level_50"),
    EventType.LEVEL_UP: ("level_10", "level_25", "level_50"),
    EventType.STREAK_MILESTONE: ("streak_starter", "streak_champion", "dedication_legend", "perfectionist_challenger"),
    EventType.BADGE_EARNED: (),
}


@dataclass(frozen=True)
class BadgeContext:
    """Developer state used to prune candidates before evaluation."""

    is_weekend: bool = False
    has_recent_activity: bool = True
    level: int = 1
    streak: int = 0


@dataclass(frozen=True)
class IndexValidation:
    missing: tuple[str, ...]
    unmapped: tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        return not self.missing


class EventBadgeIndex:
    """Adjacency map from event type to badges, plus the reverse map."""

    def __init__(
        self,
        mapping: Mapping[EventType, tuple[str, ...]] | None = None,
        catalog: Mapping[str, BadgeDefinition] | None = None,
    ) -> None:
        self.catalog = BADGE_CATALOG if catalog is None else catalog
        source = EVENT_BADGE_MAP if mapping is None else mapping
        self._by_event: Mapping[EventType, tuple[str, ...]] = MappingProxyType(
            {event: tuple(dict.fromkeys(source.get(event, ()))) for event in EventType}
        )
        reverse: dict[str, list[EventType]] = {}
        for event, badge_ids in self._by_event.items():
            for badge_id in badge_ids:
                reverse.setdefault(badge_id, []).append(event)
        self._by_badge: Mapping[str, tuple[EventType, ...]] = MappingProxyType(
            {badge_id: tuple(events) for badge_id, events in reverse.items()}
        )

    def candidates(self, event_type: EventType) -> tuple[str, ...]:
        return self._by_event.get(event_type, ())

    def events_for_badge(self, badge_id: str) -> tuple[EventType, ...]:
        return self._by_badge.get(badge_id, ())

    def contextual_candidates(self, event_type: EventType, context: BadgeContext) -> list[str]:
        """Candidates minus badges the context rules out.

        - weekend-only badges outside weekends
        - streak badges without recent activity, or above the current streak
        - level badges above the current level
        """
        result: list[str] = []
        for badge_id in self.candidates(event_type):
            badge = self.catalog.get(badge_id)
            if badge is None:
                continue
            requirement = badge.requirement
            if isinstance(requirement, WeekendActivity) and not context.is_weekend:
                continue
            if isinstance(requirement, ActivityStreak) and (
                not context.has_recent_activity or requirement.days > context.streak
            ):
                continue
            if isinstance(requirement, LevelReached) and requirement.level > context.level:
                continue
            result.append(badge_id)
        return result

    def validate(self) -> IndexValidation:
        """Mapped ids absent from the catalog, and catalog ids no event maps to."""
        mapped = set(self._by_badge)
        missing = tuple(sorted(mapped - set(self.catalog)))
        unmapped = tuple(sorted(set(self.catalog) - mapped))
        return IndexValidation(missing=missing, unmapped=unmapped)

    def stats(self) -> dict:
        counts = {event.value: len(ids) for event, ids in self._by_event.items()}
        total_checks = sum(counts.values())
        top = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:3]
        return {
            "total_events": len(counts),
            "total_mapped_badges": len(self._by_badge),
            "average_badges_per_event": total_checks / len(counts) if counts else 0.0,
            "max_badges_per_event": max(counts.values(), default=0),
            "events_with_most_badges": [{"event": event, "count": count} for event, count in top],
        }


def build_index(catalog: Mapping[str, BadgeDefinition] | None = None) -> EventBadgeIndex:
    """Build and validate the index; a mapped id missing from the catalog is fatal."""
    index = EventBadgeIndex(catalog=catalog)
    validation = index.validate()
    if validation.missing:
        msg = f"Event badge map references unknown badges: {', '.join(validation.missing)}"
        raise ValueError(msg)
    if validation.unmapped:
        logger.info("Badges not reachable from any event: %s", ", ".join(validation.unmapped))
    return index
