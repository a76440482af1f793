"""Static badge catalog, built once at import into a read-only table."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from careerxp.gamification.requirements import Requirement, parse_requirement


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    description: str
    category: str
    tier: str
    xp_reward: int
    requirement: Requirement
    rarity: str
    hidden: bool = False


BADGE_SEED_DATA: list[dict[str, Any]] = [
    # --- Profile ---
    {"id": "profile_starter", "name": "Profile Pioneer", "description": "Complete your basic profile information",
     "category": "PROFILE_COMPLETION", "tier": "BRONZE", "xp_reward": 50, "rarity": "COMMON",
     "requirement": ("profile_completion", 25, {})},
    {"id": "profile_complete", "name": "Profile Master",
     "description": "Complete all profile sections with detailed information",
     "category": "PROFILE_COMPLETION", "tier": "GOLD", "xp_reward": 200, "rarity": "RARE",
     "requirement": ("profile_completion", 100, {})},
    {"id": "contact_complete", "name": "Well Connected",
     "description": "Add all contact information including LinkedIn and GitHub",
     "category": "PROFILE_COMPLETION", "tier": "BRONZE", "xp_reward": 75, "rarity": "COMMON",
     "requirement": ("contact_info_complete", 100, {})},
    {"id": "networking_ninja", "name": "Networking Ninja", "description": "Link both your LinkedIn and GitHub",
     "category": "PROFILE_COMPLETION", "tier": "BRONZE", "xp_reward": 50, "rarity": "COMMON",
     "requirement": ("contact_links", 2, {})},
    {"id": "skill_showcase", "name": "Skill Showcase", "description": "Add 3 skills to your profile",
     "category": "PROFILE_COMPLETION", "tier": "BRONZE", "xp_reward": 50, "rarity": "COMMON",
     "requirement": ("skill_count", 3, {})},
    {"id": "skill_collector", "name": "Skill Collector", "description": "Add 15 or more skills to your profile",
     "category": "PROFILE_COMPLETION", "tier": "SILVER", "xp_reward": 150, "rarity": "UNCOMMON",
     "requirement": ("skill_count", 15, {})},
    # --- CV analysis ---
    {"id": "cv_analyzer", "name": "CV Uploader", "description": "Upload your first CV",
     "category": "CV_ANALYSIS", "tier": "BRONZE", "xp_reward": 50, "rarity": "COMMON",
     "requirement": ("cv_upload_count", 1, {})},
    {"id": "first_analysis", "name": "CV Analyzer", "description": "Complete your first CV analysis",
     "category": "CV_ANALYSIS", "tier": "BRONZE", "xp_reward": 100, "rarity": "COMMON",
     "requirement": ("cv_analysis_count", 1, {})},
    {"id": "analysis_veteran", "name": "Analysis Veteran", "description": "Complete 10 CV analyses",
     "category": "CV_ANALYSIS", "tier": "SILVER", "xp_reward": 250, "rarity": "UNCOMMON",
     "requirement": ("cv_analysis_count", 10, {})},
    {"id": "perfectionist", "name": "CV Perfectionist", "description": "Achieve a 95+ overall CV score",
     "category": "CV_ANALYSIS", "tier": "DIAMOND", "xp_reward": 500, "rarity": "LEGENDARY",
     "requirement": ("cv_score_threshold", 95, {})},
    # --- AI interaction ---
    {"id": "ai_collaborator", "name": "AI Collaborator", "description": "Accept 5 AI suggestions",
     "category": "AI_INTERACTION", "tier": "BRONZE", "xp_reward": 100, "rarity": "COMMON",
     "requirement": ("suggestions_accepted", 5, {})},
    {"id": "cv_optimizer", "name": "CV Optimizer", "description": "Accept 10 AI improvement suggestions",
     "category": "CV_IMPROVEMENT", "tier": "SILVER", "xp_reward": 200, "rarity": "UNCOMMON",
     "requirement": ("suggestions_accepted", 10, {})},
    {"id": "ai_power_user", "name": "AI Power User", "description": "Accept 25 AI suggestions",
     "category": "AI_INTERACTION", "tier": "GOLD", "xp_reward": 300, "rarity": "RARE",
     "requirement": ("suggestions_accepted", 25, {})},
    {"id": "suggestion_master", "name": "Suggestion Master", "description": "Generate and review 50+ AI suggestions",
     "category": "AI_INTERACTION", "tier": "PLATINUM", "xp_reward": 400, "rarity": "EPIC",
     "requirement": ("suggestions_generated", 50, {})},
    # --- Applications ---
    {"id": "first_application", "name": "Career Starter", "description": "Submit your first job application",
     "category": "APPLICATION_ACTIVITY", "tier": "BRONZE", "xp_reward": 150, "rarity": "COMMON",
     "requirement": ("applications_submitted", 1, {})},
    {"id": "job_hunter", "name": "Job Hunter", "description": "Apply to 2 positions",
     "category": "APPLICATION_ACTIVITY", "tier": "BRONZE", "xp_reward": 75, "rarity": "COMMON",
     "requirement": ("applications_submitted", 2, {})},
    {"id": "application_spree", "name": "Application Dynamo", "description": "Submit 10 applications in a single day",
     "category": "APPLICATION_ACTIVITY", "tier": "GOLD", "xp_reward": 350, "rarity": "RARE",
     "requirement": ("daily_applications", 10, {"timeframe": "single_day"})},
    {"id": "quality_applicant", "name": "Quality Over Quantity",
     "description": "Maintain 80%+ application relevance score over 20 applications",
     "category": "APPLICATION_ACTIVITY", "tier": "DIAMOND", "xp_reward": 500, "rarity": "LEGENDARY",
     "requirement": ("application_quality", 80, {"min_applications": 20})},
    {"id": "application_quality", "name": "Sharp Shooter",
     "description": "Keep a 90%+ relevance score over 10 applications",
     "category": "APPLICATION_ACTIVITY", "tier": "GOLD", "xp_reward": 300, "rarity": "RARE",
     "requirement": ("application_quality", 90, {"min_applications": 10})},
    # --- Engagement ---
    {"id": "consistency_builder", "name": "Consistency Builder", "description": "Be active 3 days in a row",
     "category": "ENGAGEMENT", "tier": "BRONZE", "xp_reward": 50, "rarity": "COMMON",
     "requirement": ("activity_streak", 3, {})},
    {"id": "streak_starter", "name": "Consistency King", "description": "Maintain a 7-day activity streak",
     "category": "ENGAGEMENT", "tier": "BRONZE", "xp_reward": 100, "rarity": "COMMON",
     "requirement": ("activity_streak", 7, {})},
    {"id": "streak_maintainer", "name": "Streak Maintainer", "description": "Keep a 14-day activity streak alive",
     "category": "ENGAGEMENT", "tier": "SILVER", "xp_reward": 200, "rarity": "UNCOMMON",
     "requirement": ("activity_streak", 14, {})},
    {"id": "streak_champion", "name": "Streak Champion", "description": "Maintain a 30-day activity streak",
     "category": "ENGAGEMENT", "tier": "GOLD", "xp_reward": 400, "rarity": "RARE",
     "requirement": ("activity_streak", 30, {})},
    {"id": "dedication_legend", "name": "Dedication Legend", "description": "Maintain a 100-day activity streak",
     "category": "ENGAGEMENT", "tier": "DIAMOND", "xp_reward": 1000, "rarity": "LEGENDARY",
     "requirement": ("activity_streak", 100, {})},
    {"id": "weekend_warrior", "name": "Weekend Warrior", "description": "Complete 20+ actions on weekends this month",
     "category": "ENGAGEMENT", "tier": "SILVER", "xp_reward": 250, "rarity": "UNCOMMON",
     "requirement": ("weekend_activity", 20, {"timeframe": "monthly"})},
    # --- Challenges ---
    {"id": "challenge_rookie", "name": "Challenge Rookie", "description": "Complete your first daily challenge",
     "category": "CHALLENGES", "tier": "BRONZE", "xp_reward": 75, "rarity": "COMMON",
     "requirement": ("challenges_completed", 1, {})},
    {"id": "challenge_hunter", "name": "Challenge Hunter", "description": "Complete 50 daily challenges",
     "category": "CHALLENGES", "tier": "SILVER", "xp_reward": 300, "rarity": "UNCOMMON",
     "requirement": ("challenges_completed", 50, {})},
    {"id": "perfectionist_challenger", "name": "Perfect Week",
     "description": "Complete all daily challenges for 7 consecutive days",
     "category": "CHALLENGES", "tier": "GOLD", "xp_reward": 500, "rarity": "RARE",
     "requirement": ("perfect_challenge_streak", 7, {})},
    # --- Levels ---
    {"id": "level_10", "name": "Rising Star", "description": "Reach level 10",
     "category": "LEVEL_PROGRESSION", "tier": "BRONZE", "xp_reward": 200, "rarity": "COMMON",
     "requirement": ("level_reached", 10, {})},
    {"id": "level_25", "name": "Skilled Professional", "description": "Reach level 25",
     "category": "LEVEL_PROGRESSION", "tier": "SILVER", "xp_reward": 400, "rarity": "UNCOMMON",
     "requirement": ("level_reached", 25, {})},
    {"id": "level_50", "name": "Career Master", "description": "Reach level 50",
     "category": "LEVEL_PROGRESSION", "tier": "DIAMOND", "xp_reward": 1000, "rarity": "LEGENDARY",
     "requirement": ("level_reached", 50, {})},
    # --- Special ---
    {"id": "early_adopter", "name": "Early Adopter", "description": "One of the first 1000 developers on the platform",
     "category": "SPECIAL", "tier": "PLATINUM", "xp_reward": 750, "rarity": "EPIC",
     "requirement": ("early_adopter", 1000, {"user_rank": "top_1000"})},
    {"id": "beta_tester", "name": "Beta Tester", "description": "Provided valuable feedback during beta testing",
     "category": "SPECIAL", "tier": "GOLD", "xp_reward": 500, "rarity": "RARE",
     "requirement": ("beta_participation", 1, {})},
    {"id": "feedback_champion", "name": "Feedback Champion", "description": "Submit 10+ valuable improvement suggestions",
     "category": "SPECIAL", "tier": "PLATINUM", "xp_reward": 600, "rarity": "EPIC",
     "requirement": ("feedback_submitted", 10, {})},
    # --- Seasonal ---
    {"id": "new_year_resolution", "name": "New Year, New Career",
     "description": "Complete 5 actions in the first week of January",
     "category": "SEASONAL", "tier": "GOLD", "xp_reward": 300, "rarity": "RARE",
     "requirement": ("seasonal_activity", 5, {"season": "new_year", "timeframe": "first_week_january"})},
]


def _build(rows: list[dict[str, Any]]) -> Mapping[str, BadgeDefinition]:
    table: dict[str, BadgeDefinition] = {}
    for row in rows:
        kind, threshold, data = row["requirement"]
        if row["id"] in table:
            msg = f"Duplicate badge id in catalog: {row['id']}"
            raise ValueError(msg)
        table[row["id"]] = BadgeDefinition(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            category=row["category"],
            tier=row["tier"],
            xp_reward=row["xp_reward"],
            requirement=parse_requirement(kind, threshold, data),
            rarity=row["rarity"],
            hidden=row.get("hidden", False),
        )
    return MappingProxyType(table)


BADGE_CATALOG: Mapping[str, BadgeDefinition] = _build(BADGE_SEED_DATA)


def get_badge(badge_id: str) -> BadgeDefinition | None:
    return BADGE_CATALOG.get(badge_id)


def visible_badges() -> list[BadgeDefinition]:
    return [badge for badge in BADGE_CATALOG.values() if not badge.hidden]


def badges_by_category(category: str) -> list[BadgeDefinition]:
    return [badge for badge in BADGE_CATALOG.values() if badge.category == category]
