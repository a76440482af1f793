"""Pydantic request and response models for gamification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from careerxp.gamification.constants import EventType, SpendType


# --- Events ---


class EventRequest(BaseModel):
    event_type: EventType
    event_data: dict[str, Any] = Field(default_factory=dict)


class LevelUpResponse(BaseModel):
    old_level: int
    new_level: int


class EventResponse(BaseModel):
    event_type: str
    xp_awarded: int = 0
    points_awarded: int = 0
    level_up: LevelUpResponse | None = None
    streak: int | None = None
    streak_milestone: int | None = None
    badges_earned: list[str] = []
    failed_steps: list[str] = []


# --- Profile ---


class ProfileResponse(BaseModel):
    developer_id: str
    display_name: str | None = None
    subscription_tier: str
    total_xp: int
    level: int
    title: str
    level_progress: float
    tier: str
    current_level_xp: int
    next_level_xp: int
    xp_to_next_level: int
    streak: int
    longest_streak: int
    badges_earned: int


class LeaderboardEntry(BaseModel):
    rank: int
    developer_id: str
    display_name: str | None = None
    total_xp: int
    level: int
    streak: int


class LeaderboardResponse(BaseModel):
    kind: str
    entries: list[LeaderboardEntry]


# --- Badges ---


class BadgeResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    tier: str
    rarity: str
    xp_reward: int
    earned: bool = False
    earned_at: datetime | None = None


class BadgesResponse(BaseModel):
    badges: list[BadgeResponse]
    total_available: int
    total_earned: int


# --- Points ---


class PointsBalanceResponse(BaseModel):
    monthly: int
    used: int
    earned: int
    available: int
    tier: str
    efficiency: float
    reset_date: datetime | None = None


class SpendRequest(BaseModel):
    spend_type: SpendType
    source_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SpendResponse(BaseModel):
    success: bool
    cost: int
    balance: int
    reason: str | None = None


# --- Streak ---


class StreakRecoveryResponse(BaseModel):
    success: bool
    cost: int
    streak: int
    reason: str | None = None
