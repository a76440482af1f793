"""ORM models for the developer aggregate, ledgers, badges and configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careerxp.db.base import Base, BigIntPK

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Developer aggregate
# ---------------------------------------------------------------------------


class Developer(Base):
    """Developer row carrying the denormalized gamification state.

    Mutated only inside a transaction that holds the row lock.
    """

    __tablename__ = "developers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    subscription_tier: Mapped[str] = mapped_column(String(16), nullable=False, default="FREE")

    # --- XP / level ---
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    level_progress: Mapped[float] = mapped_column(nullable=False, default=0.0)
    profile_tier: Mapped[str] = mapped_column(String(16), nullable=False, default="BRONZE")

    # --- Streak ---
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # --- Points ---
    points_monthly: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    points_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_reset_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # --- Aggregate counters (maintained by the event pipeline) ---
    profile_sections: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    contact_info: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    skills_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cv_uploads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cv_analyses_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_cv_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    suggestions_accepted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applications_submitted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applications_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applications_day: Mapped[str | None] = mapped_column(String(10), nullable=True)
    challenges_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badges_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    badges: Mapped[list[UserBadge]] = relationship("UserBadge", back_populates="developer")


# ---------------------------------------------------------------------------
# Ledgers
# ---------------------------------------------------------------------------


class XPLedger(Base):
    """Immutable XP transaction log with idempotency key."""

    __tablename__ = "xp_ledger"
    __table_args__ = (
        Index("ix_xp_ledger_developer_source", "developer_id", "source", "source_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    developer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("developers.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)


class PointsLedger(Base):
    """Immutable points transaction log. Negative amount = spend, positive = award."""

    __tablename__ = "points_ledger"
    __table_args__ = (
        Index("ix_points_ledger_developer_created", "developer_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    developer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("developers.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str | None] = mapped_column(String(32), nullable=True)
    spend_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    entry_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class Badge(Base):
    """Persisted copy of a catalog badge, upserted on first award or seed."""

    __tablename__ = "badges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserBadge(Base):
    """Badges earned by developers. UNIQUE(developer_id, badge_id) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("developer_id", "badge_id", name="user_badges_developer_id_badge_id_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    developer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("developers.id", ondelete="CASCADE"), nullable=False
    )
    badge_id: Mapped[str] = mapped_column(String(64), ForeignKey("badges.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    trigger_event: Mapped[str | None] = mapped_column(String(32), nullable=True)

    developer: Mapped[Developer] = relationship("Developer", back_populates="badges")


# ---------------------------------------------------------------------------
# Versioned configuration
# ---------------------------------------------------------------------------


class ConfigurationSetting(Base):
    """Effective-dated configuration snapshot. Superseded, never mutated."""

    __tablename__ = "configuration_settings"
    __table_args__ = (
        Index("ix_configuration_settings_key_active", "key", "is_active"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    version: Mapped[str] = mapped_column(String(32), nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
