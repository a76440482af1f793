"""Baseline: developer aggregate, XP and points ledgers, badges, configuration.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-17
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
BigIntPK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
TimestampTZ = sa.DateTime(timezone=True)


def upgrade() -> None:
    # --- Developer aggregate ---
    op.create_table(
        "developers",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("created_at", TimestampTZ, nullable=False),
        sa.Column("subscription_tier", sa.String(16), nullable=False, server_default="FREE"),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("level_progress", sa.Float(), nullable=False, server_default="0"),
        sa.Column("profile_tier", sa.String(16), nullable=False, server_default="BRONZE"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_date", TimestampTZ, nullable=True),
        sa.Column("points_monthly", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("points_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_reset_date", TimestampTZ, nullable=True),
        sa.Column("profile_sections", JSONType, nullable=False),
        sa.Column("contact_info", JSONType, nullable=False),
        sa.Column("skills_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cv_uploads", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cv_analyses_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_cv_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("suggestions_accepted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("applications_submitted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("applications_today", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("applications_day", sa.String(10), nullable=True),
        sa.Column("challenges_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("badges_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", TimestampTZ, nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_developers"),
    )

    # --- XP ledger ---
    op.create_table(
        "xp_ledger",
        sa.Column("id", BigIntPK, autoincrement=True, nullable=False),
        sa.Column("developer_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("source_id", sa.String(128), nullable=True),
        sa.Column("description", sa.String(256), nullable=True),
        sa.Column("created_at", TimestampTZ, nullable=False),
        sa.Column("idempotency_key", sa.String(256), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_xp_ledger"),
        sa.ForeignKeyConstraint(
            ["developer_id"], ["developers.id"],
            name="fk_xp_ledger_developer_id_developers", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("idempotency_key", name="xp_ledger_idempotency_key_key"),
    )
    op.create_index("ix_xp_ledger_developer_source", "xp_ledger", ["developer_id", "source", "source_id"])

    # --- Points ledger ---
    op.create_table(
        "points_ledger",
        sa.Column("id", BigIntPK, autoincrement=True, nullable=False),
        sa.Column("developer_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(32), nullable=True),
        sa.Column("spend_type", sa.String(32), nullable=True),
        sa.Column("source_id", sa.String(128), nullable=True),
        sa.Column("description", sa.String(256), nullable=True),
        sa.Column("metadata", JSONType, nullable=False),
        sa.Column("created_at", TimestampTZ, nullable=False),
        sa.Column("idempotency_key", sa.String(256), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_points_ledger"),
        sa.ForeignKeyConstraint(
            ["developer_id"], ["developers.id"],
            name="fk_points_ledger_developer_id_developers", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("idempotency_key", name="points_ledger_idempotency_key_key"),
    )
    op.create_index("ix_points_ledger_developer_created", "points_ledger", ["developer_id", "created_at"])

    # --- Badges ---
    op.create_table(
        "badges",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("tier", sa.String(16), nullable=False),
        sa.Column("rarity", sa.String(16), nullable=False),
        sa.Column("xp_reward", sa.Integer(), nullable=False),
        sa.Column("hidden", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", TimestampTZ, nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_badges"),
    )
    op.create_table(
        "user_badges",
        sa.Column("id", BigIntPK, autoincrement=True, nullable=False),
        sa.Column("developer_id", sa.String(64), nullable=False),
        sa.Column("badge_id", sa.String(64), nullable=False),
        sa.Column("earned_at", TimestampTZ, nullable=False),
        sa.Column("trigger_event", sa.String(32), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_user_badges"),
        sa.ForeignKeyConstraint(
            ["developer_id"], ["developers.id"],
            name="fk_user_badges_developer_id_developers", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(["badge_id"], ["badges.id"], name="fk_user_badges_badge_id_badges"),
        sa.UniqueConstraint("developer_id", "badge_id", name="user_badges_developer_id_badge_id_key"),
    )

    # --- Versioned configuration ---
    op.create_table(
        "configuration_settings",
        sa.Column("id", BigIntPK, autoincrement=True, nullable=False),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("version", sa.String(32), nullable=False),
        sa.Column("config", JSONType, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("effective_date", TimestampTZ, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", TimestampTZ, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_configuration_settings"),
    )
    op.create_index("ix_configuration_settings_key_active", "configuration_settings", ["key", "is_active"])


def downgrade() -> None:
    op.drop_table("configuration_settings")
    op.drop_table("user_badges")
    op.drop_table("badges")
    op.drop_table("points_ledger")
    op.drop_table("xp_ledger")
    op.drop_table("developers")
