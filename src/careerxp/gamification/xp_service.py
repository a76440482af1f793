"""XP grants with duplicate protection and level tracking.

All functions here run inside a caller-owned developer transaction; they
flush but never commit.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from careerxp.db.models import Developer, XPLedger
from careerxp.gamification.constants import (
    DEFAULT_SUBSCRIPTION_TIERS,
    POINTS_RESET_DAYS,
    REPEATABLE_XP_SOURCES,
    XPSource,
)
from careerxp.gamification.exceptions import DuplicateAward
from careerxp.gamification.xp_calculator import (
    compute_level,
    level_progress,
    profile_tier,
    time_multiplier,
    validate_award,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class XPGrant:
    """Outcome of one ledger credit (or debit)."""

    amount: int
    total_xp: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


async def get_or_create_developer(db: AsyncSession, developer_id: str, now: datetime) -> tuple[Developer, bool]:
    """Get or create the developer row carrying the gamification state."""
    developer = await db.get(Developer, developer_id)
    if developer is not None:
        return developer, False
    developer = Developer(
        id=developer_id,
        created_at=now,
        subscription_tier="FREE",
        total_xp=0,
        current_level=1,
        level_progress=0.0,
        profile_tier="BRONZE",
        streak=0,
        longest_streak=0,
        points_monthly=DEFAULT_SUBSCRIPTION_TIERS["FREE"]["monthly_points"],
        points_used=0,
        points_earned=0,
        points_reset_date=now + timedelta(days=POINTS_RESET_DAYS),
        profile_sections=[],
        contact_info={},
        updated_at=now,
    )
    db.add(developer)
    await db.flush()
    return developer, True


def _source_name(source: str) -> str:
    return str(getattr(source, "value", source))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def idempotency_key_for(
    developer_id: str,
    source: str,
    source_id: str | None,
    now: datetime,
) -> str | None:
    """Storage-level dedup key; None for repeatable sources."""
    if source == XPSource.DAILY_LOGIN:
        return f"daily_login:{developer_id}:{now.date().isoformat()}"
    if source in REPEATABLE_XP_SOURCES or not source_id:
        return None
    return f"{_source_name(source).lower()}:{developer_id}:{source_id}"


async def has_xp_entry(db: AsyncSession, developer_id: str, source: str, source_id: str) -> bool:
    """True if an entry with this (developer, source, source_id) exists."""
    result = await db.execute(
        select(XPLedger.id).where(
            XPLedger.developer_id == developer_id,
            XPLedger.source == source,
            XPLedger.source_id == source_id,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _key_exists(db: AsyncSession, key: str) -> bool:
    result = await db.execute(select(XPLedger.id).where(XPLedger.idempotency_key == key))
    return result.scalar_one_or_none() is not None


async def apply_xp(db: AsyncSession, developer: Developer, delta: int, now: datetime) -> tuple[int, int]:
    """Move total XP by ``delta`` (floored at zero) and refresh the cached level fields.

    Returns ``(old_level, new_level)``.
    """
    moved = Developer.total_xp + delta
    result = await db.execute(
        update(Developer)
        .where(Developer.id == developer.id)
        .values(total_xp=case((moved < 0, 0), else_=moved), updated_at=now)
        .returning(Developer.total_xp)
        .execution_options(synchronize_session=False)
    )
    total = result.scalar_one()
    old_level = compute_level(total - delta) if delta > 0 else developer.current_level
    new_level = compute_level(total)
    derived = {
        "current_level": new_level,
        "level_progress": level_progress(total, new_level),
        "profile_tier": profile_tier(total),
    }
    # Skipped when a concurrent grant has already moved the total on
    await db.execute(
        update(Developer)
        .where(Developer.id == developer.id, Developer.total_xp == total)
        .values(**derived)
        .execution_options(synchronize_session=False)
    )
    for name, value in {"total_xp": total, "updated_at": now, **derived}.items():
        set_committed_value(developer, name, value)
    return old_level, new_level


async def append_xp_entry(
    db: AsyncSession,
    developer: Developer,
    amount: int,
    source: str,
    source_id: str | None,
    description: str | None,
    now: datetime,
    idempotency_key: str | None = None,
) -> XPGrant:
    """Write a ledger row and update the aggregate. No validation.

    Raises:
        DuplicateAward: the store rejected the idempotency key.
    """
    db.add(XPLedger(
        developer_id=developer.id,
        amount=amount,
        source=_source_name(source),
        source_id=source_id,
        description=description,
        idempotency_key=idempotency_key,
        created_at=now,
    ))
    try:
        await db.flush()
    except IntegrityError as exc:
        # A concurrent award slipped past the existence check
        raise DuplicateAward(idempotency_key or f"{source}:{developer.id}:{source_id}") from exc

    old_level, new_level = await apply_xp(db, developer, amount, now)
    return XPGrant(amount=amount, total_xp=developer.total_xp, old_level=old_level, new_level=new_level)


async def grant_xp(
    db: AsyncSession,
    developer: Developer,
    source: str,
    amount: int,
    now: datetime,
    source_id: str | None = None,
    description: str | None = None,
    *,
    tier_multiplier: float = 1.0,
    apply_multipliers: bool = True,
    maximums: Mapping[str, int] | None = None,
    idempotency_key: str | None = None,
) -> XPGrant | None:
    """Grant XP to a developer. Returns None if this award was already made.

    1. Validate the base amount against the source rules
    2. Skip if a non-repeatable award for the same object exists
    3. Apply the time and subscription multipliers
    4. Insert into xp_ledger and update total_xp / level
    """
    validate_award(source, amount, source_id, maximums)

    key = idempotency_key or idempotency_key_for(developer.id, source, source_id, now)
    if source not in REPEATABLE_XP_SOURCES and source_id:
        if await has_xp_entry(db, developer.id, source, source_id):
            logger.debug("Duplicate XP award skipped: %s %s %s", developer.id, source, source_id)
            return None
    if key is not None and await _key_exists(db, key):
        return None

    final = amount
    if apply_multipliers:
        final = round_half_up(amount * time_multiplier(developer.last_activity_date, now) * tier_multiplier)

    grant = await append_xp_entry(db, developer, final, source, source_id, description, now, key)
    if grant.leveled_up:
        logger.info("Developer %s reached level %d", developer.id, grant.new_level)
    return grant
