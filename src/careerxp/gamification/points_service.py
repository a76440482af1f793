"""Points ledger: balance arithmetic, tier discounts, atomic spend and bonus awards."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from careerxp.db.models import Developer, PointsLedger
from careerxp.db.transactions import add_to_developer, developer_transaction, retry_serializable
from careerxp.gamification.config_service import ConfigService
from careerxp.gamification.constants import (
    POINTS_AWARD_MAXIMUM,
    POINTS_RESET_DAYS,
    POINTS_SOURCE_CAPS,
    SOURCE_ID_REQUIRED_SPEND,
    TIER_EFFICIENCY,
    TIER_ORDER,
    PointsSource,
    SpendType,
    SubscriptionTier,
)
from careerxp.gamification.exceptions import (
    DuplicateAward,
    ExceedsSourceMaximum,
    InvalidAmount,
    MissingSourceId,
)
from careerxp.gamification.timeutil import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


# ---------------------------------------------------------------------------
# Pure arithmetic
# ---------------------------------------------------------------------------


def available_points(monthly: int, used: int, earned: int) -> int:
    """Spendable balance; never negative."""
    return max(0, monthly + earned - used)


def efficiency_multiplier(tier: str) -> float:
    return TIER_EFFICIENCY.get(tier, 1.0)


def effective_cost(base_cost: int, tier: str) -> int:
    """Tier-discounted cost, rounded up so no fraction is ever free."""
    return math.ceil(Decimal(base_cost) * Decimal(str(efficiency_multiplier(tier))))


def validate_spend(spend_type: str, source_id: str | None, amount: int | None = None) -> None:
    if amount is not None and amount < 0:
        msg = "Points spend amount cannot be negative"
        raise InvalidAmount(msg)
    if spend_type not in SpendType.__members__:
        msg = f"Unknown spend type: {spend_type}"
        raise InvalidAmount(msg)
    if spend_type in SOURCE_ID_REQUIRED_SPEND and not source_id:
        raise MissingSourceId(str(spend_type))


def validate_points_award(source: str, amount: int, source_id: str | None) -> None:
    """Reject negative or oversized bonus awards."""
    if amount < 0:
        msg = "Points award amount cannot be negative"
        raise InvalidAmount(msg)
    if source != PointsSource.ADMIN_ADJUSTMENT:
        maximum = POINTS_SOURCE_CAPS.get(source, POINTS_AWARD_MAXIMUM)
        if amount > maximum:
            raise ExceedsSourceMaximum(str(source), amount, maximum)
    if source == PointsSource.ACHIEVEMENT_BONUS and not source_id:
        raise MissingSourceId(str(source))


def needs_reset(reset_date: datetime | None, now: datetime) -> bool:
    """True when the monthly allocation is due for a refresh."""
    return reset_date is None or as_utc(now) >= as_utc(reset_date)


def next_reset_date(now: datetime) -> datetime:
    return now + timedelta(days=POINTS_RESET_DAYS)


def usage_stats(entries: Iterable[Any]) -> dict:
    """Spend and earn totals, broken down by spend type and source."""
    stats: dict[str, Any] = {
        "total_spent": 0,
        "total_earned": 0,
        "spending_by_type": {},
        "earning_by_source": {},
    }
    for entry in entries:
        if entry.amount < 0:
            stats["total_spent"] += -entry.amount
            if entry.spend_type:
                by_type = stats["spending_by_type"]
                by_type[entry.spend_type] = by_type.get(entry.spend_type, 0) - entry.amount
        else:
            stats["total_earned"] += entry.amount
            if entry.source:
                by_source = stats["earning_by_source"]
                by_source[entry.source] = by_source.get(entry.source, 0) + entry.amount
    return stats


def upgrade_incentive(current_tier: str, target_tier: str, tiers: Mapping[str, Mapping[str, Any]]) -> dict:
    """What moving from ``current_tier`` to ``target_tier`` would add."""
    current = tiers[current_tier]
    target = tiers[target_tier]
    current_eff = efficiency_multiplier(current_tier)
    target_eff = efficiency_multiplier(target_tier)
    return {
        "target_tier": target_tier,
        "additional_points": target["monthly_points"] - current["monthly_points"],
        "better_efficiency": round((current_eff - target_eff) / current_eff * 100, 2),
        "xp_multiplier_increase": round(target["xp_multiplier"] - current["xp_multiplier"], 2),
    }


def _next_tier(tier: str) -> str | None:
    try:
        index = TIER_ORDER.index(SubscriptionTier(tier))
    except ValueError:
        return None
    if index + 1 >= len(TIER_ORDER):
        return None
    return TIER_ORDER[index + 1].value


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PointsBalance:
    monthly: int
    used: int
    earned: int
    available: int
    tier: str
    efficiency: float
    reset_date: datetime | None


@dataclass(frozen=True)
class SpendResult:
    """A spend either succeeds or is declined; declines carry a reason."""

    success: bool
    cost: int
    balance: int
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# In-transaction helpers
# ---------------------------------------------------------------------------


async def apply_monthly_reset(db: AsyncSession, developer: Developer, monthly_points: int, now: datetime) -> bool:
    """Refresh the monthly allocation if the reset date has passed.

    Compare-and-set on the reset date: when two transactions both see the
    refresh as due, only the first applies it and the other reloads.
    """
    if not needs_reset(developer.points_reset_date, now):
        return False
    seen = developer.points_reset_date
    fresh = {
        "points_used": 0,
        "points_monthly": monthly_points,
        "points_reset_date": next_reset_date(now),
        "updated_at": now,
    }
    result = await db.execute(
        update(Developer)
        .where(
            Developer.id == developer.id,
            Developer.points_reset_date.is_(None) if seen is None else Developer.points_reset_date == seen,
        )
        .values(**fresh)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.refresh(developer, ["points_monthly", "points_used", "points_reset_date"])
        return False
    for name, value in fresh.items():
        set_committed_value(developer, name, value)
    return True


async def debit_points(db: AsyncSession, developer: Developer, cost: int, now: datetime) -> bool:
    """Charge ``cost`` only if the stored balance still covers it.

    The balance check and the debit are one statement, so concurrent
    spenders cannot both pass a check that the balance covers once.
    """
    available = Developer.points_monthly + Developer.points_earned - Developer.points_used
    result = await db.execute(
        update(Developer)
        .where(Developer.id == developer.id, available >= cost)
        .values(points_used=Developer.points_used + cost, updated_at=now)
        .returning(Developer.points_monthly, Developer.points_used, Developer.points_earned)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        await db.refresh(developer, ["points_monthly", "points_used", "points_earned"])
        return False
    for name, value in zip(("points_monthly", "points_used", "points_earned"), row, strict=True):
        set_committed_value(developer, name, value)
    set_committed_value(developer, "updated_at", now)
    return True


async def award_bonus_points(
    db: AsyncSession,
    developer: Developer,
    source: str,
    amount: int,
    now: datetime,
    source_id: str | None = None,
    description: str | None = None,
) -> int | None:
    """Credit bonus points inside the caller's transaction.

    Returns the amount credited, or None when this award already exists.
    """
    validate_points_award(source, amount, source_id)
    source_name = str(getattr(source, "value", source))
    key = f"points:{source_name.lower()}:{developer.id}:{source_id}" if source_id else None
    if key is not None:
        existing = await db.execute(select(PointsLedger.id).where(PointsLedger.idempotency_key == key))
        if existing.scalar_one_or_none() is not None:
            return None

    db.add(PointsLedger(
        developer_id=developer.id,
        amount=amount,
        source=source_name,
        source_id=source_id,
        description=description or f"{source_name.lower().replace('_', ' ')} award",
        idempotency_key=key,
        created_at=now,
    ))
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateAward(key or source_name) from exc

    await add_to_developer(db, developer, now, points_earned=amount)
    return amount


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PointsLedgerService:
    """Transactional operations on one developer's points balance."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ConfigService,
        timeout: float | None = 10.0,
        retries: int = 3,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.timeout = timeout
        self.retries = retries
        self._clock = clock

    async def get_balance(self, developer_id: str) -> PointsBalance:
        tiers = await self.config.get_subscription_tiers()
        now = self._clock()
        async with developer_transaction(self.session_factory, developer_id, self.timeout) as (db, dev):
            monthly_allocation = tiers.get(dev.subscription_tier, tiers[SubscriptionTier.FREE.value])["monthly_points"]
            await apply_monthly_reset(db, dev, monthly_allocation, now)
            return self._balance(dev)

    @staticmethod
    def _balance(dev: Developer) -> PointsBalance:
        return PointsBalance(
            monthly=dev.points_monthly,
            used=dev.points_used,
            earned=dev.points_earned,
            available=available_points(dev.points_monthly, dev.points_used, dev.points_earned),
            tier=dev.subscription_tier,
            efficiency=efficiency_multiplier(dev.subscription_tier),
            reset_date=dev.points_reset_date,
        )

    async def spend(
        self,
        developer_id: str,
        spend_type: str,
        source_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SpendResult:
        """Spend points atomically.

        The debit is conditional on the stored balance in the same statement,
        so two concurrent spends that the balance only covers once cannot
        both succeed. An insufficient balance is a declined result, not an
        error; nothing is debited or recorded in that case.
        """
        spend_type = str(getattr(spend_type, "value", spend_type))
        validate_spend(spend_type, source_id)
        costs = await self.config.get_points_costs()
        tiers = await self.config.get_subscription_tiers()
        base_cost = int(costs.get(spend_type, 0))

        def declined(cost: int, available: int) -> SpendResult:
            logger.info("Points spend declined for %s: %s needs %d, has %d", developer_id, spend_type, cost, available)
            return SpendResult(success=False, cost=cost, balance=available, reason=INSUFFICIENT_BALANCE)

        async def attempt() -> SpendResult:
            now = self._clock()
            async with developer_transaction(self.session_factory, developer_id, self.timeout) as (db, dev):
                tier_config = tiers.get(dev.subscription_tier, tiers[SubscriptionTier.FREE.value])
                cost = effective_cost(base_cost, dev.subscription_tier)

                reset_due = needs_reset(dev.points_reset_date, now)
                monthly = tier_config["monthly_points"] if reset_due else dev.points_monthly
                used = 0 if reset_due else dev.points_used
                available = available_points(monthly, used, dev.points_earned)
                if available < cost:
                    return declined(cost, available)

                if reset_due:
                    await apply_monthly_reset(db, dev, monthly, now)
                if not await debit_points(db, dev, cost, now):
                    return declined(cost, available_points(dev.points_monthly, dev.points_used, dev.points_earned))

                db.add(PointsLedger(
                    developer_id=developer_id,
                    amount=-cost,
                    spend_type=spend_type,
                    source_id=source_id,
                    description=f"{spend_type.lower().replace('_', ' ')} action",
                    entry_metadata=metadata or {},
                    created_at=now,
                ))
                balance = available_points(dev.points_monthly, dev.points_used, dev.points_earned)
            return SpendResult(success=True, cost=cost, balance=balance, metadata=metadata or {})

        return await retry_serializable(attempt, self.retries)

    async def award(
        self,
        developer_id: str,
        source: str,
        amount: int,
        source_id: str | None = None,
        description: str | None = None,
    ) -> int | None:
        """Standalone bonus award in its own transaction. None if duplicate."""

        async def attempt() -> int | None:
            now = self._clock()
            async with developer_transaction(self.session_factory, developer_id, self.timeout) as (db, dev):
                return await award_bonus_points(db, dev, source, amount, now, source_id, description)

        try:
            return await retry_serializable(attempt, self.retries)
        except DuplicateAward:
            return None

    async def usage(self, developer_id: str, days: int = 30) -> dict:
        since = self._clock() - timedelta(days=days)
        async with self.session_factory() as db:
            result = await db.execute(
                select(PointsLedger).where(
                    PointsLedger.developer_id == developer_id,
                    PointsLedger.created_at >= since,
                )
            )
            return usage_stats(result.scalars().all())

    async def upgrade_incentive(self, developer_id: str) -> dict | None:
        """Incentive to move one tier up, or None at the top tier."""
        tiers = await self.config.get_subscription_tiers()
        async with self.session_factory() as db:
            dev = await db.get(Developer, developer_id)
        if dev is None:
            return None
        target = _next_tier(dev.subscription_tier)
        if target is None:
            return None
        return upgrade_incentive(dev.subscription_tier, target, tiers)
