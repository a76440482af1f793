"""Versioned business configuration: points costs, XP rewards, subscription tiers.

Reads go cache -> newest active row -> in-process defaults. A store that
cannot be reached, or does not answer within ``read_timeout``, never breaks
a reward flow; the defaults are served.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careerxp.cache import Cache
from careerxp.db.models import ConfigurationSetting
from careerxp.db.transactions import transaction
from careerxp.gamification.constants import (
    DEFAULT_POINTS_COSTS,
    DEFAULT_SUBSCRIPTION_TIERS,
    DEFAULT_XP_REWARDS,
    SubscriptionTier,
)

logger = logging.getLogger(__name__)

POINTS_COSTS_KEY = "points_costs"
XP_REWARDS_KEY = "xp_rewards"
SUBSCRIPTION_TIERS_KEY = "subscription_tiers"


def _plain(mapping: Mapping[Any, Any]) -> dict[str, Any]:
    """Enum-keyed table -> JSON-friendly dict."""
    return {getattr(k, "value", k): v for k, v in mapping.items()}


DEFAULTS: dict[str, dict[str, Any]] = {
    POINTS_COSTS_KEY: _plain(DEFAULT_POINTS_COSTS),
    XP_REWARDS_KEY: _plain(DEFAULT_XP_REWARDS),
    SUBSCRIPTION_TIERS_KEY: _plain(DEFAULT_SUBSCRIPTION_TIERS),
}

DESCRIPTIONS: dict[str, str] = {
    POINTS_COSTS_KEY: "Points cost per paid action",
    XP_REWARDS_KEY: "XP reward (and per-award maximum) per source",
    SUBSCRIPTION_TIERS_KEY: "Monthly points, XP multiplier and price per subscription tier",
}


class ConfigService:
    """Effective-dated settings store with a short-lived cache."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Cache,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] | None = None,
        read_timeout: float = 2.0,
    ) -> None:
        self.session_factory = session_factory
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.read_timeout = read_timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _cache_key(key: str) -> str:
        return f"config:{key}"

    async def _load(self, key: str) -> dict[str, Any]:
        default = DEFAULTS[key]
        cached = await self.cache.get_json(self._cache_key(key))
        if isinstance(cached, dict):
            return cached

        try:
            async with asyncio.timeout(self.read_timeout), self.session_factory() as session:
                result = await session.execute(
                    select(ConfigurationSetting)
                    .where(ConfigurationSetting.key == key, ConfigurationSetting.is_active.is_(True))
                    .order_by(ConfigurationSetting.effective_date.desc())
                    .limit(1)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.warning("Config store unavailable for %s, serving defaults", key, exc_info=True)
            return dict(default)
        except TimeoutError:
            logger.warning("Config store read for %s timed out after %.1fs, serving defaults", key, self.read_timeout)
            return dict(default)

        value = {**default, **row.config} if row is not None else dict(default)
        await self.cache.set_json(self._cache_key(key), value, self.ttl_seconds)
        return value

    # --- Reads ---

    async def get_points_costs(self) -> dict[str, int]:
        return await self._load(POINTS_COSTS_KEY)

    async def get_xp_rewards(self) -> dict[str, int]:
        return await self._load(XP_REWARDS_KEY)

    async def get_subscription_tiers(self) -> dict[str, dict[str, Any]]:
        return await self._load(SUBSCRIPTION_TIERS_KEY)

    async def get_points_cost(self, action: str) -> int:
        return int((await self.get_points_costs()).get(action, 0))

    async def get_xp_reward(self, source: str) -> int:
        return int((await self.get_xp_rewards()).get(source, 0))

    async def get_tier(self, tier: str) -> dict[str, Any]:
        tiers = await self.get_subscription_tiers()
        return tiers.get(tier) or tiers[SubscriptionTier.FREE.value]

    # --- Writes ---

    async def _update(self, key: str, partial: Mapping[str, Any], description: str | None) -> dict[str, Any]:
        merged = {**await self._load(key), **_plain(partial)}
        now = self._clock()
        async with transaction(self.session_factory) as session:
            await session.execute(
                update(ConfigurationSetting)
                .where(ConfigurationSetting.key == key, ConfigurationSetting.is_active.is_(True))
                .values(is_active=False)
            )
            session.add(ConfigurationSetting(
                key=key,
                version=f"v{int(now.timestamp() * 1000)}",
                config=merged,
                description=description or DESCRIPTIONS[key],
                effective_date=now,
                is_active=True,
                created_at=now,
            ))
        await self.cache.delete(self._cache_key(key))
        logger.info("Configuration %s updated", key)
        return merged

    async def update_points_costs(self, partial: Mapping[str, int], description: str | None = None) -> dict:
        return await self._update(POINTS_COSTS_KEY, partial, description)

    async def update_xp_rewards(self, partial: Mapping[str, int], description: str | None = None) -> dict:
        return await self._update(XP_REWARDS_KEY, partial, description)

    async def update_subscription_tiers(self, partial: Mapping[str, dict], description: str | None = None) -> dict:
        return await self._update(SUBSCRIPTION_TIERS_KEY, partial, description)

    async def initialize_defaults(self) -> list[str]:
        """Insert a default row for every key that has no active snapshot."""
        created: list[str] = []
        now = self._clock()
        async with transaction(self.session_factory) as session:
            for key, default in DEFAULTS.items():
                result = await session.execute(
                    select(ConfigurationSetting.id)
                    .where(ConfigurationSetting.key == key, ConfigurationSetting.is_active.is_(True))
                    .limit(1)
                )
                if result.scalar_one_or_none() is not None:
                    continue
                session.add(ConfigurationSetting(
                    key=key,
                    version="v1",
                    config=dict(default),
                    description=DESCRIPTIONS[key],
                    effective_date=now,
                    is_active=True,
                    created_at=now,
                ))
                created.append(key)
        if created:
            logger.info("Initialized default configuration: %s", ", ".join(created))
        return created
