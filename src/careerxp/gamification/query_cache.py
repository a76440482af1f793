"""Read-through caching of expensive gamification queries, with invalidation."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careerxp.cache import Cache
from careerxp.db.models import Developer, XPLedger
from careerxp.gamification.constants import XPSource
from careerxp.gamification.xp_calculator import compute_profile

logger = logging.getLogger(__name__)

LEADERBOARD_COLUMNS = {
    "xp": Developer.total_xp,
    "streak": Developer.streak,
    "level": Developer.current_level,
}


class QueryCache:
    """Cache-aside helpers. Staleness is bounded by TTL and explicit invalidation."""

    def __init__(
        self,
        cache: Cache,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int = 300,
        leaderboard_ttl_seconds: int = 600,
    ) -> None:
        self.cache = cache
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self.leaderboard_ttl_seconds = leaderboard_ttl_seconds
        self.hits: dict[str, int] = {}
        self.misses: dict[str, int] = {}

    async def cached(
        self,
        name: str,
        key: str,
        ttl: int,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:  # noqa: ANN401
        """Return the cached value for ``key`` or load, store and return it."""
        value = await self.cache.get_json(key)
        if value is not None:
            self.hits[name] = self.hits.get(name, 0) + 1
            return value
        self.misses[name] = self.misses.get(name, 0) + 1
        value = await loader()
        if value is not None:
            await self.cache.set_json(key, value, ttl)
        return value

    # --- Queries ---

    async def developer_profile(self, developer_id: str) -> dict | None:
        async def load() -> dict | None:
            async with self.session_factory() as db:
                dev = await db.get(Developer, developer_id)
            if dev is None:
                return None
            return {
                "developer_id": dev.id,
                "display_name": dev.display_name,
                "subscription_tier": dev.subscription_tier,
                "total_xp": dev.total_xp,
                "streak": dev.streak,
                "longest_streak": dev.longest_streak,
                "badges_earned": dev.badges_earned,
                **compute_profile(dev.total_xp),
            }

        return await self.cached("profile", f"profile:{developer_id}", self.ttl_seconds, load)

    async def cv_analysis_count(self, developer_id: str, status: str = "COMPLETED") -> int:
        async def load() -> int:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(func.count(XPLedger.id)).where(
                        XPLedger.developer_id == developer_id,
                        XPLedger.source == XPSource.CV_ANALYSIS.value,
                    )
                )
                return result.scalar_one()

        return int(await self.cached("cv_count", f"cv_count:{developer_id}:{status}", self.ttl_seconds, load))

    async def application_stats(self, developer_id: str) -> dict:
        async def load() -> dict:
            async with self.session_factory() as db:
                dev = await db.get(Developer, developer_id)
            if dev is None:
                return {"total": 0, "today": 0}
            return {"total": dev.applications_submitted, "today": dev.applications_today}

        return await self.cached("app_stats", f"app_stats:{developer_id}", self.ttl_seconds, load)

    async def leaderboard(self, kind: str = "xp", limit: int = 10) -> list[dict]:
        column = LEADERBOARD_COLUMNS.get(kind)
        if column is None:
            msg = f"Unknown leaderboard: {kind}"
            raise ValueError(msg)

        async def load() -> list[dict]:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Developer.id, Developer.display_name, Developer.total_xp,
                           Developer.current_level, Developer.streak)
                    .order_by(column.desc(), Developer.created_at.asc())
                    .limit(limit)
                )
                rows = result.all()
            return [
                {
                    "rank": position,
                    "developer_id": row.id,
                    "display_name": row.display_name,
                    "total_xp": row.total_xp,
                    "level": row.current_level,
                    "streak": row.streak,
                }
                for position, row in enumerate(rows, start=1)
            ]

        return await self.cached(
            "leaderboard", f"leaderboard:{kind}:{limit}", self.leaderboard_ttl_seconds, load
        )

    # --- Invalidation ---

    async def invalidate_developer(self, developer_id: str) -> None:
        """Drop every cached value derived from one developer's ledger."""
        await self.cache.delete(f"profile:{developer_id}", f"app_stats:{developer_id}")
        await self.cache.delete_pattern(f"cv_count:{developer_id}:*")
        await self.cache.delete_pattern("leaderboard:*")

    def stats(self) -> dict:
        names = set(self.hits) | set(self.misses)
        return {
            name: {
                "hits": self.hits.get(name, 0),
                "misses": self.misses.get(name, 0),
            }
            for name in sorted(names)
        }
