"""Fixed-window rate limiting per (developer, event type)."""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from redis.exceptions import RedisError

from careerxp.gamification.constants import EventType

logger = logging.getLogger(__name__)

MINUTE = 60
DAY = 24 * 60 * 60

# event type -> (window seconds, max events per window)
EVENT_RATE_LIMITS: dict[str, tuple[int, int]] = {
    EventType.CV_UPLOADED: (MINUTE, 5),
    EventType.CV_ANALYSIS_COMPLETED: (MINUTE, 10),
    EventType.CV_IMPROVEMENT_APPLIED: (MINUTE, 20),
    EventType.APPLICATION_SUBMITTED: (MINUTE, 10),
    EventType.PROFILE_SECTION_UPDATED: (MINUTE, 10),
    EventType.SKILL_ADDED: (MINUTE, 20),
    EventType.DAILY_LOGIN: (DAY, 1),
    EventType.ACHIEVEMENT_UNLOCKED: (MINUTE, 50),
    EventType.CHALLENGE_COMPLETED: (MINUTE, 10),
    EventType.STREAK_MILESTONE: (MINUTE, 5),
    EventType.BADGE_EARNED: (MINUTE, 50),
    EventType.LEVEL_UP: (MINUTE, 10),
}
DEFAULT_RATE_LIMIT: tuple[int, int] = (MINUTE, 10)


class RateLimitStore(ABC):
    """Counts hits inside fixed windows."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: int, max_hits: int) -> tuple[bool, int]:
        """Record a hit if the window has room.

        Returns ``(allowed, seconds_until_reset)``.
        """

    async def sweep_expired(self) -> int:
        """Drop windows that have ended. Returns the number removed."""
        return 0


class MemoryRateLimitStore(RateLimitStore):
    """In-process windows. A rejected hit does not consume the window."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}  # key -> (reset_at, count)

    def __len__(self) -> int:
        return len(self._windows)

    async def hit(self, key: str, window_seconds: int, max_hits: int) -> tuple[bool, int]:
        now = self._clock()
        reset_at, count = self._windows.get(key, (0.0, 0))
        if now >= reset_at:
            reset_at, count = now + window_seconds, 0
        retry_after = max(1, math.ceil(reset_at - now))
        if count >= max_hits:
            self._windows[key] = (reset_at, count)
            return False, retry_after
        self._windows[key] = (reset_at, count + 1)
        return True, retry_after

    async def sweep_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (reset_at, _) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)


class RedisRateLimitStore(RateLimitStore):
    """Shared windows in Redis. Keys are bucketed per window and expire on their own.

    While Redis is unreachable, hits are counted in an in-process store so
    events are still limited per worker instead of failing.
    """

    def __init__(
        self,
        redis: Any,  # noqa: ANN401
        clock: Callable[[], float] = time.time,
        fallback: MemoryRateLimitStore | None = None,
    ) -> None:
        self._redis = redis
        self._clock = clock
        self._fallback = fallback or MemoryRateLimitStore()

    async def hit(self, key: str, window_seconds: int, max_hits: int) -> tuple[bool, int]:
        now = self._clock()
        window = int(now) // window_seconds
        rate_key = f"ratelimit:event:{key}:{window}"
        retry_after = max(1, math.ceil((window + 1) * window_seconds - now))

        try:
            pipe = self._redis.pipeline()
            pipe.incr(rate_key)
            pipe.expire(rate_key, window_seconds + 1)
            results: list[Any] = await pipe.execute()
        except (RedisError, OSError):
            logger.warning("Redis rate limit failed for %s, counting in-process", key, exc_info=True)
            return await self._fallback.hit(key, window_seconds, max_hits)

        current_count: int = results[0]
        return current_count <= max_hits, retry_after

    async def sweep_expired(self) -> int:
        return await self._fallback.sweep_expired()
