"""Key-value cache with a Redis implementation and a bounded in-process one.

Both implementations share the ``Cache`` interface; callers never know
which one they hold. A failing Redis never raises into the caller: reads
become misses and the operation is served from an in-process fallback.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_REDIS_ERRORS = (RedisError, OSError)


class Cache(ABC):
    """get / setex / delete / pattern-delete over string values."""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> None: ...

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the count removed."""

    async def get_json(self, key: str) -> Any:  # noqa: ANN401
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            await self.delete(key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> None:  # noqa: ANN401
        await self.set(key, json.dumps(value, default=str), ttl)


class MemoryCache(Cache):
    """Bounded TTL cache. Past ``max_entries`` it drops expired entries,
    then the entries closest to expiry until ``trim_to`` remain.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        trim_to: int = 800,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.trim_to = trim_to
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (self._clock() + ttl, value)
        if len(self._entries) > self.max_entries:
            self._evict()

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        matched = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            del self._entries[key]
        excess = len(self._entries) - self.trim_to
        if excess > 0:
            oldest = sorted(self._entries.items(), key=lambda item: item[1][0])[:excess]
            for key, _ in oldest:
                del self._entries[key]
        logger.debug("Memory cache trimmed to %d entries", len(self._entries))


class RedisCache(Cache):
    """Redis-backed cache that degrades to an in-process cache on errors."""

    def __init__(self, redis: Any, fallback: MemoryCache | None = None) -> None:  # noqa: ANN401
        self._redis = redis
        self._fallback = fallback or MemoryCache()

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(key)
        except _REDIS_ERRORS:
            logger.warning("Redis GET failed for %s, using in-process cache", key, exc_info=True)
            return await self._fallback.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self._redis.setex(key, ttl, value)
        except _REDIS_ERRORS:
            logger.warning("Redis SETEX failed for %s, using in-process cache", key, exc_info=True)
            await self._fallback.set(key, value, ttl)

    async def delete(self, *keys: str) -> None:
        await self._fallback.delete(*keys)
        if not keys:
            return
        try:
            await self._redis.delete(*keys)
        except _REDIS_ERRORS:
            logger.warning("Redis DEL failed for %s", keys, exc_info=True)

    async def delete_pattern(self, pattern: str) -> int:
        removed = await self._fallback.delete_pattern(pattern)
        try:
            batch: list[str] = []
            async for key in self._redis.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await self._redis.delete(*batch)
                    batch = []
            if batch:
                removed += await self._redis.delete(*batch)
        except _REDIS_ERRORS:
            logger.warning("Redis pattern delete failed for %s", pattern, exc_info=True)
        return removed


def build_cache(
    backend: str,
    redis: Any = None,  # noqa: ANN401
    max_entries: int = 1000,
    trim_to: int = 800,
) -> Cache:
    """Pick the cache implementation once, at construction."""
    memory = MemoryCache(max_entries=max_entries, trim_to=trim_to)
    if backend == "redis" and redis is not None:
        return RedisCache(redis, fallback=memory)
    if backend == "redis":
        logger.warning("Redis cache requested but no client available, using in-process cache")
    return memory
