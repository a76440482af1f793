"""Shared Redis client for the cache, rate-limit windows and update broadcasts."""

import logging

import redis.asyncio as redis

from careerxp.config import Settings

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


def redis_required(settings: Settings) -> bool:
    """Whether any configured backend needs Redis."""
    return (
        settings.cache_backend == "redis"
        or settings.rate_limit_backend == "redis"
        or settings.notifications_enabled
    )


async def init_redis(settings: Settings) -> None:
    """Create the client when a Redis-backed component is configured.

    The client connects lazily, so an unreachable server surfaces on first
    use, where the cache falls back to memory and broadcasts are dropped.
    """
    global _client  # noqa: PLW0603
    if not redis_required(settings):
        logger.info("Redis not required by configuration; skipping client")
        return
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis | None:
    """The shared client, or None when Redis is not configured."""
    return _client
