"""Wiring of the gamification services shared by the app."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careerxp.auth.gateway import AuthGateway
from careerxp.auth.rate_limit import MemoryRateLimitStore, RateLimitStore, RedisRateLimitStore
from careerxp.cache import Cache, build_cache
from careerxp.config import Settings
from careerxp.gamification.badge_index import EventBadgeIndex, build_index
from careerxp.gamification.badge_service import BadgeEvaluator
from careerxp.gamification.config_service import ConfigService
from careerxp.gamification.event_manager import EventManager
from careerxp.gamification.notifier import Notifier
from careerxp.gamification.points_service import PointsLedgerService
from careerxp.gamification.query_cache import QueryCache
from careerxp.gamification.streak_service import StreakService
from careerxp.gamification.timeutil import Clock, utcnow


@dataclass
class Services:
    cache: Cache
    config: ConfigService
    gateway: AuthGateway
    index: EventBadgeIndex
    evaluator: BadgeEvaluator
    points: PointsLedgerService
    streaks: StreakService
    query_cache: QueryCache
    notifier: Notifier | None
    events: EventManager


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis: Redis | None = None,
    clock: Clock = utcnow,
    rate_limit_store: RateLimitStore | None = None,
) -> Services:
    """Assemble every service from settings; redis is optional."""
    timeout = settings.transaction_timeout_seconds
    retries = settings.serialization_retries

    cache = build_cache(
        settings.cache_backend if redis is not None else "memory",
        redis=redis,
        max_entries=settings.memory_cache_max_entries,
        trim_to=settings.memory_cache_trim_to,
    )
    if rate_limit_store is None:
        if settings.rate_limit_backend == "redis" and redis is not None:
            rate_limit_store = RedisRateLimitStore(redis)
        else:
            rate_limit_store = MemoryRateLimitStore()

    config = ConfigService(
        session_factory,
        cache,
        ttl_seconds=settings.config_cache_ttl_seconds,
        clock=clock,
        read_timeout=settings.config_read_timeout_seconds,
    )
    gateway = AuthGateway(rate_limit_store)
    index = build_index()
    evaluator = BadgeEvaluator(session_factory, index, timeout=timeout, clock=clock)
    query_cache = QueryCache(
        cache,
        session_factory,
        ttl_seconds=settings.cache_ttl_seconds,
        leaderboard_ttl_seconds=settings.leaderboard_cache_ttl_seconds,
    )
    notifier = (
        Notifier(redis, settings.notification_channel)
        if redis is not None and settings.notifications_enabled
        else None
    )
    events = EventManager(
        session_factory,
        gateway,
        config,
        evaluator,
        query_cache,
        notifier,
        timeout=timeout,
        retries=retries,
        clock=clock,
    )
    return Services(
        cache=cache,
        config=config,
        gateway=gateway,
        index=index,
        evaluator=evaluator,
        points=PointsLedgerService(session_factory, config, timeout=timeout, retries=retries, clock=clock),
        streaks=StreakService(session_factory, timeout=timeout, clock=clock),
        query_cache=query_cache,
        notifier=notifier,
        events=events,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency: the services built during app startup."""
    return request.app.state.services
