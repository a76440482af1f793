"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from careerxp.auth.rate_limit import MemoryRateLimitStore
from careerxp.cache import MemoryCache
from careerxp.config import Settings
from careerxp.db.base import Base
from careerxp.db.models import Developer
from careerxp.db.transactions import transaction
from careerxp.gamification.config_service import ConfigService
from careerxp.gamification.container import Services, build_services
from careerxp.gamification.xp_service import get_or_create_developer

# Wednesday, midday UTC
NOW = datetime(2026, 10, 14, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Deterministic clock; tests move it explicitly."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class TickClock:
    """Monotonic seconds clock for caches and rate limit stores."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite shared across sessions through a single connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def make_developer(session_factory, clock):
    """Create a developer row, overriding any aggregate fields given."""

    async def _make(developer_id: str = "dev-1", **fields) -> Developer:
        async with transaction(session_factory) as db:
            developer, _ = await get_or_create_developer(db, developer_id, fields.pop("created_at", clock()))
            for name, value in fields.items():
                setattr(developer, name, value)
        return developer

    return _make


@pytest.fixture
def load_developer(session_factory):
    async def _load(developer_id: str = "dev-1") -> Developer:
        async with session_factory() as db:
            developer = await db.get(Developer, developer_id)
        assert developer is not None
        return developer

    return _load


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def config(session_factory, cache, clock) -> ConfigService:
    return ConfigService(session_factory, cache, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        cache_backend="memory",
        rate_limit_backend="memory",
        jwt_secret="test-secret",
        log_format="console",
    )


@pytest.fixture
def rate_limit_clock() -> TickClock:
    return TickClock()


@pytest.fixture
def services(settings, session_factory, clock, rate_limit_clock) -> Services:
    return build_services(
        settings,
        session_factory,
        redis=None,
        clock=clock,
        rate_limit_store=MemoryRateLimitStore(clock=rate_limit_clock),
    )
