"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from careerxp.auth.gateway import AuthGateway
from careerxp.config import get_settings
from careerxp.database import close_db, create_tables, get_session_factory, init_db
from careerxp.gamification.badge_service import seed_badges
from careerxp.gamification.container import build_services
from careerxp.gamification.router import router as gamification_router
from careerxp.health.router import router as health_router
from careerxp.middleware import setup_middleware
from careerxp.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)


async def sweep_rate_limits(gateway: AuthGateway, interval: float) -> None:
    """Periodically drop expired rate-limit windows."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await gateway.sweep()
        except Exception:
            logger.warning("Rate limit sweep failed", exc_info=True)
            continue
        if removed:
            logger.debug("Swept %d expired rate limit windows", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url, settings.db_isolation_level)
    if settings.db_create_tables:
        await create_tables()
    await init_redis(settings)

    session_factory = get_session_factory()
    services = build_services(settings, session_factory, redis=get_redis())
    app.state.services = services

    # Seed badge definitions and configuration (idempotent)
    try:
        await seed_badges(session_factory)
        await services.config.initialize_defaults()
    except Exception:
        logger.warning("Seeding failed (tables may not exist yet)", exc_info=True)

    sweeper = asyncio.create_task(
        sweep_rate_limits(services.gateway, settings.rate_limit_sweep_interval_seconds)
    )

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CareerXP API",
        description="Rewards ledger for developer career actions: XP, points, streaks and badges",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)

    return app


app = create_app()
