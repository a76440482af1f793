"""Liveness, readiness and version endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from careerxp.cache import RedisCache
from careerxp.config import get_settings
from careerxp.database import get_session
from careerxp.redis_client import get_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    request: Request,
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Check the ledger store, Redis and the badge index.

    A Redis outage only degrades readiness: the cache serves from memory
    and update broadcasts are dropped until it returns.
    """
    checks: dict[str, object] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:  # noqa: BLE001
        checks["database"] = f"error: {exc}"

    client = get_redis()
    if client is None:
        checks["redis"] = "disabled"
    else:
        try:
            await client.ping()
            checks["redis"] = "ok"
        except Exception as exc:  # noqa: BLE001
            checks["redis"] = f"error: {exc}"

    services = getattr(request.app.state, "services", None)
    if services is not None:
        checks["cache"] = "redis" if isinstance(services.cache, RedisCache) else "memory"
        validation = services.index.validate()
        checks["badge_index"] = "ok" if validation.is_valid else f"missing: {sorted(validation.missing)}"

    healthy = checks["database"] == "ok" and checks["redis"] in ("ok", "disabled")
    return {"status": "ready" if healthy else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"service": "careerxp", "version": settings.app_version, "environment": settings.environment}
