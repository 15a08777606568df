"""Liveness, readiness and version endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from anky.config import get_settings
from anky.database import get_session
from anky.db.models import LeaderboardEntry
from anky.redis_client import get_redis

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: 200 while the process is serving."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: database and event stream (Redis) reachable."""
    checks: dict[str, object] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        logger.warning("Readiness: database check failed", exc_info=True)
        checks["database"] = "error"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception:
        logger.warning("Readiness: redis check failed", exc_info=True)
        checks["redis"] = "error"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Service version, environment and when the leaderboard was last rebuilt."""
    settings = get_settings()
    try:
        last_rebuild = await db.scalar(select(func.max(LeaderboardEntry.last_updated)))
    except Exception:
        logger.warning("Version: leaderboard lookup failed", exc_info=True)
        last_rebuild = None
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "leaderboardUpdatedAt": str(last_rebuild) if last_rebuild is not None else None,
    }
