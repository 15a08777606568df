"""Leaderboard API router."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from anky.config import get_settings
from anky.database import get_session
from anky.leaderboard.schemas import LeaderboardEntryItem, LeaderboardResponse, RebuildResponse
from anky.leaderboard.service import get_leaderboard, rebuild_leaderboard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=LeaderboardResponse)
async def read_leaderboard(
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    """Stored leaderboard, highest current streak first."""
    entries = await get_leaderboard(db, get_settings().leaderboard_size)
    return LeaderboardResponse(
        entries=[LeaderboardEntryItem.model_validate(e) for e in entries],
    )


@router.post("/rebuild", response_model=RebuildResponse)
async def trigger_rebuild(
    db: AsyncSession = Depends(get_session),
) -> RebuildResponse | JSONResponse:
    """Recompute streaks for every writer and replace the leaderboard."""
    size = get_settings().leaderboard_size
    try:
        await rebuild_leaderboard(db, size=size)
        entries = await get_leaderboard(db, size)
    except Exception:
        logger.exception("Leaderboard rebuild failed")
        body = RebuildResponse(success=False, error="Leaderboard rebuild failed")
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True))

    return RebuildResponse(
        success=True,
        leaderboard=[LeaderboardEntryItem.model_validate(e) for e in entries],
    )
