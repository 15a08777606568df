"""Writing data API router: writers, sessions, tokens and stats."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from anky.config import get_settings
from anky.database import get_session
from anky.writing import schemas
from anky.writing import service
from anky.writing.pagination import Direction, clamp_limit

router = APIRouter(tags=["Writing"])


# fid is stored as BIGINT.
MAX_FID = 2**63 - 1


def _page_size(limit: int | None) -> int:
    settings = get_settings()
    return clamp_limit(limit or settings.page_size_default, settings.page_size_max)


def _bad_cursor(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(exc))


# ---------------------------------------------------------------------------
# GET /writers: Paginated writers
# ---------------------------------------------------------------------------
@router.get("/writers", response_model=schemas.WriterPage)
async def list_writers(
    limit: int | None = Query(None, ge=1),
    cursor: str | None = Query(None),
    direction: Direction = Query("next"),
    db: AsyncSession = Depends(get_session),
) -> schemas.WriterPage:
    """List writers (fid descending) with their sessions and tokens."""
    try:
        return await service.list_writers(db, _page_size(limit), cursor, direction)
    except ValueError as e:
        raise _bad_cursor(e) from e


# ---------------------------------------------------------------------------
# GET /writers/{fid}: Writer detail
# ---------------------------------------------------------------------------
@router.get("/writers/{fid}", response_model=schemas.WriterDetail)
async def get_writer(
    fid: int = Path(ge=0, le=MAX_FID),
    db: AsyncSession = Depends(get_session),
) -> schemas.WriterDetail:
    """Get one writer with sessions, tokens and current streak stats."""
    writer = await service.get_writer(db, fid)
    if writer is None:
        raise HTTPException(status_code=404, detail="Writer not found")
    return writer


# ---------------------------------------------------------------------------
# GET /writers/{fid}/sessions: One writer's sessions
# ---------------------------------------------------------------------------
@router.get("/writers/{fid}/sessions", response_model=schemas.SessionPage)
async def list_writer_sessions(
    fid: int = Path(ge=0, le=MAX_FID),
    limit: int | None = Query(None, ge=1),
    cursor: str | None = Query(None),
    direction: Direction = Query("next"),
    db: AsyncSession = Depends(get_session),
) -> schemas.SessionPage:
    """List one writer's sessions, newest start first."""
    if not await service.writer_exists(db, fid):
        raise HTTPException(status_code=404, detail="Writer not found")
    try:
        return await service.list_sessions(db, _page_size(limit), cursor, direction, fid=fid)
    except ValueError as e:
        raise _bad_cursor(e) from e


# ---------------------------------------------------------------------------
# GET /sessions: Paginated sessions
# ---------------------------------------------------------------------------
@router.get("/sessions", response_model=schemas.SessionPage)
async def list_sessions(
    limit: int | None = Query(None, ge=1),
    cursor: str | None = Query(None),
    direction: Direction = Query("next"),
    db: AsyncSession = Depends(get_session),
) -> schemas.SessionPage:
    """List all sessions, newest start first. Unknown starts sort last."""
    try:
        return await service.list_sessions(db, _page_size(limit), cursor, direction)
    except ValueError as e:
        raise _bad_cursor(e) from e


# ---------------------------------------------------------------------------
# GET /tokens: Paginated tokens
# ---------------------------------------------------------------------------
@router.get("/tokens", response_model=schemas.TokenPage)
async def list_tokens(
    limit: int | None = Query(None, ge=1),
    cursor: str | None = Query(None),
    direction: Direction = Query("next"),
    db: AsyncSession = Depends(get_session),
) -> schemas.TokenPage:
    """List minted tokens, newest first."""
    try:
        return await service.list_tokens(db, _page_size(limit), cursor, direction)
    except ValueError as e:
        raise _bad_cursor(e) from e


# ---------------------------------------------------------------------------
# GET /tokens/{token_id}: Token detail
# ---------------------------------------------------------------------------
@router.get("/tokens/{token_id}", response_model=schemas.TokenItem)
async def get_token(
    token_id: str,
    db: AsyncSession = Depends(get_session),
) -> schemas.TokenItem:
    """Get one token by its decimal id."""
    try:
        normalized = service.normalize_token_id(token_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid token ID") from e

    token = await service.get_token(db, normalized)
    if token is None:
        raise HTTPException(status_code=404, detail="Token not found")
    return token


# ---------------------------------------------------------------------------
# GET /stats: Aggregate counts
# ---------------------------------------------------------------------------
@router.get("/stats", response_model=schemas.StatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_session),
) -> schemas.StatsResponse:
    """Get total writers, sessions, tokens and Ankys."""
    return await service.get_stats(db)
