"""Read queries for writers, sessions, tokens and aggregate stats."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from anky.db.models import AnkyToken, Writer, WritingSession
from anky.leaderboard.streaks import calculate_writer_stats
from anky.writing import schemas
from anky.writing.pagination import Direction, Page, paginate

# Sessions whose start was never observed sort after every known start.
UNKNOWN_START = -1

_session_sort_key = func.coalesce(WritingSession.start_time, UNKNOWN_START)


def _writer_options():  # type: ignore[no-untyped-def]
    return (
        selectinload(Writer.sessions).selectinload(WritingSession.token),
        selectinload(Writer.tokens),
    )


def _session_key(session: WritingSession) -> tuple[int, str]:
    start = session.start_time if session.start_time is not None else UNKNOWN_START
    return start, session.id


def _writer_page(page: Page[Writer]) -> schemas.WriterPage:
    return schemas.WriterPage(
        items=[schemas.WriterItem.model_validate(w) for w in page.items],
        next_cursor=page.next_cursor,
        prev_cursor=page.prev_cursor,
    )


def _session_page(page: Page[WritingSession]) -> schemas.SessionPage:
    return schemas.SessionPage(
        items=[schemas.SessionItem.model_validate(s) for s in page.items],
        next_cursor=page.next_cursor,
        prev_cursor=page.prev_cursor,
    )


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


async def list_writers(
    db: AsyncSession, limit: int, cursor: str | None = None, direction: Direction = "next",
) -> schemas.WriterPage:
    """Writers by fid descending, with sessions and tokens."""
    page = await paginate(
        db,
        select(Writer).options(*_writer_options()),
        sort_key=Writer.fid,
        tie_key=Writer.fid,
        key_of=lambda w: (w.fid, w.fid),
        limit=limit,
        cursor=cursor,
        direction=direction,
        tie_type=int,
    )
    return _writer_page(page)


async def get_writer(db: AsyncSession, fid: int) -> schemas.WriterDetail | None:
    """Writer with sessions, tokens and streak stats computed now."""
    result = await db.execute(select(Writer).where(Writer.fid == fid).options(*_writer_options()))
    writer = result.scalar_one_or_none()
    if writer is None:
        return None

    stats = calculate_writer_stats(writer.sessions)
    detail = schemas.WriterDetail.model_validate(writer)
    detail.stats = schemas.WriterStatsItem(
        current_streak=stats.current_streak,
        max_streak=stats.max_streak,
        days_in_ankyverse=stats.days_in_ankyverse,
    )
    return detail


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


async def list_sessions(
    db: AsyncSession,
    limit: int,
    cursor: str | None = None,
    direction: Direction = "next",
    fid: int | None = None,
) -> schemas.SessionPage:
    """Sessions by (start time, id) descending, optionally for one writer."""
    query = select(WritingSession).options(selectinload(WritingSession.token))
    if fid is not None:
        query = query.where(WritingSession.fid == fid)

    page = await paginate(
        db,
        query,
        sort_key=_session_sort_key,
        tie_key=WritingSession.id,
        key_of=_session_key,
        limit=limit,
        cursor=cursor,
        direction=direction,
    )
    return _session_page(page)


async def writer_exists(db: AsyncSession, fid: int) -> bool:
    return await db.get(Writer, fid) is not None


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


async def list_tokens(
    db: AsyncSession, limit: int, cursor: str | None = None, direction: Direction = "next",
) -> schemas.TokenPage:
    """Tokens by (mint time, id) descending."""
    page = await paginate(
        db,
        select(AnkyToken),
        sort_key=AnkyToken.minted_at,
        tie_key=AnkyToken.id,
        key_of=lambda t: (t.minted_at, t.id),
        limit=limit,
        cursor=cursor,
        direction=direction,
    )
    return schemas.TokenPage(
        items=[schemas.TokenItem.model_validate(t) for t in page.items],
        next_cursor=page.next_cursor,
        prev_cursor=page.prev_cursor,
    )


async def get_token(db: AsyncSession, token_id: str) -> schemas.TokenItem | None:
    """Token by decimal id."""
    token = await db.get(AnkyToken, token_id)
    if token is None:
        return None
    return schemas.TokenItem.model_validate(token)


def normalize_token_id(raw: str) -> str:
    """Canonical decimal form of a token id path parameter.

    Raises:
        ValueError: If ``raw`` is not a non-negative decimal integer.
    """
    if not (raw.isascii() and raw.isdigit()):
        msg = f"Invalid token id: {raw!r}"
        raise ValueError(msg)
    return str(int(raw))


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


async def get_stats(db: AsyncSession) -> schemas.StatsResponse:
    """Row counts across the indexed tables."""
    total_writers = await db.scalar(select(func.count()).select_from(Writer))
    total_sessions = await db.scalar(select(func.count()).select_from(WritingSession))
    total_tokens = await db.scalar(select(func.count()).select_from(AnkyToken))
    total_ankys = await db.scalar(
        select(func.count()).select_from(WritingSession).where(WritingSession.is_anky.is_(True))
    )
    return schemas.StatsResponse(
        total_writers=total_writers or 0,
        total_sessions=total_sessions or 0,
        total_tokens=total_tokens or 0,
        total_ankys=total_ankys or 0,
    )
