"""Leaderboard rebuild and reads.

The leaderboard is derived state: each rebuild recomputes streaks for every
writer and replaces the whole table. Delete and inserts run in a single
transaction, so readers never observe an empty or half-written leaderboard.
Rebuilds are serialized in-process by a lock and, on PostgreSQL, across
processes (API and worker) by a transaction-scoped advisory lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from anky.db.models import LeaderboardEntry, Writer
from anky.leaderboard.streaks import WriterStats, calculate_writer_stats

logger = logging.getLogger(__name__)

DEFAULT_LEADERBOARD_SIZE = 8

_rebuild_lock = asyncio.Lock()

# Arbitrary key shared by every process that rebuilds the leaderboard.
REBUILD_LOCK_KEY = 0x616E6B79


@dataclass(frozen=True)
class LeaderboardCandidate:
    """Per-writer leaderboard metrics before ranking."""

    fid: int
    stats: WriterStats
    total_sessions: int
    total_anky: int
    total_anky_minted: int


async def compute_candidates(db: AsyncSession, now: datetime) -> list[LeaderboardCandidate]:
    """Compute streak metrics for every writer, in fid order."""
    result = await db.execute(
        select(Writer)
        .options(selectinload(Writer.sessions))
        .order_by(Writer.fid)
        .execution_options(populate_existing=True)
    )
    candidates = []
    for writer in result.scalars():
        sessions = writer.sessions
        candidates.append(
            LeaderboardCandidate(
                fid=writer.fid,
                stats=calculate_writer_stats(sessions, now),
                total_sessions=writer.total_sessions,
                total_anky=sum(1 for s in sessions if s.is_anky),
                total_anky_minted=sum(1 for s in sessions if s.is_minted),
            )
        )
    return candidates


async def acquire_rebuild_lock(db: AsyncSession) -> None:
    """Block until no other process is rebuilding. Released at commit or rollback."""
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": REBUILD_LOCK_KEY})


def rank_candidates(
    candidates: list[LeaderboardCandidate], size: int = DEFAULT_LEADERBOARD_SIZE,
) -> list[LeaderboardCandidate]:
    """Top ``size`` by current streak, descending. Ties keep input order."""
    return sorted(candidates, key=lambda c: c.stats.current_streak, reverse=True)[:size]


async def rebuild_leaderboard(
    db: AsyncSession,
    now: datetime | None = None,
    size: int = DEFAULT_LEADERBOARD_SIZE,
) -> list[LeaderboardEntry]:
    """Recompute and replace the leaderboard. Returns the new rows in rank order."""
    async with _rebuild_lock:
        if now is None:
            now = datetime.now(timezone.utc)
        stamp = int(now.timestamp())

        try:
            await acquire_rebuild_lock(db)
            top = rank_candidates(await compute_candidates(db, now), size)
            entries = [
                LeaderboardEntry(
                    fid=c.fid,
                    current_streak=c.stats.current_streak,
                    max_streak=c.stats.max_streak,
                    days_in_ankyverse=c.stats.days_in_ankyverse,
                    last_updated=stamp,
                    total_sessions=c.total_sessions,
                    total_anky=c.total_anky,
                    total_anky_minted=c.total_anky_minted,
                )
                for c in top
            ]
            await db.execute(delete(LeaderboardEntry))
            db.add_all(entries)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Leaderboard rebuilt: %d entries", len(entries))
        return entries


async def get_leaderboard(
    db: AsyncSession, limit: int = DEFAULT_LEADERBOARD_SIZE,
) -> list[LeaderboardEntry]:
    """Stored leaderboard rows with their writer, highest current streak first."""
    result = await db.execute(
        select(LeaderboardEntry)
        .options(selectinload(LeaderboardEntry.writer))
        .order_by(LeaderboardEntry.current_streak.desc(), LeaderboardEntry.fid)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
