"""Pydantic schemas for the streak leaderboard API."""

from __future__ import annotations

from anky.writing.schemas import BigIntStr, CamelModel


class LeaderboardWriter(CamelModel):
    fid: int
    current_session_id: str | None = None
    total_sessions: int = 0


class LeaderboardEntryItem(CamelModel):
    """One ranked leaderboard row."""

    fid: int
    current_streak: int
    max_streak: int
    days_in_ankyverse: int
    last_updated: BigIntStr
    total_sessions: int
    total_anky: int
    total_anky_minted: int
    writer: LeaderboardWriter | None = None


class LeaderboardResponse(CamelModel):
    """Response for GET /leaderboard."""

    entries: list[LeaderboardEntryItem]


class RebuildResponse(CamelModel):
    """Response for POST /leaderboard/rebuild."""

    success: bool
    leaderboard: list[LeaderboardEntryItem] = []
    error: str | None = None
