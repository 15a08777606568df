"""Pydantic schemas for the writing data API.

JSON keys are camelCase. Epoch timestamps and token ids are rendered as
decimal strings so 64-bit and uint256 values survive JavaScript clients.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

BigIntStr = Annotated[int, PlainSerializer(lambda v: str(v), return_type=str)]


class CamelModel(BaseModel):
    """Base for API models: camelCase aliases, readable from ORM rows."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenItem(CamelModel):
    """Minted Anky token."""

    id: str
    owner: str
    writing_ipfs_hash: str
    metadata_ipfs_hash: str
    session_id: str
    minted_at: BigIntStr
    fid: int


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionItem(CamelModel):
    """Writing session; ``startTime`` is null when the start was never observed."""

    id: str
    fid: int
    start_time: BigIntStr | None = None
    end_time: BigIntStr | None = None
    ipfs_hash: str | None = None
    is_anky: bool = False
    is_minted: bool = False
    token: TokenItem | None = None


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


class WriterStatsItem(CamelModel):
    current_streak: int
    max_streak: int
    days_in_ankyverse: int


class WriterItem(CamelModel):
    """Writer with their sessions and tokens."""

    fid: int
    current_session_id: str | None = None
    total_sessions: int = 0
    sessions: list[SessionItem] = []
    tokens: list[TokenItem] = []


class WriterDetail(WriterItem):
    """Response for GET /writers/{fid}: writer plus live streak stats."""

    stats: WriterStatsItem | None = None


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


class WriterPage(CamelModel):
    items: list[WriterItem]
    next_cursor: str | None = None
    prev_cursor: str | None = None


class SessionPage(CamelModel):
    items: list[SessionItem]
    next_cursor: str | None = None
    prev_cursor: str | None = None


class TokenPage(CamelModel):
    items: list[TokenItem]
    next_cursor: str | None = None
    prev_cursor: str | None = None


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class StatsResponse(CamelModel):
    """Response for GET /stats."""

    total_writers: int
    total_sessions: int
    total_tokens: int
    total_ankys: int
