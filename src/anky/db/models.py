"""ORM models for indexed writing-session state.

Writer, WritingSession, AnkyToken and ValidAnkyHash are maintained by the
event reconciler. LeaderboardEntry is derived and replaced wholesale by the
leaderboard rebuild.

Chain timestamps are stored as epoch seconds (BigInteger), matching the
values carried by the contract events. Token ids are uint256 and are stored
as decimal strings.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from anky.db.base import Base


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


class Writer(Base):
    """An account (fid) that owns writing sessions."""

    __tablename__ = "writers"

    fid: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    current_session_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    sessions: Mapped[list[WritingSession]] = relationship(
        "WritingSession", back_populates="writer", order_by="WritingSession.id"
    )
    tokens: Mapped[list[AnkyToken]] = relationship(
        "AnkyToken", back_populates="writer", order_by="AnkyToken.minted_at"
    )


# ---------------------------------------------------------------------------
# Writing sessions
# ---------------------------------------------------------------------------


class WritingSession(Base):
    """One writing episode. The id is assigned on-chain.

    ``start_time`` is NULL while the session has been referenced by a later
    lifecycle event but its SessionStarted has not been observed.
    """

    __tablename__ = "writing_sessions"
    __table_args__ = (
        Index("idx_writing_sessions_fid", "fid"),
        Index("idx_writing_sessions_start", "start_time", "id"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("writers.fid"), nullable=False)
    start_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    end_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ipfs_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_anky: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_minted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    writer: Mapped[Writer] = relationship("Writer", back_populates="sessions")
    token: Mapped[AnkyToken | None] = relationship("AnkyToken", back_populates="session", uselist=False)


# ---------------------------------------------------------------------------
# Minted tokens
# ---------------------------------------------------------------------------


class AnkyToken(Base):
    """Token minted from a completed Anky session (at most one per session)."""

    __tablename__ = "anky_tokens"
    __table_args__ = (Index("idx_anky_tokens_minted", "minted_at", "id"),)

    id: Mapped[str] = mapped_column(String(78), primary_key=True)
    owner: Mapped[str] = mapped_column(String(42), nullable=False)
    writing_ipfs_hash: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_ipfs_hash: Mapped[str] = mapped_column(Text, nullable=False)
    session_id: Mapped[str] = mapped_column(
        Text, ForeignKey("writing_sessions.id"), unique=True, nullable=False
    )
    minted_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("writers.fid"), nullable=False)

    writer: Mapped[Writer] = relationship("Writer", back_populates="tokens")
    session: Mapped[WritingSession] = relationship("WritingSession", back_populates="token")


# ---------------------------------------------------------------------------
# Attested content hashes (append-only)
# ---------------------------------------------------------------------------


class ValidAnkyHash(Base):
    """Fact that ``ipfs_hash`` was attested as valid writing for ``fid``."""

    __tablename__ = "valid_anky_hashes"

    fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("writers.fid"), primary_key=True)
    ipfs_hash: Mapped[str] = mapped_column(Text, primary_key=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


# ---------------------------------------------------------------------------
# Leaderboard (derived)
# ---------------------------------------------------------------------------


class LeaderboardEntry(Base):
    """Streak leaderboard row, rebuilt wholesale."""

    __tablename__ = "leaderboard"
    __table_args__ = (Index("idx_leaderboard_streak", "current_streak"),)

    fid: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("writers.fid"), primary_key=True, autoincrement=False
    )
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    days_in_ankyverse: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_updated: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_anky: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_anky_minted: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    writer: Mapped[Writer] = relationship("Writer")
