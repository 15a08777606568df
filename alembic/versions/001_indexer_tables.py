"""Indexer tables.

Creates writers, writing_sessions, anky_tokens, valid_anky_hashes and the
derived leaderboard table.

Revision ID: 001_indexer_tables
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_indexer_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Writers ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS writers (
            fid BIGINT PRIMARY KEY,
            current_session_id TEXT,
            total_sessions INTEGER NOT NULL DEFAULT 0
        )
    """)

    # --- Writing Sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS writing_sessions (
            id TEXT PRIMARY KEY,
            fid BIGINT NOT NULL REFERENCES writers(fid),
            start_time BIGINT,
            end_time BIGINT,
            ipfs_hash TEXT,
            is_anky BOOLEAN NOT NULL DEFAULT false,
            is_minted BOOLEAN NOT NULL DEFAULT false
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_writing_sessions_fid
        ON writing_sessions(fid)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_writing_sessions_start
        ON writing_sessions(start_time, id)
    """)

    # --- Anky Tokens ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS anky_tokens (
            id VARCHAR(78) PRIMARY KEY,
            owner VARCHAR(42) NOT NULL,
            writing_ipfs_hash TEXT NOT NULL,
            metadata_ipfs_hash TEXT NOT NULL,
            session_id TEXT NOT NULL UNIQUE REFERENCES writing_sessions(id),
            minted_at BIGINT NOT NULL,
            fid BIGINT NOT NULL REFERENCES writers(fid)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_anky_tokens_minted
        ON anky_tokens(minted_at, id)
    """)

    # --- Valid Anky Hashes (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS valid_anky_hashes (
            fid BIGINT NOT NULL REFERENCES writers(fid),
            ipfs_hash TEXT NOT NULL,
            created_at BIGINT NOT NULL,
            PRIMARY KEY (fid, ipfs_hash)
        )
    """)

    # --- Leaderboard (derived, rebuilt wholesale) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard (
            fid BIGINT PRIMARY KEY REFERENCES writers(fid),
            current_streak INTEGER NOT NULL DEFAULT 0,
            max_streak INTEGER NOT NULL DEFAULT 0,
            days_in_ankyverse INTEGER NOT NULL DEFAULT 0,
            last_updated BIGINT NOT NULL,
            total_sessions INTEGER NOT NULL DEFAULT 0,
            total_anky INTEGER NOT NULL DEFAULT 0,
            total_anky_minted INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_streak
        ON leaderboard(current_streak DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS leaderboard CASCADE")
    op.execute("DROP TABLE IF EXISTS valid_anky_hashes CASCADE")
    op.execute("DROP TABLE IF EXISTS anky_tokens CASCADE")
    op.execute("DROP TABLE IF EXISTS writing_sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS writers CASCADE")
