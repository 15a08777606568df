"""Session lifecycle reconciliation.

Folds SessionStarted / SessionEndedAbruptly / SessionEnded / AnkyWritten /
AnkyMinted events into Writer, WritingSession, AnkyToken and ValidAnkyHash
records. Delivery is at-least-once and a session may be referenced by any
event kind before its SessionStarted is seen, so every handler:

1. Creates what it references if absent (unknown start = NULL start_time)
2. Only moves ``is_anky`` / ``is_minted`` from False to True
3. Converges to the same state when the same event is applied again

Handlers never commit. The caller commits once per event so a failure
(e.g. a ledger read) leaves nothing half-applied.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anky.db.models import AnkyToken, ValidAnkyHash, Writer, WritingSession
from anky.indexing.events import (
    AnkyMinted,
    AnkyWritten,
    EventType,
    LifecycleEvent,
    SessionEnded,
    SessionEndedAbruptly,
    SessionStarted,
)
from anky.indexing.ledger import LedgerReader
from anky.indexing.store import EntityStore

logger = structlog.get_logger()

Handler = Callable[[EntityStore, Any], Awaitable[None]]


class SessionLifecycleReconciler:
    """Applies lifecycle events to indexed state through an EntityStore."""

    def __init__(self, ledger: LedgerReader) -> None:
        self.ledger = ledger
        self._handlers: dict[EventType, Handler] = {
            EventType.SESSION_STARTED: self.session_started,
            EventType.SESSION_ENDED_ABRUPTLY: self.session_ended_abruptly,
            EventType.SESSION_ENDED: self.session_ended,
            EventType.ANKY_WRITTEN: self.anky_written,
            EventType.ANKY_MINTED: self.anky_minted,
        }

    async def handle(self, db: AsyncSession, event: LifecycleEvent) -> None:
        """Dispatch one event to its handler using ``db`` for all reads and writes."""
        handler = self._handlers[event.kind]
        await handler(EntityStore(db), event)
        logger.debug("event_reconciled", kind=event.kind.value, fid=event.fid)

    # --- Handlers ---

    async def session_started(self, store: EntityStore, event: SessionStarted) -> None:
        prior = await store.find(WritingSession, event.session_id)
        # Redelivery finds the start already recorded and must not count it again.
        first_start = prior is None or prior.start_time is None
        still_open = prior is None or prior.end_time is None

        def merge_writer(writer: Writer) -> dict[str, Any]:
            patch: dict[str, Any] = {}
            if first_start:
                patch["total_sessions"] = writer.total_sessions + 1
            if still_open:
                patch["current_session_id"] = event.session_id
            return patch

        await store.upsert(
            Writer,
            event.fid,
            {
                "fid": event.fid,
                "current_session_id": event.session_id if still_open else None,
                "total_sessions": 1,
            },
            merge_writer,
        )
        await store.upsert(
            WritingSession,
            event.session_id,
            {
                "id": event.session_id,
                "fid": event.fid,
                "start_time": event.start_time,
                "is_anky": False,
                "is_minted": False,
            },
            lambda session: {"fid": event.fid, "start_time": event.start_time},
        )

    async def session_ended_abruptly(self, store: EntityStore, event: SessionEndedAbruptly) -> None:
        writer = await self._ensure_writer(store, event.fid)
        await store.upsert(
            WritingSession,
            event.session_id,
            {
                "id": event.session_id,
                "fid": event.fid,
                "start_time": None,
                "end_time": event.block_timestamp,
                "is_anky": False,
                "is_minted": False,
            },
            lambda session: {"end_time": event.block_timestamp},
        )
        if writer.current_session_id == event.session_id:
            await store.update(Writer, event.fid, {"current_session_id": None})

    async def session_ended(self, store: EntityStore, event: SessionEnded) -> None:
        writer = await store.find(Writer, event.fid)
        if writer is None or writer.current_session_id is None:
            logger.info("session_ended_without_open_session", fid=event.fid)
            return
        session_id = writer.current_session_id

        # The ledger appends the writing hash of every completed session;
        # the newest entry belongs to the session that just closed.
        count = await self.ledger.completed_session_count(event.fid, block=event.block_number)
        ipfs_hash = await self.ledger.completed_session_at(event.fid, count - 1, block=event.block_number)

        def merge_session(session: WritingSession) -> dict[str, Any]:
            patch: dict[str, Any] = {
                "end_time": event.block_timestamp,
                "is_anky": session.is_anky or event.is_anky,
            }
            if session.ipfs_hash is None:
                patch["ipfs_hash"] = ipfs_hash
            elif session.ipfs_hash != ipfs_hash:
                logger.warning(
                    "session_hash_mismatch",
                    fid=event.fid,
                    session_id=session_id,
                    recorded=session.ipfs_hash,
                    ledger=ipfs_hash,
                )
            return patch

        await store.upsert(
            WritingSession,
            session_id,
            {
                "id": session_id,
                "fid": event.fid,
                "start_time": None,
                "end_time": event.block_timestamp,
                "ipfs_hash": ipfs_hash,
                "is_anky": event.is_anky,
                "is_minted": False,
            },
            merge_session,
        )
        await store.update(Writer, event.fid, {"current_session_id": None})

    async def anky_written(self, store: EntityStore, event: AnkyWritten) -> None:
        await self._ensure_writer(store, event.fid)
        await store.insert_or_ignore(
            ValidAnkyHash,
            (event.fid, event.ipfs_hash),
            {"fid": event.fid, "ipfs_hash": event.ipfs_hash, "created_at": event.written_at},
        )
        await store.upsert(
            WritingSession,
            event.session_id,
            {
                "id": event.session_id,
                "fid": event.fid,
                "start_time": None,
                "ipfs_hash": event.ipfs_hash,
                "is_anky": True,
                "is_minted": False,
            },
            lambda session: {"ipfs_hash": event.ipfs_hash, "is_anky": True},
        )

    async def anky_minted(self, store: EntityStore, event: AnkyMinted) -> None:
        if await store.find(AnkyToken, event.token_id) is not None:
            logger.info("anky_token_already_indexed", fid=event.fid, token_id=event.token_id)
            return

        result = await store.db.execute(
            select(WritingSession)
            .where(
                WritingSession.fid == event.fid,
                WritingSession.is_anky.is_(True),
                WritingSession.is_minted.is_(False),
                WritingSession.ipfs_hash.isnot(None),
            )
            .order_by(WritingSession.end_time.desc().nulls_last(), WritingSession.id.desc())
            .limit(1)
        )
        session = result.scalar_one_or_none()
        if session is None:
            logger.info("anky_minted_without_unminted_session", fid=event.fid, token_id=event.token_id)
            return

        await store.insert_or_ignore(
            AnkyToken,
            event.token_id,
            {
                "id": event.token_id,
                "owner": event.tx_from,
                "writing_ipfs_hash": session.ipfs_hash,
                "metadata_ipfs_hash": event.metadata_ipfs_hash,
                "session_id": session.id,
                "minted_at": event.block_timestamp,
                "fid": event.fid,
            },
        )
        await store.update(WritingSession, session.id, {"is_minted": True})

    # --- Helpers ---

    @staticmethod
    async def _ensure_writer(store: EntityStore, fid: int) -> Writer:
        """Create the writer on first reference without touching an existing row."""
        result = await store.upsert(
            Writer,
            fid,
            {"fid": fid, "current_session_id": None, "total_sessions": 0},
            lambda writer: {},
        )
        return result.record
