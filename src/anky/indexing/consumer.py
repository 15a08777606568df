"""Redis Stream consumer for Anky contract events.

Reads the ``<prefix>:events`` stream with XREADGROUP in consumer group
``anky-indexer``. Each message carries ``event`` (the kind) and ``data``
(a JSON envelope). Every event is reconciled in its own DB transaction and
ACKed only after commit, so delivery is at-least-once and a failed event is
redelivered.

Ordering is preserved across failures: when an event fails the rest of the
batch is left pending, and the next read replays this consumer's pending
entries (id ``0``) in stream order before taking new messages (id ``>``).
Messages that can never be decoded are ACKed and dropped.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import redis.asyncio as aioredis
import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from anky.indexing.events import LifecycleEvent, parse_event
from anky.indexing.reconciler import SessionLifecycleReconciler

logger = structlog.get_logger()

CONSUMER_GROUP = "anky-indexer"


class PoisonMessage(Exception):
    """A stream message that will never decode into a lifecycle event."""


def decode_message(fields: dict[str, Any] | None) -> LifecycleEvent:
    """Turn raw stream fields into a typed event.

    Raises:
        PoisonMessage: unknown kind, bad JSON or invalid payload.
    """
    if not fields:
        msg = "Message body is empty (entry trimmed from the stream?)"
        raise PoisonMessage(msg)
    kind = fields.get("event")
    raw = fields.get("data")
    if not kind or raw is None:
        msg = "Message is missing 'event' or 'data'"
        raise PoisonMessage(msg)
    try:
        payload = json.loads(raw) if isinstance(raw, (str, bytes)) else dict(raw)
        return parse_event(kind, payload)
    except (ValidationError, ValueError, TypeError) as e:
        raise PoisonMessage(str(e)) from e


class ChainEventConsumer:
    """Processes lifecycle events from a Redis Stream, one transaction each."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        session_factory: async_sessionmaker[AsyncSession],
        reconciler: SessionLifecycleReconciler,
        stream_prefix: str = "anky",
        group: str = CONSUMER_GROUP,
        consumer_name: str = "indexer-1",
        retry_delay: float = 2.0,
    ) -> None:
        self.redis = redis_client
        self.session_factory = session_factory
        self.reconciler = reconciler
        self.stream = f"{stream_prefix}:events"
        self.group = group
        self.consumer_name = consumer_name
        self.retry_delay = retry_delay
        self._running = False
        self._replay_pending = True
        self._batch_failed = False
        self._processed = 0
        self._rejected = 0
        self._errors = 0

    @property
    def stats(self) -> dict[str, int]:
        return {"processed": self._processed, "rejected": self._rejected, "errors": self._errors}

    async def setup_groups(self) -> None:
        """Create the consumer group (idempotent)."""
        try:
            await self.redis.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info("consumer_group_created", stream=self.stream, group=self.group)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def process_message(self, msg_id: str, fields: dict[str, Any] | None) -> bool:
        """Reconcile one message. Returns True if it was ACKed."""
        try:
            event = decode_message(fields)
        except PoisonMessage as e:
            self._rejected += 1
            logger.warning("event_rejected", stream=self.stream, msg_id=msg_id, error=str(e))
            await self.redis.xack(self.stream, self.group, msg_id)
            return True

        async with self.session_factory() as db:
            try:
                await self.reconciler.handle(db, event)
                await db.commit()
            except Exception:
                await db.rollback()
                self._errors += 1
                logger.exception(
                    "event_failed", stream=self.stream, msg_id=msg_id, kind=event.kind.value, fid=event.fid,
                )
                return False

        await self.redis.xack(self.stream, self.group, msg_id)
        self._processed += 1
        return True

    async def consume(self, count: int = 100, block_ms: int = 5000) -> int:
        """Read and process one batch.

        Returns:
            Number of events ACKed. A failure stops the batch; the remaining
            messages stay pending and are replayed on the next call.
        """
        start_id = "0" if self._replay_pending else ">"
        events = await self.redis.xreadgroup(
            groupname=self.group,
            consumername=self.consumer_name,
            streams={self.stream: start_id},
            count=count,
            block=None if self._replay_pending else block_ms,
        )

        messages = [msg for _stream, batch in events or [] for msg in batch]
        if self._replay_pending and not messages:
            self._replay_pending = False
            return 0

        acked = 0
        self._batch_failed = False
        for msg_id, fields in messages:
            if not await self.process_message(msg_id, fields):
                self._replay_pending = True
                self._batch_failed = True
                break
            acked += 1
        return acked

    async def run(self, count: int = 100, block_ms: int = 5000) -> None:
        """Main consumer loop. Replays pending entries first, then follows the stream."""
        await self.setup_groups()
        self._running = True
        self._replay_pending = True
        logger.info("chain_consumer_started", stream=self.stream, consumer=self.consumer_name)

        while self._running:
            try:
                await self.consume(count=count, block_ms=block_ms)
            except aioredis.RedisError:
                logger.exception("chain_consumer_read_failed", stream=self.stream)
                await asyncio.sleep(self.retry_delay)
                continue
            if self._batch_failed:
                await asyncio.sleep(self.retry_delay)

        logger.info("chain_consumer_stopped", **self.stats)

    def stop(self) -> None:
        """Signal the consumer to stop after the current batch."""
        self._running = False
