"""arq worker for the chain event consumer and the leaderboard rebuild.

Runs as a separate process. On startup the worker launches
``consume_chain_events`` as a background task that follows the event stream
until shutdown; a cron job rebuilds the leaderboard every 15 minutes.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from arq import cron
from arq.connections import RedisSettings

from anky.config import get_settings
from anky.database import close_db, get_session_factory, init_db
from anky.indexing.consumer import ChainEventConsumer
from anky.indexing.ledger import JsonRpcLedgerReader
from anky.indexing.reconciler import SessionLifecycleReconciler
from anky.leaderboard.service import rebuild_leaderboard
from anky.middleware.logging import setup_logging
from anky.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open DB, Redis and RPC clients and build the consumer."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    rpc_client = httpx.AsyncClient(timeout=settings.rpc_timeout_seconds)
    ledger = JsonRpcLedgerReader(
        settings.rpc_url,
        settings.contract_address,
        timeout=settings.rpc_timeout_seconds,
        client=rpc_client,
    )
    consumer = ChainEventConsumer(
        redis_client=get_redis(),
        session_factory=get_session_factory(),
        reconciler=SessionLifecycleReconciler(ledger),
        stream_prefix=settings.stream_prefix,
        group=settings.consumer_group,
        consumer_name=settings.consumer_name,
        retry_delay=settings.consumer_retry_delay_seconds,
    )
    await consumer.setup_groups()

    ctx["rpc_client"] = rpc_client
    ctx["consumer"] = consumer
    ctx["consumer_task"] = asyncio.create_task(consume_chain_events(ctx))
    logger.info("Chain event worker started (consumer=%s)", settings.consumer_name)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Stop the consumer and release connections."""
    consumer: ChainEventConsumer | None = ctx.get("consumer")
    if consumer:
        consumer.stop()

    task: asyncio.Task[None] | None = ctx.get("consumer_task")
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    rpc_client: httpx.AsyncClient | None = ctx.get("rpc_client")
    if rpc_client:
        await rpc_client.aclose()

    await close_redis()
    await close_db()
    logger.info("Chain event worker shut down")


async def consume_chain_events(ctx: dict) -> None:  # type: ignore[type-arg]
    """Long-running task: reconcile events from the stream until shutdown."""
    settings = get_settings()
    consumer: ChainEventConsumer = ctx["consumer"]
    await consumer.run(count=settings.consumer_batch_size, block_ms=settings.consumer_block_ms)


async def rebuild_leaderboard_job(ctx: dict) -> int:  # type: ignore[type-arg]
    """Recompute the streak leaderboard. Returns the number of entries written."""
    settings = get_settings()
    async with get_session_factory()() as db:
        entries = await rebuild_leaderboard(db, size=settings.leaderboard_size)
    return len(entries)


class WorkerSettings:
    """arq worker settings for the chain event consumer."""

    functions = [rebuild_leaderboard_job]
    cron_jobs = [
        cron(rebuild_leaderboard_job, minute={0, 15, 30, 45}, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 4
    job_timeout = 300
