"""Celery tasks for marketplace catalog sync: queue draining, recovery, metadata refresh."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any
from uuid import UUID

import redis.asyncio as aioredis
from celery.signals import worker_process_init

from catalog_sync.core.config import settings
from catalog_sync.core.database import async_session_maker, engine
from catalog_sync.core.logging_config import setup_logging
from catalog_sync.models.catalog_cache import CatalogCacheKind
from catalog_sync.models.sync_job import MARKETPLACE_SYNC_JOB
from catalog_sync.services.catalog_cache import CatalogMetadataCache
from catalog_sync.services.catalog_store import CatalogStore
from catalog_sync.workers.celery_app import BaseTask, celery_app
from catalog_sync.workers.job_queue import JobQueue
from catalog_sync.workers.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

@worker_process_init.connect
def _init_worker_logging(**_: Any) -> None:
    setup_logging(debug=settings.debug)


def _run_async[T](coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    asyncpg connections are bound to the loop that created them, so pooled
    connections from a previous task's loop must not be reused.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


def _redis() -> aioredis.Redis:
    return aioredis.from_url(str(settings.redis_url))


# ---------------------------------------------------------------------------
# Sync queue
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.catalog.drain_sync_queue",
    base=BaseTask,
    bind=True,
    autoretry_for=(),
)
def drain_sync_queue(self: BaseTask, job_type: str = MARKETPLACE_SYNC_JOB) -> dict[str, Any]:  # noqa: ARG001
    """Lease and run one queued sync job, then hand the rest of the queue to a new task."""
    return _run_async(_drain_sync_queue_async(job_type))


async def _drain_sync_queue_async(job_type: str) -> dict[str, Any]:
    redis = _redis()
    try:
        store = CatalogStore(async_session_maker)
        orchestrator = SyncOrchestrator(store, JobQueue(async_session_maker, redis))
        job = await orchestrator.run_next(job_type)
    finally:
        await redis.aclose()

    if job is None:
        return {"status": "ok", "job": None}

    # Each job gets its own task run; keep draining while jobs were found
    drain_sync_queue.delay(job_type)
    return {"status": "ok", "job": str(job.id)}


def dispatch_drain() -> None:
    """Wake a worker to drain the sync queue. Used as the sync service's dispatch hook."""
    drain_sync_queue.delay()


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.catalog.requeue_stale_sync_jobs",
    base=BaseTask,
    bind=True,
)
def requeue_stale_sync_jobs(self: BaseTask, job_type: str = MARKETPLACE_SYNC_JOB) -> dict[str, Any]:  # noqa: ARG001
    """Periodic task: recover processing jobs whose worker lost its lease."""
    return _run_async(_requeue_stale_async(job_type))


async def _requeue_stale_async(job_type: str) -> dict[str, Any]:
    redis = _redis()
    try:
        recovered = await JobQueue(async_session_maker, redis).requeue_stale(job_type)
    finally:
        await redis.aclose()

    if recovered:
        logger.warning("Recovered %d stale sync jobs", recovered)
        drain_sync_queue.delay(job_type)
    return {"status": "ok", "recovered": recovered}


# ---------------------------------------------------------------------------
# Catalog metadata
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.catalog.refresh_catalog_metadata",
    base=BaseTask,
    bind=True,
)
def refresh_catalog_metadata(self: BaseTask, connection_id: str) -> dict[str, Any]:  # noqa: ARG001
    """Recompute the category and brand caches of a store connection."""
    return _run_async(_refresh_catalog_metadata_async(UUID(connection_id)))


async def _refresh_catalog_metadata_async(connection_id: UUID) -> dict[str, Any]:
    store = CatalogStore(async_session_maker)
    connection = await store.get_connection(connection_id)
    if connection is None or not connection.is_active:
        return {"connection_id": str(connection_id), "status": "skipped", "reason": "no active connection"}

    cache = CatalogMetadataCache(store)
    counts = {}
    for kind in CatalogCacheKind:
        items = await cache.refresh(connection, kind)
        counts[kind.value] = len(items)

    logger.info("Refreshed catalog metadata for connection %s: %s", connection_id, counts)
    return {"connection_id": str(connection_id), "status": "ok", **counts}
