"""Celery application for the sync workers."""

from celery import Celery

from catalog_sync.core.config import settings
from catalog_sync.core.exceptions import MarketplaceTransportError

SYNC_QUEUE = "sync"

celery_app = Celery(
    "catalog_sync",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=["catalog_sync.workers.tasks.catalog"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # At-least-once: a task lost with its worker is redelivered
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # No task time limit: the job lease, not the task, bounds a stuck sync
    broker_transport_options={"visibility_timeout": settings.sync_lease_ttl_seconds * 2},
    result_expires=3600,
    # One sync job at a time per worker process
    worker_prefetch_multiplier=1,
    task_default_queue=SYNC_QUEUE,
    task_routes={"tasks.catalog.*": {"queue": SYNC_QUEUE}},
    beat_schedule={
        "drain-sync-queue": {
            "task": "tasks.catalog.drain_sync_queue",
            "schedule": 30.0,
        },
        "requeue-stale-sync-jobs": {
            "task": "tasks.catalog.requeue_stale_sync_jobs",
            "schedule": 300.0,
        },
    },
)


class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Base task: transient marketplace failures are retried with backoff, anything else fails the task."""

    abstract = True
    autoretry_for = (MarketplaceTransportError,)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = settings.retry_max_attempts
