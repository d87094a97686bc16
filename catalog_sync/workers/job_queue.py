"""Job queue for sync jobs: Redis ordering and leases over durable job rows.

The ``sync_jobs`` table is the source of truth for job state. Redis holds the
dispatch order (a sorted set per job type) and one lease per store
connection, which is what keeps at most one job per connection processing.
"""

import enum
import logging
import time
from datetime import datetime
from typing import Any
from uuid import UUID

import redis.asyncio as aioredis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import settings
from catalog_sync.models.base import utcnow
from catalog_sync.models.store_connection import MarketplaceType
from catalog_sync.models.sync_job import MARKETPLACE_SYNC_JOB, SyncJob, SyncJobStatus, SyncPhase
from catalog_sync.schemas.sync import SyncErrorEntry, SyncProgress, SyncSummary

logger = logging.getLogger(__name__)

QUEUE_KEY = "sync:queue:{job_type}"
LEASE_KEY = "sync:lease:connection:{connection_id}"

# Priority dominates the score; enqueue time in ms breaks ties (FIFO)
_PRIORITY_WEIGHT = 10**13

ACTIVE_STATUSES = (SyncJobStatus.QUEUED, SyncJobStatus.PROCESSING)


class JobPriority(enum.IntEnum):
    """Dispatch priority; higher runs first."""

    LOW = 1
    NORMAL = 5
    HIGH = 10


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return value.decode() if isinstance(value, bytes) else str(value)


class JobQueue:
    """Enqueue, lease, track and finish sync jobs."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        redis: aioredis.Redis,
        *,
        lease_ttl: int | None = None,
        scan_limit: int | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.redis = redis
        self.lease_ttl = lease_ttl or settings.sync_lease_ttl_seconds
        self.scan_limit = scan_limit or settings.sync_queue_scan_limit

    @staticmethod
    def queue_key(job_type: str) -> str:
        return QUEUE_KEY.format(job_type=job_type)

    @staticmethod
    def lease_key(connection_id: UUID) -> str:
        return LEASE_KEY.format(connection_id=connection_id)

    @staticmethod
    def _score(priority: int, now_ms: int | None = None) -> float:
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        return float(-int(priority) * _PRIORITY_WEIGHT + now_ms)

    async def _load(self, session: AsyncSession, job_id: UUID | str) -> SyncJob | None:
        return await session.get(SyncJob, UUID(str(job_id)))

    # === Enqueue ===

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        priority: int = JobPriority.NORMAL,
        attempts: int | None = None,
    ) -> UUID:
        """Persist a queued job and schedule it for dispatch.

        ``payload`` carries workspace_id, store_connection_id and optionally
        user_id, marketplace_type, filters and force.
        """
        marketplace_type = payload.get("marketplace_type")
        job = SyncJob(
            workspace_id=UUID(str(payload["workspace_id"])),
            user_id=UUID(str(payload["user_id"])) if payload.get("user_id") else None,
            store_connection_id=UUID(str(payload["store_connection_id"])),
            job_type=job_type,
            marketplace_type=MarketplaceType(marketplace_type) if marketplace_type else None,
            filters=payload.get("filters") or {},
            force=bool(payload.get("force", False)),
            status=SyncJobStatus.QUEUED,
            phase=SyncPhase.QUEUED,
            priority=int(priority),
            max_attempts=attempts or settings.sync_default_attempts,
            attempts_made=0,
            progress=SyncProgress().model_dump(),
            errors=[],
        )
        async with self.session_maker() as session:
            session.add(job)
            await session.commit()

        await self.redis.zadd(self.queue_key(job_type), {str(job.id): self._score(priority)})
        logger.info("Enqueued %s job %s for connection %s", job_type, job.id, job.store_connection_id)
        return job.id

    # === Dispatch ===

    async def dequeue_and_lease(self, job_type: str = MARKETPLACE_SYNC_JOB) -> SyncJob | None:
        """Take the first queued job whose store connection is not already leased.

        Jobs for a connection that is busy stay queued behind the active one.
        """
        key = self.queue_key(job_type)
        candidates = await self.redis.zrange(key, 0, self.scan_limit - 1)

        for raw_id in candidates:
            job_id = _text(raw_id)
            async with self.session_maker() as session:
                job = await self._load(session, job_id)
                if job is None or job.status != SyncJobStatus.QUEUED:
                    await self.redis.zrem(key, job_id)
                    continue

                lease_key = self.lease_key(job.store_connection_id)
                acquired = await self.redis.set(lease_key, job_id, nx=True, ex=self.lease_ttl)
                if not acquired:
                    continue

                if not await self.redis.zrem(key, job_id):
                    # Another worker dispatched it between zrange and zrem
                    await self._release_lease(job.store_connection_id, job_id)
                    continue

                job.status = SyncJobStatus.PROCESSING
                job.attempts_made += 1
                job.cancel_requested = False
                job.started_at = utcnow()
                await session.commit()
                logger.info(
                    "Leased job %s for connection %s (attempt %d/%d)",
                    job.id,
                    job.store_connection_id,
                    job.attempts_made,
                    job.max_attempts,
                )
                return job

        return None

    async def renew_lease(self, job: SyncJob) -> bool:
        """Extend the job's connection lease. False when the lease was lost."""
        lease_key = self.lease_key(job.store_connection_id)
        if _text(await self.redis.get(lease_key)) != str(job.id):
            return False
        await self.redis.expire(lease_key, self.lease_ttl)
        return True

    async def _release_lease(self, connection_id: UUID, job_id: UUID | str) -> None:
        lease_key = self.lease_key(connection_id)
        if _text(await self.redis.get(lease_key)) == str(job_id):
            await self.redis.delete(lease_key)

    # === Reporting ===

    async def report_progress(
        self,
        job_id: UUID,
        progress: SyncProgress,
        phase: SyncPhase | None = None,
        estimated_total: int | None = None,
    ) -> bool:
        """Record progress; the stored percentage never decreases.

        Returns False when the job no longer holds its connection lease.
        """
        async with self.session_maker() as session:
            job = await self._load(session, job_id)
            if job is None:
                return False
            previous = SyncProgress.model_validate(job.progress or {})
            update = progress.model_copy(
                update={"percentage": max(previous.percentage, progress.percentage)}
            )
            job.progress = update.model_dump()
            if phase is not None:
                job.phase = phase
            if estimated_total is not None:
                job.estimated_total = estimated_total
            await session.commit()
        return await self.renew_lease(job)

    async def report_result(
        self,
        job_id: UUID,
        status: SyncJobStatus,
        summary: SyncSummary | None = None,
        error: str | None = None,
        errors: list[SyncErrorEntry] | None = None,
    ) -> None:
        """Move a job to a terminal status and release its connection lease."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal job status")

        async with self.session_maker() as session:
            job = await self._load(session, job_id)
            if job is None:
                return
            job.status = status
            job.phase = SyncPhase.FINISHED
            job.finished_at = utcnow()
            if summary is not None:
                job.result = summary.model_dump()
            if errors is not None:
                job.errors = [entry.model_dump() for entry in errors]
            if error is not None:
                job.failed_reason = error
            if status == SyncJobStatus.COMPLETED:
                job.progress = {**(job.progress or {}), "percentage": 100, "eta_seconds": 0}
            await session.commit()

        await self.redis.zrem(self.queue_key(job.job_type), str(job.id))
        await self._release_lease(job.store_connection_id, job.id)
        logger.info("Job %s finished with status %s", job.id, status.value)

    async def get_status(self, job_id: UUID) -> SyncJob | None:
        async with self.session_maker() as session:
            return await self._load(session, job_id)

    async def active_job_for_connection(self, connection_id: UUID) -> SyncJob | None:
        """The oldest queued or processing job of a store connection, if any."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(SyncJob)
                .where(
                    SyncJob.store_connection_id == connection_id,
                    SyncJob.status.in_(ACTIVE_STATUSES),
                )
                .order_by(SyncJob.created_at)
                .limit(1)
            )
            return result.scalar_one_or_none()

    # === Cancellation ===

    async def request_cancel(self, job_id: UUID) -> SyncJob | None:
        """Cancel a queued job now, or flag a processing job to stop between pages."""
        async with self.session_maker() as session:
            job = await self._load(session, job_id)
            if job is None or job.status.is_terminal:
                return job
            if job.status == SyncJobStatus.QUEUED:
                job.status = SyncJobStatus.CANCELLED
                job.phase = SyncPhase.FINISHED
                job.finished_at = utcnow()
                job.failed_reason = "Cancelled before start"
            else:
                job.cancel_requested = True
            await session.commit()

        if job.status == SyncJobStatus.CANCELLED:
            await self.redis.zrem(self.queue_key(job.job_type), str(job.id))
        return job

    async def is_cancel_requested(self, job_id: UUID) -> bool:
        async with self.session_maker() as session:
            job = await self._load(session, job_id)
            return bool(job and job.cancel_requested)

    # === Recovery ===

    async def requeue_stale(self, job_type: str = MARKETPLACE_SYNC_JOB, now: datetime | None = None) -> int:
        """Recover processing jobs whose worker lost its lease.

        Jobs with attempts left go back to the queue; the rest fail.
        """
        recovered = 0
        async with self.session_maker() as session:
            result = await session.execute(
                select(SyncJob).where(
                    SyncJob.job_type == job_type,
                    SyncJob.status == SyncJobStatus.PROCESSING,
                )
            )
            jobs = list(result.scalars().all())

            requeue: list[SyncJob] = []
            for job in jobs:
                holder = _text(await self.redis.get(self.lease_key(job.store_connection_id)))
                if holder == str(job.id):
                    continue

                recovered += 1
                if job.attempts_made < job.max_attempts:
                    job.status = SyncJobStatus.QUEUED
                    job.phase = SyncPhase.QUEUED
                    requeue.append(job)
                    logger.warning("Requeueing stale job %s (attempt %d)", job.id, job.attempts_made)
                else:
                    job.status = SyncJobStatus.FAILED
                    job.phase = SyncPhase.FINISHED
                    job.finished_at = now or utcnow()
                    job.failed_reason = f"Worker lost after {job.attempts_made} attempts"
                    logger.error("Failing stale job %s after %d attempts", job.id, job.attempts_made)
            await session.commit()

        for job in requeue:
            await self.redis.zadd(self.queue_key(job_type), {str(job.id): self._score(job.priority)})
        return recovered
