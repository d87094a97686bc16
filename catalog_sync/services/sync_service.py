"""Sync request service: validates, enqueues, reports and cancels sync jobs."""

import logging
import math
from collections.abc import Callable, Mapping
from typing import Any
from uuid import UUID

from catalog_sync.core.exceptions import InvalidSyncFiltersError, SyncAlreadyActiveError, UnsupportedMarketplaceError
from catalog_sync.integrations.registry import AdapterFactory, adapter_for_connection, create_adapter, supports_sync
from catalog_sync.models.sync_job import MARKETPLACE_SYNC_JOB, SyncJob, SyncJobStatus
from catalog_sync.schemas.sync import (
    ProductSyncFilters,
    SyncErrorEntry,
    SyncProgress,
    SyncRequestResult,
    SyncStatusReport,
    SyncSummary,
)
from catalog_sync.services.catalog_store import CatalogStore
from catalog_sync.services.connection_service import ensure_active
from catalog_sync.services.filter_translator import filters_exclude_all, normalize_filters, translate_filters
from catalog_sync.workers.job_queue import JobPriority, JobQueue

logger = logging.getLogger(__name__)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_eta(seconds: float | None) -> str | None:
    """Human-readable time remaining, e.g. ``"3 minutes remaining"``."""
    if seconds is None or seconds < 0:
        return None
    if seconds < 60:
        return f"{_plural(math.ceil(seconds), 'second')} remaining"
    if seconds < 3600:
        return f"{_plural(math.ceil(seconds / 60), 'minute')} remaining"
    hours = int(seconds // 3600)
    minutes = math.ceil((seconds % 3600) / 60)
    if minutes == 60:
        hours, minutes = hours + 1, 0
    if minutes == 0:
        return f"{_plural(hours, 'hour')} remaining"
    return f"{_plural(hours, 'hour')} {_plural(minutes, 'minute')} remaining"


class SyncService:
    """Entry point for requesting and following product syncs."""

    def __init__(
        self,
        store: CatalogStore,
        queue: JobQueue,
        adapter_factory: AdapterFactory = create_adapter,
        dispatch: Callable[[], Any] | None = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.adapter_factory = adapter_factory
        # Called after every enqueue to wake a worker
        self.dispatch = dispatch

    async def request_sync(
        self,
        workspace_id: UUID,
        user_id: UUID | None,
        connection_id: UUID,
        filters: ProductSyncFilters | Mapping[str, Any] | None = None,
        force: bool = False,
        priority: int = JobPriority.NORMAL,
        reject_if_active: bool = False,
        estimate: bool = True,
    ) -> SyncRequestResult:
        """Validate a sync request and enqueue it.

        A request for a connection that already has an active job is queued
        behind it, or rejected when ``reject_if_active`` is set.

        Raises:
            ConnectionRemovedError: The connection is missing or not in the workspace.
            CredentialError: The connection is inactive or its credentials are unusable.
            UnsupportedMarketplaceError: The marketplace can be connected but not synced.
            InvalidSyncFiltersError: The filters can never match a product.
            SyncAlreadyActiveError: ``reject_if_active`` and a job is already active.
        """
        connection = ensure_active(await self.store.get_connection(connection_id), workspace_id)
        if not supports_sync(connection.marketplace_type):
            raise UnsupportedMarketplaceError(
                f"Product sync is not available for {connection.marketplace_type.value} connections"
            )

        applied = normalize_filters(filters)
        if filters_exclude_all(applied):
            raise InvalidSyncFiltersError("Sync filters exclude every product")

        active = await self.queue.active_job_for_connection(connection.id)
        if active is not None:
            if reject_if_active:
                raise SyncAlreadyActiveError(
                    f"A sync is already {active.status.value} for this store connection (job {active.id})"
                )
            logger.info("Connection %s busy with job %s, new job will wait", connection.id, active.id)

        estimated_total = None
        if estimate:
            adapter = adapter_for_connection(connection, self.adapter_factory)
            query = translate_filters(connection.marketplace_type, applied)
            estimated_total = await adapter.estimate_product_count(query)

        job_id = await self.queue.enqueue(
            MARKETPLACE_SYNC_JOB,
            {
                "workspace_id": str(workspace_id),
                "user_id": str(user_id) if user_id else None,
                "store_connection_id": str(connection.id),
                "marketplace_type": connection.marketplace_type.value,
                "filters": applied.model_dump(mode="json"),
                "force": force,
            },
            priority=priority,
        )
        if self.dispatch is not None:
            self.dispatch()

        return SyncRequestResult(
            job_id=job_id,
            marketplace_type=connection.marketplace_type,
            filters=applied,
            force=force,
            estimated_total=estimated_total,
        )

    async def get_sync_status(self, job_id: UUID) -> SyncStatusReport | None:
        job = await self.queue.get_status(job_id)
        if job is None:
            return None
        return self._report(job)

    async def cancel_sync(self, job_id: UUID) -> SyncStatusReport | None:
        """Cancel a queued job, or ask a processing one to stop after its current page."""
        job = await self.queue.request_cancel(job_id)
        if job is None:
            return None
        logger.info("Cancellation requested for job %s (status %s)", job_id, job.status.value)
        return self._report(job)

    @staticmethod
    def _report(job: SyncJob) -> SyncStatusReport:
        progress = SyncProgress.model_validate(job.progress or {})
        eta = None
        if job.status == SyncJobStatus.PROCESSING:
            eta = format_eta(progress.eta_seconds)
        return SyncStatusReport(
            job_id=job.id,
            status=job.status,
            phase=job.phase,
            progress=progress,
            result=SyncSummary.model_validate(job.result) if job.result else None,
            errors=[SyncErrorEntry.model_validate(entry) for entry in job.errors or []],
            failed_reason=job.failed_reason,
            eta=eta,
            created_at=job.created_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
        )
