"""Sync job orchestrator: drives one marketplace sync from listing to upsert."""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from catalog_sync.core.config import settings
from catalog_sync.core.exceptions import CredentialError, ProductNotFoundError, SyncEngineError
from catalog_sync.core.logging_config import job_id_var
from catalog_sync.core.retry import RetryPolicy
from catalog_sync.integrations.base import MarketplaceAdapter
from catalog_sync.integrations.registry import AdapterFactory, adapter_for_connection, create_adapter
from catalog_sync.models.base import utcnow
from catalog_sync.models.store_connection import StoreConnection, SyncStatus
from catalog_sync.models.sync_job import MARKETPLACE_SYNC_JOB, SyncJob, SyncJobStatus, SyncPhase
from catalog_sync.schemas.sync import SyncErrorEntry, SyncProgress, SyncSummary
from catalog_sync.services.catalog_store import CatalogStore, UpsertOutcome
from catalog_sync.services.filter_translator import NativeQuery, translate_filters
from catalog_sync.workers.job_queue import JobQueue

logger = logging.getLogger(__name__)

# Percentage shown while a job is still running
MAX_RUNNING_PERCENTAGE = 99


class SyncCancelledError(Exception):
    """Raised between pages when cancellation was requested."""


class LeaseLostError(Exception):
    """Raised when the job no longer holds its store connection lease."""


@dataclass
class _SyncRun:
    """Counters and bookkeeping for one job execution."""

    max_errors: int
    started: float
    total: int | None = None
    processed: int = 0
    percentage: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    pages: int = 0
    seen: set[str] = field(default_factory=set)
    not_found: set[str] = field(default_factory=set)
    errors: list[SyncErrorEntry] = field(default_factory=list)

    def record(self, outcome: UpsertOutcome | None) -> None:
        if outcome is UpsertOutcome.CREATED:
            self.created += 1
        elif outcome is UpsertOutcome.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def record_error(self, external_id: str, exc: Exception) -> None:
        self.errored += 1
        if isinstance(exc, ProductNotFoundError):
            self.not_found.add(external_id)
        if len(self.errors) < self.max_errors:
            self.errors.append(
                SyncErrorEntry(
                    external_id=external_id,
                    kind=getattr(exc, "kind", "error"),
                    message=str(exc) or type(exc).__name__,
                    attempts=getattr(exc, "attempts", 1) or 1,
                )
            )

    def summary(self, removed: int = 0) -> SyncSummary:
        return SyncSummary(
            total_candidates=len(self.seen),
            created=self.created,
            updated=self.updated,
            skipped=self.skipped,
            errored=self.errored,
            removed=removed,
        )


class SyncOrchestrator:
    """Process sync jobs leased from the job queue.

    Per-item failures become entries in the job's error list. Credential
    errors and listing failures that survive the retry policy fail the whole
    job. Products already upserted are kept in every outcome.
    """

    def __init__(
        self,
        store: CatalogStore,
        queue: JobQueue,
        adapter_factory: AdapterFactory = create_adapter,
        retry_policy: RetryPolicy | None = None,
        *,
        page_size: int | None = None,
        item_concurrency: int | None = None,
        item_delay: float | None = None,
        max_errors: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.queue = queue
        self.adapter_factory = adapter_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.page_size = page_size or settings.sync_page_size
        self.item_concurrency = item_concurrency or settings.sync_item_concurrency
        self.item_delay = settings.sync_item_delay_ms / 1000 if item_delay is None else item_delay
        self.max_errors = settings.sync_max_errors_recorded if max_errors is None else max_errors
        self.clock = clock

    async def run_next(self, job_type: str = MARKETPLACE_SYNC_JOB) -> SyncJob | None:
        """Lease and process one job. Returns None when nothing is dispatchable."""
        job = await self.queue.dequeue_and_lease(job_type)
        if job is None:
            return None
        await self.process(job)
        return job

    async def process(self, job: SyncJob) -> SyncJobStatus:
        """Run a leased job to a terminal status."""
        token = job_id_var.set(str(job.id))
        try:
            return await self._process(job)
        finally:
            job_id_var.reset(token)

    async def _process(self, job: SyncJob) -> SyncJobStatus:
        connection = await self.store.get_connection(job.store_connection_id)
        if connection is None or connection.workspace_id != job.workspace_id or not connection.is_active:
            logger.warning("Store connection %s removed or inactive, failing job %s", job.store_connection_id, job.id)
            await self.queue.report_result(job.id, SyncJobStatus.FAILED, error="Store connection removed")
            return SyncJobStatus.FAILED

        run = _SyncRun(max_errors=self.max_errors, started=self.clock())
        await self.store.mark_connection_sync(connection.id, SyncStatus.SYNCING)
        logger.info(
            "Starting %s sync for connection %s (force=%s)",
            connection.marketplace_type.value,
            connection.id,
            job.force,
        )

        try:
            adapter = adapter_for_connection(connection, self.adapter_factory)
            query = translate_filters(connection.marketplace_type, job.filters)
            await self._sync(job, adapter, query, connection, run)
        except SyncCancelledError:
            logger.info("Job %s cancelled after %d items", job.id, run.processed)
            await self.queue.report_result(
                job.id,
                SyncJobStatus.CANCELLED,
                summary=run.summary(),
                error="Cancelled by request",
                errors=run.errors,
            )
            await self.store.mark_connection_sync(connection.id, SyncStatus.FAILED, last_sync=utcnow())
            return SyncJobStatus.CANCELLED
        except LeaseLostError:
            logger.error("Job %s lost its connection lease after %d items, stopping", job.id, run.processed)
            await self._abandon(job, run)
            return SyncJobStatus.FAILED
        except SyncEngineError as exc:
            logger.exception("Sync job %s failed: %s", job.id, exc)
            await self._fail(job, connection, run, str(exc))
            return SyncJobStatus.FAILED
        except Exception as exc:
            await self._fail(job, connection, run, f"Unexpected error: {exc}")
            raise

        removed = 0
        if job.force:
            removed = await self.store.delete_products_not_in(connection, run.seen - run.not_found)
            logger.info("Removed %d products no longer listed", removed)

        summary = run.summary(removed=removed)
        await self.store.mark_connection_sync(connection.id, SyncStatus.COMPLETED, last_sync=utcnow())
        await self.store.invalidate_catalog_cache(connection.id)
        await self.queue.report_result(job.id, SyncJobStatus.COMPLETED, summary=summary, errors=run.errors)
        logger.info(
            "Job %s completed: %d created, %d updated, %d skipped, %d errored",
            job.id,
            summary.created,
            summary.updated,
            summary.skipped,
            summary.errored,
        )
        return SyncJobStatus.COMPLETED

    async def _fail(self, job: SyncJob, connection: StoreConnection, run: _SyncRun, reason: str) -> None:
        await self.queue.report_result(
            job.id,
            SyncJobStatus.FAILED,
            summary=run.summary(),
            error=reason,
            errors=run.errors,
        )
        await self.store.mark_connection_sync(connection.id, SyncStatus.FAILED, last_sync=utcnow())

    async def _abandon(self, job: SyncJob, run: _SyncRun) -> None:
        """Fail a job whose lease expired, unless it was already recovered.

        The connection status is left alone: another job may own it by now.
        """
        current = await self.queue.get_status(job.id)
        if current is None or current.status != SyncJobStatus.PROCESSING or current.attempts_made != job.attempts_made:
            return
        await self.queue.report_result(
            job.id,
            SyncJobStatus.FAILED,
            summary=run.summary(),
            error="Lease lost",
            errors=run.errors,
        )

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def _sync(
        self,
        job: SyncJob,
        adapter: MarketplaceAdapter,
        query: NativeQuery,
        connection: StoreConnection,
        run: _SyncRun,
    ) -> None:
        await self._progress(job, SyncProgress(), phase=SyncPhase.SCANNING)
        run.total = await adapter.estimate_product_count(query)
        if run.total is not None:
            logger.info("Estimated %d candidate products", run.total)
            await self._progress(
                job,
                SyncProgress(total=run.total),
                phase=SyncPhase.SCANNING,
                estimated_total=run.total,
            )

        semaphore = asyncio.Semaphore(self.item_concurrency)
        page: list[str] = []
        async with contextlib.aclosing(adapter.iter_candidate_ids(query, self.retry_policy)) as candidates:
            async for external_id in candidates:
                if external_id in run.seen:
                    adapter.discard_prefetched(external_id)
                    continue
                run.seen.add(external_id)
                page.append(external_id)
                if len(page) >= self.page_size:
                    await self._run_page(job, adapter, query, connection, run, page, semaphore)
                    page = []

        # Listing is exhausted, so the candidate count is now exact
        run.total = len(run.seen)
        if page:
            await self._run_page(job, adapter, query, connection, run, page, semaphore)

    async def _run_page(
        self,
        job: SyncJob,
        adapter: MarketplaceAdapter,
        query: NativeQuery,
        connection: StoreConnection,
        run: _SyncRun,
        page: list[str],
        semaphore: asyncio.Semaphore,
    ) -> None:
        if await self.queue.is_cancel_requested(job.id):
            raise SyncCancelledError

        results = await asyncio.gather(
            *(self._sync_item(adapter, query, connection, external_id, semaphore) for external_id in page),
            return_exceptions=True,
        )
        for external_id, result in zip(page, results, strict=True):
            if isinstance(result, CredentialError):
                raise result
            if isinstance(result, Exception):
                logger.warning("Product %s failed: %s", external_id, result)
                run.record_error(external_id, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                run.record(result)

        run.pages += 1
        run.processed += len(page)
        await self._report(job, run)
        logger.info(
            "Page %d done: %d/%s processed",
            run.pages,
            run.processed,
            run.total if run.total is not None else "?",
        )

    async def _sync_item(
        self,
        adapter: MarketplaceAdapter,
        query: NativeQuery,
        connection: StoreConnection,
        external_id: str,
        semaphore: asyncio.Semaphore,
    ) -> UpsertOutcome | None:
        """Fetch, filter, map and upsert one product. None means filtered out."""
        async with semaphore:
            try:
                outcome = await self.retry_policy.call_with_attempts(adapter.fetch_complete_product, external_id)
                native = outcome.value
                if not query.accepts(native):
                    return None
                product = adapter.map_product(native)
                return await self.store.upsert_product(connection, product)
            finally:
                if self.item_delay:
                    await asyncio.sleep(self.item_delay)

    async def _report(self, job: SyncJob, run: _SyncRun) -> None:
        total = run.total
        if total is not None:
            total = max(total, run.processed)

        if total:
            percentage = min(MAX_RUNNING_PERCENTAGE, run.processed * 100 // total)
        else:
            percentage = 0
        run.percentage = max(run.percentage, percentage)

        eta = None
        if run.percentage > 0:
            elapsed = self.clock() - run.started
            eta = round(elapsed * (100 - run.percentage) / run.percentage, 1)

        await self._progress(
            job,
            SyncProgress(current=run.processed, total=total, percentage=run.percentage, eta_seconds=eta),
            phase=SyncPhase.SYNCING,
        )

    async def _progress(
        self,
        job: SyncJob,
        progress: SyncProgress,
        phase: SyncPhase,
        estimated_total: int | None = None,
    ) -> None:
        if not await self.queue.report_progress(job.id, progress, phase=phase, estimated_total=estimated_total):
            raise LeaseLostError
