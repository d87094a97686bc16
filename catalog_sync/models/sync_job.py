"""Sync job model: durable record of one marketplace synchronization run."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, JSONType
from catalog_sync.models.store_connection import MarketplaceType

MARKETPLACE_SYNC_JOB = "marketplace_sync"


class SyncJobStatus(str, enum.Enum):
    """Lifecycle of a sync job: queued -> processing -> terminal."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED, SyncJobStatus.CANCELLED)


class SyncPhase(str, enum.Enum):
    """What a processing job is currently doing."""

    QUEUED = "queued"
    SCANNING = "scanning"  # Estimating and listing candidate ids
    SYNCING = "syncing"  # Fetching, mapping and upserting pages
    FINISHED = "finished"


class SyncJob(Base):
    """A sync request and everything the orchestrator reported about it.

    Jobs are created by the sync service, mutated only by the job queue on
    behalf of the orchestrator, and kept after completion for audit.
    """

    __tablename__ = "sync_jobs"

    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    store_connection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )
    job_type: Mapped[str] = mapped_column(String(50), default=MARKETPLACE_SYNC_JOB, nullable=False)
    marketplace_type: Mapped[MarketplaceType | None] = mapped_column(
        Enum(
            MarketplaceType,
            name="marketplace_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
    )

    # Request snapshot
    filters: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    force: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Queue bookkeeping
    status: Mapped[SyncJobStatus] = mapped_column(
        Enum(
            SyncJobStatus,
            name="sync_job_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=SyncJobStatus.QUEUED,
        nullable=False,
        index=True,
    )
    priority: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    attempts_made: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Progress reporting
    phase: Mapped[SyncPhase] = mapped_column(
        Enum(
            SyncPhase,
            name="sync_phase",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=SyncPhase.QUEUED,
        nullable=False,
    )
    progress: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    estimated_total: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Outcome
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    errors: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)
    failed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SyncJob {self.id} {self.status.value}>"
