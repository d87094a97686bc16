"""Schemas for sync requests, filters, progress and results."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from catalog_sync.models.store_connection import MarketplaceType
from catalog_sync.models.sync_job import SyncJobStatus, SyncPhase
from catalog_sync.schemas.common import BaseSchema


class ProductSyncFilters(BaseSchema):
    """Marketplace-agnostic criteria selecting which products to sync.

    ``None`` or empty id lists mean "all".
    Accepts both snake_case and camelCase keys.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
    )

    include_active: bool = True
    include_inactive: bool = False
    brand_ids: list[str] | None = None
    category_ids: list[str] | None = None
    created_after: datetime | None = None

    @field_validator("brand_ids", "category_ids", mode="before")
    @classmethod
    def _ids_as_strings(cls, value: Any) -> Any:
        if value is None:
            return None
        return [str(item) for item in value]


class SyncProgress(BaseSchema):
    """Progress of a processing job."""

    current: int = 0
    total: int | None = None
    percentage: int = 0
    eta_seconds: float | None = None


class SyncErrorEntry(BaseSchema):
    """One per-item failure recorded on a job."""

    external_id: str | None = None
    kind: str
    message: str
    attempts: int = 1


class SyncSummary(BaseSchema):
    """Result counts of a finished job."""

    total_candidates: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    removed: int = 0


class SyncRequestResult(BaseSchema):
    """Returned to the caller when a sync is enqueued."""

    job_id: UUID
    marketplace_type: MarketplaceType
    filters: ProductSyncFilters
    force: bool = False
    estimated_total: int | None = None


class SyncStatusReport(BaseSchema):
    """Queryable state of a sync job."""

    job_id: UUID
    status: SyncJobStatus
    phase: SyncPhase
    progress: SyncProgress
    result: SyncSummary | None = None
    errors: list[SyncErrorEntry] = Field(default_factory=list)
    failed_reason: str | None = None
    eta: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
