"""Schemas for store connection tests and status."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from catalog_sync.models.store_connection import MarketplaceType, SyncStatus
from catalog_sync.schemas.common import BaseSchema


class ConnectionTestResult(BaseSchema):
    """Outcome of a credential test. Failures are reported, never raised."""

    success: bool
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_kind: str | None = None


class ConnectionInfo(BaseSchema):
    """Public view of a store connection (credentials never included)."""

    id: UUID
    store_name: str
    marketplace_type: MarketplaceType
    is_active: bool
    last_sync: datetime | None = None
    sync_status: SyncStatus


class MarketplaceStatus(BaseSchema):
    """Connection state of one connectable marketplace within a workspace."""

    marketplace_type: MarketplaceType
    connected: bool
    sync_supported: bool = False
    connection: ConnectionInfo | None = None
    product_count: int = 0
