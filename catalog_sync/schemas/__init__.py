"""Pydantic schemas for engine inputs and outputs."""

from catalog_sync.schemas.catalog import CatalogCacheItem, CatalogEntry, CatalogMetadata
from catalog_sync.schemas.common import BaseSchema
from catalog_sync.schemas.connection import ConnectionInfo, ConnectionTestResult, MarketplaceStatus
from catalog_sync.schemas.product import CanonicalProduct, ProductImage, ProductVariant
from catalog_sync.schemas.sync import (
    ProductSyncFilters,
    SyncErrorEntry,
    SyncProgress,
    SyncRequestResult,
    SyncStatusReport,
    SyncSummary,
)

__all__ = [
    "BaseSchema",
    "CanonicalProduct",
    "ProductImage",
    "ProductVariant",
    "CatalogEntry",
    "CatalogCacheItem",
    "CatalogMetadata",
    "ConnectionInfo",
    "ConnectionTestResult",
    "MarketplaceStatus",
    "ProductSyncFilters",
    "SyncErrorEntry",
    "SyncProgress",
    "SyncRequestResult",
    "SyncStatusReport",
    "SyncSummary",
]
