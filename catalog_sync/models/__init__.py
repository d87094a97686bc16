"""SQLAlchemy models."""

from catalog_sync.models.base import Base
from catalog_sync.models.catalog_cache import CatalogCache, CatalogCacheKind
from catalog_sync.models.product import Product, ProductStatus
from catalog_sync.models.store_connection import MarketplaceType, StoreConnection, SyncStatus
from catalog_sync.models.sync_job import SyncJob, SyncJobStatus, SyncPhase

__all__ = [
    # Base
    "Base",
    # Connections
    "StoreConnection",
    "MarketplaceType",
    "SyncStatus",
    # Products
    "Product",
    "ProductStatus",
    # Catalog metadata
    "CatalogCache",
    "CatalogCacheKind",
    # Sync jobs
    "SyncJob",
    "SyncJobStatus",
    "SyncPhase",
]
