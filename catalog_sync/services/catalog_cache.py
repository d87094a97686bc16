"""Catalog metadata cache: categories and brands annotated with product counts."""

import asyncio
import logging
from uuid import UUID

from catalog_sync.core.config import settings
from catalog_sync.core.exceptions import ConnectionRemovedError
from catalog_sync.integrations.registry import AdapterFactory, adapter_for_connection, create_adapter
from catalog_sync.models.catalog_cache import CatalogCacheKind
from catalog_sync.models.store_connection import StoreConnection
from catalog_sync.schemas.catalog import CatalogCacheItem, CatalogMetadata
from catalog_sync.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


class CatalogMetadataCache:
    """Serve category/brand lists for filter UIs from a TTL cache.

    A fresh record is served without touching the marketplace. An absent,
    expired or force-refreshed record is recomputed synchronously: the full
    list is fetched, each entry is probed in small concurrent batches, empty
    entries are dropped and the record is replaced wholesale.
    """

    def __init__(
        self,
        store: CatalogStore,
        adapter_factory: AdapterFactory = create_adapter,
        *,
        batch_size: int | None = None,
        ttl_hours: int | None = None,
    ) -> None:
        self.store = store
        self.adapter_factory = adapter_factory
        self.batch_size = batch_size or settings.catalog_probe_batch_size
        self.ttl_hours = ttl_hours or settings.catalog_cache_ttl_hours

    async def get(
        self,
        connection_id: UUID,
        kind: CatalogCacheKind,
        force_refresh: bool = False,
    ) -> CatalogMetadata:
        """Return entries with at least one product, refreshing when needed."""
        connection = await self.store.get_connection(connection_id)
        if connection is None:
            raise ConnectionRemovedError(f"Store connection {connection_id} not found")

        if not force_refresh:
            record = await self.store.get_catalog_cache(connection_id, kind)
            if record is not None and not record.is_expired():
                items = [
                    CatalogCacheItem.model_validate(item)
                    for item in record.items
                    if item.get("product_count", 0) > 0
                ]
                logger.debug("Serving cached %s list for connection %s", kind.value, connection_id)
                return CatalogMetadata(kind=kind.value, items=items)

        items = await self.refresh(connection, kind)
        return CatalogMetadata(kind=kind.value, items=items)

    async def refresh(self, connection: StoreConnection, kind: CatalogCacheKind) -> list[CatalogCacheItem]:
        """Recompute and persist the (connection, kind) cache record."""
        adapter = adapter_for_connection(connection, self.adapter_factory)
        entries = await adapter.fetch_catalog(kind)
        logger.info(
            "Counting products for %d %s entries of connection %s",
            len(entries),
            kind.value,
            connection.id,
        )

        counted: list[CatalogCacheItem] = []
        for i in range(0, len(entries), self.batch_size):
            batch = entries[i : i + self.batch_size]
            counts = await asyncio.gather(*(adapter.count_products_for(kind, entry.id) for entry in batch))
            counted.extend(
                CatalogCacheItem(**entry.model_dump(), product_count=count)
                for entry, count in zip(batch, counts, strict=True)
            )

        items = [item for item in counted if item.product_count > 0]
        logger.info(
            "Caching %d %s entries with products (dropped %d empty)",
            len(items),
            kind.value,
            len(counted) - len(items),
        )
        await self.store.replace_catalog_cache(connection, kind, items, self.ttl_hours)
        return items

    async def invalidate(self, connection_id: UUID, kind: CatalogCacheKind | None = None) -> int:
        """Expire cached records so the next ``get`` recomputes them."""
        return await self.store.invalidate_catalog_cache(connection_id, kind)
