"""Catalog Store: persistence for connections, canonical products and metadata caches."""

import enum
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import settings
from catalog_sync.models.base import utcnow
from catalog_sync.models.catalog_cache import CatalogCache, CatalogCacheKind
from catalog_sync.models.product import Product, ProductStatus
from catalog_sync.models.store_connection import MarketplaceType, StoreConnection, SyncStatus
from catalog_sync.schemas.catalog import CatalogCacheItem
from catalog_sync.schemas.product import CanonicalProduct

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 500


class UpsertOutcome(str, enum.Enum):
    """What ``upsert_product`` did with a product."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


class CatalogStore:
    """Read and write catalog records.

    Every method runs in its own short session so concurrent item workers
    never share one.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    # === Store connections ===

    async def get_connection(self, connection_id: UUID) -> StoreConnection | None:
        async with self.session_maker() as session:
            return await session.get(StoreConnection, connection_id)

    async def find_connection(
        self,
        workspace_id: UUID,
        marketplace_type: MarketplaceType,
    ) -> StoreConnection | None:
        async with self.session_maker() as session:
            result = await session.execute(
                select(StoreConnection).where(
                    StoreConnection.workspace_id == workspace_id,
                    StoreConnection.marketplace_type == marketplace_type,
                )
            )
            return result.scalar_one_or_none()

    async def list_connections(self, workspace_id: UUID) -> list[StoreConnection]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(StoreConnection)
                .where(StoreConnection.workspace_id == workspace_id)
                .order_by(StoreConnection.created_at)
            )
            return list(result.scalars().all())

    async def save_connection(
        self,
        *,
        workspace_id: UUID,
        user_id: UUID | None,
        marketplace_type: MarketplaceType,
        store_name: str,
        credentials: dict[str, Any],
    ) -> StoreConnection:
        """Create the workspace's connection for a marketplace, or replace its credentials.

        A replaced connection keeps its id (and therefore its products) and is
        reset to ``pending``.
        """
        async with self.session_maker() as session:
            result = await session.execute(
                select(StoreConnection).where(
                    StoreConnection.workspace_id == workspace_id,
                    StoreConnection.marketplace_type == marketplace_type,
                )
            )
            connection = result.scalar_one_or_none()
            if connection is None:
                connection = StoreConnection(
                    workspace_id=workspace_id,
                    marketplace_type=marketplace_type,
                )
                session.add(connection)

            connection.user_id = user_id
            connection.store_name = store_name
            connection.credentials = credentials
            connection.is_active = True
            connection.sync_status = SyncStatus.PENDING
            await session.commit()
            await session.refresh(connection)
            return connection

    async def deactivate_connection(self, connection_id: UUID) -> None:
        async with self.session_maker() as session:
            connection = await session.get(StoreConnection, connection_id)
            if connection is not None:
                connection.is_active = False
                await session.commit()

    async def delete_connection(self, connection_id: UUID) -> None:
        """Delete a connection together with its products and caches."""
        async with self.session_maker() as session:
            await session.execute(delete(Product).where(Product.store_connection_id == connection_id))
            await session.execute(delete(CatalogCache).where(CatalogCache.store_connection_id == connection_id))
            await session.execute(delete(StoreConnection).where(StoreConnection.id == connection_id))
            await session.commit()

    async def mark_connection_sync(
        self,
        connection_id: UUID,
        status: SyncStatus,
        last_sync: datetime | None = None,
    ) -> None:
        """Record a connection's sync status, and its last sync time when given."""
        async with self.session_maker() as session:
            connection = await session.get(StoreConnection, connection_id)
            if connection is None:
                return
            connection.sync_status = status
            if last_sync is not None:
                connection.last_sync = last_sync
            await session.commit()

    # === Products ===

    async def find_product(
        self,
        workspace_id: UUID,
        store_connection_id: UUID,
        external_id: str,
    ) -> Product | None:
        async with self.session_maker() as session:
            return await self._find_product(session, workspace_id, store_connection_id, external_id)

    async def _find_product(
        self,
        session: AsyncSession,
        workspace_id: UUID,
        store_connection_id: UUID,
        external_id: str,
    ) -> Product | None:
        result = await session.execute(
            select(Product).where(
                Product.workspace_id == workspace_id,
                Product.store_connection_id == store_connection_id,
                Product.external_id == external_id,
            )
        )
        return result.scalar_one_or_none()

    async def _owned_elsewhere(
        self,
        session: AsyncSession,
        connection: StoreConnection,
        external_id: str,
    ) -> UUID | None:
        result = await session.execute(
            select(Product.store_connection_id)
            .where(
                Product.workspace_id == connection.workspace_id,
                Product.marketplace_type == connection.marketplace_type,
                Product.external_id == external_id,
                Product.store_connection_id != connection.id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def upsert_product(
        self,
        connection: StoreConnection,
        product: CanonicalProduct,
        synced_at: datetime | None = None,
    ) -> UpsertOutcome:
        """Insert or update a product keyed by (workspace, connection, external id).

        A product whose external id is already owned by another connection of
        the same marketplace in the workspace is never overwritten; it is
        logged and skipped.
        """
        values = {
            **product.to_row(),
            "workspace_id": connection.workspace_id,
            "store_connection_id": connection.id,
            "marketplace_type": connection.marketplace_type,
            "last_synced_at": synced_at or utcnow(),
        }

        async with self.session_maker() as session:
            existing = await self._find_product(session, connection.workspace_id, connection.id, product.external_id)
            if existing is not None:
                self._apply(existing, values)
                await session.commit()
                return UpsertOutcome.UPDATED

            owner = await self._owned_elsewhere(session, connection, product.external_id)
            if owner is not None:
                logger.warning(
                    "Skipping product %s: already owned by connection %s",
                    product.external_id,
                    owner,
                )
                return UpsertOutcome.SKIPPED

            session.add(Product(**values))
            try:
                await session.commit()
                return UpsertOutcome.CREATED
            except IntegrityError as exc:
                # Inserted concurrently by an overlapping job
                await session.rollback()
                conflict = exc

        async with self.session_maker() as session:
            existing = await self._find_product(session, connection.workspace_id, connection.id, product.external_id)
            if existing is None:
                raise conflict
            self._apply(existing, values)
            await session.commit()
            return UpsertOutcome.UPDATED

    @staticmethod
    def _apply(product: Product, values: dict[str, Any]) -> None:
        for key, value in values.items():
            setattr(product, key, value)

    async def count_products(
        self,
        workspace_id: UUID,
        store_connection_id: UUID | None = None,
        status: ProductStatus | None = None,
    ) -> int:
        query = select(func.count()).select_from(Product).where(Product.workspace_id == workspace_id)
        if store_connection_id is not None:
            query = query.where(Product.store_connection_id == store_connection_id)
        if status is not None:
            query = query.where(Product.status == status)
        async with self.session_maker() as session:
            result = await session.execute(query)
            return result.scalar_one()

    async def delete_products_not_in(self, connection: StoreConnection, external_ids: Iterable[str]) -> int:
        """Delete the connection's products whose external id is not in ``external_ids``."""
        keep = set(external_ids)
        async with self.session_maker() as session:
            result = await session.execute(
                select(Product.id, Product.external_id).where(
                    Product.workspace_id == connection.workspace_id,
                    Product.store_connection_id == connection.id,
                )
            )
            stale = [row.id for row in result if row.external_id not in keep]
            for i in range(0, len(stale), DELETE_BATCH_SIZE):
                chunk = stale[i : i + DELETE_BATCH_SIZE]
                await session.execute(delete(Product).where(Product.id.in_(chunk)))
            await session.commit()
        return len(stale)

    # === Catalog metadata caches ===

    async def get_catalog_cache(self, connection_id: UUID, kind: CatalogCacheKind) -> CatalogCache | None:
        async with self.session_maker() as session:
            result = await session.execute(
                select(CatalogCache).where(
                    CatalogCache.store_connection_id == connection_id,
                    CatalogCache.cache_type == kind,
                )
            )
            return result.scalar_one_or_none()

    async def replace_catalog_cache(
        self,
        connection: StoreConnection,
        kind: CatalogCacheKind,
        items: list[CatalogCacheItem],
        ttl_hours: int | None = None,
    ) -> CatalogCache:
        """Replace the (connection, kind) cache record wholesale with a fresh TTL."""
        now = utcnow()
        record = CatalogCache(
            store_connection_id=connection.id,
            workspace_id=connection.workspace_id,
            marketplace_type=connection.marketplace_type,
            cache_type=kind,
            items=[item.model_dump() for item in items],
            last_updated=now,
            created_at=now,
            expires_at=CatalogCache.expiry_for(now, ttl_hours or settings.catalog_cache_ttl_hours),
        )
        async with self.session_maker() as session:
            await session.execute(
                delete(CatalogCache).where(
                    CatalogCache.store_connection_id == connection.id,
                    CatalogCache.cache_type == kind,
                )
            )
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return record

    async def invalidate_catalog_cache(
        self,
        connection_id: UUID,
        kind: CatalogCacheKind | None = None,
    ) -> int:
        """Expire the connection's cache records now. Returns how many were expired."""
        query = select(CatalogCache).where(CatalogCache.store_connection_id == connection_id)
        if kind is not None:
            query = query.where(CatalogCache.cache_type == kind)
        async with self.session_maker() as session:
            result = await session.execute(query)
            records = list(result.scalars().all())
            for record in records:
                record.invalidate()
            await session.commit()
        return len(records)
