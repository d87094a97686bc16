"""Cached category/brand metadata with product counts."""

import enum
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import DateTime, Enum, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, JSONType, as_utc, utcnow
from catalog_sync.models.store_connection import MarketplaceType


class CatalogCacheKind(str, enum.Enum):
    """Kind of catalog metadata held by a cache record."""

    CATEGORY = "category"
    BRAND = "brand"


class CatalogCache(Base):
    """Catalog metadata for one (store connection, kind) pair.

    Records are recreated wholesale on refresh. ``items`` is a list of
    ``{id, name, product_count, parent_id, level}`` dicts.
    """

    __tablename__ = "catalog_caches"

    store_connection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("store_connections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    marketplace_type: Mapped[MarketplaceType] = mapped_column(
        Enum(
            MarketplaceType,
            name="marketplace_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    cache_type: Mapped[CatalogCacheKind] = mapped_column(
        Enum(
            CatalogCacheKind,
            name="catalog_cache_kind",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("store_connection_id", "cache_type", name="uq_catalog_caches_connection_kind"),
    )

    @staticmethod
    def expiry_for(created_at: datetime, ttl_hours: int) -> datetime:
        return as_utc(created_at) + timedelta(hours=ttl_hours)

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once ``now`` is past ``created + ttl``."""
        return as_utc(now or utcnow()) > as_utc(self.expires_at)

    def invalidate(self, now: datetime | None = None) -> None:
        """Expire the record immediately."""
        self.expires_at = now or utcnow()

    def __repr__(self) -> str:
        return f"<CatalogCache {self.cache_type.value} ({len(self.items)} items)>"
