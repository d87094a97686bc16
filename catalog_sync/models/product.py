"""Product model for the canonical, workspace-scoped catalog."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, JSONType
from catalog_sync.models.store_connection import MarketplaceType


class ProductStatus(str, enum.Enum):
    """Canonical product status shared by every marketplace."""

    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class Product(Base):
    """Product normalized from a connected marketplace.

    Products are scoped to a workspace and owned by the store connection they
    were synced from. ``external_id`` is the marketplace's own identifier; the
    triple (workspace_id, store_connection_id, external_id) is unique so a
    re-sync always updates in place.
    """

    __tablename__ = "products"

    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    store_connection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("store_connections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    marketplace_type: Mapped[MarketplaceType] = mapped_column(
        Enum(
            MarketplaceType,
            name="marketplace_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )

    # Marketplace product identifier (opaque: Shopify GID, VTEX numeric id, ...)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Product data
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    compare_at_price: Mapped[float | None] = mapped_column(
        Numeric(12, 2, asdecimal=False),
        nullable=True,
    )
    inventory: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    product_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    handle: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[ProductStatus] = mapped_column(
        Enum(
            ProductStatus,
            name="product_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ProductStatus.ACTIVE,
        nullable=False,
    )
    # Status string exactly as the marketplace reported it
    native_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Arrays and JSON fields
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    images: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)
    variants: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)

    # Marketplace-side timestamps
    marketplace_created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    marketplace_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Sync tracking
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Indexes
    __table_args__ = (
        Index(
            "ix_products_workspace_connection_external_id",
            "workspace_id",
            "store_connection_id",
            "external_id",
            unique=True,
        ),
        Index("ix_products_workspace_marketplace_external_id", "workspace_id", "marketplace_type", "external_id"),
    )

    def __repr__(self) -> str:
        return f"<Product {self.title} ({self.external_id})>"
