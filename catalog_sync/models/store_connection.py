"""Store connection model for authenticated marketplace links."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Enum, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, JSONType


class MarketplaceType(str, enum.Enum):
    """Marketplaces a workspace can connect."""

    SHOPIFY = "shopify"
    VTEX = "vtex"
    MERCADOLIBRE = "mercadolibre"
    AMAZON = "amazon"
    FACEBOOK_SHOP = "facebook_shop"
    GOOGLE_SHOPPING = "google_shopping"
    WOOCOMMERCE = "woocommerce"


class SyncStatus(str, enum.Enum):
    """Last known synchronization state of a connection."""

    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class StoreConnection(Base):
    """One authenticated link between a workspace and a marketplace account.

    A workspace holds at most one connection per marketplace type.
    Credentials are an opaque per-marketplace bundle whose values are stored encrypted:
    Shopify: {shop_url, access_token}
    VTEX: {account_name, app_key, app_token}
    """

    __tablename__ = "store_connections"

    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    store_name: Mapped[str] = mapped_column(String(255), nullable=False)
    marketplace_type: Mapped[MarketplaceType] = mapped_column(
        Enum(
            MarketplaceType,
            name="marketplace_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )

    # Credentials (encrypted values)
    credentials: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Sync tracking
    last_sync: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    sync_status: Mapped[SyncStatus] = mapped_column(
        Enum(
            SyncStatus,
            name="sync_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=SyncStatus.PENDING,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("workspace_id", "marketplace_type", name="uq_store_connections_workspace_marketplace"),
    )

    def __repr__(self) -> str:
        return f"<StoreConnection {self.marketplace_type.value}:{self.store_name}>"
