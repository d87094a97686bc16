"""Connection service: credential tests, connect/disconnect and workspace status."""

import logging
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from catalog_sync.core.encryption import encrypt_credentials
from catalog_sync.core.exceptions import ConnectionRemovedError, CredentialError, SyncEngineError
from catalog_sync.integrations.registry import (
    TesterFactory,
    connectable_marketplaces,
    create_connection_tester,
    supports_sync,
)
from catalog_sync.models.store_connection import MarketplaceType, StoreConnection
from catalog_sync.schemas.connection import ConnectionInfo, ConnectionTestResult, MarketplaceStatus
from catalog_sync.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

# Connection test metadata naming the store, most specific first
STORE_NAME_KEYS = ("shop_name", "account_name", "page_name", "nickname", "site_url", "seller_id", "merchant_id")


class ConnectionService:
    """Manage the store connections of a workspace."""

    def __init__(self, store: CatalogStore, tester_factory: TesterFactory = create_connection_tester) -> None:
        self.store = store
        self.tester_factory = tester_factory

    async def test_connection(
        self,
        marketplace_type: MarketplaceType,
        credentials: Mapping[str, Any],
    ) -> ConnectionTestResult:
        """Test plaintext credentials against the marketplace. Never raises."""
        try:
            tester = self.tester_factory(marketplace_type, credentials)
        except SyncEngineError as exc:
            return ConnectionTestResult(success=False, message=str(exc), error_kind=exc.kind)
        return await tester.test_connection()

    async def connect(
        self,
        workspace_id: UUID,
        user_id: UUID | None,
        marketplace_type: MarketplaceType,
        credentials: Mapping[str, Any],
        store_name: str | None = None,
    ) -> tuple[ConnectionTestResult, StoreConnection | None]:
        """Test credentials and, on success, store them encrypted.

        An existing connection of the same marketplace in the workspace is
        replaced. Returns the test result and the saved connection, which is
        None when the test failed.
        """
        result = await self.test_connection(marketplace_type, credentials)
        if not result.success:
            logger.info(
                "Not connecting %s for workspace %s: %s",
                marketplace_type.value,
                workspace_id,
                result.message,
            )
            return result, None

        name = store_name or next(
            (result.metadata[key] for key in STORE_NAME_KEYS if result.metadata.get(key)),
            marketplace_type.value,
        )
        connection = await self.store.save_connection(
            workspace_id=workspace_id,
            user_id=user_id,
            marketplace_type=marketplace_type,
            store_name=str(name),
            credentials=encrypt_credentials(dict(credentials)),
        )
        logger.info("Connected %s store %s for workspace %s", marketplace_type.value, connection.id, workspace_id)
        return result, connection

    async def disconnect(self, workspace_id: UUID, connection_id: UUID, delete_products: bool = False) -> None:
        """Remove a connection.

        Without ``delete_products`` the connection is only deactivated so its
        products stay in the catalog; otherwise it is deleted with its
        products and metadata caches.

        Raises:
            ConnectionRemovedError: The connection does not exist in the workspace.
        """
        connection = await self.store.get_connection(connection_id)
        if connection is None or connection.workspace_id != workspace_id:
            raise ConnectionRemovedError(f"Store connection {connection_id} not found")

        if delete_products:
            await self.store.delete_connection(connection_id)
            logger.info("Deleted connection %s with its products", connection_id)
        else:
            await self.store.deactivate_connection(connection_id)
            logger.info("Deactivated connection %s", connection_id)

    async def get_workspace_marketplace_status(self, workspace_id: UUID) -> list[MarketplaceStatus]:
        """Connection state and product count of every connectable marketplace."""
        connections = {c.marketplace_type: c for c in await self.store.list_connections(workspace_id)}

        statuses = []
        for marketplace_type in connectable_marketplaces():
            connection = connections.get(marketplace_type)
            sync_supported = supports_sync(marketplace_type)
            if connection is None:
                statuses.append(
                    MarketplaceStatus(marketplace_type=marketplace_type, connected=False, sync_supported=sync_supported)
                )
                continue
            product_count = await self.store.count_products(workspace_id, store_connection_id=connection.id)
            statuses.append(
                MarketplaceStatus(
                    marketplace_type=marketplace_type,
                    connected=connection.is_active,
                    sync_supported=sync_supported,
                    connection=ConnectionInfo.model_validate(connection),
                    product_count=product_count,
                )
            )
        return statuses


def ensure_active(connection: StoreConnection | None, workspace_id: UUID) -> StoreConnection:
    """Return the connection if it belongs to the workspace and is active.

    Raises:
        ConnectionRemovedError: Missing or owned by another workspace.
        CredentialError: The connection was deactivated.
    """
    if connection is None or connection.workspace_id != workspace_id:
        raise ConnectionRemovedError("Store connection not found")
    if not connection.is_active:
        raise CredentialError("Store connection is inactive. Please reconnect the store.")
    return connection
