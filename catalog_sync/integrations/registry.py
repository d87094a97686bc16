"""Adapter and connection tester registries keyed by marketplace type."""

from collections.abc import Callable, Mapping
from typing import Any

from cryptography.fernet import InvalidToken

from catalog_sync.core.encryption import decrypt_credentials
from catalog_sync.core.exceptions import CredentialError, UnsupportedMarketplaceError
from catalog_sync.integrations.base import ConnectionTester, MarketplaceAdapter
from catalog_sync.integrations.connection_testers import (
    AmazonConnection,
    FacebookShopConnection,
    GoogleShoppingConnection,
    MercadoLibreConnection,
    WooCommerceConnection,
)
from catalog_sync.integrations.shopify.client import ShopifyAdapter
from catalog_sync.integrations.vtex.client import VtexAdapter
from catalog_sync.models.store_connection import MarketplaceType, StoreConnection

AdapterFactory = Callable[[MarketplaceType, Mapping[str, Any]], MarketplaceAdapter]
TesterFactory = Callable[[MarketplaceType, Mapping[str, Any]], ConnectionTester]

ADAPTERS: dict[MarketplaceType, type[MarketplaceAdapter]] = {
    MarketplaceType.SHOPIFY: ShopifyAdapter,
    MarketplaceType.VTEX: VtexAdapter,
}

# Every syncable marketplace can be connected; these can only be connected
CONNECTION_TESTERS: dict[MarketplaceType, type[ConnectionTester]] = {
    **ADAPTERS,
    MarketplaceType.MERCADOLIBRE: MercadoLibreConnection,
    MarketplaceType.FACEBOOK_SHOP: FacebookShopConnection,
    MarketplaceType.WOOCOMMERCE: WooCommerceConnection,
    MarketplaceType.AMAZON: AmazonConnection,
    MarketplaceType.GOOGLE_SHOPPING: GoogleShoppingConnection,
}


def connectable_marketplaces() -> list[MarketplaceType]:
    """Marketplace types whose credentials can be tested and stored."""
    return list(CONNECTION_TESTERS)


def supports_sync(marketplace_type: MarketplaceType) -> bool:
    return marketplace_type in ADAPTERS


def create_adapter(marketplace_type: MarketplaceType, credentials: Mapping[str, Any]) -> MarketplaceAdapter:
    """Build the adapter for ``marketplace_type`` bound to decrypted credentials.

    Raises:
        UnsupportedMarketplaceError: No adapter exists for the marketplace.
        CredentialError: Required credential keys are missing.
    """
    adapter_class = ADAPTERS.get(marketplace_type)
    if adapter_class is None:
        raise UnsupportedMarketplaceError("Unsupported marketplace type")
    return adapter_class(credentials)


def create_connection_tester(marketplace_type: MarketplaceType, credentials: Mapping[str, Any]) -> ConnectionTester:
    """Build the connection tester for ``marketplace_type``.

    Raises:
        UnsupportedMarketplaceError: The marketplace cannot be connected.
        CredentialError: Required credential keys are missing.
    """
    tester_class = CONNECTION_TESTERS.get(marketplace_type)
    if tester_class is None:
        raise UnsupportedMarketplaceError("Unsupported marketplace type")
    return tester_class(credentials)


def adapter_for_connection(
    connection: StoreConnection,
    adapter_factory: AdapterFactory = create_adapter,
) -> MarketplaceAdapter:
    """Decrypt a stored connection's credentials and build its adapter."""
    try:
        credentials = decrypt_credentials(connection.credentials or {})
    except InvalidToken as exc:
        raise CredentialError(
            "Stored credentials cannot be decrypted. Please reconnect the store.",
            kind="credentials_invalid",
        ) from exc
    return adapter_factory(connection.marketplace_type, credentials)
