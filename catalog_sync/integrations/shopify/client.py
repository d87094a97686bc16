"""Shopify Admin API adapter using httpx and GraphQL."""

import logging
import re
from collections.abc import Mapping
from typing import Any

from catalog_sync.core.config import settings
from catalog_sync.core.exceptions import (
    CredentialError,
    MarketplaceDataError,
    MarketplaceTransportError,
    ProductNotFoundError,
)
from catalog_sync.integrations.base import IdPage, MarketplaceAdapter
from catalog_sync.integrations.shopify import queries
from catalog_sync.integrations.shopify.mapper import map_shopify_product
from catalog_sync.models.catalog_cache import CatalogCacheKind
from catalog_sync.models.store_connection import MarketplaceType
from catalog_sync.schemas.catalog import CatalogEntry
from catalog_sync.schemas.product import CanonicalProduct
from catalog_sync.services.filter_translator import NativeQuery, PushDownQuery

logger = logging.getLogger(__name__)

METADATA_PAGE_SIZE = 250


def normalize_shop_url(shop_url: str) -> str:
    """Reduce any shop URL form to the bare store handle.

    ``https://my-shop.myshopify.com/`` and ``my-shop`` both become ``my-shop``.
    """
    handle = re.sub(r"^https?://", "", shop_url.strip())
    handle = handle.rstrip("/")
    return re.sub(r"\.myshopify\.com$", "", handle)


def _edges(connection: Any) -> list[Any]:
    if not isinstance(connection, dict):
        return []
    return [edge.get("node") for edge in connection.get("edges") or [] if isinstance(edge, dict)]


class ShopifyAdapter(MarketplaceAdapter):
    """Adapter for the Shopify GraphQL Admin API.

    Filters are pushed down into the ``products(query:)`` search string, so
    listing returns only matching ids.
    """

    marketplace_type = MarketplaceType.SHOPIFY
    display_name = "Shopify"
    required_credentials = ("shop_url", "access_token")
    error_message_keys = ("errors",)

    def __init__(self, credentials: Mapping[str, Any]) -> None:
        super().__init__(credentials)
        self.shop_domain = f"{normalize_shop_url(self.credentials['shop_url'])}.myshopify.com"
        self.base_url = f"https://{self.shop_domain}/admin/api/{settings.shopify_api_version}"
        self.graphql_url = f"{self.base_url}/graphql.json"
        self.page_size = settings.sync_page_size

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.credentials["access_token"],
            "Content-Type": "application/json",
        }

    async def _graphql(
        self,
        document: str,
        variables: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL document and return its ``data`` object."""
        response = await self._send(
            "POST",
            self.graphql_url,
            json={"query": document, "variables": variables},
            timeout=timeout,
        )
        body = self._json(response)
        if not isinstance(body, dict):
            raise MarketplaceDataError("Shopify GraphQL response is not an object")

        errors = body.get("errors")
        if errors:
            self._raise_for_graphql_errors(errors)

        data = body.get("data")
        if not isinstance(data, dict):
            raise MarketplaceDataError("Shopify GraphQL response has no data")
        return data

    def _raise_for_graphql_errors(self, errors: Any) -> None:
        if not isinstance(errors, list):
            raise MarketplaceDataError(f"GraphQL errors: {errors}")

        codes = {
            (error.get("extensions") or {}).get("code")
            for error in errors
            if isinstance(error, dict)
        }
        messages = "; ".join(
            str(error.get("message", error)) if isinstance(error, dict) else str(error) for error in errors
        )
        if "THROTTLED" in codes:
            raise MarketplaceTransportError(f"Shopify API throttled: {messages}", status_code=429)
        if "ACCESS_DENIED" in codes:
            raise CredentialError(f"Shopify access denied: {messages}", kind="insufficient_scope")
        raise MarketplaceDataError(f"GraphQL errors: {messages}")

    # ------------------------------------------------------------------
    # Connection test
    # ------------------------------------------------------------------

    def connection_test_url(self) -> str:
        return f"{self.base_url}/shop.json"

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        shop = body["shop"]
        return {
            "shop_name": shop.get("name"),
            "domain": shop.get("domain"),
            "plan": shop.get("plan_name"),
        }

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _search_string(self, query: NativeQuery) -> str | None:
        if not isinstance(query, PushDownQuery):
            raise TypeError("Shopify expects a push-down query")
        return query.query or None

    async def fetch_id_page(self, query: NativeQuery, cursor: Any = None) -> IdPage:
        """Fetch one page of product GIDs matching the search string."""
        data = await self._graphql(
            queries.PRODUCT_IDS_QUERY,
            {"first": self.page_size, "after": cursor, "query": self._search_string(query)},
        )
        products = data.get("products")
        if not isinstance(products, dict):
            raise MarketplaceDataError("Shopify products response is malformed")

        ids = [node["id"] for node in _edges(products) if isinstance(node, dict) and node.get("id")]
        page_info = products.get("pageInfo") or {}
        next_cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        return IdPage(ids=ids, next_cursor=next_cursor)

    async def _estimate(self, query: NativeQuery) -> int | None:
        data = await self._graphql(
            queries.PRODUCTS_COUNT_QUERY,
            {"query": self._search_string(query)},
        )
        count = (data.get("productsCount") or {}).get("count")
        return int(count) if count is not None else None

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def fetch_complete_product(self, external_id: str) -> dict[str, Any]:
        """Fetch one product with its first 10 images and 100 variants."""
        data = await self._graphql(queries.PRODUCT_QUERY, {"id": external_id})
        product = data.get("product")
        if not product:
            raise ProductNotFoundError(f"Shopify product {external_id} not found")

        return {
            **{key: value for key, value in product.items() if key not in ("images", "variants")},
            "images": [node for node in _edges(product.get("images")) if isinstance(node, dict)],
            "variants": [node for node in _edges(product.get("variants")) if isinstance(node, dict)],
        }

    def map_product(self, native: Mapping[str, Any]) -> CanonicalProduct:
        return map_shopify_product(native)

    # ------------------------------------------------------------------
    # Catalog metadata
    # ------------------------------------------------------------------

    async def _string_list(self, document: str, field: str) -> list[str]:
        """Page through a shop-level string connection (product types, vendors)."""
        values: list[str] = []
        cursor: str | None = None
        for _ in range(self.max_pages):
            data = await self._graphql(document, {"first": METADATA_PAGE_SIZE, "after": cursor})
            connection = (data.get("shop") or {}).get(field) or {}
            values.extend(value for value in _edges(connection) if isinstance(value, str) and value.strip())
            page_info = connection.get("pageInfo") or {}
            cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
            if cursor is None:
                return values

        logger.warning("Shopify %s reached the %d page limit, stopping", field, self.max_pages)
        return values

    async def fetch_categories(self) -> list[CatalogEntry]:
        """Product types act as Shopify's flat category list."""
        names = await self._string_list(queries.PRODUCT_TYPES_QUERY, "productTypes")
        return [CatalogEntry(id=name, name=name, parent_id=None, level=0) for name in names]

    async def fetch_brands(self) -> list[CatalogEntry]:
        """Vendors act as Shopify's brands."""
        names = await self._string_list(queries.PRODUCT_VENDORS_QUERY, "productVendors")
        return [CatalogEntry(id=name, name=name) for name in names]

    async def _probe(self, kind: CatalogCacheKind, entry_id: str) -> bool:
        field = "product_type" if kind is CatalogCacheKind.CATEGORY else "vendor"
        escaped = entry_id.replace("\\", "\\\\").replace('"', '\\"')
        data = await self._graphql(
            queries.PRODUCT_EXISTS_QUERY,
            {"query": f'{field}:"{escaped}"'},
            timeout=self.probe_timeout,
        )
        return bool(_edges(data.get("products")))
