"""VTEX Catalog, Pricing and Logistics adapter using httpx.

VTEX splits a product across four REST resources (product, SKU, price,
inventory) and its private catalog has no search language, so filtering
happens client-side after each listed product is enriched.
"""

import asyncio
import logging
import re
from collections.abc import Mapping
from typing import Any

from catalog_sync.core.config import settings
from catalog_sync.core.exceptions import (
    CredentialError,
    MarketplaceDataError,
    ProductNotFoundError,
    SyncEngineError,
)
from catalog_sync.integrations.base import IdPage, MarketplaceAdapter
from catalog_sync.integrations.vtex.mapper import map_vtex_product
from catalog_sync.models.catalog_cache import CatalogCacheKind
from catalog_sync.models.store_connection import MarketplaceType
from catalog_sync.schemas.catalog import CatalogEntry
from catalog_sync.schemas.product import CanonicalProduct
from catalog_sync.services.filter_translator import ClientSideFilter, NativeQuery

logger = logging.getLogger(__name__)

_ACCOUNT_SUFFIXES = (
    r"\.vtexcommercestable\.com\.br.*$",
    r"\.vtex\.com\.br.*$",
    r"\.vtexcommerce\.com\.br.*$",
)


def clean_account_name(account_name: str) -> str:
    """Reduce a VTEX store URL or host to the bare account name."""
    account = re.sub(r"^https?://", "", account_name.strip())
    for suffix in _ACCOUNT_SUFFIXES:
        account = re.sub(suffix, "", account)
    return account.rstrip("/")


def _entry_id(node: Mapping[str, Any]) -> str | None:
    value = node.get("id", node.get("Id"))
    return str(value) if value is not None else None


class VtexAdapter(MarketplaceAdapter):
    """Adapter for a VTEX account authenticated with an app key/token pair."""

    marketplace_type = MarketplaceType.VTEX
    display_name = "VTEX"
    required_credentials = ("account_name", "app_key", "app_token")
    error_message_keys = ("message", "Message", "error")

    def __init__(self, credentials: Mapping[str, Any]) -> None:
        super().__init__(credentials)
        self.account_name = clean_account_name(self.credentials["account_name"])
        self.base_url = f"https://{self.account_name}.{settings.vtex_environment}.com.br"
        self.page_size = settings.sync_page_size
        self.max_products = settings.vtex_max_products
        self.enrich_concurrency = settings.sync_item_concurrency
        # Product id -> SKU ids, remembered from listing
        self._sku_ids: dict[str, list[str]] = {}
        # Complete records enriched while filtering, consumed by fetch_complete_product
        self._prefetched: dict[str, dict[str, Any]] = {}

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-VTEX-API-AppKey": self.credentials["app_key"],
            "X-VTEX-API-AppToken": self.credentials["app_token"],
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    # ------------------------------------------------------------------
    # Connection test
    # ------------------------------------------------------------------

    def connection_test_url(self) -> str:
        return f"{self.base_url}/api/catalog_system/pvt/collection/search"

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        if isinstance(body, dict):
            collections = body.get("items") or []
        else:
            collections = body or []
        return {
            "account_name": self.account_name,
            "collections_count": len(collections),
        }

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def _product_and_sku_ids(self, start: int, end: int) -> tuple[dict[str, list[str]], int | None]:
        """Call GetProductAndSkuIds for the 1-based inclusive range ``start..end``."""
        body = await self._get_json(
            f"{self.base_url}/api/catalog_system/pvt/products/GetProductAndSkuIds",
            params={"_from": start, "_to": end},
        )
        if not isinstance(body, dict):
            raise MarketplaceDataError("VTEX product id listing is malformed")

        raw = body.get("data") or {}
        if not isinstance(raw, dict):
            raise MarketplaceDataError("VTEX product id listing is malformed")
        listing = {str(product_id): [str(sku) for sku in sku_ids or []] for product_id, sku_ids in raw.items()}
        total = (body.get("range") or {}).get("total")
        return listing, int(total) if total is not None else None

    async def fetch_id_page(self, query: NativeQuery, cursor: Any = None) -> IdPage:
        """Fetch one ``_from/_to`` window of product ids.

        ``cursor`` is the 0-based offset of the window. A window shorter than
        the page size, the reported total, or the product cap ends listing.
        """
        offset = int(cursor or 0)
        listing, total = await self._product_and_sku_ids(offset + 1, offset + self.page_size)
        self._sku_ids.update(listing)

        ids = list(listing)
        filtered_out = 0
        if isinstance(query, ClientSideFilter):
            ids, filtered_out = await self._filter_page(ids, query)

        next_offset = offset + self.page_size
        has_more = (
            len(listing) >= self.page_size
            and next_offset < self.max_products
            and (total is None or next_offset < total)
        )
        return IdPage(ids=ids, next_cursor=next_offset if has_more else None, filtered_out=filtered_out)

    async def _filter_page(self, ids: list[str], query: ClientSideFilter) -> tuple[list[str], int]:
        """Enrich each id and keep the ones the filter accepts.

        Ids whose enrichment fails are kept; the filter is applied again to
        the complete record during the sync itself.
        """
        semaphore = asyncio.Semaphore(self.enrich_concurrency)

        async def enrich(product_id: str) -> dict[str, Any] | None:
            async with semaphore:
                try:
                    return await self._fetch_complete(product_id)
                except CredentialError:
                    raise
                except SyncEngineError as exc:
                    logger.warning("VTEX enrichment failed for product %s: %s", product_id, exc)
                    return None

        records = await asyncio.gather(*(enrich(product_id) for product_id in ids))

        accepted: list[str] = []
        for product_id, record in zip(ids, records, strict=True):
            if record is None:
                accepted.append(product_id)
            elif query.accepts(record):
                self._prefetched[product_id] = record
                accepted.append(product_id)
        return accepted, len(ids) - len(accepted)

    async def _estimate(self, query: NativeQuery) -> int | None:
        """Total product count reported by a one-item listing.

        This is an upper bound when a client-side filter is active.
        """
        _, total = await self._product_and_sku_ids(1, 1)
        if total is None:
            return None
        return min(total, self.max_products)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def _product(self, product_id: str) -> dict[str, Any]:
        return await self._get_json(f"{self.base_url}/api/catalog_system/pvt/products/ProductGet/{product_id}")

    async def _sku(self, sku_id: str) -> dict[str, Any]:
        return await self._get_json(f"{self.base_url}/api/catalog_system/pvt/sku/stockkeepingunitbyid/{sku_id}")

    async def _optional(self, url: str, resource: str, sku_id: str) -> dict[str, Any] | None:
        """Fetch a sub-resource that may legitimately be missing."""
        try:
            return await self._get_json(url)
        except ProductNotFoundError:
            logger.debug("No %s found for VTEX SKU %s", resource, sku_id)
            return None
        except SyncEngineError as exc:
            logger.warning("Error fetching %s for VTEX SKU %s: %s", resource, sku_id, exc)
            return None

    async def _pricing(self, sku_id: str) -> dict[str, Any] | None:
        return await self._optional(f"{self.base_url}/api/pricing/prices/{sku_id}", "pricing", sku_id)

    async def _inventory(self, sku_id: str) -> dict[str, Any] | None:
        return await self._optional(
            f"{self.base_url}/api/logistics/pvt/inventory/skus/{sku_id}",
            "inventory",
            sku_id,
        )

    async def _skus_for_product(self, product_id: str) -> list[str]:
        try:
            body = await self._get_json(
                f"{self.base_url}/api/catalog_system/pvt/sku/stockkeepingunitByProductId/{product_id}"
            )
        except ProductNotFoundError:
            return []
        if not isinstance(body, list):
            raise MarketplaceDataError(f"VTEX SKU list for product {product_id} is malformed")
        return [str(sku["Id"]) for sku in body if isinstance(sku, dict) and sku.get("Id") is not None]

    async def _fetch_complete(self, product_id: str) -> dict[str, Any]:
        sku_ids = self._sku_ids.get(product_id)
        if not sku_ids:
            sku_ids = await self._skus_for_product(product_id)
            self._sku_ids[product_id] = sku_ids
        if not sku_ids:
            raise MarketplaceDataError(f"VTEX product {product_id} has no SKUs")

        primary_sku = sku_ids[0]
        product, sku, pricing, inventory = await asyncio.gather(
            self._product(product_id),
            self._sku(primary_sku),
            self._pricing(primary_sku),
            self._inventory(primary_sku),
        )
        if not isinstance(product, dict) or not isinstance(sku, dict):
            raise MarketplaceDataError(f"VTEX product {product_id} response is malformed")
        return {"product": product, "sku": sku, "pricing": pricing, "inventory": inventory}

    async def fetch_complete_product(self, external_id: str) -> dict[str, Any]:
        """Product, primary SKU, pricing and inventory for one product id.

        Pricing and inventory are None when the account has none configured.
        """
        prefetched = self._prefetched.pop(external_id, None)
        if prefetched is not None:
            return prefetched
        return await self._fetch_complete(external_id)

    def discard_prefetched(self, external_id: str) -> None:
        self._prefetched.pop(external_id, None)

    def map_product(self, native: Mapping[str, Any]) -> CanonicalProduct:
        return map_vtex_product(native)

    # ------------------------------------------------------------------
    # Catalog metadata
    # ------------------------------------------------------------------

    async def fetch_categories(self) -> list[CatalogEntry]:
        """Fetch the category tree and flatten it with parent ids and levels."""
        depth = settings.category_tree_depth
        tree = await self._get_json(f"{self.base_url}/api/catalog_system/pvt/category/tree/{depth}")

        categories: list[CatalogEntry] = []

        def flatten(nodes: Any, level: int, parent_id: str | None) -> None:
            if not isinstance(nodes, list):
                return
            for node in nodes:
                if not isinstance(node, dict):
                    continue
                category_id = _entry_id(node)
                if category_id is None:
                    continue
                categories.append(
                    CatalogEntry(
                        id=category_id,
                        name=node.get("name") or node.get("Name") or "Unnamed Category",
                        parent_id=parent_id,
                        level=level,
                    )
                )
                flatten(node.get("children") or node.get("Children") or [], level + 1, category_id)

        flatten(tree, 0, None)
        logger.info("Fetched %d VTEX categories from %s", len(categories), self.account_name)
        return categories

    async def fetch_brands(self) -> list[CatalogEntry]:
        """Fetch brands, dropping inactive and invalid entries."""
        body = await self._get_json(f"{self.base_url}/api/catalog_system/pvt/brand/list")
        if not isinstance(body, list):
            logger.warning("Unexpected VTEX brand list format")
            return []

        brands: list[CatalogEntry] = []
        for brand in body:
            if not isinstance(brand, dict):
                continue
            if brand.get("isActive") is False or brand.get("IsActive") is False:
                continue
            brand_id = _entry_id(brand)
            name = brand.get("name") or brand.get("Name")
            if brand_id and name:
                brands.append(CatalogEntry(id=brand_id, name=name))
        return brands

    async def _probe(self, kind: CatalogCacheKind, entry_id: str) -> bool:
        prefix = "C" if kind is CatalogCacheKind.CATEGORY else "B"
        body = await self._get_json(
            f"{self.base_url}/api/catalog_system/pub/products/search",
            params={"fq": f"{prefix}:/{entry_id}/", "_from": 0, "_to": 0},
            headers={"REST-Range": "resources=0-0"},
            timeout=self.probe_timeout,
        )
        return isinstance(body, list) and len(body) > 0
