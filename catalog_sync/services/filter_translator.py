"""Translate marketplace-agnostic sync filters into native queries.

Marketplaces with a search language get a single push-down query string.
Marketplaces without one get a predicate the adapter applies to each
enriched record after listing.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from catalog_sync.core.exceptions import UnsupportedMarketplaceError
from catalog_sync.models.store_connection import MarketplaceType
from catalog_sync.schemas.sync import ProductSyncFilters

DEFAULT_SYNC_FILTERS = ProductSyncFilters()


@dataclass(frozen=True)
class PushDownQuery:
    """Filter evaluated server-side by the marketplace."""

    query: str

    def accepts(self, record: Mapping[str, Any]) -> bool:
        return True


@dataclass(frozen=True)
class ClientSideFilter:
    """Filter evaluated locally against each complete native record."""

    predicate: Callable[[Mapping[str, Any]], bool]
    filters: ProductSyncFilters | None = None

    def accepts(self, record: Mapping[str, Any]) -> bool:
        return self.predicate(record)


NativeQuery = PushDownQuery | ClientSideFilter


def normalize_filters(filters: ProductSyncFilters | Mapping[str, Any] | None) -> ProductSyncFilters:
    """Fill missing fields with the defaults (active only, all brands and categories)."""
    if filters is None:
        return DEFAULT_SYNC_FILTERS
    if isinstance(filters, ProductSyncFilters):
        return filters
    return ProductSyncFilters.model_validate(dict(filters))


def filters_exclude_all(filters: ProductSyncFilters) -> bool:
    """True when no product could ever match (both status flags off)."""
    return not filters.include_active and not filters.include_inactive


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _or_clause(field_name: str, values: list[str]) -> str | None:
    if not values:
        return None
    clause = " OR ".join(f"{field_name}:{_quote(value)}" for value in values)
    return f"({clause})" if len(values) > 1 else clause


# ---------------------------------------------------------------------------
# Shopify: search syntax pushed into the products() query
# ---------------------------------------------------------------------------


def build_shopify_query(filters: ProductSyncFilters) -> str:
    """Build a Shopify product search string.

    Clauses are emitted in fixed order (status, vendor, product type,
    creation date) and joined by spaces, which Shopify treats as AND.
    """
    parts: list[str] = []

    if filters.include_active and not filters.include_inactive:
        parts.append("status:active")
    elif filters.include_inactive and not filters.include_active:
        parts.append("(status:archived OR status:draft)")

    for clause in (
        _or_clause("vendor", filters.brand_ids or []),
        _or_clause("product_type", filters.category_ids or []),
    ):
        if clause:
            parts.append(clause)

    if filters.created_after is not None:
        parts.append(f"created_at:>='{_iso(filters.created_after)}'")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# VTEX: no search language for the private catalog, filter after enrichment
# ---------------------------------------------------------------------------


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def build_vtex_predicate(filters: ProductSyncFilters) -> Callable[[Mapping[str, Any]], bool]:
    """Build a predicate over a complete VTEX record ``{product, sku, ...}``."""
    category_ids = set(filters.category_ids) if filters.category_ids else None
    brand_ids = set(filters.brand_ids) if filters.brand_ids else None
    created_after = filters.created_after
    if created_after is not None and created_after.tzinfo is None:
        created_after = created_after.replace(tzinfo=UTC)

    def predicate(record: Mapping[str, Any]) -> bool:
        product = record.get("product") or {}
        sku = record.get("sku") or {}

        is_active = bool(product.get("IsActive")) and bool(sku.get("IsActive"))
        if is_active and not filters.include_active:
            return False
        if not is_active and not filters.include_inactive:
            return False

        if category_ids is not None:
            product_category = product.get("CategoryId")
            sku_categories = {str(c) for c in sku.get("Categories") or []}
            if str(product_category) not in category_ids and not sku_categories & category_ids:
                return False

        if brand_ids is not None:
            candidates = {str(product.get("BrandId")), str(sku.get("BrandId"))}
            if not candidates & brand_ids:
                return False

        if created_after is not None:
            released = _parse_datetime(product.get("ReleaseDate"))
            if released is not None and released < created_after:
                return False

        return True

    return predicate


def _vtex_filter(filters: ProductSyncFilters) -> ClientSideFilter:
    return ClientSideFilter(predicate=build_vtex_predicate(filters), filters=filters)


def _shopify_query(filters: ProductSyncFilters) -> PushDownQuery:
    return PushDownQuery(query=build_shopify_query(filters))


_BUILDERS: dict[MarketplaceType, Callable[[ProductSyncFilters], NativeQuery]] = {
    MarketplaceType.SHOPIFY: _shopify_query,
    MarketplaceType.VTEX: _vtex_filter,
}

_PUSH_DOWN = frozenset({MarketplaceType.SHOPIFY})


def supports_push_down(marketplace_type: MarketplaceType) -> bool:
    """Whether the marketplace evaluates filters server-side."""
    return marketplace_type in _PUSH_DOWN


def translate_filters(
    marketplace_type: MarketplaceType,
    filters: ProductSyncFilters | Mapping[str, Any] | None,
) -> NativeQuery:
    """Translate filters into the marketplace's native query representation."""
    builder = _BUILDERS.get(marketplace_type)
    if builder is None:
        raise UnsupportedMarketplaceError(f"No filter translation for marketplace {marketplace_type.value}")
    return builder(normalize_filters(filters))
