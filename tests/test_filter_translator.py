"""Tests for the query filter translator.

Covers:
- Shopify search string construction (status, vendor, product type, date)
- VTEX client-side predicate
- Filter normalization and exclude-all detection
- Dispatch by marketplace type
"""

from datetime import UTC, datetime

import pytest

from catalog_sync.core.exceptions import UnsupportedMarketplaceError
from catalog_sync.models.store_connection import MarketplaceType
from catalog_sync.schemas.sync import ProductSyncFilters
from catalog_sync.services.filter_translator import (
    DEFAULT_SYNC_FILTERS,
    ClientSideFilter,
    PushDownQuery,
    build_shopify_query,
    build_vtex_predicate,
    filters_exclude_all,
    normalize_filters,
    supports_push_down,
    translate_filters,
)


def _vtex_record(
    *,
    active: bool = True,
    sku_active: bool = True,
    category: int = 10,
    sku_categories: list[int] | None = None,
    brand: int = 2000001,
    release: str | None = "2024-05-01T00:00:00",
) -> dict:
    return {
        "product": {"Id": 1, "IsActive": active, "CategoryId": category, "BrandId": brand, "ReleaseDate": release},
        "sku": {"Id": 11, "IsActive": sku_active, "Categories": sku_categories or [], "BrandId": brand},
        "pricing": None,
        "inventory": None,
    }


# ---------------------------------------------------------------------------
# Tests: Shopify query builder
# ---------------------------------------------------------------------------


class TestBuildShopifyQuery:
    """Clause order: status, vendor, product type, creation date."""

    def test_active_with_two_brands(self) -> None:
        """Brand clause is parenthesized when more than one brand is given."""
        filters = ProductSyncFilters(
            include_active=True,
            include_inactive=False,
            brand_ids=["Nike", "Adidas"],
            category_ids=[],
        )

        assert build_shopify_query(filters) == 'status:active (vendor:"Nike" OR vendor:"Adidas")'

    def test_single_brand_not_parenthesized(self) -> None:
        filters = ProductSyncFilters(brand_ids=["Nike"])

        assert build_shopify_query(filters) == 'status:active vendor:"Nike"'

    def test_inactive_only_ors_inactive_statuses(self) -> None:
        filters = ProductSyncFilters(include_active=False, include_inactive=True)

        assert build_shopify_query(filters) == "(status:archived OR status:draft)"

    def test_both_statuses_emit_no_status_clause(self) -> None:
        filters = ProductSyncFilters(include_active=True, include_inactive=True)

        assert build_shopify_query(filters) == ""

    def test_categories_follow_brands(self) -> None:
        filters = ProductSyncFilters(brand_ids=["Nike"], category_ids=["Shoes", "Shirts"])

        assert (
            build_shopify_query(filters)
            == 'status:active vendor:"Nike" (product_type:"Shoes" OR product_type:"Shirts")'
        )

    def test_created_after_is_last(self) -> None:
        filters = ProductSyncFilters(
            category_ids=["Shoes"],
            created_after=datetime(2024, 1, 15, 10, 30, tzinfo=UTC),
        )

        assert (
            build_shopify_query(filters)
            == "status:active product_type:\"Shoes\" created_at:>='2024-01-15T10:30:00Z'"
        )

    def test_naive_created_after_treated_as_utc(self) -> None:
        filters = ProductSyncFilters(include_inactive=True, created_after=datetime(2024, 1, 15))

        assert build_shopify_query(filters) == "created_at:>='2024-01-15T00:00:00Z'"

    def test_quotes_are_escaped(self) -> None:
        filters = ProductSyncFilters(include_inactive=True, brand_ids=['Bob "The" Builder'])

        assert build_shopify_query(filters) == 'vendor:"Bob \\"The\\" Builder"'

    def test_empty_lists_emit_nothing(self) -> None:
        """Empty id lists add no clause."""
        filters = ProductSyncFilters(brand_ids=[], category_ids=[])

        assert build_shopify_query(filters) == "status:active"


# ---------------------------------------------------------------------------
# Tests: VTEX predicate
# ---------------------------------------------------------------------------


class TestBuildVtexPredicate:
    """Client-side evaluation against enriched VTEX records."""

    def test_default_keeps_only_active(self) -> None:
        predicate = build_vtex_predicate(DEFAULT_SYNC_FILTERS)

        assert predicate(_vtex_record()) is True
        assert predicate(_vtex_record(active=False)) is False
        assert predicate(_vtex_record(sku_active=False)) is False

    def test_inactive_only(self) -> None:
        predicate = build_vtex_predicate(ProductSyncFilters(include_active=False, include_inactive=True))

        assert predicate(_vtex_record()) is False
        assert predicate(_vtex_record(active=False)) is True

    def test_category_matches_product_or_sku_categories(self) -> None:
        predicate = build_vtex_predicate(ProductSyncFilters(category_ids=["20"]))

        assert predicate(_vtex_record(category=20)) is True
        assert predicate(_vtex_record(category=10, sku_categories=[5, 20])) is True
        assert predicate(_vtex_record(category=10, sku_categories=[5])) is False

    def test_brand_filter(self) -> None:
        predicate = build_vtex_predicate(ProductSyncFilters(brand_ids=[2000001]))

        assert predicate(_vtex_record(brand=2000001)) is True
        assert predicate(_vtex_record(brand=2000002)) is False

    def test_created_after_uses_release_date(self) -> None:
        predicate = build_vtex_predicate(ProductSyncFilters(created_after=datetime(2024, 3, 1, tzinfo=UTC)))

        assert predicate(_vtex_record(release="2024-05-01T00:00:00")) is True
        assert predicate(_vtex_record(release="2024-01-01T00:00:00")) is False

    def test_missing_release_date_is_kept(self) -> None:
        predicate = build_vtex_predicate(ProductSyncFilters(created_after=datetime(2024, 3, 1, tzinfo=UTC)))

        assert predicate(_vtex_record(release=None)) is True


# ---------------------------------------------------------------------------
# Tests: normalization and dispatch
# ---------------------------------------------------------------------------


class TestNormalizeFilters:
    def test_none_gives_defaults(self) -> None:
        filters = normalize_filters(None)

        assert filters.include_active is True
        assert filters.include_inactive is False
        assert filters.brand_ids is None
        assert filters.category_ids is None

    def test_camel_case_keys_accepted(self) -> None:
        filters = normalize_filters({"includeActive": False, "includeInactive": True, "brandIds": [1, 2]})

        assert filters.include_active is False
        assert filters.include_inactive is True
        assert filters.brand_ids == ["1", "2"]

    def test_snake_case_keys_accepted(self) -> None:
        filters = normalize_filters({"category_ids": ["Shoes"]})

        assert filters.category_ids == ["Shoes"]
        assert filters.include_active is True


class TestFiltersExcludeAll:
    @pytest.mark.parametrize(
        ("filters", "expected"),
        [
            (ProductSyncFilters(), False),
            (ProductSyncFilters(include_active=False, include_inactive=False), True),
            (ProductSyncFilters(include_active=False, include_inactive=True), False),
            (ProductSyncFilters(brand_ids=[]), False),
            (ProductSyncFilters(category_ids=[]), False),
            (ProductSyncFilters(brand_ids=["Nike"], category_ids=None), False),
        ],
    )
    def test_exclude_all(self, filters: ProductSyncFilters, expected: bool) -> None:
        assert filters_exclude_all(filters) is expected


class TestTranslateFilters:
    def test_shopify_is_push_down(self) -> None:
        query = translate_filters(MarketplaceType.SHOPIFY, {"brandIds": ["Nike"]})

        assert isinstance(query, PushDownQuery)
        assert query.query == 'status:active vendor:"Nike"'
        assert query.accepts({"anything": True}) is True

    def test_vtex_is_client_side(self) -> None:
        query = translate_filters(MarketplaceType.VTEX, None)

        assert isinstance(query, ClientSideFilter)
        assert query.accepts(_vtex_record()) is True
        assert query.accepts(_vtex_record(active=False)) is False

    def test_unsupported_marketplace_raises(self) -> None:
        with pytest.raises(UnsupportedMarketplaceError):
            translate_filters(MarketplaceType.AMAZON, None)

    def test_supports_push_down(self) -> None:
        assert supports_push_down(MarketplaceType.SHOPIFY) is True
        assert supports_push_down(MarketplaceType.VTEX) is False
