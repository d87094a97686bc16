"""Map Shopify GraphQL products to the canonical product shape."""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from catalog_sync.core.exceptions import MarketplaceDataError
from catalog_sync.models.product import ProductStatus
from catalog_sync.schemas.product import CanonicalProduct, ProductImage, ProductVariant

SHOPIFY_STATUS_MAP: dict[str, ProductStatus] = {
    "ACTIVE": ProductStatus.ACTIVE,
    "DRAFT": ProductStatus.DRAFT,
    "ARCHIVED": ProductStatus.ARCHIVED,
}


def map_shopify_status(native_status: str | None) -> ProductStatus:
    """Unknown or missing statuses are treated as draft."""
    if not native_status:
        return ProductStatus.DRAFT
    return SHOPIFY_STATUS_MAP.get(native_status.upper(), ProductStatus.DRAFT)


def _variant_weight(variant: Mapping[str, Any]) -> Any:
    measurement = (variant.get("inventoryItem") or {}).get("measurement") or {}
    return (measurement.get("weight") or {}).get("value")


def map_shopify_product(native: Mapping[str, Any]) -> CanonicalProduct:
    """Normalize a product returned by ``ShopifyAdapter.fetch_complete_product``.

    Price and compare-at price come from the first variant; inventory is the
    sum over all variants.
    """
    variants = list(native.get("variants") or [])
    primary = variants[0] if variants else {}
    native_status = native.get("status")

    try:
        return CanonicalProduct(
            external_id=native.get("id"),
            title=native.get("title") or "",
            description=native.get("description") or None,
            price=primary.get("price"),
            compare_at_price=primary.get("compareAtPrice"),
            inventory=sum(variant.get("inventoryQuantity") or 0 for variant in variants),
            vendor=native.get("vendor") or None,
            product_type=native.get("productType") or None,
            handle=native.get("handle"),
            status=map_shopify_status(native_status),
            native_status=native_status,
            tags=native.get("tags"),
            images=[
                ProductImage(url=image["url"], alt_text=image.get("altText"))
                for image in native.get("images") or []
                if image.get("url")
            ],
            variants=[
                ProductVariant(
                    id=variant.get("id"),
                    title=variant.get("title") or "Default",
                    price=variant.get("price"),
                    compare_at_price=variant.get("compareAtPrice"),
                    sku=variant.get("sku") or None,
                    inventory=variant.get("inventoryQuantity") or 0,
                    weight=_variant_weight(variant),
                )
                for variant in variants
            ],
            marketplace_created_at=native.get("createdAt"),
            marketplace_updated_at=native.get("updatedAt"),
        )
    except ValidationError as exc:
        raise MarketplaceDataError(f"Invalid Shopify product {native.get('id')}: {exc}") from exc
