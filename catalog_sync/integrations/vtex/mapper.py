"""Map complete VTEX records to the canonical product shape."""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from catalog_sync.core.exceptions import MarketplaceDataError
from catalog_sync.models.product import ProductStatus
from catalog_sync.schemas.product import CanonicalProduct, ProductImage, ProductVariant, to_price

# Reported when any warehouse has unlimited stock
UNLIMITED_INVENTORY = 999999

VTEX_STATUS_MAP: dict[str, ProductStatus] = {
    "active": ProductStatus.ACTIVE,
    "inactive": ProductStatus.DRAFT,
}


def vtex_native_status(product: Mapping[str, Any], sku: Mapping[str, Any]) -> str:
    return "active" if product.get("IsActive") and sku.get("IsActive") else "inactive"


def vtex_prices(pricing: Mapping[str, Any] | None) -> tuple[float | None, float | None]:
    """Selling price and compare-at price from a VTEX price record.

    The first fixed price wins over the base price. The compare-at price is
    only kept when it is higher than the selling price.
    """
    if not pricing:
        return None, None

    fixed = pricing.get("fixedPrices") or []
    if fixed:
        price = to_price(fixed[0].get("value"))
        list_price = to_price(fixed[0].get("listPrice")) or to_price(pricing.get("listPrice"))
    else:
        price = to_price(pricing.get("basePrice"))
        list_price = to_price(pricing.get("listPrice"))

    if list_price is not None and price is not None and list_price <= price:
        list_price = None
    return price, list_price


def vtex_inventory(inventory: Mapping[str, Any] | None) -> int:
    if not inventory:
        return 0
    total = 0
    for warehouse in inventory.get("balance") or []:
        if warehouse.get("hasUnlimitedQuantity"):
            return UNLIMITED_INVENTORY
        total += int(warehouse.get("availableQuantity") or warehouse.get("totalQuantity") or 0)
    return total


def vtex_images(sku: Mapping[str, Any]) -> list[ProductImage]:
    images = [
        ProductImage(url=image["ImageUrl"], alt_text=image.get("ImageName") or None)
        for image in sku.get("Images") or []
        if image.get("ImageUrl")
    ]
    if not images and sku.get("ImageUrl"):
        images.append(ProductImage(url=sku["ImageUrl"], alt_text=sku.get("NameComplete") or None))
    return images


def _weight(sku: Mapping[str, Any]) -> Any:
    real = (sku.get("RealDimension") or {}).get("realWeight")
    return real or (sku.get("Dimension") or {}).get("weight") or None


def _product_type(product: Mapping[str, Any], sku: Mapping[str, Any]) -> str | None:
    category_id = product.get("CategoryId")
    if category_id is None:
        return None
    names = sku.get("ProductCategories") or {}
    return names.get(str(category_id)) or str(category_id)


def _tags(product: Mapping[str, Any]) -> list[str]:
    keywords = product.get("KeyWords") or ""
    return [keyword.strip() for keyword in keywords.split(",") if keyword.strip()]


def map_vtex_product(native: Mapping[str, Any]) -> CanonicalProduct:
    """Normalize ``{product, sku, pricing, inventory}`` from ``VtexAdapter``."""
    product = native.get("product") or {}
    sku = native.get("sku") or {}
    if product.get("Id") is None:
        raise MarketplaceDataError("VTEX product record has no Id")

    try:
        price, compare_at_price = vtex_prices(native.get("pricing"))
        inventory = vtex_inventory(native.get("inventory"))
        native_status = vtex_native_status(product, sku)
        alternate_ids = sku.get("AlternateIds") or {}

        variants = []
        if sku.get("Id") is not None:
            variants.append(
                ProductVariant(
                    id=sku["Id"],
                    title=sku.get("NameComplete") or sku.get("SkuName") or "Default",
                    price=price,
                    compare_at_price=compare_at_price,
                    sku=alternate_ids.get("RefId") or product.get("RefId") or None,
                    inventory=inventory,
                    weight=_weight(sku),
                )
            )

        return CanonicalProduct(
            external_id=product["Id"],
            title=product.get("Name") or sku.get("ProductName") or "",
            description=product.get("Description") or product.get("DescriptionShort") or None,
            price=price,
            compare_at_price=compare_at_price,
            inventory=inventory,
            vendor=sku.get("BrandName") or None,
            product_type=_product_type(product, sku),
            handle=product.get("LinkId") or str(product["Id"]),
            status=VTEX_STATUS_MAP[native_status],
            native_status=native_status,
            tags=_tags(product),
            images=vtex_images(sku),
            variants=variants,
            marketplace_created_at=product.get("ReleaseDate") or None,
        )
    except (ValidationError, ValueError, TypeError) as exc:
        raise MarketplaceDataError(f"Invalid VTEX product {product.get('Id')}: {exc}") from exc
