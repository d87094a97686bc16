"""Canonical product shape produced by every marketplace mapper."""

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from catalog_sync.models.product import ProductStatus
from catalog_sync.schemas.common import BaseSchema


def to_price(value: Any) -> float | None:
    """Coerce a marketplace price (string, int, float or None) to float."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid price: {value!r}")
    if isinstance(value, int | float):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"invalid price: {value!r}") from None


class ProductImage(BaseSchema):
    """A product image."""

    url: str
    alt_text: str | None = None


class ProductVariant(BaseSchema):
    """A purchasable variant of a product."""

    id: str
    title: str = "Default"
    price: float | None = None
    compare_at_price: float | None = None
    sku: str | None = None
    inventory: int = 0
    weight: float | None = None

    @field_validator("price", "compare_at_price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> float | None:
        return to_price(value)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class CanonicalProduct(BaseSchema):
    """Marketplace-agnostic product ready to be upserted.

    Optional collections default to empty lists, never None. ``native_status``
    keeps the marketplace's own status string next to the canonical ``status``.
    """

    external_id: str = Field(min_length=1)
    title: str
    description: str | None = None
    price: float | None = None
    compare_at_price: float | None = None
    inventory: int = 0
    vendor: str | None = None
    product_type: str | None = None
    handle: str | None = None
    status: ProductStatus = ProductStatus.ACTIVE
    native_status: str | None = None
    tags: list[str] = Field(default_factory=list)
    images: list[ProductImage] = Field(default_factory=list)
    variants: list[ProductVariant] = Field(default_factory=list)
    marketplace_created_at: datetime | None = None
    marketplace_updated_at: datetime | None = None

    @field_validator("price", "compare_at_price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> float | None:
        return to_price(value)

    @field_validator("external_id", mode="before")
    @classmethod
    def _coerce_external_id(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("tags", "images", "variants", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``products`` table."""
        return self.model_dump()
