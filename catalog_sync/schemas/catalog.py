"""Schemas for catalog metadata (categories and brands)."""

from typing import Literal

from catalog_sync.schemas.common import BaseSchema


class CatalogEntry(BaseSchema):
    """A category or brand as listed by a marketplace adapter."""

    id: str
    name: str
    parent_id: str | None = None
    level: int | None = None


class CatalogCacheItem(CatalogEntry):
    """A catalog entry annotated with its product count."""

    product_count: int = 0


class CatalogMetadata(BaseSchema):
    """Cached metadata returned to callers building filter UIs."""

    kind: Literal["category", "brand"]
    items: list[CatalogCacheItem]
