"""Marketplace integration contracts.

``ConnectionTester`` covers credential validation and the connection test
every connectable marketplace offers. ``MarketplaceAdapter`` adds the
capability set a marketplace needs to take part in catalog syncs.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx

from catalog_sync.core.config import settings
from catalog_sync.core.exceptions import (
    CredentialError,
    MarketplaceDataError,
    MarketplaceTransportError,
    SyncEngineError,
    raise_for_marketplace_status,
)
from catalog_sync.core.retry import NO_RETRY, RetryPolicy
from catalog_sync.models.catalog_cache import CatalogCacheKind
from catalog_sync.models.store_connection import MarketplaceType
from catalog_sync.schemas.catalog import CatalogEntry
from catalog_sync.schemas.connection import ConnectionTestResult
from catalog_sync.schemas.product import CanonicalProduct
from catalog_sync.services.filter_translator import NativeQuery

logger = logging.getLogger(__name__)


@dataclass
class IdPage:
    """One page of candidate product ids.

    ``next_cursor`` is None when the marketplace signals no more pages.
    ``filtered_out`` counts ids dropped by a client-side filter on this page.
    """

    ids: list[str]
    next_cursor: Any = None
    filtered_out: int = 0


class ConnectionTester(ABC):
    """Credential bundle of one marketplace plus its connection test.

    Failures surface as ``SyncEngineError`` subclasses except in
    ``test_connection``, which always returns a result. A tester without a
    ``connection_test_url`` only validates the shape of the credentials.
    """

    marketplace_type: ClassVar[MarketplaceType]
    display_name: ClassVar[str]
    required_credentials: ClassVar[tuple[str, ...]]
    error_message_keys: ClassVar[tuple[str, ...]] = ("errors", "message", "error")

    def __init__(self, credentials: Mapping[str, Any]) -> None:
        missing = [key for key in self.required_credentials if not credentials.get(key)]
        if missing:
            raise CredentialError(
                f"Missing required {self.display_name} credentials: {', '.join(missing)}",
                kind="credentials_missing",
            )
        self.credentials = dict(credentials)
        self.timeout = settings.marketplace_request_timeout
        self.probe_timeout = settings.marketplace_probe_timeout

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    @property
    def headers(self) -> dict[str, str]:
        """Authentication headers sent with every request."""
        return {}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, translating transport failures. Status is not checked."""
        request_headers = {**self.headers, **(headers or {})}
        try:
            async with httpx.AsyncClient(headers=request_headers, timeout=timeout or self.timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise MarketplaceTransportError(f"{self.display_name} API request timed out. Please try again.") from exc
        except httpx.TransportError as exc:
            raise MarketplaceTransportError(f"{self.display_name} API unreachable: {exc}") from exc

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request and raise on any error status."""
        response = await self._request(method, url, **kwargs)
        raise_for_marketplace_status(response, self.display_name)
        return response

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self._send("GET", url, **kwargs)
        return self._json(response)

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MarketplaceDataError(f"{self.display_name} returned a non-JSON response") from exc

    def error_message(self, response: httpx.Response) -> str | None:
        """Extract a human-readable message from the marketplace's error envelope."""
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
        for key in self.error_message_keys:
            value = body.get(key)
            if not value:
                continue
            if isinstance(value, str):
                return value
            if isinstance(value, list):
                return "; ".join(
                    str(item.get("message", item)) if isinstance(item, dict) else str(item) for item in value
                )
            if isinstance(value, dict):
                if isinstance(value.get("message"), str):
                    return value["message"]
                return "; ".join(f"{k}: {v}" for k, v in value.items())
        return None

    # ------------------------------------------------------------------
    # Connection test
    # ------------------------------------------------------------------

    def connection_test_url(self) -> str | None:
        """URL of the lightweight authenticated call used to test credentials."""
        return None

    def connection_test_params(self) -> dict[str, Any]:
        """Query parameters sent with the connection test call."""
        return {}

    @abstractmethod
    def connection_metadata(self, body: Any) -> dict[str, Any]:
        """Account details reported by a successful connection test."""

    def _connection_failed(self, message: str, kind: str) -> ConnectionTestResult:
        logger.info("%s connection test failed: %s", self.display_name, message)
        return ConnectionTestResult(success=False, message=message, error_kind=kind)

    async def test_connection(self) -> ConnectionTestResult:
        """Perform one authenticated call. Never raises."""
        url = self.connection_test_url()
        if url is None:
            return ConnectionTestResult(
                success=True,
                message=f"{self.display_name} credentials validated (format correct)",
                metadata=self.connection_metadata(None),
            )

        try:
            response = await self._request(
                "GET",
                url,
                timeout=settings.connection_test_timeout,
                params=self.connection_test_params(),
            )
        except SyncEngineError as exc:
            return self._connection_failed(str(exc), exc.kind)

        if response.status_code >= 400:
            try:
                raise_for_marketplace_status(response, self.display_name)
            except SyncEngineError as exc:
                return self._connection_failed(self.error_message(response) or str(exc), exc.kind)

        try:
            metadata = self.connection_metadata(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            return self._connection_failed(f"Unexpected {self.display_name} response: {exc}", "data")

        return ConnectionTestResult(
            success=True,
            message=f"{self.display_name} connection successful",
            metadata=metadata,
        )


class MarketplaceAdapter(ConnectionTester):
    """Capability set every syncable marketplace integration implements.

    An adapter is bound to one decrypted credential bundle.
    """

    def __init__(self, credentials: Mapping[str, Any]) -> None:
        super().__init__(credentials)
        self.max_pages = settings.pagination_max_pages
        self.filtered_out = 0

    @property
    @abstractmethod
    def headers(self) -> dict[str, str]:
        """Authentication headers sent with every request."""

    @abstractmethod
    def connection_test_url(self) -> str:
        """URL of the lightweight authenticated call used to test credentials."""

    # ------------------------------------------------------------------
    # Candidate listing
    # ------------------------------------------------------------------

    @abstractmethod
    async def fetch_id_page(self, query: NativeQuery, cursor: Any = None) -> IdPage:
        """Fetch one page of candidate ids starting at ``cursor``."""

    async def iter_candidate_ids(
        self,
        query: NativeQuery,
        retry_policy: RetryPolicy | None = None,
    ) -> AsyncIterator[str]:
        """Lazily yield candidate external ids in pagination order.

        Stops when the marketplace signals the last page or after
        ``max_pages`` pages, whichever comes first. Each call starts over
        from the first page.
        """
        policy = retry_policy or NO_RETRY
        self.filtered_out = 0
        cursor: Any = None

        for page_number in range(1, self.max_pages + 1):
            page = await policy.call(self.fetch_id_page, query, cursor)
            self.filtered_out += page.filtered_out
            logger.debug("%s id page %d: %d ids", self.display_name, page_number, len(page.ids))
            for external_id in page.ids:
                yield external_id
            if page.next_cursor is None:
                return
            cursor = page.next_cursor

        logger.warning(
            "%s pagination reached the %d page limit, stopping",
            self.display_name,
            self.max_pages,
        )

    async def estimate_product_count(self, query: NativeQuery) -> int | None:
        """Cheap estimate of the candidate count, or None when unavailable."""
        try:
            return await self._estimate(query)
        except CredentialError:
            raise
        except SyncEngineError as exc:
            logger.warning("%s product count estimate failed: %s", self.display_name, exc)
            return None

    async def _estimate(self, query: NativeQuery) -> int | None:
        return None

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @abstractmethod
    async def fetch_complete_product(self, external_id: str) -> dict[str, Any]:
        """Fetch everything needed to build one canonical product."""

    def discard_prefetched(self, external_id: str) -> None:
        """Drop any record kept from listing for an id that will not be fetched."""

    @abstractmethod
    def map_product(self, native: Mapping[str, Any]) -> CanonicalProduct:
        """Normalize a complete native record."""

    # ------------------------------------------------------------------
    # Catalog metadata
    # ------------------------------------------------------------------

    @abstractmethod
    async def fetch_categories(self) -> list[CatalogEntry]:
        """Flat, level-annotated category list."""

    @abstractmethod
    async def fetch_brands(self) -> list[CatalogEntry]:
        """Active brands only."""

    async def fetch_catalog(self, kind: CatalogCacheKind) -> list[CatalogEntry]:
        if kind is CatalogCacheKind.CATEGORY:
            return await self.fetch_categories()
        return await self.fetch_brands()

    @abstractmethod
    async def _probe(self, kind: CatalogCacheKind, entry_id: str) -> bool:
        """Whether at least one product exists for the category or brand."""

    async def count_products_for(self, kind: CatalogCacheKind, entry_id: str) -> int:
        """Existence probe: 1 when the entry has at least one product, else 0.

        Credential errors propagate; any other failure counts as 0.
        """
        try:
            return 1 if await self._probe(kind, entry_id) else 0
        except CredentialError:
            raise
        except SyncEngineError as exc:
            logger.warning(
                "%s %s probe for %s failed: %s",
                self.display_name,
                kind.value,
                entry_id,
                exc,
            )
            return 0
