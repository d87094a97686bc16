"""Pytest configuration and fixtures for the catalog sync test suite.

Provides:
- A file-backed SQLite Catalog Store per test (aiosqlite, NullPool)
- Fake Redis (fakeredis)
- A scriptable in-memory marketplace adapter for orchestrator/cache tests
- Factories for store connections, products and sync jobs
- httpx response builders for adapter tests
"""

import uuid
from collections.abc import AsyncGenerator, Callable, Mapping
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import fakeredis.aioredis
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from catalog_sync.core.encryption import encrypt_credentials
from catalog_sync.core.exceptions import ProductNotFoundError, SyncEngineError
from catalog_sync.core.retry import RetryPolicy
from catalog_sync.integrations.base import IdPage, MarketplaceAdapter
from catalog_sync.models.base import Base
from catalog_sync.models.catalog_cache import CatalogCacheKind
from catalog_sync.models.store_connection import MarketplaceType, StoreConnection
from catalog_sync.schemas.catalog import CatalogEntry
from catalog_sync.schemas.product import CanonicalProduct
from catalog_sync.services.catalog_store import CatalogStore
from catalog_sync.services.filter_translator import NativeQuery
from catalog_sync.workers.job_queue import JobQueue

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
WORKSPACE_ID = UUID("11111111-1111-1111-1111-111111111111")
OTHER_WORKSPACE_ID = UUID("22222222-2222-2222-2222-222222222222")
USER_ID = UUID("33333333-3333-3333-3333-333333333333")

SHOPIFY_CREDENTIALS = {"shop_url": "test-shop.myshopify.com", "access_token": "shpat_test_token"}
VTEX_CREDENTIALS = {"account_name": "teststore", "app_key": "vtexappkey-test", "app_token": "secret-token"}

# No backoff sleeps in tests
FAST_RETRY = RetryPolicy(max_attempts=3, backoff_base=0, backoff_max=0)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_maker(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a fresh SQLite database with all tables created.

    NullPool gives every session its own connection, like the per-call
    sessions the store opens against PostgreSQL.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_maker: async_sessionmaker[AsyncSession]) -> CatalogStore:
    return CatalogStore(session_maker)


# ---------------------------------------------------------------------------
# Fake Redis and job queue
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def queue(
    session_maker: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> JobQueue:
    return JobQueue(session_maker, fake_redis, lease_ttl=60, scan_limit=50)


# ---------------------------------------------------------------------------
# Scriptable marketplace
# ---------------------------------------------------------------------------


class FakeAdapter(MarketplaceAdapter):
    """In-memory marketplace.

    ``pages`` lists the ids returned per listing page. ``records`` maps an id
    to its native record (``{"id", "title", ...}``); ids missing from it
    raise ``ProductNotFoundError``. ``failures`` maps an id to an exception
    raised on every fetch, or to a list of exceptions raised on successive
    fetches before the record is returned.
    """

    marketplace_type = MarketplaceType.SHOPIFY
    display_name = "Fake"
    required_credentials = ()

    def __init__(
        self,
        pages: list[list[str]] | None = None,
        records: dict[str, dict[str, Any]] | None = None,
        failures: dict[str, Any] | None = None,
        estimate: int | None = None,
        endless: bool = False,
        categories: list[CatalogEntry] | None = None,
        brands: list[CatalogEntry] | None = None,
        counts: dict[str, int] | None = None,
    ) -> None:
        super().__init__({})
        self.pages = pages or []
        self.records = records or {}
        self.failures = dict(failures or {})
        self.estimate = estimate
        self.endless = endless
        self.categories = categories or []
        self.brands = brands or []
        self.counts = counts or {}
        self.page_calls = 0
        self.fetch_calls: dict[str, int] = {}
        self.probe_calls: list[str] = []
        self.catalog_calls = 0
        self.discarded: list[str] = []

    @property
    def headers(self) -> dict[str, str]:
        return {}

    def connection_test_url(self) -> str:
        return "https://fake.example/ping"

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        return dict(body)

    async def fetch_id_page(self, query: NativeQuery, cursor: Any = None) -> IdPage:
        self.page_calls += 1
        if self.endless:
            return IdPage(ids=[f"loop-{self.page_calls}"], next_cursor=self.page_calls)
        index = int(cursor or 0)
        ids = self.pages[index] if index < len(self.pages) else []
        next_cursor = index + 1 if index + 1 < len(self.pages) else None
        return IdPage(ids=list(ids), next_cursor=next_cursor)

    async def _estimate(self, query: NativeQuery) -> int | None:
        return self.estimate

    async def fetch_complete_product(self, external_id: str) -> dict[str, Any]:
        self.fetch_calls[external_id] = self.fetch_calls.get(external_id, 0) + 1
        failure = self.failures.get(external_id)
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
        elif failure is not None:
            raise failure
        if external_id not in self.records:
            raise ProductNotFoundError(f"Fake product {external_id} not found")
        return self.records[external_id]

    def discard_prefetched(self, external_id: str) -> None:
        self.discarded.append(external_id)

    def map_product(self, native: Mapping[str, Any]) -> CanonicalProduct:
        return CanonicalProduct(
            external_id=native["id"],
            title=native.get("title", ""),
            price=native.get("price"),
            vendor=native.get("vendor"),
        )

    async def fetch_categories(self) -> list[CatalogEntry]:
        self.catalog_calls += 1
        return list(self.categories)

    async def fetch_brands(self) -> list[CatalogEntry]:
        self.catalog_calls += 1
        return list(self.brands)

    async def _probe(self, kind: CatalogCacheKind, entry_id: str) -> bool:
        self.probe_calls.append(entry_id)
        count = self.counts.get(entry_id, 0)
        if isinstance(count, SyncEngineError):
            raise count
        return count > 0


def fake_records(*ids: str) -> dict[str, dict[str, Any]]:
    return {external_id: {"id": external_id, "title": f"Product {external_id}", "price": "10.00"} for external_id in ids}


def factory_for(adapter: MarketplaceAdapter) -> Callable[[MarketplaceType, Mapping[str, Any]], MarketplaceAdapter]:
    """Adapter factory that always returns ``adapter``."""

    def factory(marketplace_type: MarketplaceType, credentials: Mapping[str, Any]) -> MarketplaceAdapter:
        return adapter

    return factory


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def create_connection(store: CatalogStore) -> Callable[..., Any]:
    """Factory creating a store connection with encrypted credentials."""

    async def _create(
        marketplace_type: MarketplaceType = MarketplaceType.SHOPIFY,
        workspace_id: UUID = WORKSPACE_ID,
        credentials: dict[str, Any] | None = None,
        store_name: str = "Test Store",
    ) -> StoreConnection:
        if credentials is None:
            credentials = VTEX_CREDENTIALS if marketplace_type == MarketplaceType.VTEX else SHOPIFY_CREDENTIALS
        return await store.save_connection(
            workspace_id=workspace_id,
            user_id=USER_ID,
            marketplace_type=marketplace_type,
            store_name=store_name,
            credentials=encrypt_credentials(credentials),
        )

    return _create


@pytest.fixture
def create_job(queue: JobQueue) -> Callable[..., Any]:
    """Factory enqueueing a marketplace sync job for a connection."""

    async def _create(
        connection: StoreConnection,
        filters: dict[str, Any] | None = None,
        force: bool = False,
        priority: int = 5,
        attempts: int | None = None,
        workspace_id: UUID | None = None,
    ) -> UUID:
        return await queue.enqueue(
            "marketplace_sync",
            {
                "workspace_id": str(workspace_id or connection.workspace_id),
                "user_id": str(USER_ID),
                "store_connection_id": str(connection.id),
                "marketplace_type": connection.marketplace_type.value,
                "filters": filters or {},
                "force": force,
            },
            priority=priority,
            attempts=attempts,
        )

    return _create


def canonical_product(external_id: str | None = None, **overrides: Any) -> CanonicalProduct:
    """Build a CanonicalProduct with sensible defaults."""
    values: dict[str, Any] = {
        "external_id": external_id or str(uuid.uuid4()),
        "title": "Test Product",
        "description": "A test product",
        "price": 29.99,
        "vendor": "Test Vendor",
        "tags": ["test"],
    }
    values.update(overrides)
    return CanonicalProduct(**values)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def json_response(status_code: int, body: Any, url: str = "https://marketplace.test/") -> httpx.Response:
    """A real httpx.Response carrying a JSON body."""
    return httpx.Response(status_code, json=body, request=httpx.Request("GET", url))


@pytest.fixture
def mock_http() -> Any:
    """Patch httpx.AsyncClient used by every adapter.

    Set ``mock_http.request.side_effect`` / ``return_value`` to script
    responses.
    """
    with patch("catalog_sync.integrations.base.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client
        mock_client.constructor = mock_class
        yield mock_client


def call_urls(mock_client: MagicMock) -> list[str]:
    """URLs requested through the mocked client, in order."""
    return [call.args[1] for call in mock_client.request.call_args_list]
