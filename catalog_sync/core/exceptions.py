"""Exception hierarchy for the synchronization engine.

Adapters raise these; the orchestrator decides what is fatal to a job and
what becomes an entry in the job's error list.
"""

from typing import Literal

import httpx

CredentialErrorKind = Literal["credentials_invalid", "insufficient_scope", "credentials_missing"]


class SyncEngineError(Exception):
    """Base class for all engine errors."""

    kind: str = "error"


class CredentialError(SyncEngineError):
    """Credentials are missing, invalid/expired, or lack the required scope."""

    def __init__(self, message: str, *, kind: CredentialErrorKind = "credentials_invalid") -> None:
        super().__init__(message)
        self.kind = kind


class MarketplaceTransportError(SyncEngineError):
    """Timeout, connection reset, throttling or 5xx from a marketplace."""

    kind = "transport"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        transient: bool = True,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient
        self.retry_after = retry_after


class ProductNotFoundError(SyncEngineError):
    """The product no longer exists on the marketplace."""

    kind = "not_found"


class MarketplaceDataError(SyncEngineError):
    """Malformed or partially missing marketplace data."""

    kind = "data"


class CatalogInvariantError(SyncEngineError):
    """A write would break a catalog invariant (e.g. cross-connection collision)."""

    kind = "invariant"


class ConnectionRemovedError(SyncEngineError):
    """The store connection was deleted or now belongs to another workspace."""

    kind = "connection_removed"


class UnsupportedMarketplaceError(SyncEngineError):
    """No adapter is registered for the marketplace type."""

    kind = "unsupported"


class InvalidSyncFiltersError(SyncEngineError):
    """The requested filters cannot match any product."""

    kind = "invalid_filters"


class SyncAlreadyActiveError(SyncEngineError):
    """A sync job for the same store connection is already queued or running."""

    kind = "already_active"


def is_transient(exc: BaseException) -> bool:
    """Return True when ``exc`` is worth retrying."""
    return isinstance(exc, MarketplaceTransportError) and exc.transient


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_marketplace_status(response: httpx.Response, marketplace: str) -> None:
    """Translate an HTTP error status into the engine's error taxonomy.

    401 -> invalid credentials, 403 -> insufficient scope, 404 -> not found,
    408/429/5xx -> transient transport error, any other 4xx -> data error.
    """
    status = response.status_code
    if status < 400:
        return

    if status == 401:
        raise CredentialError(
            f"{marketplace} authentication failed. Please check your credentials.",
            kind="credentials_invalid",
        )
    if status == 403:
        raise CredentialError(
            f"{marketplace} access denied. Ensure your credentials have catalog read permissions.",
            kind="insufficient_scope",
        )
    if status == 404:
        raise ProductNotFoundError(f"{marketplace} resource not found")
    if status in (408, 429) or status >= 500:
        raise MarketplaceTransportError(
            f"{marketplace} API returned {status}",
            status_code=status,
            retry_after=_retry_after(response),
        )
    raise MarketplaceDataError(f"{marketplace} API request failed with status {status}")
