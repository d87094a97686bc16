"""Tests for HTTP status translation into engine errors."""

import httpx
import pytest

from catalog_sync.core.exceptions import (
    CredentialError,
    MarketplaceDataError,
    MarketplaceTransportError,
    ProductNotFoundError,
    is_transient,
    raise_for_marketplace_status,
)


def _response(status_code: int, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(status_code, headers=headers, request=httpx.Request("GET", "https://marketplace.test/"))


class TestRaiseForMarketplaceStatus:
    @pytest.mark.parametrize("status_code", [200, 201, 204, 302])
    def test_success_passes(self, status_code: int) -> None:
        raise_for_marketplace_status(_response(status_code), "Shopify")

    def test_401_is_invalid_credentials(self) -> None:
        with pytest.raises(CredentialError) as exc_info:
            raise_for_marketplace_status(_response(401), "Shopify")

        assert exc_info.value.kind == "credentials_invalid"
        assert "Shopify" in str(exc_info.value)

    def test_403_is_insufficient_scope(self) -> None:
        with pytest.raises(CredentialError) as exc_info:
            raise_for_marketplace_status(_response(403), "VTEX")

        assert exc_info.value.kind == "insufficient_scope"

    def test_404_is_not_found(self) -> None:
        with pytest.raises(ProductNotFoundError):
            raise_for_marketplace_status(_response(404), "VTEX")

    @pytest.mark.parametrize("status_code", [408, 429, 500, 502, 503])
    def test_transient_statuses(self, status_code: int) -> None:
        with pytest.raises(MarketplaceTransportError) as exc_info:
            raise_for_marketplace_status(_response(status_code), "Shopify")

        assert exc_info.value.status_code == status_code
        assert is_transient(exc_info.value)

    def test_retry_after_header_is_parsed(self) -> None:
        with pytest.raises(MarketplaceTransportError) as exc_info:
            raise_for_marketplace_status(_response(429, {"Retry-After": "2"}), "Shopify")

        assert exc_info.value.retry_after == 2.0

    def test_unparseable_retry_after_is_ignored(self) -> None:
        with pytest.raises(MarketplaceTransportError) as exc_info:
            raise_for_marketplace_status(_response(429, {"Retry-After": "soon"}), "Shopify")

        assert exc_info.value.retry_after is None

    @pytest.mark.parametrize("status_code", [400, 409, 422])
    def test_other_client_errors_are_data_errors(self, status_code: int) -> None:
        with pytest.raises(MarketplaceDataError):
            raise_for_marketplace_status(_response(status_code), "Shopify")


class TestIsTransient:
    def test_only_transient_transport_errors(self) -> None:
        assert is_transient(MarketplaceTransportError("timeout")) is True
        assert is_transient(MarketplaceTransportError("bad", transient=False)) is False
        assert is_transient(ProductNotFoundError("gone")) is False
        assert is_transient(ValueError("x")) is False
