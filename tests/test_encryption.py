"""Tests for credential encryption."""

import pytest
from cryptography.fernet import InvalidToken

from catalog_sync.core.encryption import (
    decrypt_credentials,
    decrypt_token,
    encrypt_credentials,
    encrypt_token,
)
from tests.conftest import SHOPIFY_CREDENTIALS, VTEX_CREDENTIALS

# ---------------------------------------------------------------------------
# Tests: single values
# ---------------------------------------------------------------------------


class TestTokenEncryption:
    def test_round_trip(self) -> None:
        ciphertext = encrypt_token("shpat_abc123_access_token")

        assert ciphertext != "shpat_abc123_access_token"
        assert decrypt_token(ciphertext) == "shpat_abc123_access_token"

    def test_ciphertext_differs_each_call(self) -> None:
        """Fernet embeds a timestamp and IV."""
        first = encrypt_token("same-value")
        second = encrypt_token("same-value")

        assert first != second
        assert decrypt_token(first) == decrypt_token(second) == "same-value"

    def test_tampered_ciphertext_raises(self) -> None:
        ciphertext = encrypt_token("secret")
        mid = len(ciphertext) // 2
        replacement = "A" if ciphertext[mid] != "A" else "B"
        tampered = ciphertext[:mid] + replacement + ciphertext[mid + 1 :]

        with pytest.raises(InvalidToken):
            decrypt_token(tampered)

    def test_garbage_raises(self) -> None:
        with pytest.raises((InvalidToken, ValueError)):
            decrypt_token("not-a-fernet-token")

    @pytest.mark.parametrize("plaintext", ["", "日本語 🔐 émojis", "x" * 10_240])
    def test_edge_values(self, plaintext: str) -> None:
        assert decrypt_token(encrypt_token(plaintext)) == plaintext


# ---------------------------------------------------------------------------
# Tests: credential bundles
# ---------------------------------------------------------------------------


class TestCredentialBundles:
    @pytest.mark.parametrize("credentials", [SHOPIFY_CREDENTIALS, VTEX_CREDENTIALS])
    def test_every_value_is_encrypted(self, credentials: dict[str, str]) -> None:
        encrypted = encrypt_credentials(credentials)

        assert set(encrypted) == set(credentials)
        assert all(encrypted[key] != value for key, value in credentials.items())
        assert decrypt_credentials(encrypted) == credentials

    def test_values_are_stringified(self) -> None:
        encrypted = encrypt_credentials({"account_name": "store", "retries": 3})

        assert decrypt_credentials(encrypted) == {"account_name": "store", "retries": "3"}

    def test_empty_bundle(self) -> None:
        assert encrypt_credentials({}) == {}
        assert decrypt_credentials({}) == {}
