"""Encryption helpers for storing marketplace credentials."""

import base64
import hashlib
from functools import lru_cache
from typing import Any

from cryptography.fernet import Fernet

from catalog_sync.core.config import settings


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from the config encryption_key
    using SHA-256, then base64-encodes it.

    Note: Changing encryption_key will make previously encrypted credentials
    undecryptable.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_token(token: str) -> str:
    """Encrypt a token string."""
    f = _get_fernet()
    return f.encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt an encrypted token string."""
    f = _get_fernet()
    return f.decrypt(encrypted.encode()).decode()


def encrypt_credentials(credentials: dict[str, Any]) -> dict[str, str]:
    """Encrypt every value of a marketplace credential bundle.

    Bundles are opaque key/value maps whose shape depends on the marketplace
    (``{shop_url, access_token}``, ``{account_name, app_key, app_token}``, ...).
    Values are stringified before encryption.
    """
    return {key: encrypt_token(str(value)) for key, value in credentials.items()}


def decrypt_credentials(encrypted: dict[str, str]) -> dict[str, str]:
    """Decrypt a bundle produced by :func:`encrypt_credentials`."""
    return {key: decrypt_token(value) for key, value in encrypted.items()}
