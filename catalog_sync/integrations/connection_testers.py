"""Connection tests for marketplaces that can be connected but not yet synced.

Amazon SP-API and the Google Content API need request signing and service
account token exchange, so their testers only check the credential shape.
"""

import base64
from typing import Any

from catalog_sync.integrations.base import ConnectionTester
from catalog_sync.models.store_connection import MarketplaceType

MERCADOLIBRE_API_URL = "https://api.mercadolibre.com"
FACEBOOK_GRAPH_URL = "https://graph.facebook.com/v18.0"


class MercadoLibreConnection(ConnectionTester):
    marketplace_type = MarketplaceType.MERCADOLIBRE
    display_name = "MercadoLibre"
    required_credentials = ("access_token", "user_id")

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credentials['access_token']}"}

    def connection_test_url(self) -> str:
        return f"{MERCADOLIBRE_API_URL}/users/{self.credentials['user_id']}"

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        return {
            "user_id": body["id"],
            "nickname": body.get("nickname"),
            "country": body.get("country_id"),
        }


class FacebookShopConnection(ConnectionTester):
    """Graph API page lookup; the token travels as a query parameter."""

    marketplace_type = MarketplaceType.FACEBOOK_SHOP
    display_name = "Facebook Shop"
    required_credentials = ("page_id", "access_token")
    error_message_keys = ("error",)

    def connection_test_url(self) -> str:
        return f"{FACEBOOK_GRAPH_URL}/{self.credentials['page_id']}"

    def connection_test_params(self) -> dict[str, Any]:
        return {"access_token": self.credentials["access_token"], "fields": "name,category"}

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        return {
            "page_id": body["id"],
            "page_name": body.get("name"),
            "category": body.get("category"),
        }


class WooCommerceConnection(ConnectionTester):
    marketplace_type = MarketplaceType.WOOCOMMERCE
    display_name = "WooCommerce"
    required_credentials = ("site_url", "consumer_key", "consumer_secret")
    error_message_keys = ("message",)

    @property
    def site_url(self) -> str:
        return str(self.credentials["site_url"]).rstrip("/")

    @property
    def headers(self) -> dict[str, str]:
        pair = f"{self.credentials['consumer_key']}:{self.credentials['consumer_secret']}"
        return {"Authorization": f"Basic {base64.b64encode(pair.encode()).decode()}"}

    def connection_test_url(self) -> str:
        return f"{self.site_url}/wp-json/wc/v3/system_status"

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        return {
            "site_url": self.site_url,
            "version": (body.get("settings") or {}).get("version") or "Unknown",
            "theme": (body.get("theme") or {}).get("name") or "Unknown",
        }


class AmazonConnection(ConnectionTester):
    marketplace_type = MarketplaceType.AMAZON
    display_name = "Amazon"
    required_credentials = ("seller_id", "marketplace_id", "access_key", "secret_key", "region")

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        return {
            "seller_id": self.credentials["seller_id"],
            "marketplace_id": self.credentials["marketplace_id"],
            "region": self.credentials["region"],
        }


class GoogleShoppingConnection(ConnectionTester):
    marketplace_type = MarketplaceType.GOOGLE_SHOPPING
    display_name = "Google Shopping"
    required_credentials = ("merchant_id", "client_email", "private_key")

    def connection_metadata(self, body: Any) -> dict[str, Any]:
        return {
            "merchant_id": self.credentials["merchant_id"],
            "client_email": self.credentials["client_email"],
        }
