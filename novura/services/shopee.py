"""Shopee Open Platform client (v2).

Every call is signed: HMAC-SHA256 over ``partner_id + path + timestamp``
keyed with the partner key, uppercase hex, sent as the ``sign`` query param.

Reference: https://open.shopee.com/developer-guide/20
"""

import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from novura.config import get_settings
from novura.utils.crypto import hmac_sha256_hex

logger = logging.getLogger(__name__)

PRODUCTION_HOST = "https://partner.shopeemobile.com"
SANDBOX_HOST = "https://partner.test-st.shopeemobile.com"
REFRESH_HOST = "https://openplatform.shopee.com.br"

AUTH_PARTNER_PATH = "/api/v2/shop/auth_partner"
TOKEN_GET_PATH = "/api/v2/auth/token/get"
TOKEN_REFRESH_PATH = "/api/v2/auth/access_token"

DEFAULT_TOKEN_TTL = 14400  # seconds, Shopee access tokens last 4 hours


class ShopeeAPIError(Exception):
    """Raised for Shopee configuration problems and API errors."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ShopeeClient:
    """Signed client for the Shopee partner API."""

    def __init__(
        self,
        partner_id: str | None = None,
        partner_key: str | None = None,
        sandbox: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.partner_id = (partner_id if partner_id is not None else settings.shopee_partner_id).strip()
        self.partner_key = (partner_key if partner_key is not None else settings.shopee_partner_key).strip()
        self.sandbox = settings.shopee_is_sandbox if sandbox is None else sandbox
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def auth_host(self) -> str:
        return SANDBOX_HOST if self.sandbox else PRODUCTION_HOST

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=30.0,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _require_credentials(self) -> None:
        if not self.partner_id or not self.partner_key:
            raise ShopeeAPIError("Shopee partner credentials not configured", status_code=500)
        if not self.partner_id.isdigit():
            raise ShopeeAPIError("Invalid partner_id: must be numeric", status_code=400)

    def sign(self, path: str, timestamp: int) -> str:
        """Public-API signature for path at timestamp (epoch seconds)."""
        return hmac_sha256_hex(self.partner_key, f"{self.partner_id}{path}{timestamp}")

    def _signed_params(self, path: str, timestamp: int | None = None) -> dict[str, Any]:
        ts = timestamp if timestamp is not None else int(time.time())
        return {
            "partner_id": int(self.partner_id),
            "timestamp": ts,
            "sign": self.sign(path, ts),
        }

    # =========================================================================
    # OAuth
    # =========================================================================

    def build_auth_url(self, redirect: str, timestamp: int | None = None) -> str:
        """Shop authorization URL that sends the seller back to redirect."""
        self._require_credentials()
        params = self._signed_params(AUTH_PARTNER_PATH, timestamp)
        params["redirect"] = redirect
        return f"{self.auth_host}{AUTH_PARTNER_PATH}?{urlencode(params)}"

    @retry(
        retry=retry_if_exception_type(httpx.RequestError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def get_access_token(self, code: str, shop_id: int) -> dict[str, Any]:
        """Exchange the authorization code for shop tokens."""
        self._require_credentials()
        body = {"code": code, "shop_id": int(shop_id), "partner_id": int(self.partner_id)}
        return await self._post(PRODUCTION_HOST, TOKEN_GET_PATH, body, "Token exchange failed")

    @retry(
        retry=retry_if_exception_type(httpx.RequestError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def refresh_access_token(self, refresh_token: str, shop_id: int) -> dict[str, Any]:
        """Trade a refresh token for a new shop token pair."""
        self._require_credentials()
        body = {
            "refresh_token": refresh_token,
            "shop_id": int(shop_id),
            "partner_id": int(self.partner_id),
        }
        return await self._post(REFRESH_HOST, TOKEN_REFRESH_PATH, body, "Token refresh failed")

    async def _post(
        self,
        host: str,
        path: str,
        body: dict[str, Any],
        fallback_message: str,
    ) -> dict[str, Any]:
        client = await self._get_client()
        response = await client.post(
            f"{host}{path}",
            params=self._signed_params(path),
            json=body,
        )
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success or not isinstance(payload, dict) or payload.get("error"):
            message = fallback_message
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("error") or fallback_message
            status = response.status_code if not response.is_success else 400
            logger.warning(f"Shopee {path} returned {response.status_code}: {message}")
            raise ShopeeAPIError(message, status_code=status, payload=payload)

        return payload


def token_ttl(payload: dict[str, Any]) -> int:
    """Access-token lifetime in seconds from a Shopee token response."""
    for key in ("expire_in", "expires_in"):
        value = payload.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return int(value)
    return DEFAULT_TOKEN_TTL


# Singleton instance
_shopee_client: ShopeeClient | None = None


def get_shopee_client() -> ShopeeClient:
    """Get or create the Shopee client singleton."""
    global _shopee_client
    if _shopee_client is None:
        _shopee_client = ShopeeClient()
    return _shopee_client


async def shutdown_shopee_client() -> None:
    """Close the Shopee client if it was created."""
    global _shopee_client
    if _shopee_client is not None:
        await _shopee_client.close()
        _shopee_client = None
