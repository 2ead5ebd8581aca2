"""Mercado Livre API client.

Covers the calls the backend makes on behalf of a connected seller:
- OAuth authorization-code exchange and token refresh
- Item details (webhook ingestion)
- Listing quality/performance

Reference: https://developers.mercadolivre.com.br/pt_br/api-docs-pt-br
"""

import asyncio
import logging
from typing import Any

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

RATE_LIMIT_ATTEMPTS = 3
RATE_LIMIT_BASE_DELAY = 0.3  # seconds, doubled per attempt
AUTH_ERROR_STATUSES = (400, 401, 403)


class MercadoLivreAPIError(Exception):
    """Raised when Mercado Livre answers with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class MercadoLivreClient:
    """Async client for api.mercadolibre.com.

    Tokens are passed per call since every organization has its own.
    """

    BASE_URL = "https://api.mercadolibre.com"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client: httpx.AsyncClient | None = None
        self._transport = transport

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=30.0,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # =========================================================================
    # OAuth
    # =========================================================================

    @retry(
        retry=retry_if_exception_type(httpx.RequestError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def exchange_code(
        self,
        client_id: str,
        client_secret: str,
        code: str,
        redirect_uri: str | None = None,
        code_verifier: str | None = None,
    ) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Returns:
            Token payload: access_token, refresh_token, expires_in, user_id
        """
        form = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
        }
        if redirect_uri:
            form["redirect_uri"] = redirect_uri
        if code_verifier:
            form["code_verifier"] = code_verifier

        return await self._post_token(form, "Token exchange failed")

    @retry(
        retry=retry_if_exception_type(httpx.RequestError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def refresh_token(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
    ) -> dict[str, Any]:
        """Trade a refresh token for a new token pair."""
        form = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
        return await self._post_token(form, "Token refresh failed")

    async def _post_token(self, form: dict[str, str], fallback_message: str) -> dict[str, Any]:
        client = await self._get_client()
        response = await client.post(
            "/oauth/token",
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        payload = _json_or_none(response)

        if not response.is_success or not isinstance(payload, dict) or not payload.get("access_token"):
            message = fallback_message
            if isinstance(payload, dict):
                message = payload.get("error_description") or payload.get("message") or fallback_message
            status = response.status_code if not response.is_success else 502
            logger.warning(f"Mercado Livre token endpoint returned {response.status_code}: {message}")
            raise MercadoLivreAPIError(message, status_code=status, payload=payload)

        return payload

    # =========================================================================
    # Items
    # =========================================================================

    @retry(
        retry=retry_if_exception_type(httpx.RequestError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def get_item(self, item_id: str, access_token: str) -> dict[str, Any]:
        """Fetch the full item resource."""
        client = await self._get_client()
        response = await client.get(
            f"/items/{item_id}",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        payload = _json_or_none(response)

        if not response.is_success:
            message = "Failed to fetch item"
            if isinstance(payload, dict):
                message = payload.get("message") or message
            raise MercadoLivreAPIError(message, status_code=response.status_code, payload=payload)

        if not isinstance(payload, dict):
            raise MercadoLivreAPIError("Unexpected item payload", status_code=response.status_code)
        return payload

    async def validate_token(self, access_token: str) -> bool:
        """Cheap token check against /users/me."""
        client = await self._get_client()
        try:
            response = await client.get(
                "/users/me",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.RequestError as e:
            logger.warning(f"Token validation request failed: {e}")
            return False
        return response.is_success

    # =========================================================================
    # Quality / performance
    # =========================================================================

    async def _get_with_backoff(self, path: str, access_token: str) -> httpx.Response:
        """GET that waits and retries while the API answers 429."""
        client = await self._get_client()
        response: httpx.Response | None = None
        for attempt in range(RATE_LIMIT_ATTEMPTS):
            response = await client.get(
                path,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if response.status_code != 429:
                return response
            await asyncio.sleep(RATE_LIMIT_BASE_DELAY * (2 ** attempt))
        return response

    async def get_item_performance(
        self,
        item_id: str,
        access_token: str,
        source: str = "item",
    ) -> dict[str, Any]:
        """Listing performance from ``item/{id}/performance``.

        Args:
            item_id: Listing id (e.g. MLB123)
            access_token: Seller token
            source: "item" or "user-product"

        Raises:
            MercadoLivreAPIError: On any non-success answer (after 429 backoff).
        """
        path = f"/{source}/{item_id}/performance"
        response = await self._get_with_backoff(path, access_token)
        payload = _json_or_none(response)

        if not response.is_success:
            raise MercadoLivreAPIError(
                f"{source}/performance returned {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        return payload if isinstance(payload, dict) else {}


# Singleton instance
_ml_client: MercadoLivreClient | None = None


def get_mercado_livre_client() -> MercadoLivreClient:
    """Get or create the Mercado Livre client singleton."""
    global _ml_client
    if _ml_client is None:
        _ml_client = MercadoLivreClient()
    return _ml_client


async def shutdown_mercado_livre_client() -> None:
    """Close the Mercado Livre client if it was created."""
    global _ml_client
    if _ml_client is not None:
        await _ml_client.close()
        _ml_client = None
