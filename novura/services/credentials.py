"""Marketplace credentials: decryption, expiry checks and token refresh.

Integrations store AES-GCM encrypted tokens. This service hands out usable
plaintext access tokens, refreshing and re-encrypting them when expired.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from novura.config import get_settings
from novura.models.integration import (
    MarketplaceApp,
    MarketplaceIntegration,
    MERCADO_LIVRE,
    SHOPEE,
)
from novura.schemas.common import MarketplaceName
from novura.services.mercado_livre import (
    MercadoLivreAPIError,
    MercadoLivreClient,
    get_mercado_livre_client,
)
from novura.services.shopee import ShopeeAPIError, ShopeeClient, get_shopee_client, token_ttl
from novura.utils.crypto import TokenCryptoError, encrypt_token, load_key, try_decrypt_token

logger = logging.getLogger(__name__)

ML_DEFAULT_TOKEN_TTL = 3600  # seconds, used when the token response omits expires_in
SHOPEE_REFRESH_WINDOW = timedelta(minutes=10)

DISPLAY_NAMES = {
    MarketplaceName.MERCADO_LIVRE: MERCADO_LIVRE,
    MarketplaceName.SHOPEE: SHOPEE,
}


class CredentialsError(Exception):
    """Credentials cannot be produced; status_code is the HTTP mapping."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class IntegrationNotFoundError(CredentialsError):
    def __init__(self, message: str = "Integration not found") -> None:
        super().__init__(message, status_code=404)


class MarketplaceCredentials(BaseModel):
    """Usable credentials for one integration."""

    integration_id: uuid.UUID
    access_token: str
    marketplace: MarketplaceName
    is_expired: bool
    meli_user_id: str | None = None


def normalize_marketplace(name: str | None) -> MarketplaceName:
    """Map stored marketplace names to the normalized enum.

    Examples:
        >>> normalize_marketplace("Mercado Livre").value
        'mercado_livre'
        >>> normalize_marketplace("Shopee").value
        'shopee'
    """
    value = (name or "").strip().lower().replace(" ", "_")
    if value == "shopee":
        return MarketplaceName.SHOPEE
    return MarketplaceName.MERCADO_LIVRE


def as_utc(moment: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def is_token_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """An integration without an expiry is treated as expired."""
    expires_at = as_utc(expires_at)
    if expires_at is None:
        return True
    now = now or datetime.now(timezone.utc)
    return now >= expires_at


def get_token_cipher() -> AESGCM:
    """Cipher for the configured TOKENS_ENCRYPTION_KEY.

    Raises:
        CredentialsError: 500 when the key is missing or invalid.
    """
    raw_key = get_settings().tokens_encryption_key
    if not raw_key:
        raise CredentialsError("Missing TOKENS_ENCRYPTION_KEY", status_code=500)
    try:
        return load_key(raw_key)
    except TokenCryptoError as e:
        raise CredentialsError(f"Invalid TOKENS_ENCRYPTION_KEY: {e}", status_code=500) from e


class CredentialsService:
    """Service producing valid marketplace tokens for integrations."""

    def __init__(
        self,
        db: AsyncSession,
        ml_client: MercadoLivreClient | None = None,
        shopee_client: ShopeeClient | None = None,
    ) -> None:
        """Initialize the credentials service.

        Args:
            db: Async database session
            ml_client: Mercado Livre client (defaults to the shared singleton)
            shopee_client: Shopee client (defaults to the shared singleton)
        """
        self._db = db
        self._settings = get_settings()
        self._ml = ml_client or get_mercado_livre_client()
        self._shopee = shopee_client or get_shopee_client()

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_integration(self, integration_id: uuid.UUID) -> MarketplaceIntegration:
        integration = await self._db.get(MarketplaceIntegration, integration_id)
        if integration is None:
            raise IntegrationNotFoundError()
        return integration

    async def get_ml_app_credentials(self, app_name: str = MERCADO_LIVRE) -> tuple[str, str]:
        """client_id/client_secret from the apps table, falling back to settings."""
        result = await self._db.execute(
            select(MarketplaceApp).where(MarketplaceApp.name == app_name)
        )
        app = result.scalar_one_or_none()

        client_id = (app.client_id if app else None) or self._settings.ml_client_id
        client_secret = (app.client_secret if app else None) or self._settings.ml_client_secret
        if not client_id or not client_secret:
            raise CredentialsError("Missing client credentials", status_code=400)
        return client_id, client_secret

    # =========================================================================
    # Credentials
    # =========================================================================

    async def get_valid_credentials(self, integration_id: uuid.UUID) -> MarketplaceCredentials:
        """Return a usable access token, refreshing it first if expired."""
        integration = await self.get_integration(integration_id)
        marketplace = normalize_marketplace(integration.marketplace_name)
        cipher = get_token_cipher()

        if not is_token_expired(integration.expires_in):
            return MarketplaceCredentials(
                integration_id=integration.id,
                access_token=try_decrypt_token(cipher, integration.access_token),
                marketplace=marketplace,
                is_expired=False,
                meli_user_id=integration.meli_user_id,
            )

        logger.info(f"Token expired for integration {integration.id}, refreshing")
        access_token = await self.refresh_integration(integration)
        return MarketplaceCredentials(
            integration_id=integration.id,
            access_token=access_token,
            marketplace=marketplace,
            is_expired=False,
            meli_user_id=integration.meli_user_id,
        )

    async def refresh_integration(self, integration: MarketplaceIntegration) -> str:
        """Refresh and persist tokens for one integration.

        Returns:
            The new plaintext access token

        Raises:
            CredentialsError: If there is no refresh token or the marketplace refuses it.
        """
        cipher = get_token_cipher()
        refresh_token = try_decrypt_token(cipher, integration.refresh_token)
        if not refresh_token:
            raise CredentialsError("Integration has no refresh token", status_code=400)

        marketplace = normalize_marketplace(integration.marketplace_name)
        try:
            if marketplace == MarketplaceName.SHOPEE:
                payload = await self._refresh_shopee(integration, refresh_token)
                ttl = token_ttl(payload)
            else:
                client_id, client_secret = await self.get_ml_app_credentials()
                payload = await self._ml.refresh_token(client_id, client_secret, refresh_token)
                ttl = int(payload.get("expires_in") or ML_DEFAULT_TOKEN_TTL)
        except (MercadoLivreAPIError, ShopeeAPIError) as e:
            logger.warning(f"Token refresh failed for integration {integration.id}: {e.message}")
            raise CredentialsError(e.message, status_code=e.status_code or 502) from e
        except httpx.RequestError as e:
            logger.warning(f"Token refresh request failed for integration {integration.id}: {e}")
            raise CredentialsError(f"Token refresh request failed: {e}", status_code=502) from e

        access_token = payload["access_token"]
        await self.store_tokens(
            integration,
            cipher,
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or refresh_token,
            ttl_seconds=ttl,
            user_id=payload.get("user_id") if marketplace == MarketplaceName.MERCADO_LIVRE else None,
        )
        logger.info(f"Refreshed {integration.marketplace_name} token for integration {integration.id}")
        return access_token

    async def _refresh_shopee(
        self,
        integration: MarketplaceIntegration,
        refresh_token: str,
    ) -> dict[str, Any]:
        config = integration.config or {}
        shop_id = str(config.get("shopee_shop_id") or integration.meli_user_id or "")
        if not shop_id.isdigit():
            raise CredentialsError("Integration has no Shopee shop_id", status_code=400)
        return await self._shopee.refresh_access_token(refresh_token, int(shop_id))

    async def store_tokens(
        self,
        integration: MarketplaceIntegration,
        cipher: AESGCM,
        access_token: str,
        refresh_token: str | None,
        ttl_seconds: int,
        user_id: Any = None,
    ) -> None:
        """Encrypt and persist a new token pair."""
        now = datetime.now(timezone.utc)
        integration.access_token = encrypt_token(cipher, access_token)
        if refresh_token:
            integration.refresh_token = encrypt_token(cipher, refresh_token)
        integration.expires_in = now + timedelta(seconds=ttl_seconds)
        if user_id is not None:
            integration.meli_user_id = str(user_id)
        integration.updated_at = now
        await self._db.commit()

    # =========================================================================
    # Batch refresh
    # =========================================================================

    async def refresh_all(
        self,
        marketplace: MarketplaceName | None = None,
        integration_id: uuid.UUID | None = None,
        expiring_within: timedelta | None = None,
    ) -> dict[str, Any]:
        """Refresh one integration, a marketplace's integrations, or those about to expire.

        Returns:
            Dict with ok, refreshed, failed and per-integration results
        """
        stmt = select(MarketplaceIntegration)
        if integration_id is not None:
            stmt = stmt.where(MarketplaceIntegration.id == integration_id)
        if marketplace is not None:
            stmt = stmt.where(MarketplaceIntegration.marketplace_name == DISPLAY_NAMES[marketplace])
        if expiring_within is not None:
            cutoff = datetime.now(timezone.utc) + expiring_within
            stmt = stmt.where(
                or_(
                    MarketplaceIntegration.expires_in.is_(None),
                    MarketplaceIntegration.expires_in <= cutoff,
                )
            )

        result = await self._db.execute(stmt)
        integrations = list(result.scalars().all())

        refreshed = 0
        failed = 0
        results: list[dict[str, Any]] = []

        for integration in integrations:
            try:
                await self.refresh_integration(integration)
                refreshed += 1
                results.append({"integration_id": str(integration.id), "ok": True})
            except CredentialsError as e:
                failed += 1
                results.append({"integration_id": str(integration.id), "ok": False, "error": e.message})

        logger.info(f"Token refresh complete: {refreshed} refreshed, {failed} failed")
        return {
            "ok": failed == 0 or refreshed > 0,
            "refreshed": refreshed,
            "failed": failed,
            "results": results,
        }
