"""Marketplace OAuth flows (Mercado Livre and Shopee).

Each flow has two halves:
1. start: build the marketplace authorization URL with a base64-JSON state
2. callback: decode state, exchange the code, encrypt tokens, insert the integration

The state carries organizationId, storeName, connectedByUserId and
redirect_uri; Mercado Livre also carries a CSRF nonce and the PKCE verifier.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from novura.config import get_settings
from novura.models.integration import (
    MarketplaceApp,
    MarketplaceIntegration,
    MERCADO_LIVRE,
    SHOPEE,
)
from novura.models.tenancy import Company
from novura.services.credentials import (
    CredentialsError,
    CredentialsService,
    ML_DEFAULT_TOKEN_TTL,
    get_token_cipher,
)
from novura.services.mercado_livre import (
    MercadoLivreAPIError,
    MercadoLivreClient,
    get_mercado_livre_client,
)
from novura.services.shopee import ShopeeAPIError, ShopeeClient, get_shopee_client, token_ttl
from novura.utils.crypto import encrypt_token
from novura.utils.oauth import (
    InvalidStateError,
    code_challenge_s256,
    decode_state,
    encode_state,
    generate_code_verifier,
)

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """OAuth flow failure with the HTTP status to report."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _parse_org_id(state: dict[str, Any]) -> uuid.UUID:
    raw = state.get("organizationId")
    if not raw:
        raise OAuthError("Missing organizationId in state", status_code=400)
    try:
        return uuid.UUID(str(raw))
    except ValueError as e:
        raise OAuthError("Invalid organizationId in state", status_code=400) from e


def _append_query(url: str, params: dict[str, str]) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


class OAuthService:
    """Runs the authorization-code flows and stores resulting integrations."""

    def __init__(
        self,
        db: AsyncSession,
        ml_client: MercadoLivreClient | None = None,
        shopee_client: ShopeeClient | None = None,
    ) -> None:
        self._db = db
        self._settings = get_settings()
        self._ml = ml_client or get_mercado_livre_client()
        self._shopee = shopee_client or get_shopee_client()
        self._credentials = CredentialsService(db, ml_client=self._ml, shopee_client=self._shopee)

    # =========================================================================
    # Mercado Livre
    # =========================================================================

    async def start_mercado_livre(
        self,
        organization_id: str,
        store_name: str | None = None,
        connected_by_user_id: str | None = None,
        redirect_uri: str | None = None,
        marketplace_name: str = MERCADO_LIVRE,
    ) -> dict[str, str]:
        """Build the Mercado Livre authorization URL (PKCE S256).

        Returns:
            Dict with authorization_url and state
        """
        result = await self._db.execute(
            select(MarketplaceApp).where(MarketplaceApp.name == marketplace_name)
        )
        app = result.scalar_one_or_none()

        client_id = (app.client_id if app else None) or self._settings.ml_client_id
        if not client_id:
            raise OAuthError("Missing client credentials", status_code=400)
        auth_url = (app.auth_url if app else None) or self._settings.ml_auth_url
        app_config = (app.config if app else None) or {}
        redirect = redirect_uri or app_config.get("redirect_uri") or self._settings.ml_redirect_uri or None

        verifier = generate_code_verifier()
        state = encode_state({
            "csrf": str(uuid.uuid4()),
            "organizationId": organization_id,
            "marketplaceName": marketplace_name,
            "storeName": store_name,
            "connectedByUserId": connected_by_user_id,
            "redirect_uri": redirect,
            "pkce_verifier": verifier,
        })

        params = {
            "client_id": client_id,
            "response_type": "code",
            "state": state,
            "code_challenge": code_challenge_s256(verifier),
            "code_challenge_method": "S256",
        }
        if redirect:
            params["redirect_uri"] = redirect

        logger.info(f"Mercado Livre auth started for organization {organization_id}")
        return {"authorization_url": _append_query(auth_url, params), "state": state}

    async def complete_mercado_livre(
        self,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> MarketplaceIntegration:
        """Exchange the code and insert the Mercado Livre integration."""
        if error:
            raise OAuthError(error, status_code=400)
        if not code or not state:
            raise OAuthError("Missing code or state", status_code=400)

        try:
            state_data = decode_state(state)
        except InvalidStateError as e:
            raise OAuthError("Invalid state", status_code=400) from e

        organization_id = _parse_org_id(state_data)
        marketplace_name = state_data.get("marketplaceName") or MERCADO_LIVRE

        try:
            cipher = get_token_cipher()
            client_id, client_secret = await self._credentials.get_ml_app_credentials(marketplace_name)
        except CredentialsError as e:
            raise OAuthError(e.message, status_code=e.status_code) from e

        try:
            tokens = await self._ml.exchange_code(
                client_id,
                client_secret,
                code,
                redirect_uri=state_data.get("redirect_uri"),
                code_verifier=state_data.get("pkce_verifier"),
            )
        except MercadoLivreAPIError as e:
            raise OAuthError(e.message or "Token exchange failed", status_code=e.status_code or 502) from e
        except httpx.RequestError as e:
            logger.error(f"Mercado Livre token exchange request failed: {e}")
            raise OAuthError("Token exchange failed", status_code=502) from e

        company = await self._first_company(organization_id)
        if company is None:
            raise OAuthError("Company not found for organization", status_code=404)

        now = datetime.now(timezone.utc)
        ttl = int(tokens.get("expires_in") or ML_DEFAULT_TOKEN_TTL)
        refresh_token = tokens.get("refresh_token")
        user_id = tokens.get("user_id")

        integration = MarketplaceIntegration(
            organizations_id=organization_id,
            company_id=company.id,
            marketplace_name=marketplace_name,
            access_token=encrypt_token(cipher, tokens["access_token"]),
            refresh_token=encrypt_token(cipher, refresh_token) if refresh_token else None,
            expires_in=now + timedelta(seconds=ttl),
            meli_user_id=str(user_id) if user_id is not None else None,
            config={
                "storeName": state_data.get("storeName"),
                "connectedByUserId": state_data.get("connectedByUserId"),
                "connectedAt": now.isoformat(),
            },
        )
        self._db.add(integration)
        await self._db.commit()

        logger.info(f"Mercado Livre connected: organization={organization_id}, user_id={user_id}")
        return integration

    # =========================================================================
    # Shopee
    # =========================================================================

    def start_shopee(
        self,
        organization_id: str,
        store_name: str | None = None,
        connected_by_user_id: str | None = None,
        redirect_uri: str | None = None,
    ) -> dict[str, str]:
        """Build the Shopee shop authorization URL.

        Shopee has no state parameter, so the state rides on the redirect URL.
        """
        redirect = redirect_uri or self._settings.shopee_redirect_uri
        state = encode_state({
            "organizationId": organization_id,
            "storeName": store_name,
            "connectedByUserId": connected_by_user_id,
            "redirect_uri": redirect,
        })

        try:
            url = self._shopee.build_auth_url(_append_query(redirect, {"state": state}))
        except ShopeeAPIError as e:
            raise OAuthError(e.message, status_code=e.status_code or 400) from e

        logger.info(f"Shopee auth started for organization {organization_id}")
        return {"authorization_url": url, "state": state}

    async def complete_shopee(
        self,
        code: str | None,
        shop_id: str | int | None,
        state: str | None = None,
        error: str | None = None,
    ) -> MarketplaceIntegration:
        """Exchange the code and insert the Shopee integration."""
        if error:
            raise OAuthError(error, status_code=400)
        shop_id_str = str(shop_id or "").strip()
        if not code or not shop_id_str:
            raise OAuthError("Missing code or shop_id", status_code=400)
        if not shop_id_str.isdigit():
            raise OAuthError("Invalid shop_id", status_code=400)

        state_data: dict[str, Any] = {}
        if state:
            try:
                state_data = decode_state(state)
            except InvalidStateError:
                logger.warning("Shopee callback with undecodable state")

        organization_id = _parse_org_id(state_data)

        try:
            cipher = get_token_cipher()
        except CredentialsError as e:
            raise OAuthError(e.message, status_code=e.status_code) from e

        try:
            tokens = await self._shopee.get_access_token(code, int(shop_id_str))
        except ShopeeAPIError as e:
            raise OAuthError(e.message or "Token exchange failed", status_code=e.status_code or 502) from e
        except httpx.RequestError as e:
            logger.error(f"Shopee token exchange request failed: {e}")
            raise OAuthError("Token exchange failed", status_code=502) from e

        company = await self._first_company(organization_id)
        now = datetime.now(timezone.utc)
        refresh_token = tokens.get("refresh_token")

        integration = MarketplaceIntegration(
            organizations_id=organization_id,
            company_id=company.id if company else None,
            marketplace_name=SHOPEE,
            access_token=encrypt_token(cipher, tokens["access_token"]),
            refresh_token=encrypt_token(cipher, refresh_token) if refresh_token else None,
            expires_in=now + timedelta(seconds=token_ttl(tokens)),
            meli_user_id=shop_id_str,
            config={
                "storeName": state_data.get("storeName"),
                "connectedByUserId": state_data.get("connectedByUserId"),
                "connectedAt": now.isoformat(),
                "shopee_shop_id": shop_id_str,
            },
        )
        self._db.add(integration)
        await self._db.commit()

        logger.info(f"Shopee connected: organization={organization_id}, shop_id={shop_id_str}")
        return integration

    async def _first_company(self, organization_id: uuid.UUID) -> Company | None:
        result = await self._db.execute(
            select(Company)
            .where(Company.organization_id == organization_id)
            .order_by(Company.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()
