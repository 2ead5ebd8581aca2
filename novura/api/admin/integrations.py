"""Marketplace integration maintenance endpoints.

Called by cron jobs and the dashboard backend:
- POST /api/integrations/refresh
- POST /api/integrations/shopee/refresh-expiring
- GET  /api/integrations/{integration_id}/credentials-status
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from novura.api.deps import AdminAuth, DbSession, MercadoLivreApi, ShopeeApi
from novura.schemas.common import MarketplaceName
from novura.services.credentials import (
    CredentialsError,
    CredentialsService,
    SHOPEE_REFRESH_WINDOW,
    is_token_expired,
    normalize_marketplace,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/integrations", tags=["Integrations"])


class RefreshRequest(BaseModel):
    integration_id: uuid.UUID | None = None
    marketplace: MarketplaceName | None = None


class CredentialsStatus(BaseModel):
    """Token state for an integration. Never includes the token itself."""

    integration_id: uuid.UUID
    marketplace: MarketplaceName
    is_expired: bool
    expires_at: str | None = None
    meli_user_id: str | None = None


def _refresh_response(result: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=200 if result["ok"] else 400, content=result)


@router.post("/refresh")
async def refresh_tokens(
    body: RefreshRequest,
    db: DbSession,
    ml_client: MercadoLivreApi,
    shopee_client: ShopeeApi,
    _auth: AdminAuth,
) -> JSONResponse:
    """Refresh one integration, or every integration of a marketplace."""
    service = CredentialsService(db, ml_client=ml_client, shopee_client=shopee_client)
    try:
        result = await service.refresh_all(
            marketplace=body.marketplace,
            integration_id=body.integration_id,
        )
    except CredentialsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _refresh_response(result)


@router.post("/shopee/refresh-expiring")
async def refresh_expiring_shopee_tokens(
    db: DbSession,
    ml_client: MercadoLivreApi,
    shopee_client: ShopeeApi,
    _auth: AdminAuth,
) -> JSONResponse:
    """Cron entry point: refresh Shopee tokens expiring within 10 minutes."""
    service = CredentialsService(db, ml_client=ml_client, shopee_client=shopee_client)
    try:
        result = await service.refresh_all(
            marketplace=MarketplaceName.SHOPEE,
            expiring_within=SHOPEE_REFRESH_WINDOW,
        )
    except CredentialsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _refresh_response(result)


@router.get("/{integration_id}/credentials-status", response_model=CredentialsStatus)
async def get_credentials_status(
    integration_id: uuid.UUID,
    db: DbSession,
    _auth: AdminAuth,
) -> CredentialsStatus:
    service = CredentialsService(db)
    try:
        integration = await service.get_integration(integration_id)
    except CredentialsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return CredentialsStatus(
        integration_id=integration.id,
        marketplace=normalize_marketplace(integration.marketplace_name),
        is_expired=is_token_expired(integration.expires_in),
        expires_at=integration.expires_in.isoformat() if integration.expires_in else None,
        meli_user_id=integration.meli_user_id,
    )
