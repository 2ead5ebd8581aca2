"""Marketplace OAuth endpoints.

- POST /oauth/mercado-livre/start      -> authorization URL (PKCE)
- GET|POST /oauth/mercado-livre/callback
- POST /oauth/shopee/start
- GET|POST /oauth/shopee/callback

GET callbacks are hit by the seller's browser (popup), so they answer with a
small HTML page that notifies the opener window and redirects to the app.
POST callbacks answer JSON for server-side completion.
"""

import json
import logging
from typing import Any
from urllib.parse import urlsplit

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from novura.api.deps import DbSession, MercadoLivreApi, ShopeeApi
from novura.config import get_settings
from novura.core.rate_limit import OAUTH_START_LIMIT, limiter
from novura.models.integration import MERCADO_LIVRE
from novura.services.oauth import OAuthError, OAuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/oauth", tags=["OAuth"])


# =============================================================================
# Pydantic Models
# =============================================================================


class StartAuthRequest(BaseModel):
    """Body for starting a marketplace connection."""

    organization_id: str = Field(alias="organizationId", min_length=1)
    store_name: str | None = Field(default=None, alias="storeName")
    connected_by_user_id: str | None = Field(default=None, alias="connectedByUserId")
    redirect_uri: str | None = None
    marketplace_name: str = Field(default=MERCADO_LIVRE, alias="marketplaceName")

    model_config = {"populate_by_name": True}


class StartAuthResponse(BaseModel):
    authorization_url: str
    state: str


# =============================================================================
# Helpers
# =============================================================================


def render_oauth_result_page(message_type: str, site_url: str) -> str:
    """HTML that posts the result to the opener window, then redirects."""
    parts = urlsplit(site_url)
    origin = f"{parts.scheme}://{parts.netloc}" if parts.scheme and parts.netloc else "*"
    message = json.dumps({"type": message_type, "payload": {"ok": True}})
    return f"""<!doctype html>
<html>
  <head><meta charset="utf-8"><title>Novura</title></head>
  <body>
    <script>
      try {{
        if (window.opener) {{
          window.opener.postMessage({message}, {json.dumps(origin)});
        }}
      }} catch (e) {{}}
      window.location.replace({json.dumps(site_url)});
    </script>
  </body>
</html>"""


def _error_response(error: OAuthError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


async def _callback_params(request: Request, keys: tuple[str, ...]) -> dict[str, Any]:
    """Read callback params from the query string (GET) or JSON body (POST)."""
    if request.method == "GET":
        return {key: request.query_params.get(key) for key in keys}
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    return {key: body.get(key) for key in keys}


# =============================================================================
# Mercado Livre
# =============================================================================


@router.post("/mercado-livre/start", response_model=StartAuthResponse)
@limiter.limit(OAUTH_START_LIMIT)
async def start_mercado_livre_auth(
    request: Request,
    body: StartAuthRequest,
    db: DbSession,
    ml_client: MercadoLivreApi,
    shopee_client: ShopeeApi,
) -> Any:
    """Return the Mercado Livre authorization URL for an organization."""
    service = OAuthService(db, ml_client, shopee_client)
    try:
        return await service.start_mercado_livre(
            organization_id=body.organization_id,
            store_name=body.store_name,
            connected_by_user_id=body.connected_by_user_id,
            redirect_uri=body.redirect_uri,
            marketplace_name=body.marketplace_name,
        )
    except OAuthError as e:
        return _error_response(e)


@router.api_route("/mercado-livre/callback", methods=["GET", "POST"])
async def mercado_livre_callback(
    request: Request,
    db: DbSession,
    ml_client: MercadoLivreApi,
    shopee_client: ShopeeApi,
) -> Any:
    """Complete the Mercado Livre authorization-code flow."""
    params = await _callback_params(request, ("code", "state", "error"))
    service = OAuthService(db, ml_client, shopee_client)

    try:
        await service.complete_mercado_livre(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
        )
    except OAuthError as e:
        logger.warning(f"Mercado Livre callback failed ({e.status_code}): {e.message}")
        return _error_response(e)

    if request.method == "POST":
        return {"ok": True}
    return HTMLResponse(render_oauth_result_page("meli_oauth_success", get_settings().site_url))


# =============================================================================
# Shopee
# =============================================================================


@router.post("/shopee/start")
@limiter.limit(OAUTH_START_LIMIT)
async def start_shopee_auth(
    request: Request,
    body: StartAuthRequest,
    db: DbSession,
    ml_client: MercadoLivreApi,
    shopee_client: ShopeeApi,
) -> Any:
    """Return the Shopee shop authorization URL for an organization."""
    service = OAuthService(db, ml_client, shopee_client)
    try:
        return service.start_shopee(
            organization_id=body.organization_id,
            store_name=body.store_name,
            connected_by_user_id=body.connected_by_user_id,
            redirect_uri=body.redirect_uri,
        )
    except OAuthError as e:
        return _error_response(e)


@router.api_route("/shopee/callback", methods=["GET", "POST"])
async def shopee_callback(
    request: Request,
    db: DbSession,
    ml_client: MercadoLivreApi,
    shopee_client: ShopeeApi,
) -> Any:
    """Complete the Shopee shop authorization."""
    params = await _callback_params(request, ("code", "shop_id", "state", "error"))
    service = OAuthService(db, ml_client, shopee_client)

    try:
        await service.complete_shopee(
            code=params.get("code"),
            shop_id=params.get("shop_id"),
            state=params.get("state"),
            error=params.get("error"),
        )
    except OAuthError as e:
        logger.warning(f"Shopee callback failed ({e.status_code}): {e.message}")
        return _error_response(e)

    if request.method == "POST":
        return {"ok": True}
    return HTMLResponse(render_oauth_result_page("shopee_oauth_success", get_settings().site_url))
