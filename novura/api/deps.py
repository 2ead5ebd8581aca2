"""API dependencies for dependency injection."""

import hmac
import logging
from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends, Request, HTTPException, Header
from sqlalchemy.ext.asyncio import AsyncSession

from novura.config import get_settings
from novura.db.session import get_db
from novura.services.mercado_livre import MercadoLivreClient, get_mercado_livre_client
from novura.services.shopee import ShopeeClient, get_shopee_client

logger = logging.getLogger(__name__)


async def get_redis(request: Request) -> redis.Redis:
    """Get Redis client from app state."""
    return request.app.state.redis


def get_ml_client() -> MercadoLivreClient:
    return get_mercado_livre_client()


def get_shopee_api() -> ShopeeClient:
    return get_shopee_client()


# =============================================================================
# Authentication Dependencies
# =============================================================================


async def verify_admin_api_key(
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> bool:
    """Verify internal API requests using the API key header.

    The dashboard backend and cron jobs send X-API-Key with each request.
    In development mode, authentication is skipped if no key is configured.
    """
    settings = get_settings()

    # Skip auth in development if no key configured
    if settings.is_development and not settings.admin_api_key:
        logger.warning("Admin API auth skipped - no key configured (dev mode)")
        return True

    if not settings.admin_api_key:
        logger.error("ADMIN_API_KEY not configured")
        raise HTTPException(status_code=500, detail="API authentication not configured")

    if not x_api_key:
        logger.warning("Admin API request missing X-API-Key header")
        raise HTTPException(status_code=401, detail="Missing API key")

    if not hmac.compare_digest(x_api_key, settings.admin_api_key):
        logger.warning("Admin API request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")

    return True


# =============================================================================
# Type Aliases
# =============================================================================

DbSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[redis.Redis, Depends(get_redis)]
AdminAuth = Annotated[bool, Depends(verify_admin_api_key)]
MercadoLivreApi = Annotated[MercadoLivreClient, Depends(get_ml_client)]
ShopeeApi = Annotated[ShopeeClient, Depends(get_shopee_api)]
