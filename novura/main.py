"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from urllib.parse import urlsplit

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from novura.config import get_settings
from novura.core.rate_limit import limiter
from novura.services.mercado_livre import shutdown_mercado_livre_client
from novura.services.shopee import shutdown_shopee_client
from novura.api import oauth
from novura.api.admin import access, health, integrations, quality
from novura.api.erp import catalog, invoices, orders
from novura.api.webhooks import mercado_livre

logger = logging.getLogger(__name__)

settings = get_settings()


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    # Request-level noise from the HTTP client and SQL echo
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _cors_origins() -> list[str]:
    if settings.is_development:
        return ["*"]
    parts = urlsplit(settings.site_url)
    return [f"{parts.scheme}://{parts.netloc}"]


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager for startup/shutdown events."""
    # Startup: Initialize Redis connection pool
    app.state.redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    logger.info(f"Novura ERP API starting ({settings.app_env})")

    yield
    # Shutdown: Close connections
    await shutdown_mercado_livre_client()
    await shutdown_shopee_client()
    await app.state.redis.close()


app = FastAPI(
    title="Novura ERP API",
    description="Marketplace integrations, listing sync and ERP helpers for Novura",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(oauth.router)
app.include_router(mercado_livre.router)
app.include_router(integrations.router)
app.include_router(quality.router)
app.include_router(access.router)
app.include_router(catalog.router)
app.include_router(invoices.router)
app.include_router(orders.router)
