"""Health check endpoints."""

import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from novura.api.deps import DbSession, RedisClient

router = APIRouter(tags=["Health"])

SERVICE_NAME = "novura-erp"


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str


class ServiceHealth(BaseModel):
    """Status of one backing service."""

    status: str
    latency_ms: float | None = None
    error: str | None = None


class DetailedHealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str
    services: dict[str, ServiceHealth]


async def _check_service(check: Callable[[], Awaitable[Any]]) -> ServiceHealth:
    start = time.perf_counter()
    try:
        await check()
    except Exception as e:
        return ServiceHealth(status="unhealthy", error=str(e))
    latency = (time.perf_counter() - start) * 1000
    return ServiceHealth(status="healthy", latency_ms=round(latency, 2))


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness check."""
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    db: DbSession,
    redis_client: RedisClient,
) -> DetailedHealthResponse:
    """Readiness check: database and Redis round trips."""
    services = {
        "database": await _check_service(lambda: db.execute(text("SELECT 1"))),
        "redis": await _check_service(redis_client.ping),
    }
    all_healthy = all(s.status == "healthy" for s in services.values())

    return DetailedHealthResponse(
        status="healthy" if all_healthy else "degraded",
        service=SERVICE_NAME,
        timestamp=datetime.now(timezone.utc).isoformat(),
        services=services,
    )
