"""User access context endpoint used by the dashboard backend."""

import logging
from typing import Any

from fastapi import APIRouter, Query

from novura.api.deps import AdminAuth, DbSession, RedisClient
from novura.services.access import AccessContextService, Permissions

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["Access"])


@router.get("/{user_id}/access-context")
async def get_access_context(
    user_id: str,
    db: DbSession,
    redis_client: RedisClient,
    _auth: AdminAuth,
    refresh: bool = Query(default=False, description="Bypass the cache"),
) -> dict[str, Any]:
    """Organization, role, permissions and derived capability flags for a user."""
    service = AccessContextService(db, redis_client)
    if refresh:
        context = await service.fetch(user_id)
    else:
        context = await service.load(user_id)

    return {
        "context": context.model_dump(),
        "capabilities": Permissions(context).summary(),
    }
