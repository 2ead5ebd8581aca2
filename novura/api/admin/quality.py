"""Listing quality endpoint, triggered by cron or the dashboard."""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from novura.api.deps import AdminAuth, DbSession, MercadoLivreApi
from novura.services.quality import ALL_ORGANIZATIONS, ListingQualityService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/quality", tags=["Listing Quality"])


class QualityRequest(BaseModel):
    organization_id: str | None = Field(default=None, alias="organizationId")
    item_ids: list[str] | None = Field(default=None, alias="itemIds")

    model_config = {"populate_by_name": True}


@router.post("/mercado-livre")
async def update_mercado_livre_quality(
    db: DbSession,
    ml_client: MercadoLivreApi,
    _auth: AdminAuth,
    body: QualityRequest | None = None,
    organization_id_param: str | None = Query(default=None, alias="organizationId"),
) -> Any:
    """Refresh quality scores for an organization's listings ("*" for all)."""
    rid = str(uuid.uuid4())
    organization_id = (body.organization_id if body else None) or organization_id_param
    if not organization_id:
        return JSONResponse(status_code=400, content={"error": "organizationId required", "rid": rid})

    if organization_id != ALL_ORGANIZATIONS:
        try:
            uuid.UUID(organization_id)
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Invalid organizationId", "rid": rid})

    service = ListingQualityService(db, ml_client=ml_client)
    try:
        return await service.run(organization_id, item_ids=body.item_ids if body else None, rid=rid)
    except Exception as e:
        logger.exception(f"[{rid}] quality run failed")
        return JSONResponse(status_code=500, content={"error": str(e) or "Unknown error", "rid": rid})
