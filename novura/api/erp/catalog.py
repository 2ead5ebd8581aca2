"""Catalog endpoints: kit availability, ticket priority and listing attributes."""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from novura.api.deps import AdminAuth, DbSession
from novura.services.catalog import CatalogService, KitAvailability, prioritize_tickets, ticket_score
from novura.services.listing_attributes import filter_listing_attributes

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Catalog"])


class PrioritizeRequest(BaseModel):
    tickets: list[dict[str, Any]]


class AttributeFilterRequest(BaseModel):
    attributes: list[dict[str, Any]] = Field(default_factory=list)
    conditional_required_ids: list[str] = Field(default_factory=list, alias="conditionalRequiredIds")
    tech_specs: dict[str, Any] | None = Field(default=None, alias="techSpecs")

    model_config = {"populate_by_name": True}


@router.get("/products/kits", response_model=list[KitAvailability])
async def list_kits(
    db: DbSession,
    _auth: AdminAuth,
    organization_id: uuid.UUID = Query(...),
) -> list[KitAvailability]:
    """Kits with the number of units the component stock can assemble."""
    return await CatalogService(db).list_kits(organization_id)


@router.post("/tickets/prioritize")
async def prioritize(body: PrioritizeRequest, _auth: AdminAuth) -> dict[str, Any]:
    ordered = prioritize_tickets(body.tickets)
    return {
        "tickets": [{**ticket, "score": ticket_score(ticket)} for ticket in ordered],
    }


@router.post("/listings/attributes/filter")
async def filter_attributes(body: AttributeFilterRequest, _auth: AdminAuth) -> dict[str, Any]:
    """Group a category's attributes for the listing creation form."""
    return filter_listing_attributes(
        body.attributes,
        conditional_required_ids=body.conditional_required_ids,
        tech_specs=body.tech_specs,
    )
