"""Order endpoints: financial summary and presented rows."""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from novura.api.deps import AdminAuth
from novura.services.orders import present_order
from novura.utils.orders import build_financials, map_tipo_envio_label


class OrderItem(BaseModel):
    valor: float = 0
    quantidade: float = 0
    sku: str | None = None


class FinancialsRequest(BaseModel):
    items: list[OrderItem] = Field(default_factory=list)
    order_total: float = 0
    frete_recebido: float = 0
    taxa_marketplace: float = 0
    shipping_type: str | None = None


class PresentOrdersRequest(BaseModel):
    """Raw marketplace order records, as stored by the order sync."""

    orders: list[dict[str, Any]] = Field(default_factory=list, max_length=500)


router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("/financials")
async def compute_financials(body: FinancialsRequest, _auth: AdminAuth) -> dict[str, Any]:
    return build_financials(
        [item.model_dump() for item in body.items],
        order_total=body.order_total,
        frete_recebido=body.frete_recebido,
        taxa_marketplace=body.taxa_marketplace,
        envio_metodo=map_tipo_envio_label(body.shipping_type) if body.shipping_type else None,
    )


@router.post("/present")
async def present_orders(body: PresentOrdersRequest, _auth: AdminAuth) -> dict[str, Any]:
    """Orders-screen rows with linked SKU, product link and shipping details."""
    return {"orders": [present_order(order) for order in body.orders]}
