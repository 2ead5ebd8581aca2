"""Catalog helpers: kit availability and ticket prioritisation."""

import logging
import uuid
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from novura.models.catalog import KitItem, Product

logger = logging.getLogger(__name__)

KIT_TYPE = "KIT"

# riscoPRR labels used by the customer-service board
RISK_WEIGHTS = {"Baixo": 1, "Médio": 2, "Alto": 3}
VOLATILITY_WEIGHT = 0.7
RISK_WEIGHT_FACTOR = 30


class KitComponent(BaseModel):
    product_id: uuid.UUID | None = None
    sku: str | None = None
    name: str | None = None
    quantity: int
    stock: int


class KitAvailability(BaseModel):
    id: uuid.UUID
    sku: str
    name: str
    available: int
    components: list[KitComponent]


def available_kits(items: list[dict[str, Any]] | list[KitComponent]) -> int:
    """How many complete kits the component stock can assemble.

    Each item needs ``quantity`` units and has ``stock`` on hand; the answer
    is the minimum of floor(stock / quantity). A kit without items, or with
    a component whose quantity is not positive, yields 0.

    Examples:
        >>> available_kits([{"quantity": 2, "stock": 9}, {"quantity": 1, "stock": 3}])
        3
        >>> available_kits([])
        0
    """
    if not items:
        return 0

    counts = []
    for item in items:
        if isinstance(item, KitComponent):
            quantity, stock = item.quantity, item.stock
        else:
            quantity = int(item.get("quantity") or 0)
            stock = int(item.get("stock") or 0)
        if quantity <= 0:
            return 0
        counts.append(max(stock, 0) // quantity)
    return min(counts)


def ticket_score(ticket: dict[str, Any]) -> float:
    volatility = float(ticket.get("volatilidade") or 0)
    risk = RISK_WEIGHTS.get(ticket.get("riscoPRR"), 0)
    return volatility * VOLATILITY_WEIGHT + risk * RISK_WEIGHT_FACTOR


def prioritize_tickets(tickets: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort tickets by weighted score, highest first. Ties keep input order."""
    return sorted(tickets, key=ticket_score, reverse=True)


class CatalogService:
    """Read-side catalog queries."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def list_kits(self, organization_id: uuid.UUID) -> list[KitAvailability]:
        """Kits of an organization with their assemblable quantity."""
        result = await self._db.execute(
            select(Product)
            .where(Product.organizations_id == organization_id, Product.type == KIT_TYPE)
            .options(
                selectinload(Product.kit_items)
                .selectinload(KitItem.product)
                .selectinload(Product.stock)
            )
            .order_by(Product.name)
        )

        kits = []
        for kit in result.scalars().all():
            components = [
                KitComponent(
                    product_id=item.product_id,
                    sku=item.product.sku if item.product else None,
                    name=item.product.name if item.product else None,
                    quantity=item.quantity,
                    stock=item.product.current_stock if item.product else 0,
                )
                for item in kit.kit_items
            ]
            kits.append(
                KitAvailability(
                    id=kit.id,
                    sku=kit.sku,
                    name=kit.name,
                    available=available_kits(components),
                    components=components,
                )
            )

        logger.debug(f"Computed availability for {len(kits)} kits of {organization_id}")
        return kits
