"""Shared request schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class MarketplaceName(str, Enum):
    """Normalized marketplace identifiers."""
    MERCADO_LIVRE = "mercado_livre"
    SHOPEE = "shopee"


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
