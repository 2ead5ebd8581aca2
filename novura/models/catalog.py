"""Catalog models: marketplace listings, quality metrics, products and kits."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Text,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from novura.db.base import Base, JSONType


class MarketplaceItem(Base):
    """Unified listing row, one per (organization, marketplace, item id)."""

    __tablename__ = "marketplace_items"
    __table_args__ = (
        UniqueConstraint(
            "organizations_id",
            "marketplace_name",
            "marketplace_item_id",
            name="uq_marketplace_items_org_marketplace_item",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organizations_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    company_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    marketplace_name: Mapped[str] = mapped_column(String(50), nullable=False)
    marketplace_item_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition: Mapped[str | None] = mapped_column(String(30), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    available_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sold_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    permalink: Mapped[str | None] = mapped_column(Text, nullable=True)
    attributes: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    variations: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    pictures: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    tags: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    seller_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    listing_quality: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quality_level: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_quality_update: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class MarketplaceMetric(Base):
    """Quality/performance snapshot for a listing."""

    __tablename__ = "marketplace_metrics"
    __table_args__ = (
        UniqueConstraint(
            "organizations_id",
            "marketplace_name",
            "marketplace_item_id",
            name="uq_marketplace_metrics_org_marketplace_item",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organizations_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    marketplace_name: Mapped[str] = mapped_column(String(50), nullable=False)
    marketplace_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    listing_quality: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quality_level: Mapped[str | None] = mapped_column(String(100), nullable=True)
    performance_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    last_quality_update: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class Product(Base):
    """Internal product/SKU record. type is UNICO, VARIACAO or KIT."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organizations_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    sku: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="UNICO")
    cost_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    sell_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    stock: Mapped[list["ProductStock"]] = relationship(
        "ProductStock", back_populates="product", lazy="selectin"
    )
    kit_items: Mapped[list["KitItem"]] = relationship(
        "KitItem",
        back_populates="kit",
        foreign_keys="KitItem.kit_id",
    )

    @property
    def current_stock(self) -> int:
        return sum(row.current or 0 for row in self.stock)


class ProductStock(Base):
    """Stock on hand for a product in one storage location."""

    __tablename__ = "products_stock"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True
    )
    storage_name: Mapped[str] = mapped_column(String(100), nullable=False, default="Principal")
    current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped["Product"] = relationship("Product", back_populates="stock")


class KitItem(Base):
    """Component of a kit product."""

    __tablename__ = "product_kit_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    kit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    kit: Mapped["Product"] = relationship(
        "Product", back_populates="kit_items", foreign_keys=[kit_id]
    )
    product: Mapped["Product"] = relationship(
        "Product", foreign_keys=[product_id]
    )
