"""NF-e (nota fiscal) model."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Text, DateTime, ForeignKey, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from novura.db.base import Base


class NotaFiscal(Base):
    """Electronic invoice issued through Focus NF-e.

    status is our lifecycle status; status_focus mirrors the Focus API value.
    """

    __tablename__ = "notas_fiscais"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organizations_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=True
    )
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    tipo: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    status_focus: Mapped[str | None] = mapped_column(String(40), nullable=True)
    nfe_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    nfe_key: Mapped[str | None] = mapped_column(String(44), nullable=True, index=True)
    total_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    xml_base64: Mapped[str | None] = mapped_column(Text, nullable=True)
    xml_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    pdf_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
