"""NF-e listing endpoint."""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select

from novura.api.deps import AdminAuth, DbSession
from novura.models.invoice import NotaFiscal
from novura.schemas.common import Pagination
from novura.utils.nfe import (
    decode_xml_base64,
    extract_xml_meta,
    normalize_focus_url,
    normalize_tipo,
    resolve_nota_status_label,
    resolve_nota_valor,
)
from novura.utils.orders import map_status_focus_to_badge

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/invoices", tags=["Invoices"])


def serialize_nota(nota: NotaFiscal) -> dict[str, Any]:
    fields = {
        "status": nota.status,
        "status_focus": nota.status_focus,
        "total_value": nota.total_value,
        "xml_base64": nota.xml_base64,
    }
    nfe_number, nfe_key = nota.nfe_number, nota.nfe_key
    if not (nfe_number and nfe_key):
        meta = extract_xml_meta(decode_xml_base64(nota.xml_base64))
        nfe_number = nfe_number or meta["nfe_number"]
        nfe_key = nfe_key or meta["nfe_key"]
    return {
        "id": str(nota.id),
        "order_id": nota.order_id,
        "company_id": str(nota.company_id) if nota.company_id else None,
        "tipo": normalize_tipo(nota.tipo),
        "nfe_number": nfe_number,
        "nfe_key": nfe_key,
        "status": resolve_nota_status_label(fields),
        "badge": map_status_focus_to_badge(nota.status_focus),
        "valor": resolve_nota_valor(fields),
        "xml_url": normalize_focus_url(nota.xml_url) or None,
        "pdf_url": normalize_focus_url(nota.pdf_url) or None,
        "created_at": nota.created_at.isoformat() if nota.created_at else None,
    }


@router.get("")
async def list_invoices(
    db: DbSession,
    _auth: AdminAuth,
    organization_id: uuid.UUID = Query(...),
    pagination: Pagination = Depends(),
) -> dict[str, Any]:
    """Paginated NF-e list, newest first."""
    total = await db.scalar(
        select(func.count(NotaFiscal.id)).where(NotaFiscal.organizations_id == organization_id)
    ) or 0

    result = await db.execute(
        select(NotaFiscal)
        .where(NotaFiscal.organizations_id == organization_id)
        .order_by(NotaFiscal.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )

    return {
        "items": [serialize_nota(nota) for nota in result.scalars().all()],
        "total": total,
        "page": pagination.page,
        "limit": pagination.limit,
    }
