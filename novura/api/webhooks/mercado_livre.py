"""Mercado Livre notification webhook.

Mercado Livre retries notifications that do not get a 2xx quickly, so this
endpoint always answers 200 and reports failures in the body as
``{"ok": false, "error": ...}``.

Reference: https://developers.mercadolivre.com.br/pt_br/produto-receba-notificacoes
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Request

from novura.api.deps import DbSession, MercadoLivreApi
from novura.services.credentials import CredentialsError, get_token_cipher
from novura.services.item_sync import MercadoLivreItemSyncService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks/mercado-livre", tags=["Mercado Livre Webhooks"])


def get_correlation_id(request: Request) -> str:
    """Caller supplied request id, or a fresh one."""
    return (
        request.headers.get("x-request-id")
        or request.headers.get("x-correlation-id")
        or str(uuid.uuid4())
    )


@router.post("/items")
async def receive_item_notification(
    request: Request,
    db: DbSession,
    ml_client: MercadoLivreApi,
) -> dict[str, Any]:
    """Upsert the listing referenced by an ``items`` notification."""
    correlation_id = get_correlation_id(request)

    try:
        cipher = get_token_cipher()
    except CredentialsError as e:
        logger.error(f"[{correlation_id}] item notification dropped: {e.message}")
        return {"ok": False, "error": "Missing service configuration", "correlationId": correlation_id}

    try:
        notification = await request.json()
    except ValueError:
        logger.warning(f"[{correlation_id}] item notification with invalid JSON body")
        return {"ok": False, "error": "Invalid JSON body", "correlationId": correlation_id}

    logger.info(
        f"[{correlation_id}] item notification: topic={notification.get('topic') if isinstance(notification, dict) else None}"
    )

    service = MercadoLivreItemSyncService(db, ml_client=ml_client)
    try:
        return await service.handle_notification(notification, correlation_id, cipher)
    except Exception as e:
        logger.error(f"[{correlation_id}] failed to upsert item: {e}", exc_info=True)
        await db.rollback()
        return {"ok": False, "error": f"Failed to upsert item: {e}", "correlationId": correlation_id}
