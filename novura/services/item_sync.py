"""Mercado Livre item ingestion.

Handles ``items`` topic notifications: resolve the seller's integration,
fetch the full item (refreshing the token once on 401/403) and upsert it
into marketplace_items, keyed by (organizations_id, marketplace_name,
marketplace_item_id).

Reference: https://developers.mercadolivre.com.br/pt_br/produto-receba-notificacoes
"""

import logging
import re
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from novura.models.catalog import MarketplaceItem
from novura.models.integration import MarketplaceIntegration, MERCADO_LIVRE
from novura.services.credentials import CredentialsError, CredentialsService
from novura.services.mercado_livre import (
    MercadoLivreAPIError,
    MercadoLivreClient,
    get_mercado_livre_client,
)
from novura.utils.crypto import TokenCryptoError, decrypt_token
from novura.utils.objects import get_arr, get_num, get_str

logger = logging.getLogger(__name__)

UPSERT_KEY = ["organizations_id", "marketplace_name", "marketplace_item_id"]

_ITEM_RESOURCE_RE = re.compile(r"^(?:https?://\S+)?/?items/?([A-Za-z0-9_.\-]+)")


def extract_item_id(resource: Any) -> str | None:
    """Item id from a notification resource such as ``/items/MLB123``.

    Examples:
        >>> extract_item_id("/items/MLB123?attributes=id")
        'MLB123'
        >>> extract_item_id("/orders/1") is None
        True
    """
    if not isinstance(resource, str):
        return None
    match = _ITEM_RESOURCE_RE.match(resource.strip())
    if not match:
        return None
    item_id = match.group(1).split("?")[0].split("/")[0]
    return item_id or None


def _parse_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_int(value: float | None) -> int | None:
    return int(value) if value is not None else None


def _dialect_insert(db: AsyncSession) -> Callable[..., Any]:
    """INSERT construct with ON CONFLICT support for the session's backend."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def map_item_fields(item: dict[str, Any], seller_id: str | None = None) -> dict[str, Any]:
    """Column values for a Mercado Livre item payload.

    ``seller_id`` is the notification's user_id; the item's own seller_id
    is only used when it is not given.
    """
    price = get_num(item, "price")
    variations = item.get("variations")
    tags = item.get("tags")
    return {
        "title": get_str(item, "title"),
        "sku": (
            get_str(item, "seller_custom_field")
            or get_str(item, "seller_sku")
            or get_str(item, "catalog_product_id")
        ),
        "condition": get_str(item, "condition"),
        "status": get_str(item, "status"),
        "price": Decimal(str(price)) if price is not None else None,
        "available_quantity": _to_int(get_num(item, "available_quantity")),
        "sold_quantity": _to_int(get_num(item, "sold_quantity")),
        "category_id": get_str(item, "category_id"),
        "permalink": get_str(item, "permalink"),
        "attributes": get_arr(item, "attributes"),
        "variations": variations if isinstance(variations, list) else None,
        "pictures": get_arr(item, "pictures"),
        "tags": tags if isinstance(tags, list) else None,
        "seller_id": seller_id or get_str(item, "seller_id"),
        "data": item,
        # Items with a stop_time are no longer considered published
        "published_at": None if item.get("stop_time") else _parse_datetime(item.get("date_created")),
    }


class ItemSyncError(Exception):
    """Notification could not be processed; carries the response fields."""

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra


class MercadoLivreItemSyncService:
    """Service that turns item notifications into marketplace_items rows."""

    def __init__(
        self,
        db: AsyncSession,
        ml_client: MercadoLivreClient | None = None,
    ) -> None:
        self._db = db
        self._ml = ml_client or get_mercado_livre_client()
        self._credentials = CredentialsService(db, ml_client=self._ml)

    async def handle_notification(
        self,
        notification: Any,
        correlation_id: str,
        cipher: AESGCM,
    ) -> dict[str, Any]:
        """Process one notification.

        Returns:
            Response body; ok is False with an error message on failure.
        """
        try:
            result = await self._process(notification, correlation_id, cipher)
        except ItemSyncError as e:
            logger.warning(f"[{correlation_id}] item notification rejected: {e.message}")
            return {"ok": False, "error": e.message, **e.extra, "correlationId": correlation_id}
        return {**result, "correlationId": correlation_id}

    async def _process(self, notification: Any, correlation_id: str, cipher: AESGCM) -> dict[str, Any]:
        if not isinstance(notification, dict):
            raise ItemSyncError("Invalid notification format", missing=["resource", "user_id", "topic"])

        missing = [key for key in ("resource", "user_id", "topic") if not notification.get(key)]
        if missing:
            raise ItemSyncError("Invalid notification format", missing=missing)

        if notification["topic"] != "items":
            raise ItemSyncError("Not an items notification")

        item_id = extract_item_id(notification["resource"])
        if not item_id:
            raise ItemSyncError("Invalid or missing item resource")

        seller_id = str(notification["user_id"])
        integration = await self.find_integration(seller_id)
        if integration is None:
            raise ItemSyncError("Integration not found")

        try:
            access_token = decrypt_token(cipher, integration.access_token)
        except TokenCryptoError as e:
            raise ItemSyncError("Access token decrypt failed") from e

        item = await self.fetch_item(integration, item_id, access_token, correlation_id)
        action = await self.upsert_item(integration, item_id, item, seller_id=seller_id)

        logger.info(f"[{correlation_id}] item {item_id} {action} for organization {integration.organizations_id}")
        return {
            "ok": True,
            "item_id": item_id,
            "action": action,
            "notification_id": notification.get("_id") or notification.get("id"),
        }

    async def find_integration(self, meli_user_id: str) -> MarketplaceIntegration | None:
        result = await self._db.execute(
            select(MarketplaceIntegration)
            .where(
                MarketplaceIntegration.meli_user_id == meli_user_id,
                MarketplaceIntegration.marketplace_name == MERCADO_LIVRE,
            )
            .order_by(MarketplaceIntegration.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def fetch_item(
        self,
        integration: MarketplaceIntegration,
        item_id: str,
        access_token: str,
        correlation_id: str,
    ) -> dict[str, Any]:
        """Fetch the item; on 401/403 refresh the token and retry once."""
        try:
            return await self._ml.get_item(item_id, access_token)
        except MercadoLivreAPIError as e:
            if not e.is_auth_error:
                raise ItemSyncError("Failed to fetch item details", status=e.status_code) from e
            logger.warning(f"[{correlation_id}] item fetch returned {e.status_code}, refreshing token")
        except httpx.RequestError as e:
            raise ItemSyncError("Failed to fetch item details") from e

        try:
            access_token = await self._credentials.refresh_integration(integration)
        except CredentialsError as e:
            raise ItemSyncError(f"Token refresh attempt failed: {e.message}") from e

        try:
            return await self._ml.get_item(item_id, access_token)
        except MercadoLivreAPIError as e:
            raise ItemSyncError("Failed to fetch item details", status=e.status_code) from e
        except httpx.RequestError as e:
            raise ItemSyncError("Failed to fetch item details") from e

    async def upsert_item(
        self,
        integration: MarketplaceIntegration,
        item_id: str,
        item: dict[str, Any],
        seller_id: str | None = None,
    ) -> str:
        """Insert or update the listing row in one statement.

        Concurrent deliveries of the same notification resolve on the
        (organizations_id, marketplace_name, marketplace_item_id) key.

        Returns:
            "created" or "updated"
        """
        now = datetime.now(timezone.utc)
        fields = map_item_fields(item, seller_id=seller_id)
        new_id = uuid.uuid4()

        insert = _dialect_insert(self._db)
        stmt = insert(MarketplaceItem).values(
            id=new_id,
            organizations_id=integration.organizations_id,
            marketplace_name=MERCADO_LIVRE,
            marketplace_item_id=item_id,
            company_id=integration.company_id,
            last_synced_at=now,
            updated_at=now,
            **fields,
        )
        updates = {key: stmt.excluded[key] for key in (*fields, "company_id", "last_synced_at", "updated_at")}
        stmt = stmt.on_conflict_do_update(
            index_elements=UPSERT_KEY,
            set_=updates,
        ).returning(MarketplaceItem.id)

        result = await self._db.execute(stmt)
        row_id = result.scalar_one()
        await self._db.commit()
        return "created" if row_id == new_id else "updated"
