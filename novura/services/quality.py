"""Listing quality worker for Mercado Livre.

For each organization: resolve its Mercado Livre token, pick the listings
whose quality snapshot is older than the cache TTL, fetch their performance
with a bounded pool of concurrent requests and write the results to
marketplace_items and marketplace_metrics.
"""

import asyncio
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from novura.config import get_settings
from novura.models.catalog import MarketplaceItem, MarketplaceMetric
from novura.models.integration import MarketplaceIntegration, MERCADO_LIVRE
from novura.services.credentials import CredentialsError, CredentialsService, as_utc, get_token_cipher
from novura.services.mercado_livre import (
    AUTH_ERROR_STATUSES,
    MercadoLivreAPIError,
    MercadoLivreClient,
    get_mercado_livre_client,
)
from novura.utils.crypto import try_decrypt_token

logger = logging.getLogger(__name__)

ALL_ORGANIZATIONS = "*"
MAX_ITEMS_PER_ORGANIZATION = 1000
PERFORMANCE_SOURCES = ("item", "user-product")


def level_to_score(level: str | None) -> int:
    """Score for a quality level label when the API sends no numeric score.

    Examples:
        >>> level_to_score("Profissional")
        100
        >>> level_to_score("Básica")
        33
    """
    value = (level or "").lower()
    if not value:
        return 0
    if "profissional" in value or "professional" in value:
        return 100
    if "satisfat" in value or "estándar" in value or "standard" in value:
        return 66
    if "básica" in value or "basic" in value:
        return 33
    return 0


def quality_from_performance(data: dict[str, Any]) -> tuple[int, str | None]:
    """(score 0..100, level) for a performance payload."""
    level = data.get("level_wording") or data.get("level") or None
    raw = data.get("score")
    try:
        score = float(raw)
    except (TypeError, ValueError):
        score = math.nan
    if math.isnan(score):
        return level_to_score(level), level
    return int(max(0.0, min(100.0, score))), level


class _OrganizationToken:
    """Access token shared by the workers of one organization.

    The first worker that hits an auth error refreshes it; the others reuse
    the refreshed value.
    """

    def __init__(self, integration: MarketplaceIntegration, access_token: str) -> None:
        self.integration = integration
        self.access_token = access_token
        self.refreshed = False
        self.lock = asyncio.Lock()


class ListingQualityService:
    """Service that refreshes listing quality snapshots."""

    def __init__(
        self,
        db: AsyncSession,
        ml_client: MercadoLivreClient | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        settings = get_settings()
        self._db = db
        self._ml = ml_client or get_mercado_livre_client()
        self._credentials = CredentialsService(db, ml_client=self._ml)
        self._max_concurrency = max_concurrency or settings.quality_max_concurrency
        self._cache_ttl = timedelta(hours=settings.quality_cache_ttl_hours)

    async def run(
        self,
        organization_id: str,
        item_ids: list[str] | None = None,
        rid: str | None = None,
    ) -> dict[str, Any]:
        """Update quality for one organization, or all with ``"*"``.

        Returns:
            Dict with ok, updated count and the run id
        """
        rid = rid or str(uuid.uuid4())
        if organization_id == ALL_ORGANIZATIONS:
            org_ids = await self._organizations_with_items()
        else:
            org_ids = [uuid.UUID(str(organization_id))]
        logger.info(f"[{rid}] quality run for {len(org_ids)} organization(s)")

        updated = 0
        for org_id in org_ids:
            updated += await self._run_organization(org_id, item_ids, rid)

        return {"ok": True, "updated": updated, "rid": rid}

    async def _organizations_with_items(self) -> list[uuid.UUID]:
        result = await self._db.execute(
            select(MarketplaceItem.organizations_id)
            .where(MarketplaceItem.marketplace_name == MERCADO_LIVRE)
            .distinct()
        )
        return [row for row in result.scalars().all() if row is not None]

    async def _run_organization(
        self,
        org_id: uuid.UUID,
        item_ids: list[str] | None,
        rid: str,
    ) -> int:
        token = await self._resolve_token(org_id, rid)
        if token is None:
            return 0

        ids = await self._stale_item_ids(org_id, item_ids)
        if not ids:
            logger.info(f"[{rid}] no stale items for organization {org_id}")
            return 0

        logger.info(f"[{rid}] fetching quality for {len(ids)} items of {org_id} "
                    f"(concurrency {self._max_concurrency})")
        results = await self.fetch_performance(ids, token, rid)
        return await self._store_results(org_id, results, rid)

    async def _resolve_token(self, org_id: uuid.UUID, rid: str) -> _OrganizationToken | None:
        """Current token for the organization, refreshed if /users/me rejects it."""
        result = await self._db.execute(
            select(MarketplaceIntegration)
            .where(
                MarketplaceIntegration.organizations_id == org_id,
                MarketplaceIntegration.marketplace_name == MERCADO_LIVRE,
            )
            .order_by(MarketplaceIntegration.created_at.desc())
            .limit(1)
        )
        integration = result.scalar_one_or_none()
        if integration is None:
            logger.warning(f"[{rid}] skipping organization {org_id}: no Mercado Livre integration")
            return None

        try:
            cipher = get_token_cipher()
        except CredentialsError as e:
            logger.error(f"[{rid}] cannot decrypt tokens: {e.message}")
            return None

        access_token = try_decrypt_token(cipher, integration.access_token)
        if not access_token:
            logger.warning(f"[{rid}] skipping organization {org_id}: missing token")
            return None

        token = _OrganizationToken(integration, access_token)
        if await self._ml.validate_token(access_token):
            return token

        logger.warning(f"[{rid}] invalid token for organization {org_id}, attempting refresh")
        if not await self._refresh(token, access_token, rid):
            return None
        return token

    async def _refresh(self, token: _OrganizationToken, failed_token: str, rid: str) -> bool:
        """Refresh once per organization. Returns True if a newer token is available."""
        async with token.lock:
            if token.access_token != failed_token:
                return True
            if token.refreshed:
                return False
            token.refreshed = True
            try:
                token.access_token = await self._credentials.refresh_integration(token.integration)
            except CredentialsError as e:
                logger.warning(f"[{rid}] token refresh failed for {token.integration.organizations_id}: {e.message}")
                return False
            logger.info(f"[{rid}] token refreshed for organization {token.integration.organizations_id}")
            return True

    async def _stale_item_ids(self, org_id: uuid.UUID, item_ids: list[str] | None) -> list[str]:
        ids = [str(i) for i in item_ids or [] if i]
        if not ids:
            result = await self._db.execute(
                select(MarketplaceItem.marketplace_item_id)
                .where(
                    MarketplaceItem.organizations_id == org_id,
                    MarketplaceItem.marketplace_name == MERCADO_LIVRE,
                )
                .order_by(MarketplaceItem.updated_at.desc())
                .limit(MAX_ITEMS_PER_ORGANIZATION)
            )
            ids = [i for i in result.scalars().all() if i]
        if not ids:
            return []

        cutoff = datetime.now(timezone.utc) - self._cache_ttl
        result = await self._db.execute(
            select(MarketplaceMetric.marketplace_item_id, MarketplaceMetric.last_quality_update)
            .where(
                MarketplaceMetric.organizations_id == org_id,
                MarketplaceMetric.marketplace_name == MERCADO_LIVRE,
                MarketplaceMetric.marketplace_item_id.in_(ids),
            )
        )
        recent = {
            item_id
            for item_id, updated_at in result.all()
            if updated_at is not None and as_utc(updated_at) >= cutoff
        }
        return [i for i in ids if i not in recent]

    # =========================================================================
    # Fetching
    # =========================================================================

    async def fetch_performance(
        self,
        item_ids: list[str],
        token: _OrganizationToken,
        rid: str,
    ) -> dict[str, dict[str, Any]]:
        """Fetch performance for every item, at most max_concurrency at a time.

        Returns:
            Performance payloads keyed by item id; failed items are absent
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def worker(item_id: str) -> tuple[str, dict[str, Any] | None]:
            async with semaphore:
                return item_id, await self._fetch_one(item_id, token, rid)

        outcomes = await asyncio.gather(
            *(worker(item_id) for item_id in item_ids),
            return_exceptions=True,
        )

        results: dict[str, dict[str, Any]] = {}
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.warning(f"[{rid}] worker error: {outcome}")
                continue
            item_id, data = outcome
            if data is not None:
                results[item_id] = data
        return results

    async def _fetch_one(
        self,
        item_id: str,
        token: _OrganizationToken,
        rid: str,
    ) -> dict[str, Any] | None:
        for source in PERFORMANCE_SOURCES:
            data = await self._fetch_source(item_id, source, token, rid)
            if data is not None:
                return data
        return None

    async def _fetch_source(
        self,
        item_id: str,
        source: str,
        token: _OrganizationToken,
        rid: str,
    ) -> dict[str, Any] | None:
        access_token = token.access_token
        try:
            return await self._ml.get_item_performance(item_id, access_token, source=source)
        except MercadoLivreAPIError as e:
            logger.warning(f"[{rid}] {source}/performance not ok for {item_id}: {e.status_code}")
            if e.status_code not in AUTH_ERROR_STATUSES:
                return None

        if not await self._refresh(token, access_token, rid):
            return None
        try:
            return await self._ml.get_item_performance(item_id, token.access_token, source=source)
        except MercadoLivreAPIError as e:
            logger.warning(f"[{rid}] retry {source}/performance not ok for {item_id}: {e.status_code}")
            return None

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _store_results(
        self,
        org_id: uuid.UUID,
        results: dict[str, dict[str, Any]],
        rid: str,
    ) -> int:
        now = datetime.now(timezone.utc)
        if not results:
            return 0

        items = await self._db.execute(
            select(MarketplaceItem).where(
                MarketplaceItem.organizations_id == org_id,
                MarketplaceItem.marketplace_name == MERCADO_LIVRE,
                MarketplaceItem.marketplace_item_id.in_(list(results)),
            )
        )
        items_by_id = {item.marketplace_item_id: item for item in items.scalars().all()}

        metrics = await self._db.execute(
            select(MarketplaceMetric).where(
                MarketplaceMetric.organizations_id == org_id,
                MarketplaceMetric.marketplace_name == MERCADO_LIVRE,
                MarketplaceMetric.marketplace_item_id.in_(list(results)),
            )
        )
        metrics_by_id = {metric.marketplace_item_id: metric for metric in metrics.scalars().all()}

        for item_id, data in results.items():
            score, level = quality_from_performance(data)

            item = items_by_id.get(item_id)
            if item is not None:
                item.listing_quality = score
                item.quality_level = level
                item.last_quality_update = now

            metric = metrics_by_id.get(item_id)
            if metric is None:
                metric = MarketplaceMetric(
                    organizations_id=org_id,
                    marketplace_name=MERCADO_LIVRE,
                    marketplace_item_id=item_id,
                )
                self._db.add(metric)
            metric.listing_quality = score
            metric.quality_level = level
            metric.performance_data = data
            metric.last_quality_update = now
            metric.last_updated = now
            metric.updated_at = now

            logger.debug(f"[{rid}] updated {item_id} score={score} level={level}")

        await self._db.commit()
        logger.info(f"[{rid}] stored quality for {len(results)} items of {org_id}")
        return len(results)
