"""User access context and permission checks.

The access context is a user's organization, role and module permissions.
It is cached in Redis under ``access_context:{user_id}`` with the time it
was cached (``cachedAt``, epoch milliseconds); entries older than the TTL
are ignored.
"""

import json
import logging
import math
import time
import uuid
from typing import Any

import redis.asyncio as redis
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from novura.config import get_settings
from novura.models.tenancy import OrganizationMember

logger = logging.getLogger(__name__)

PUBLIC_MODULE = "novura_academy"
ADMIN_MODULE = "novura_admin"
SUPERADMIN_ROLE = "nv_superadmin"
OWNER_ROLE = "owner"
ADMIN_ROLE = "admin"


class AccessContext(BaseModel):
    organization_id: str | None = None
    permissions: dict[str, Any] = Field(default_factory=dict)
    role: str = "member"
    global_role: str | None = None
    module_switches: dict[str, Any] = Field(default_factory=dict)
    display_name: str | None = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "AccessContext":
        """Build from a cached/stored dict, replacing empty values with defaults."""
        return cls(
            organization_id=str(raw["organization_id"]) if raw.get("organization_id") else None,
            permissions=raw.get("permissions") or {},
            role=raw.get("role") or "member",
            global_role=raw.get("global_role") or None,
            module_switches=raw.get("module_switches") or {},
            display_name=raw.get("display_name") or None,
        )


def cache_key(user_id: str) -> str:
    return f"access_context:{user_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class AccessContextService:
    """Loads access contexts from the database through the Redis cache."""

    def __init__(
        self,
        db: AsyncSession,
        redis_client: redis.Redis,
        ttl_seconds: int | None = None,
    ) -> None:
        self._db = db
        self._redis = redis_client
        self._ttl_ms = (ttl_seconds or get_settings().access_context_ttl_seconds) * 1000

    async def get_cached(self, user_id: str, now_ms: int | None = None) -> AccessContext | None:
        """Cached context, or None when missing, expired or corrupt."""
        raw = await self._redis.get(cache_key(user_id))
        if not raw:
            return None

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Corrupt access context cache for user {user_id}")
            return None
        if not isinstance(parsed, dict):
            return None

        cached_at = parsed.get("cachedAt")
        if isinstance(cached_at, bool) or not isinstance(cached_at, (int, float)) or not math.isfinite(cached_at):
            return None
        now_ms = _now_ms() if now_ms is None else now_ms
        if now_ms - cached_at >= self._ttl_ms:
            return None

        return AccessContext.from_raw(parsed)

    async def cache(self, user_id: str, context: AccessContext) -> None:
        payload = {**context.model_dump(), "cachedAt": _now_ms()}
        await self._redis.setex(
            cache_key(user_id),
            self._ttl_ms // 1000,
            json.dumps(payload),
        )

    async def fetch(self, user_id: str) -> AccessContext:
        """Read the context from the database and cache it.

        Falls back to an empty member context when the lookup fails.
        """
        try:
            member_uuid = uuid.UUID(str(user_id))
        except ValueError:
            logger.warning(f"Access context requested for invalid user id {user_id!r}")
            return AccessContext()

        try:
            result = await self._db.execute(
                select(OrganizationMember)
                .where(OrganizationMember.user_id == member_uuid)
                .order_by(OrganizationMember.created_at)
                .limit(1)
            )
            member = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Access context lookup failed for user {user_id}: {e}")
            return AccessContext()

        if member is None:
            return AccessContext()

        context = AccessContext.from_raw({
            "organization_id": member.organizations_id,
            "permissions": member.permissions,
            "role": member.role,
            "global_role": member.global_role,
            "module_switches": member.organization.module_switches if member.organization else None,
            "display_name": member.display_name,
        })
        await self.cache(user_id, context)
        return context

    async def load(self, user_id: str | None) -> AccessContext | None:
        """Cached context if fresh, otherwise fetched. None without a user."""
        if not user_id:
            return None
        cached = await self.get_cached(user_id)
        if cached is not None:
            return cached
        return await self.fetch(user_id)


class Permissions:
    """Permission checks over an access context.

    A module's permissions may be a dict of actions (``{"view": true}``),
    a bool granting the whole module, or a list of allowed actions.
    """

    def __init__(self, context: AccessContext | None) -> None:
        self._ctx = context or AccessContext()

    @property
    def is_superadmin(self) -> bool:
        return self._ctx.global_role == SUPERADMIN_ROLE

    @property
    def is_owner(self) -> bool:
        return self._ctx.role == OWNER_ROLE

    def _module(self, module: str) -> Any:
        return self._ctx.permissions.get(module)

    def _has_base_access(self) -> bool:
        return bool(self._ctx.organization_id)

    def is_module_enabled(self, module: str) -> bool:
        switches = self._ctx.module_switches.get("global") or {}
        switch = switches.get(module) if isinstance(switches, dict) else None
        if isinstance(switch, dict) and switch.get("active") is False:
            return False
        return True

    def has_permission(self, module: str, action: str) -> bool:
        if module == PUBLIC_MODULE:
            return True
        if module == ADMIN_MODULE:
            return self.is_superadmin
        if not self._has_base_access():
            return False
        if self.is_superadmin:
            return True
        # Disabled modules are read-only
        if not self.is_module_enabled(module) and action != "view":
            return False
        if self.is_owner:
            return True

        mod = self._module(module)
        if not mod:
            return False
        if isinstance(mod, dict):
            return mod.get(action) is True
        if isinstance(mod, bool):
            return mod
        if isinstance(mod, list):
            return action in mod
        return False

    def has_module_access(self, module: str) -> bool:
        if module == PUBLIC_MODULE:
            return True
        if module == ADMIN_MODULE:
            return self.is_superadmin
        if not self._has_base_access():
            return False
        if self.is_owner or self.is_superadmin:
            return True

        mod = self._module(module)
        if not mod:
            return False
        if isinstance(mod, bool):
            return mod
        if isinstance(mod, dict):
            if "view" in mod:
                return mod["view"] is True
            return any(value is True for value in mod.values())
        if isinstance(mod, list):
            return len(mod) > 0
        return False

    def has_any_permission(self, module: str, actions: list[str]) -> bool:
        return any(self.has_permission(module, action) for action in actions)

    def can_manage_users(self) -> bool:
        return self.has_permission("usuarios", "manage_permissions") or self._ctx.role in (OWNER_ROLE, ADMIN_ROLE)

    def can_invite_users(self) -> bool:
        return self.has_permission("usuarios", "invite") or self._ctx.role in (OWNER_ROLE, ADMIN_ROLE)

    def can_view_products(self) -> bool:
        return self.has_any_permission("produtos", ["view", "create", "edit", "delete"])

    def can_manage_products(self) -> bool:
        return self.has_permission("produtos", "edit") or self.is_owner

    def can_view_orders(self) -> bool:
        return self.has_any_permission("pedidos", ["view", "create", "edit", "cancel"])

    def can_manage_orders(self) -> bool:
        return self.has_permission("pedidos", "edit") or self.is_owner

    def can_view_stock(self) -> bool:
        return self.has_any_permission("estoque", ["view", "adjust", "transfer", "manage_storage"])

    def can_manage_stock(self) -> bool:
        return self.has_permission("estoque", "adjust") or self.is_owner

    def summary(self) -> dict[str, bool]:
        return {
            "can_manage_users": self.can_manage_users(),
            "can_invite_users": self.can_invite_users(),
            "can_view_products": self.can_view_products(),
            "can_manage_products": self.can_manage_products(),
            "can_view_orders": self.can_view_orders(),
            "can_manage_orders": self.can_manage_orders(),
            "can_view_stock": self.can_view_stock(),
            "can_manage_stock": self.can_manage_stock(),
        }
