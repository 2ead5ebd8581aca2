"""Tests for access contexts, their cache and permission checks."""

import json
import uuid

import pytest

from novura.models import OrganizationMember
from novura.services.access import AccessContext, AccessContextService, Permissions, cache_key


def permissions(**overrides) -> Permissions:
    values = {"organization_id": "org-1", "role": "member"}
    values.update(overrides)
    return Permissions(AccessContext(**values))


class TestHasPermission:
    def test_no_permissions(self):
        assert not permissions().has_permission("produtos", "view")

    def test_owner_has_everything(self):
        perms = permissions(role="owner", permissions={"produtos": {"view": True}})
        assert perms.has_permission("produtos", "delete")

    def test_dict_permissions(self):
        perms = permissions(permissions={"produtos": {"view": True, "edit": True, "delete": False}})
        assert perms.has_permission("produtos", "view")
        assert perms.has_permission("produtos", "edit")
        assert not perms.has_permission("produtos", "delete")

    def test_bool_permissions(self):
        assert permissions(permissions={"produtos": True}).has_permission("produtos", "view")

    def test_list_permissions(self):
        perms = permissions(permissions={"produtos": ["view", "edit"]})
        assert perms.has_permission("produtos", "view")
        assert not perms.has_permission("produtos", "delete")

    def test_admin_module_needs_superadmin(self):
        assert not permissions().has_permission("novura_admin", "view")
        assert permissions(global_role="nv_superadmin").has_permission("novura_admin", "view")

    def test_academy_is_public(self):
        assert Permissions(None).has_permission("novura_academy", "view")

    def test_disabled_module_is_view_only(self):
        perms = permissions(
            permissions={"produtos": {"view": True, "edit": True}},
            module_switches={"global": {"produtos": {"active": False}}},
        )
        assert perms.has_permission("produtos", "view")
        assert not perms.has_permission("produtos", "edit")

    def test_superadmin_bypasses_disabled_module(self):
        perms = permissions(
            permissions={"produtos": {"view": True}},
            global_role="nv_superadmin",
            module_switches={"global": {"produtos": {"active": False}}},
        )
        assert perms.has_permission("produtos", "edit")

    def test_no_organization(self):
        perms = Permissions(AccessContext(role="owner", permissions={"produtos": True}))
        assert not perms.has_permission("produtos", "view")


class TestHasModuleAccess:
    def test_no_permissions(self):
        assert not permissions().has_module_access("produtos")

    def test_owner_with_empty_permissions(self):
        assert permissions(role="owner").has_module_access("produtos")

    def test_view_key_decides(self):
        assert not permissions(permissions={"produtos": {"view": False, "edit": True}}).has_module_access("produtos")

    def test_any_true_without_view_key(self):
        assert permissions(permissions={"produtos": {"edit": True, "create": False}}).has_module_access("produtos")

    def test_all_false(self):
        assert not permissions(permissions={"produtos": {"view": False, "edit": False}}).has_module_access("produtos")

    def test_non_empty_list(self):
        assert permissions(permissions={"produtos": ["view"]}).has_module_access("produtos")


class TestHelpers:
    def test_has_any_permission(self):
        granted = permissions(permissions={"pedidos": {"view": True, "cancel": False}})
        denied = permissions(permissions={"pedidos": {"view": False, "cancel": False}})
        assert granted.has_any_permission("pedidos", ["view", "cancel"])
        assert not denied.has_any_permission("pedidos", ["view", "cancel"])

    @pytest.mark.parametrize("role", ["owner", "admin"])
    def test_can_manage_users_by_role(self, role):
        assert permissions(role=role).can_manage_users()

    def test_can_view_products(self):
        assert permissions(permissions={"produtos": {"view": True}}).can_view_products()

    def test_summary_for_member(self):
        summary = permissions(permissions={"estoque": ["adjust"]}).summary()
        assert summary["can_view_stock"] is True
        assert summary["can_manage_stock"] is True
        assert summary["can_view_orders"] is False


class TestAccessContextCache:
    async def test_fresh_entry(self, db, fake_redis):
        service = AccessContextService(db, fake_redis, ttl_seconds=300)
        payload = {"organization_id": "org-1", "role": "owner", "permissions": None, "cachedAt": 1_000_000}
        fake_redis.store[cache_key("u1")] = json.dumps(payload)

        context = await service.get_cached("u1", now_ms=1_000_000 + 299_999)

        assert context is not None
        assert context.role == "owner"
        assert context.permissions == {}

    async def test_expired_entry(self, db, fake_redis):
        service = AccessContextService(db, fake_redis, ttl_seconds=300)
        fake_redis.store[cache_key("u1")] = json.dumps({"role": "owner", "cachedAt": 1_000_000})

        assert await service.get_cached("u1", now_ms=1_000_000 + 300_000) is None

    @pytest.mark.parametrize(
        "raw",
        ["{not json", "[1, 2]", json.dumps({"role": "owner"}), json.dumps({"cachedAt": True})],
    )
    async def test_unusable_entries(self, db, fake_redis, raw):
        fake_redis.store[cache_key("u1")] = raw
        assert await AccessContextService(db, fake_redis).get_cached("u1") is None

    async def test_fetch_from_database_and_cache(self, db, fake_redis, organization):
        organization.module_switches = {"global": {"pedidos": {"active": False}}}
        user_id = uuid.uuid4()
        db.add(OrganizationMember(
            organizations_id=organization.id,
            user_id=user_id,
            role="admin",
            permissions={"pedidos": {"view": True}},
            display_name="Ana",
        ))
        await db.commit()

        service = AccessContextService(db, fake_redis, ttl_seconds=60)
        context = await service.load(str(user_id))

        assert context.organization_id == str(organization.id)
        assert context.role == "admin"
        assert context.module_switches == {"global": {"pedidos": {"active": False}}}
        cached = json.loads(fake_redis.store[cache_key(str(user_id))])
        assert cached["display_name"] == "Ana"
        assert isinstance(cached["cachedAt"], int)
        assert fake_redis.ttls[cache_key(str(user_id))] == 60

    async def test_unknown_user_gets_default_context(self, db, fake_redis):
        context = await AccessContextService(db, fake_redis).fetch(str(uuid.uuid4()))
        assert context == AccessContext()

    async def test_invalid_user_id(self, db, fake_redis):
        context = await AccessContextService(db, fake_redis).fetch("not-a-uuid")
        assert context.organization_id is None

    async def test_load_without_user(self, db, fake_redis):
        assert await AccessContextService(db, fake_redis).load(None) is None


async def test_access_context_endpoint(client, db, organization):
    user_id = uuid.uuid4()
    db.add(OrganizationMember(organizations_id=organization.id, user_id=user_id, role="owner"))
    await db.commit()

    response = await client.get(f"/api/users/{user_id}/access-context")

    assert response.status_code == 200
    body = response.json()
    assert body["context"]["role"] == "owner"
    assert body["capabilities"]["can_manage_products"] is True
