"""
Integration tests for the permission registry.
"""

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ConflictError, NotFoundError
from app.features.rbac.bindings import BindingManager
from app.features.rbac.permissions import PermissionRegistry
from app.features.rbac.roles import RoleRegistry
from app.models import Permission, role_permissions


@pytest.mark.integration
class TestCreate:
    """Single and bulk creation."""

    async def test_create_derives_name_and_description(self, db_session, tenant):
        permission = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        assert permission.name == "read:widget"
        assert permission.description == "read widget"
        assert permission.tenant_id == tenant.id

    async def test_duplicate_conflicts(self, db_session, tenant):
        await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        with pytest.raises(ConflictError):
            await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

    async def test_same_pair_in_other_tenant(self, db_session, tenant, other_tenant):
        first = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)
        second = await PermissionRegistry.create(db_session, "widget", "read", other_tenant.id)

        assert first.id != second.id
        assert first.name == second.name

    async def test_bulk_create(self, db_session, tenant):
        created = await PermissionRegistry.create_bulk(
            db_session, "widget", ["create", "read", "read"], tenant.id
        )

        assert [p.name for p in created] == ["create:widget", "read:widget"]

    async def test_bulk_conflict_is_all_or_nothing(self, db_session, tenant):
        await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        with pytest.raises(ConflictError) as exc_info:
            await PermissionRegistry.create_bulk(
                db_session, "widget", ["create", "read", "delete"], tenant.id
            )

        assert "read" in exc_info.value.message
        assert exc_info.value.details["existing_actions"] == ["read"]

        remaining = await PermissionRegistry.list_by_resource(db_session, "widget", tenant.id)
        assert [p.action for p in remaining] == ["read"]


@pytest.mark.integration
class TestQueries:
    """Lookups never cross the tenant boundary."""

    async def test_get_is_tenant_scoped(self, db_session, tenant, other_tenant):
        permission = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        assert await PermissionRegistry.get(db_session, permission.id, tenant.id) is not None
        assert await PermissionRegistry.get(db_session, permission.id, other_tenant.id) is None

    async def test_find_by_name(self, db_session, tenant):
        await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        found = await PermissionRegistry.find_by_name(db_session, "read:widget", tenant.id)
        assert found is not None
        assert found.resource == "widget"

    async def test_group_by_resource(self, db_session, tenant):
        await PermissionRegistry.create_bulk(db_session, "widget", ["read", "create"], tenant.id)
        await PermissionRegistry.create(db_session, "gadget", "read", tenant.id)

        grouped = await PermissionRegistry.group_by_resource(db_session, tenant.id)

        assert list(grouped) == ["gadget", "widget"]
        assert [p.action for p in grouped["widget"]] == ["create", "read"]

    async def test_matches(self, db_session, tenant):
        permission = await PermissionRegistry.create(db_session, "product", "read", tenant.id)

        assert PermissionRegistry.matches(permission, "read:*")
        assert PermissionRegistry.matches(permission, "*:product")
        assert not PermissionRegistry.matches(permission, "update:product")


@pytest.mark.integration
class TestUpdateDelete:
    """Only the description is mutable; deletion detaches roles."""

    async def test_update_description(self, db_session, tenant):
        permission = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        updated = await PermissionRegistry.update(db_session, permission.id, tenant.id, "See widgets")

        assert updated.description == "See widgets"
        assert updated.name == "read:widget"

    async def test_update_in_other_tenant_not_found(self, db_session, tenant, other_tenant):
        permission = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        with pytest.raises(NotFoundError):
            await PermissionRegistry.update(db_session, permission.id, other_tenant.id, "x")

    async def test_delete_detaches_roles(self, db_session, tenant):
        permission = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)
        permission_id = permission.id
        role = await RoleRegistry.create(db_session, "viewer", "Viewer", tenant.id)
        await BindingManager.add_permissions_to_role(db_session, role.id, [permission_id], tenant.id)

        await PermissionRegistry.delete(db_session, permission_id, tenant.id)

        bindings = await db_session.execute(
            select(func.count()).select_from(role_permissions).where(
                role_permissions.c.permission_id == permission_id
            )
        )
        assert bindings.scalar_one() == 0
        assert await db_session.get(Permission, permission_id) is None

    async def test_delete_in_other_tenant_not_found(self, db_session, tenant, other_tenant):
        permission = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)

        with pytest.raises(NotFoundError):
            await PermissionRegistry.delete(db_session, permission.id, other_tenant.id)


@pytest.mark.integration
class TestBootstrapDefaults:
    """Default catalog seeding is idempotent."""

    async def test_creates_catalog(self, db_session, tenant):
        created = await PermissionRegistry.bootstrap_defaults(db_session, tenant.id)

        assert len(created) == 70
        assert len(await PermissionRegistry.list_by_tenant(db_session, tenant.id)) == 70

    async def test_rerun_creates_nothing(self, db_session, tenant):
        await PermissionRegistry.bootstrap_defaults(db_session, tenant.id)

        created = await PermissionRegistry.bootstrap_defaults(db_session, tenant.id)

        assert created == []
        assert len(await PermissionRegistry.list_by_tenant(db_session, tenant.id)) == 70

    async def test_fills_gaps(self, db_session, tenant):
        await PermissionRegistry.create(db_session, "product", "read", tenant.id)

        created = await PermissionRegistry.bootstrap_defaults(db_session, tenant.id)

        assert len(created) == 69
        assert len(await PermissionRegistry.list_by_resource(db_session, "product", tenant.id)) == 5
