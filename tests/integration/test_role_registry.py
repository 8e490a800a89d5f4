"""
Integration tests for the role registry.
"""

import pytest

from app.core.exceptions import ConflictError, NotFoundError
from app.features.rbac.roles import RoleRegistry


@pytest.mark.integration
class TestRoleRegistry:
    """Create, look up and default-role handling."""

    async def test_create(self, db_session, tenant):
        role = await RoleRegistry.create(db_session, "viewer", "Viewer", tenant.id)

        assert role.tenant_id == tenant.id
        assert role.is_default is False
        assert role.permissions == []

    async def test_duplicate_name_conflicts(self, db_session, tenant):
        await RoleRegistry.create(db_session, "viewer", "Viewer", tenant.id)

        with pytest.raises(ConflictError):
            await RoleRegistry.create(db_session, "viewer", "Another", tenant.id)

    async def test_find_by_name_is_tenant_scoped(self, db_session, tenant, other_tenant):
        await RoleRegistry.create(db_session, "viewer", "Viewer", tenant.id)

        assert await RoleRegistry.find_by_name(db_session, "viewer", tenant.id) is not None
        assert await RoleRegistry.find_by_name(db_session, "viewer", other_tenant.id) is None

    async def test_get_or_404_other_tenant(self, db_session, tenant, other_tenant):
        role = await RoleRegistry.create(db_session, "viewer", "Viewer", tenant.id)

        with pytest.raises(NotFoundError):
            await RoleRegistry.get_or_404(db_session, role.id, other_tenant.id)

    async def test_list_ordered_by_name(self, db_session, tenant):
        for name in ("zeta", "alpha", "mid"):
            await RoleRegistry.create(db_session, name, name.title(), tenant.id)

        roles = await RoleRegistry.list_by_tenant(db_session, tenant.id)

        assert [r.name for r in roles] == ["alpha", "mid", "zeta"]

    async def test_no_default(self, db_session, tenant):
        await RoleRegistry.create(db_session, "viewer", "Viewer", tenant.id)

        assert await RoleRegistry.get_default(db_session, tenant.id) is None

    async def test_new_default_replaces_previous(self, db_session, tenant):
        first = await RoleRegistry.create(db_session, "first", "First", tenant.id, is_default=True)
        first_id = first.id
        second = await RoleRegistry.create(db_session, "second", "Second", tenant.id, is_default=True)

        default = await RoleRegistry.get_default(db_session, tenant.id)
        assert default.id == second.id

        previous = await RoleRegistry.get(db_session, first_id, tenant.id)
        assert previous.is_default is False

    async def test_set_default(self, db_session, tenant):
        await RoleRegistry.create(db_session, "first", "First", tenant.id, is_default=True)
        other = await RoleRegistry.create(db_session, "other", "Other", tenant.id)

        await RoleRegistry.set_default(db_session, other.id, tenant.id)

        roles = await RoleRegistry.list_by_tenant(db_session, tenant.id)
        assert [r.name for r in roles if r.is_default] == ["other"]

    async def test_defaults_are_per_tenant(self, db_session, tenant, other_tenant):
        await RoleRegistry.create(db_session, "member", "Member", tenant.id, is_default=True)
        await RoleRegistry.create(db_session, "member", "Member", other_tenant.id, is_default=True)

        assert (await RoleRegistry.get_default(db_session, tenant.id)).tenant_id == tenant.id
        assert (await RoleRegistry.get_default(db_session, other_tenant.id)).tenant_id == other_tenant.id
