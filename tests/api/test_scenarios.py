"""
End-to-end flows across registration, roles and permission checks.
"""

import pytest
from httpx import AsyncClient

from app.core.exceptions import UnknownReferenceError
from app.features.rbac.bindings import BindingManager
from app.features.rbac.engine import AuthorizationEngine
from app.features.rbac.permissions import PermissionRegistry
from app.features.rbac.roles import RoleRegistry
from tests.factories import auth_headers


@pytest.mark.api
class TestStorefrontOnboarding:
    """A shopper signs up, then gets promoted."""

    async def test_register_then_promote(self, client: AsyncClient, db_session, bootstrapped_tenant, tenant, make_member):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "alice@acme.com", "password": "Alice123!", "full_name": "Alice"},
        )
        assert response.status_code == 201
        alice_id = response.json()["data"]["user"]["id"]
        access_token = response.json()["data"]["tokens"]["access_token"]

        mine = await client.get(
            "/api/v1/rbac/users/me/permissions",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        assert mine.json()["data"]["roles"] == ["customer"]

        assert await AuthorizationEngine.has_permission(db_session, alice_id, "read:product", tenant.id)
        assert not await AuthorizationEngine.has_permission(db_session, alice_id, "manage:user", tenant.id)

        admin = await make_member(tenant.id, "admin")
        promoted = await client.post(
            f"/api/v1/rbac/users/{alice_id}/roles/assign",
            json={"role_name": "admin"},
            headers=auth_headers(admin),
        )
        assert promoted.status_code == 200

        assert await AuthorizationEngine.has_permission(db_session, alice_id, "manage:user", tenant.id)
        assert await AuthorizationEngine.has_permission(db_session, alice_id, "read:product", tenant.id)
        roles = await AuthorizationEngine.get_user_roles(db_session, alice_id, tenant.id)
        assert [r.name for r in roles] == ["admin", "customer"]

    async def test_login_after_registration(self, client: AsyncClient, bootstrapped_tenant):
        await client.post(
            "/api/v1/auth/register",
            json={"email": "bob@acme.com", "password": "Bob12345!"},
        )

        login = await client.post(
            "/api/v1/auth/login",
            json={"email": "BOB@acme.com", "password": "Bob12345!"},
        )
        token = login.json()["data"]["tokens"]["access_token"]
        me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert me.json()["data"]["email"] == "bob@acme.com"


@pytest.mark.integration
class TestCrossTenantBinding:
    """Permissions of one tenant cannot be bound to another tenant's role."""

    async def test_foreign_permission_is_unknown(self, db_session, bootstrapped_tenant, tenant, other_tenant):
        widget = await PermissionRegistry.create(db_session, "widget", "read", tenant.id)
        guest = await RoleRegistry.create(db_session, "guest", "Guest", other_tenant.id)
        guest_id, widget_id = guest.id, widget.id

        with pytest.raises(UnknownReferenceError) as exc_info:
            await BindingManager.assign_permissions_to_role(db_session, guest_id, [widget_id], other_tenant.id)

        assert exc_info.value.details["missing"] == [widget_id]
        assert await RoleRegistry.get_role_permissions(db_session, guest_id, other_tenant.id) == []
