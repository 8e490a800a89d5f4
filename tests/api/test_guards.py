"""
API tests for the route guard factories, mounted on routes of their own.
"""

import pytest
import pytest_asyncio
from fastapi import APIRouter, Depends
from httpx import AsyncClient

from app.core.exceptions import ValidationError
from app.features.rbac.bindings import BindingManager
from app.features.rbac.dependencies import (
    can,
    require_admin,
    require_all_permissions,
    require_permission,
    require_role,
    require_super_admin,
)
from app.features.rbac.permissions import PermissionRegistry
from app.features.rbac.roles import RoleRegistry
from tests.factories import auth_headers

guarded = APIRouter(prefix="/guarded")


@guarded.get("/any", dependencies=[Depends(require_permission("delete:product", "update:inventory"))])
async def any_of():
    return {"ok": True}


@guarded.get("/all", dependencies=[Depends(require_all_permissions("read:order", "create:order"))])
async def all_of():
    return {"ok": True}


@guarded.get("/can", dependencies=[Depends(can("update:inventory"))])
async def capability():
    return {"ok": True}


@guarded.get("/role", dependencies=[Depends(require_role("manager", "admin"))])
async def role():
    return {"ok": True}


@guarded.get("/admin", dependencies=[Depends(require_admin())])
async def admin_only():
    return {"ok": True}


@guarded.get("/root", dependencies=[Depends(require_super_admin())])
async def root_only():
    return {"ok": True}


@pytest_asyncio.fixture
async def guarded_client(app, client: AsyncClient, bootstrapped_tenant):
    app.include_router(guarded)
    return client


@pytest_asyncio.fixture
async def members(db_session, tenant, make_member):
    wildcard = await PermissionRegistry.create(db_session, "*", "manage", tenant.id)
    super_admin = await RoleRegistry.find_by_name(db_session, "super_admin", tenant.id)
    await BindingManager.add_permissions_to_role(db_session, super_admin.id, [wildcard.id], tenant.id)
    return {
        name: await make_member(tenant.id, name)
        for name in ("customer", "staff", "manager", "admin", "super_admin")
    }


ALLOWED = {
    "/guarded/any": {"staff", "manager", "admin", "super_admin"},
    "/guarded/all": {"staff", "admin", "super_admin"},
    "/guarded/can": {"staff", "manager", "admin", "super_admin"},
    "/guarded/role": {"manager", "admin"},
    "/guarded/admin": {"admin", "super_admin"},
    "/guarded/root": {"super_admin"},
}


@pytest.mark.api
class TestGuardFactories:
    """Each guard lets exactly the expected roles through."""

    @pytest.mark.parametrize("path", sorted(ALLOWED))
    async def test_allow_and_deny(self, guarded_client: AsyncClient, members, path):
        outcomes = {}
        for name, user in members.items():
            response = await guarded_client.get(path, headers=auth_headers(user))
            outcomes[name] = response.status_code

        assert {name for name, code in outcomes.items() if code == 200} == ALLOWED[path]
        assert {code for name, code in outcomes.items() if name not in ALLOWED[path]} == {403}

    async def test_denial_lists_requirement(self, guarded_client: AsyncClient, members):
        response = await guarded_client.get("/guarded/all", headers=auth_headers(members["manager"]))

        body = response.json()
        assert body["code"] == "E_FORBIDDEN"
        assert body["details"]["required"] == ["read:order", "create:order"]

    async def test_role_denial_lists_roles(self, guarded_client: AsyncClient, members):
        response = await guarded_client.get("/guarded/role", headers=auth_headers(members["staff"]))

        assert response.json()["details"]["required_roles"] == ["manager", "admin"]

    async def test_unauthenticated(self, guarded_client: AsyncClient):
        response = await guarded_client.get("/guarded/root")

        assert response.status_code == 401


@pytest.mark.unit
class TestGuardDeclaration:
    """Malformed requirements fail when the route is declared."""

    @pytest.mark.parametrize("factory", [require_permission, require_all_permissions, require_role])
    def test_empty_requirement(self, factory):
        with pytest.raises(ValidationError):
            factory()

    def test_malformed_permission(self):
        with pytest.raises(ValidationError):
            can("inventory")
