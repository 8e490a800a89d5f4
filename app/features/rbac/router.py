"""
RBAC endpoints: roles, permissions and assignments in the current tenant.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.logging_config import get_logger
from app.core.tenant import CurrentTenant, TenantContext
from app.features.auth.dependencies import CurrentUser
from app.features.rbac.bindings import binding_manager
from app.features.rbac.dependencies import require_permission
from app.features.rbac.engine import authorization_engine
from app.features.rbac.matching import is_wildcard
from app.features.rbac.permissions import permission_registry
from app.features.rbac.roles import role_registry
from app.features.rbac.schemas import (
    CheckPermissionRequest,
    CheckPermissionResponse,
    PermissionBulkCreate,
    PermissionCreate,
    PermissionIdsRequest,
    PermissionRead,
    PermissionUpdate,
    RoleCreate,
    RoleIdsRequest,
    RoleNameRequest,
    RoleRead,
    RoleWithPermissions,
    UserPermissionsResponse,
    UserRolesResponse,
)
from app.models.role import permission_name
from app.models.tenant import Tenant
from app.models.user import User
from app.schemas.common import ApiResponse, MessageResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/rbac", tags=["RBAC"])

Db = Annotated[AsyncSession, Depends(get_db)]

can_read = Depends(require_permission("read:role", "read:permission"))
can_manage_roles = Depends(require_permission("manage:role"))
can_manage_permissions = Depends(require_permission("manage:permission"))

RoleManager = Annotated[User, Depends(require_permission("manage:role"))]
PermissionManager = Annotated[User, Depends(require_permission("manage:permission"))]


async def _target_tenant(
    db: AsyncSession,
    user: User,
    tenant: TenantContext,
    target_tenant_id: str | None,
) -> str:
    """Tenant an admin operation applies to; other tenants need can_manage_tenant."""
    if not target_tenant_id or target_tenant_id == tenant.id:
        return tenant.id

    if not await authorization_engine.can_manage_tenant(db, user.id, tenant.id, target_tenant_id):
        raise ForbiddenError("You cannot manage this tenant")

    if await db.get(Tenant, target_tenant_id) is None:
        raise NotFoundError("Tenant not found")

    return target_tenant_id


async def _require_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


async def _ensure_may_grant(db: AsyncSession, user: User, tenant: TenantContext, names: list[str]) -> None:
    """Wildcard permissions are created and granted by platform administrators only."""
    if not names:
        return

    if not await authorization_engine.is_platform_admin(db, user.id, tenant.id):
        logger.info("wildcard_grant_denied", user_id=user.id, tenant_id=tenant.id, wildcards=names)
        raise ForbiddenError(
            "Only platform administrators can grant wildcard permissions",
            details={"wildcards": sorted(set(names))},
        )


async def _ensure_may_grant_roles(
    db: AsyncSession, user: User, tenant: TenantContext, role_ids: list[str], target_tenant_id: str
) -> None:
    wildcards = await authorization_engine.wildcard_permissions_of_roles(db, role_ids, target_tenant_id)
    await _ensure_may_grant(db, user, tenant, [p.name for p in wildcards])


async def _ensure_may_bind(db: AsyncSession, user: User, tenant: TenantContext, permission_ids: list[str]) -> None:
    permissions = await permission_registry.list_by_ids(db, permission_ids, tenant.id)
    await _ensure_may_grant(db, user, tenant, [p.name for p in permissions if is_wildcard(p.action, p.resource)])


async def _user_permissions(db: AsyncSession, user_id: str, tenant_id: str) -> UserPermissionsResponse:
    roles = await authorization_engine.get_user_roles(db, user_id, tenant_id)
    permissions = await authorization_engine.get_user_permissions(db, user_id, tenant_id)
    return UserPermissionsResponse(
        user_id=user_id,
        tenant_id=tenant_id,
        roles=[role.name for role in roles],
        permissions=[PermissionRead.model_validate(p) for p in permissions],
    )


# Roles

@router.get("/roles", response_model=ApiResponse[list[RoleRead]], dependencies=[can_read])
async def list_roles(tenant: CurrentTenant, db: Db):
    roles = await role_registry.list_by_tenant(db, tenant.id)
    return ApiResponse(data=[RoleRead.model_validate(r) for r in roles])


@router.post(
    "/roles",
    response_model=ApiResponse[RoleRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_role(
    role_data: RoleCreate,
    tenant: CurrentTenant,
    db: Db,
    current_user: RoleManager,
):
    """Create a role, optionally in another tenant (requires cross-tenant management)."""
    target = await _target_tenant(db, current_user, tenant, role_data.tenant_id)
    role = await role_registry.create(
        db,
        name=role_data.name,
        display_name=role_data.display_name,
        description=role_data.description,
        tenant_id=target,
        is_default=role_data.is_default,
    )
    return ApiResponse(message="Role created successfully", data=RoleRead.model_validate(role))


@router.get("/roles/{role_id}", response_model=ApiResponse[RoleWithPermissions], dependencies=[can_read])
async def get_role(role_id: str, tenant: CurrentTenant, db: Db):
    role = await role_registry.get_with_permissions(db, role_id, tenant.id)
    return ApiResponse(data=RoleWithPermissions.model_validate(role))


@router.put("/roles/{role_id}/default", response_model=ApiResponse[RoleRead])
async def set_default_role(role_id: str, tenant: CurrentTenant, db: Db, current_user: RoleManager):
    """Make a role the one assigned to new members of the tenant."""
    await _ensure_may_grant_roles(db, current_user, tenant, [role_id], tenant.id)
    role = await role_registry.set_default(db, role_id, tenant.id)
    return ApiResponse(message="Default role updated", data=RoleRead.model_validate(role))


@router.get(
    "/roles/{role_id}/permissions",
    response_model=ApiResponse[list[PermissionRead]],
    dependencies=[can_read],
)
async def get_role_permissions(role_id: str, tenant: CurrentTenant, db: Db):
    permissions = await role_registry.get_role_permissions(db, role_id, tenant.id)
    return ApiResponse(data=[PermissionRead.model_validate(p) for p in permissions])


@router.post("/roles/{role_id}/permissions", response_model=ApiResponse[RoleWithPermissions])
async def assign_permissions_to_role(
    role_id: str,
    body: PermissionIdsRequest,
    tenant: CurrentTenant,
    db: Db,
    current_user: PermissionManager,
):
    """Replace the role's permissions with the given set."""
    await _ensure_may_bind(db, current_user, tenant, body.permission_ids)
    role = await binding_manager.assign_permissions_to_role(db, role_id, body.permission_ids, tenant.id)
    return ApiResponse(message="Permissions assigned successfully", data=RoleWithPermissions.model_validate(role))


@router.post("/roles/{role_id}/permissions/add", response_model=ApiResponse[RoleWithPermissions])
async def add_permissions_to_role(
    role_id: str,
    body: PermissionIdsRequest,
    tenant: CurrentTenant,
    db: Db,
    current_user: PermissionManager,
):
    await _ensure_may_bind(db, current_user, tenant, body.permission_ids)
    role = await binding_manager.add_permissions_to_role(db, role_id, body.permission_ids, tenant.id)
    return ApiResponse(message="Permissions added successfully", data=RoleWithPermissions.model_validate(role))


@router.delete(
    "/roles/{role_id}/permissions",
    response_model=ApiResponse[RoleWithPermissions],
    dependencies=[can_manage_permissions],
)
async def remove_permissions_from_role(role_id: str, body: PermissionIdsRequest, tenant: CurrentTenant, db: Db):
    role = await binding_manager.remove_permissions_from_role(db, role_id, body.permission_ids, tenant.id)
    return ApiResponse(message="Permissions removed successfully", data=RoleWithPermissions.model_validate(role))


# Permissions

@router.get("/permissions", response_model=ApiResponse[list[PermissionRead]], dependencies=[can_read])
async def list_permissions(
    tenant: CurrentTenant,
    db: Db,
    resource: str | None = Query(None, description="Only permissions of this resource"),
):
    if resource:
        permissions = await permission_registry.list_by_resource(db, resource, tenant.id)
    else:
        permissions = await permission_registry.list_by_tenant(db, tenant.id)
    return ApiResponse(data=[PermissionRead.model_validate(p) for p in permissions])


@router.get(
    "/permissions/grouped",
    response_model=ApiResponse[dict[str, list[PermissionRead]]],
    dependencies=[can_read],
)
async def list_permissions_grouped(tenant: CurrentTenant, db: Db):
    grouped = await permission_registry.group_by_resource(db, tenant.id)
    return ApiResponse(
        data={
            resource: [PermissionRead.model_validate(p) for p in permissions]
            for resource, permissions in grouped.items()
        }
    )


@router.post(
    "/permissions",
    response_model=ApiResponse[PermissionRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_permission(
    body: PermissionCreate,
    tenant: CurrentTenant,
    db: Db,
    current_user: PermissionManager,
):
    if is_wildcard(body.action, body.resource):
        await _ensure_may_grant(db, current_user, tenant, [permission_name(body.action, body.resource)])
    permission = await permission_registry.create(
        db, resource=body.resource, action=body.action, tenant_id=tenant.id, description=body.description
    )
    return ApiResponse(message="Permission created successfully", data=PermissionRead.model_validate(permission))


@router.post(
    "/permissions/bulk",
    response_model=ApiResponse[list[PermissionRead]],
    status_code=status.HTTP_201_CREATED,
)
async def create_permissions_bulk(
    body: PermissionBulkCreate,
    tenant: CurrentTenant,
    db: Db,
    current_user: PermissionManager,
):
    """Create every action for one resource; fails as a whole on any collision."""
    await _ensure_may_grant(
        db,
        current_user,
        tenant,
        [permission_name(action, body.resource) for action in body.actions if is_wildcard(action, body.resource)],
    )
    permissions = await permission_registry.create_bulk(db, body.resource, body.actions, tenant.id)
    return ApiResponse(
        message=f"{len(permissions)} permissions created",
        data=[PermissionRead.model_validate(p) for p in permissions],
    )


@router.post(
    "/permissions/defaults",
    response_model=ApiResponse[list[PermissionRead]],
    dependencies=[can_manage_permissions],
)
async def create_default_permissions(tenant: CurrentTenant, db: Db):
    """Seed the default catalog; returns only what this call created."""
    created = await permission_registry.bootstrap_defaults(db, tenant.id)
    return ApiResponse(
        message=f"{len(created)} default permissions created",
        data=[PermissionRead.model_validate(p) for p in created],
    )


@router.put(
    "/permissions/{permission_id}",
    response_model=ApiResponse[PermissionRead],
    dependencies=[can_manage_permissions],
)
async def update_permission(permission_id: str, body: PermissionUpdate, tenant: CurrentTenant, db: Db):
    permission = await permission_registry.update(db, permission_id, tenant.id, body.description)
    return ApiResponse(message="Permission updated successfully", data=PermissionRead.model_validate(permission))


@router.delete(
    "/permissions/{permission_id}",
    response_model=MessageResponse,
    dependencies=[can_manage_permissions],
)
async def delete_permission(permission_id: str, tenant: CurrentTenant, db: Db):
    await permission_registry.delete(db, permission_id, tenant.id)
    return MessageResponse(message="Permission deleted successfully")


# Users

@router.get("/users/me/permissions", response_model=ApiResponse[UserPermissionsResponse])
async def get_my_permissions(current_user: CurrentUser, tenant: CurrentTenant, db: Db):
    return ApiResponse(data=await _user_permissions(db, current_user.id, tenant.id))


@router.get(
    "/users/{user_id}/permissions",
    response_model=ApiResponse[UserPermissionsResponse],
    dependencies=[can_read],
)
async def get_user_permissions(user_id: str, tenant: CurrentTenant, db: Db):
    await _require_user(db, user_id)
    return ApiResponse(data=await _user_permissions(db, user_id, tenant.id))


@router.get(
    "/users/{user_id}/roles",
    response_model=ApiResponse[UserRolesResponse],
    dependencies=[can_read],
)
async def get_user_roles(user_id: str, tenant: CurrentTenant, db: Db):
    await _require_user(db, user_id)
    roles = await authorization_engine.get_user_roles(db, user_id, tenant.id)
    return ApiResponse(
        data=UserRolesResponse(
            user_id=user_id,
            tenant_id=tenant.id,
            roles=[RoleRead.model_validate(r) for r in roles],
        )
    )


@router.post(
    "/users/{user_id}/check-permission",
    response_model=ApiResponse[CheckPermissionResponse],
    dependencies=[can_read],
)
async def check_user_permission(user_id: str, body: CheckPermissionRequest, tenant: CurrentTenant, db: Db):
    allowed = await authorization_engine.has_permission(db, user_id, body.permission, tenant.id)
    return ApiResponse(
        data=CheckPermissionResponse(
            user_id=user_id,
            tenant_id=tenant.id,
            permission=body.permission,
            allowed=allowed,
        )
    )


@router.post("/users/{user_id}/roles", response_model=ApiResponse[UserRolesResponse])
async def assign_user_roles(
    user_id: str,
    body: RoleIdsRequest,
    tenant: CurrentTenant,
    db: Db,
    current_user: RoleManager,
):
    """Replace every role the user holds in the (target) tenant."""
    target = await _target_tenant(db, current_user, tenant, body.tenant_id)
    await _ensure_may_grant_roles(db, current_user, tenant, body.role_ids, target)
    roles = await binding_manager.assign_roles(db, user_id, body.role_ids, target)
    return ApiResponse(
        message="Roles assigned successfully",
        data=UserRolesResponse(
            user_id=user_id,
            tenant_id=target,
            roles=[RoleRead.model_validate(r) for r in roles],
        ),
    )


@router.post("/users/{user_id}/roles/assign", response_model=ApiResponse[RoleRead])
async def assign_user_role(
    user_id: str,
    body: RoleNameRequest,
    tenant: CurrentTenant,
    db: Db,
    current_user: RoleManager,
):
    role = await role_registry.find_by_name(db, body.role_name, tenant.id)
    if role is not None:
        await _ensure_may_grant_roles(db, current_user, tenant, [role.id], tenant.id)
    role = await binding_manager.assign_role(db, user_id, body.role_name, tenant.id)
    return ApiResponse(message="Role assigned successfully", data=RoleRead.model_validate(role))


@router.delete(
    "/users/{user_id}/roles/{role_name}",
    response_model=MessageResponse,
    dependencies=[can_manage_roles],
)
async def remove_user_role(user_id: str, role_name: str, tenant: CurrentTenant, db: Db):
    await binding_manager.remove_role(db, user_id, role_name, tenant.id)
    return MessageResponse(message="Role removed successfully")
