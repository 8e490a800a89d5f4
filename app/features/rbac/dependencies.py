"""
Route guards: FastAPI dependency factories over the authorization engine.

Each guard authenticates the caller, resolves the tenant and checks the
declared requirement in that tenant. Requirements are validated when the
route is declared, so a typo fails at import time, not per request.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import ForbiddenError, ValidationError
from app.core.logging_config import get_logger
from app.core.metrics import authorization_checks_total
from app.core.tenant import CurrentTenant
from app.features.auth.dependencies import CurrentUser
from app.features.rbac.engine import AuthorizationEngine
from app.features.rbac.matching import validate_permission_name
from app.models.user import User

logger = get_logger(__name__)

ADMIN_PERMISSIONS = ("manage:user", "manage:tenant")


def _record(guard: str, allowed: bool, user: User, tenant_id: str, required: tuple[str, ...]) -> None:
    authorization_checks_total.labels(guard=guard, decision="allow" if allowed else "deny").inc()
    if not allowed:
        logger.info(
            "authorization_denied",
            guard=guard,
            user_id=user.id,
            tenant_id=tenant_id,
            required=list(required),
        )


def _validated(names: tuple[str, ...]) -> tuple[str, ...]:
    if not names:
        raise ValidationError("At least one permission is required")
    for name in names:
        validate_permission_name(name)
    return names


def require_permission(*permissions: str):
    """
    Require ANY of the given permissions (wildcard aware).

    Usage:
        @router.get("/roles", dependencies=[Depends(require_permission("read:role"))])
        async def list_roles(...):
            ...
    """
    required = _validated(permissions)

    async def permission_checker(
        current_user: CurrentUser,
        tenant: CurrentTenant,
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        allowed = await AuthorizationEngine.has_any(db, current_user.id, required, tenant.id)
        _record("require_permission", allowed, current_user, tenant.id, required)
        if not allowed:
            raise ForbiddenError(
                f"Permission required: {' or '.join(required)}",
                details={"required": list(required)},
            )
        return current_user

    return permission_checker


def require_all_permissions(*permissions: str):
    """Require EVERY one of the given permissions."""
    required = _validated(permissions)

    async def permissions_checker(
        current_user: CurrentUser,
        tenant: CurrentTenant,
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        allowed = await AuthorizationEngine.has_all(db, current_user.id, required, tenant.id)
        _record("require_all_permissions", allowed, current_user, tenant.id, required)
        if not allowed:
            raise ForbiddenError(
                f"Permissions required: {' and '.join(required)}",
                details={"required": list(required)},
            )
        return current_user

    return permissions_checker


def can(action_resource: str):
    """
    Require one ``action:resource`` capability.

    Usage:
        @router.post("/products", dependencies=[Depends(can("create:product"))])
    """
    action, resource = validate_permission_name(action_resource)

    async def resource_checker(
        current_user: CurrentUser,
        tenant: CurrentTenant,
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        allowed = await AuthorizationEngine.can_access_resource(
            db, current_user.id, resource, action, tenant.id
        )
        _record("can", allowed, current_user, tenant.id, (action_resource,))
        if not allowed:
            raise ForbiddenError(
                f"Permission required: {action_resource}",
                details={"required": [action_resource]},
            )
        return current_user

    return resource_checker


def require_role(*roles: str):
    """Require ANY of the given role names in the current tenant."""
    if not roles:
        raise ValidationError("At least one role is required")

    async def role_checker(
        current_user: CurrentUser,
        tenant: CurrentTenant,
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        allowed = await AuthorizationEngine.has_any_role(db, current_user.id, roles, tenant.id)
        _record("require_role", allowed, current_user, tenant.id, roles)
        if not allowed:
            raise ForbiddenError(
                f"Role required: {' or '.join(roles)}",
                details={"required_roles": list(roles)},
            )
        return current_user

    return role_checker


def require_admin():
    """Tenant administrators: user or tenant management (or the platform wildcard)."""
    return require_permission(*ADMIN_PERMISSIONS)


def require_super_admin():
    """Holders of the platform wildcard ``manage:*`` only."""

    async def super_admin_checker(
        current_user: CurrentUser,
        tenant: CurrentTenant,
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        allowed = await AuthorizationEngine.is_platform_admin(db, current_user.id, tenant.id)
        _record("require_super_admin", allowed, current_user, tenant.id, ("manage:*",))
        if not allowed:
            raise ForbiddenError("Super administrator access required")
        return current_user

    return super_admin_checker
