"""
Authorization engine.

Resolves a user's effective permissions in a tenant (the de-duplicated
union over the roles held there) and answers access questions. Queries are
total: unknown users, tenants without roles and malformed permission names
all answer False rather than raising.
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging_config import get_logger
from app.features.rbac.bindings import BindingManager
from app.features.rbac.matching import grants, holds_platform_wildcard, is_wildcard, parse_permission_name
from app.features.rbac.roles import RoleRegistry
from app.models.role import Permission, Role, permission_name, role_permissions, user_roles

logger = get_logger(__name__)


def _valid_ids(*values: object) -> bool:
    return all(isinstance(value, str) and value for value in values)


class AuthorizationEngine:
    """Answers 'may this user do X in this tenant?'."""

    @staticmethod
    async def get_user_roles(db: AsyncSession, user_id: str, tenant_id: str) -> list[Role]:
        if not _valid_ids(user_id, tenant_id):
            return []

        result = await db.execute(
            select(Role)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .where(
                user_roles.c.user_id == user_id,
                user_roles.c.tenant_id == tenant_id,
                Role.tenant_id == tenant_id,
            )
            .order_by(Role.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_user_permissions(db: AsyncSession, user_id: str, tenant_id: str) -> list[Permission]:
        """Effective permissions of a user in a tenant, each listed once."""
        if not _valid_ids(user_id, tenant_id):
            return []

        result = await db.execute(
            select(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .join(user_roles, user_roles.c.role_id == role_permissions.c.role_id)
            .join(Role, Role.id == user_roles.c.role_id)
            .where(
                user_roles.c.user_id == user_id,
                user_roles.c.tenant_id == tenant_id,
                Role.tenant_id == tenant_id,
                Permission.tenant_id == tenant_id,
            )
            .order_by(Permission.resource, Permission.action)
        )

        unique: dict[str, Permission] = {}
        for permission in result.scalars().all():
            unique.setdefault(permission.id, permission)
        return list(unique.values())

    @staticmethod
    def _check(permissions: list[Permission], name: object) -> bool:
        if parse_permission_name(name) is None:
            return False
        return any(grants(permission, name) for permission in permissions)

    @staticmethod
    async def has_permission(db: AsyncSession, user_id: str, name: str, tenant_id: str) -> bool:
        if parse_permission_name(name) is None:
            return False
        permissions = await AuthorizationEngine.get_user_permissions(db, user_id, tenant_id)
        return AuthorizationEngine._check(permissions, name)

    # Alias kept for call sites that read better as "can access"
    can_access = has_permission

    @staticmethod
    async def has_any(db: AsyncSession, user_id: str, names: Iterable[str], tenant_id: str) -> bool:
        """True when at least one name is granted (False for an empty list)."""
        names = list(names)
        if not names:
            return False
        permissions = await AuthorizationEngine.get_user_permissions(db, user_id, tenant_id)
        return any(AuthorizationEngine._check(permissions, name) for name in names)

    @staticmethod
    async def has_all(db: AsyncSession, user_id: str, names: Iterable[str], tenant_id: str) -> bool:
        """True when every name is granted (True for an empty list)."""
        names = list(names)
        if not names:
            return True
        permissions = await AuthorizationEngine.get_user_permissions(db, user_id, tenant_id)
        return all(AuthorizationEngine._check(permissions, name) for name in names)

    @staticmethod
    async def can_access_resource(
        db: AsyncSession,
        user_id: str,
        resource: str,
        action: str,
        tenant_id: str,
    ) -> bool:
        if not isinstance(resource, str) or not isinstance(action, str):
            return False
        return await AuthorizationEngine.has_permission(
            db, user_id, permission_name(action, resource), tenant_id
        )

    @staticmethod
    async def has_role(db: AsyncSession, user_id: str, role_name: str, tenant_id: str) -> bool:
        roles = await AuthorizationEngine.get_user_roles(db, user_id, tenant_id)
        return any(role.name == role_name for role in roles)

    @staticmethod
    async def has_any_role(db: AsyncSession, user_id: str, role_names: Iterable[str], tenant_id: str) -> bool:
        wanted = set(role_names)
        roles = await AuthorizationEngine.get_user_roles(db, user_id, tenant_id)
        return any(role.name in wanted for role in roles)

    @staticmethod
    async def can_manage_tenant(
        db: AsyncSession,
        user_id: str,
        current_tenant_id: str,
        target_tenant_id: str,
    ) -> bool:
        """
        May the user administer ``target_tenant_id`` from ``current_tenant_id``?

        Only a held ``manage:*`` permission (literally, not by pattern) in
        the current tenant reaches other tenants. Otherwise the target must
        be the current tenant and the user must be granted ``manage:tenant``.
        """
        if not _valid_ids(user_id, current_tenant_id, target_tenant_id):
            return False

        permissions = await AuthorizationEngine.get_user_permissions(db, user_id, current_tenant_id)

        if holds_platform_wildcard(permissions):
            return True

        if target_tenant_id != current_tenant_id:
            logger.info(
                "cross_tenant_management_denied",
                user_id=user_id,
                current_tenant_id=current_tenant_id,
                target_tenant_id=target_tenant_id,
            )
            return False

        return AuthorizationEngine._check(permissions, "manage:tenant")

    @staticmethod
    async def is_platform_admin(db: AsyncSession, user_id: str, tenant_id: str) -> bool:
        """Does the user hold the literal ``manage:*`` permission in the tenant?"""
        permissions = await AuthorizationEngine.get_user_permissions(db, user_id, tenant_id)
        return holds_platform_wildcard(permissions)

    @staticmethod
    async def wildcard_permissions_of_roles(
        db: AsyncSession, role_ids: Iterable[str], tenant_id: str
    ) -> list[Permission]:
        """Wildcard permissions bound to any of the given roles in the tenant."""
        ids = [role_id for role_id in role_ids if _valid_ids(role_id)]
        if not ids or not _valid_ids(tenant_id):
            return []

        result = await db.execute(
            select(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(
                role_permissions.c.role_id.in_(ids),
                Permission.tenant_id == tenant_id,
            )
            .distinct()
        )
        return [p for p in result.scalars().all() if is_wildcard(p.action, p.resource)]

    @staticmethod
    async def assign_default_role(db: AsyncSession, user_id: str, tenant_id: str) -> Role | None:
        """Give the user the tenant's default role; None when the tenant has none."""
        role = await RoleRegistry.get_default(db, tenant_id)
        if role is None:
            logger.info("default_role_missing", tenant_id=tenant_id)
            return None

        await BindingManager.attach_role(db, user_id, role, tenant_id)
        return role


# Singleton instance
authorization_engine = AuthorizationEngine()
