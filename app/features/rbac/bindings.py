"""
Role/permission and user/role binding manager.

Every reference is validated against the tenant before anything is
written, and each mutation runs as a single transaction. Replace operations
(detach all, attach the new set) therefore never leave a role or a user
with an empty set after a failure.

Concurrent replace calls for the same role or user are not serialised:
the last committed write wins.
"""

from typing import Iterable

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.exceptions import NotFoundError, UnknownReferenceError
from app.core.logging_config import get_logger
from app.core.metrics import rbac_mutations_total
from app.features.rbac.roles import RoleRegistry
from app.models.role import Permission, Role, role_permissions, user_roles
from app.models.tenant import TenantStatus, user_tenants
from app.models.user import User

logger = get_logger(__name__)


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


async def _validated_permission_ids(
    db: AsyncSession,
    permission_ids: Iterable[str],
    tenant_id: str,
) -> list[str]:
    ids = _unique(permission_ids)
    if not ids:
        return []

    result = await db.execute(
        select(Permission.id).where(Permission.id.in_(ids), Permission.tenant_id == tenant_id)
    )
    found = set(result.scalars().all())
    if len(found) != len(ids):
        raise UnknownReferenceError(
            "Some permissions do not exist in the specified tenant",
            details={"missing": [pid for pid in ids if pid not in found]},
        )
    return ids


async def _validated_role_ids(db: AsyncSession, role_ids: Iterable[str], tenant_id: str) -> list[str]:
    ids = _unique(role_ids)
    if not ids:
        return []

    result = await db.execute(select(Role.id).where(Role.id.in_(ids), Role.tenant_id == tenant_id))
    found = set(result.scalars().all())
    if len(found) != len(ids):
        raise UnknownReferenceError(
            "Some roles do not exist in the specified tenant",
            details={"missing": [rid for rid in ids if rid not in found]},
        )
    return ids


async def _require_user(db: AsyncSession, user_id: str) -> None:
    result = await db.execute(select(User.id).where(User.id == user_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("User not found", details={"user_id": user_id})


async def _require_role_by_name(db: AsyncSession, role_name: str, tenant_id: str) -> Role:
    role = await RoleRegistry.find_by_name(db, role_name, tenant_id)
    if role is None:
        raise NotFoundError(f'Role "{role_name}" not found in tenant {tenant_id}')
    return role


async def _bound_permission_ids(db: AsyncSession, role_id: str) -> set[str]:
    result = await db.execute(
        select(role_permissions.c.permission_id).where(role_permissions.c.role_id == role_id)
    )
    return set(result.scalars().all())


async def _has_role_edge(db: AsyncSession, user_id: str, role_id: str, tenant_id: str) -> bool:
    result = await db.execute(
        select(user_roles.c.role_id).where(
            user_roles.c.user_id == user_id,
            user_roles.c.role_id == role_id,
            user_roles.c.tenant_id == tenant_id,
        )
    )
    return result.first() is not None


async def _is_member(db: AsyncSession, user_id: str, tenant_id: str) -> bool:
    result = await db.execute(
        select(user_tenants.c.user_id).where(
            user_tenants.c.user_id == user_id,
            user_tenants.c.tenant_id == tenant_id,
        )
    )
    return result.first() is not None


class BindingManager:
    """Attach and detach permissions to roles and roles to users."""

    # Role <-> Permission

    @staticmethod
    async def assign_permissions_to_role(
        db: AsyncSession,
        role_id: str,
        permission_ids: Iterable[str],
        tenant_id: str,
    ) -> Role:
        """Replace the role's permission set."""
        role = await RoleRegistry.get_or_404(db, role_id, tenant_id)
        ids = await _validated_permission_ids(db, permission_ids, tenant_id)

        async with atomic(db):
            await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role.id))
            if ids:
                await db.execute(
                    insert(role_permissions),
                    [{"role_id": role.id, "permission_id": pid} for pid in ids],
                )

        rbac_mutations_total.labels(operation="role_permissions_replace").inc()
        logger.info("role_permissions_replaced", role=role.name, count=len(ids), tenant_id=tenant_id)
        return await RoleRegistry.get_with_permissions(db, role.id, tenant_id)

    @staticmethod
    async def add_permissions_to_role(
        db: AsyncSession,
        role_id: str,
        permission_ids: Iterable[str],
        tenant_id: str,
    ) -> Role:
        """Attach permissions, skipping ones already bound."""
        role = await RoleRegistry.get_or_404(db, role_id, tenant_id)
        ids = await _validated_permission_ids(db, permission_ids, tenant_id)

        bound = await _bound_permission_ids(db, role.id)
        new_ids = [pid for pid in ids if pid not in bound]

        if new_ids:
            async with atomic(db):
                await db.execute(
                    insert(role_permissions),
                    [{"role_id": role.id, "permission_id": pid} for pid in new_ids],
                )
            rbac_mutations_total.labels(operation="role_permissions_add").inc()

        logger.info("role_permissions_added", role=role.name, added=len(new_ids), tenant_id=tenant_id)
        return await RoleRegistry.get_with_permissions(db, role.id, tenant_id)

    @staticmethod
    async def remove_permissions_from_role(
        db: AsyncSession,
        role_id: str,
        permission_ids: Iterable[str],
        tenant_id: str,
    ) -> Role:
        """Detach permissions; ids that were not bound are ignored."""
        role = await RoleRegistry.get_or_404(db, role_id, tenant_id)
        ids = await _validated_permission_ids(db, permission_ids, tenant_id)

        if ids:
            async with atomic(db):
                await db.execute(
                    delete(role_permissions).where(
                        role_permissions.c.role_id == role.id,
                        role_permissions.c.permission_id.in_(ids),
                    )
                )
            rbac_mutations_total.labels(operation="role_permissions_remove").inc()

        logger.info("role_permissions_removed", role=role.name, count=len(ids), tenant_id=tenant_id)
        return await RoleRegistry.get_with_permissions(db, role.id, tenant_id)

    # User <-> Role

    @staticmethod
    async def ensure_membership(db: AsyncSession, user_id: str, tenant_id: str) -> bool:
        """
        Record the user as a member of the tenant.

        Must be called inside a transaction. Returns True when a row was added.
        """
        if await _is_member(db, user_id, tenant_id):
            return False

        await db.execute(
            insert(user_tenants).values(
                user_id=user_id,
                tenant_id=tenant_id,
                status=TenantStatus.ACTIVE.value,
            )
        )
        return True

    @staticmethod
    async def bind_role_edge(db: AsyncSession, user_id: str, role_id: str, tenant_id: str) -> None:
        """Write membership and the user/role edge. Must be called inside a transaction."""
        await BindingManager.ensure_membership(db, user_id, tenant_id)
        await db.execute(
            insert(user_roles).values(user_id=user_id, role_id=role_id, tenant_id=tenant_id)
        )

    @staticmethod
    async def attach_role(db: AsyncSession, user_id: str, role: Role, tenant_id: str) -> bool:
        """
        Give a user an already validated role. No-op when already held.

        Returns True when a new binding was written.
        """
        if await _has_role_edge(db, user_id, role.id, tenant_id):
            return False

        async with atomic(db):
            await BindingManager.bind_role_edge(db, user_id, role.id, tenant_id)

        rbac_mutations_total.labels(operation="user_role_assign").inc()
        logger.info("role_assigned", user_id=user_id, role=role.name, tenant_id=tenant_id)
        return True

    @staticmethod
    async def assign_roles(
        db: AsyncSession,
        user_id: str,
        role_ids: Iterable[str],
        tenant_id: str,
    ) -> list[Role]:
        """
        Replace every role the user holds in the tenant.

        Any unknown role id aborts the call before the existing set is touched.
        """
        await _require_user(db, user_id)
        ids = await _validated_role_ids(db, role_ids, tenant_id)

        async with atomic(db):
            await db.execute(
                delete(user_roles).where(
                    user_roles.c.user_id == user_id,
                    user_roles.c.tenant_id == tenant_id,
                )
            )
            if ids:
                await BindingManager.ensure_membership(db, user_id, tenant_id)
                await db.execute(
                    insert(user_roles),
                    [{"user_id": user_id, "role_id": rid, "tenant_id": tenant_id} for rid in ids],
                )

        rbac_mutations_total.labels(operation="user_roles_replace").inc()
        logger.info("user_roles_replaced", user_id=user_id, count=len(ids), tenant_id=tenant_id)

        result = await db.execute(
            select(Role).where(Role.id.in_(ids), Role.tenant_id == tenant_id).order_by(Role.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def assign_role(db: AsyncSession, user_id: str, role_name: str, tenant_id: str) -> Role:
        """Give a user a role by name; idempotent."""
        await _require_user(db, user_id)
        role = await _require_role_by_name(db, role_name, tenant_id)
        await BindingManager.attach_role(db, user_id, role, tenant_id)
        return role

    @staticmethod
    async def remove_role(db: AsyncSession, user_id: str, role_name: str, tenant_id: str) -> None:
        """Take a role away by name; removing a role the user lacks is a no-op."""
        role = await _require_role_by_name(db, role_name, tenant_id)

        async with atomic(db):
            result = await db.execute(
                delete(user_roles).where(
                    user_roles.c.user_id == user_id,
                    user_roles.c.role_id == role.id,
                    user_roles.c.tenant_id == tenant_id,
                )
            )

        if result.rowcount:
            rbac_mutations_total.labels(operation="user_role_remove").inc()
            logger.info("role_removed", user_id=user_id, role=role.name, tenant_id=tenant_id)


# Singleton instance
binding_manager = BindingManager()
