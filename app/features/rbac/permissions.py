"""
Permission registry: tenant-scoped (resource, action) records.
"""

from collections import defaultdict
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.core.metrics import rbac_mutations_total
from app.core.tenant import tenant_scoped
from app.features.rbac import matching
from app.features.rbac.catalog import DEFAULT_ACTIONS, DEFAULT_RESOURCES
from app.models.role import Permission, permission_name, role_permissions

logger = get_logger(__name__)


def _unique(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


class PermissionRegistry:
    """Create, look up and delete permissions within one tenant."""

    matches = staticmethod(matching.matches)

    @staticmethod
    async def get(db: AsyncSession, permission_id: str, tenant_id: str) -> Permission | None:
        result = await db.execute(
            tenant_scoped(Permission, tenant_id).where(Permission.id == permission_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_404(db: AsyncSession, permission_id: str, tenant_id: str) -> Permission:
        permission = await PermissionRegistry.get(db, permission_id, tenant_id)
        if permission is None:
            raise NotFoundError("Permission not found", details={"permission_id": permission_id})
        return permission

    @staticmethod
    async def find_by_name(db: AsyncSession, name: str, tenant_id: str) -> Permission | None:
        result = await db.execute(
            tenant_scoped(Permission, tenant_id).where(Permission.name == name)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_resource_action(
        db: AsyncSession,
        resource: str,
        action: str,
        tenant_id: str,
    ) -> Permission | None:
        result = await db.execute(
            tenant_scoped(Permission, tenant_id).where(
                Permission.resource == resource,
                Permission.action == action,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_ids(db: AsyncSession, permission_ids: Iterable[str], tenant_id: str) -> list[Permission]:
        ids = _unique(permission_ids)
        if not ids:
            return []
        result = await db.execute(
            tenant_scoped(Permission, tenant_id).where(Permission.id.in_(ids))
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_by_tenant(db: AsyncSession, tenant_id: str) -> list[Permission]:
        result = await db.execute(
            tenant_scoped(Permission, tenant_id).order_by(Permission.resource, Permission.action)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_by_resource(db: AsyncSession, resource: str, tenant_id: str) -> list[Permission]:
        result = await db.execute(
            tenant_scoped(Permission, tenant_id)
            .where(Permission.resource == resource)
            .order_by(Permission.action)
        )
        return list(result.scalars().all())

    @staticmethod
    async def group_by_resource(db: AsyncSession, tenant_id: str) -> dict[str, list[Permission]]:
        """Map each resource to its permissions (resources in alphabetical order)."""
        grouped: dict[str, list[Permission]] = defaultdict(list)
        for permission in await PermissionRegistry.list_by_tenant(db, tenant_id):
            grouped[permission.resource].append(permission)
        return dict(grouped)

    @staticmethod
    async def create(
        db: AsyncSession,
        resource: str,
        action: str,
        tenant_id: str,
        description: str | None = None,
    ) -> Permission:
        """
        Create one permission.

        Raises:
            ConflictError: (resource, action) already exists in the tenant
        """
        existing = await PermissionRegistry.find_by_resource_action(db, resource, action, tenant_id)
        if existing is not None:
            raise ConflictError(
                f"Permission {existing.name} already exists",
                details={"resource": resource, "action": action},
            )

        permission = Permission(
            resource=resource,
            action=action,
            tenant_id=tenant_id,
            description=description or f"{action} {resource}",
        )

        try:
            async with atomic(db):
                db.add(permission)
                await db.flush()
        except IntegrityError as e:
            raise ConflictError(f"Permission {permission_name(action, resource)} already exists") from e

        rbac_mutations_total.labels(operation="permission_create").inc()
        logger.info("permission_created", permission=permission.name, tenant_id=tenant_id)
        return permission

    @staticmethod
    async def create_bulk(
        db: AsyncSession,
        resource: str,
        actions: Iterable[str],
        tenant_id: str,
    ) -> list[Permission]:
        """
        Create one permission per action for a resource, all or nothing.

        Raises:
            ConflictError: any of the actions already exists for the resource;
                the message lists the colliding actions and nothing is written
        """
        requested = _unique(actions)
        if not requested:
            raise ValidationError("At least one action is required")

        result = await db.execute(
            select(Permission.action).where(
                Permission.tenant_id == tenant_id,
                Permission.resource == resource,
                Permission.action.in_(requested),
            )
        )
        taken = set(result.scalars().all())
        if taken:
            colliding = [action for action in requested if action in taken]
            raise ConflictError(
                f"Permissions already exist for {resource}: {', '.join(colliding)}",
                details={"resource": resource, "existing_actions": colliding},
            )

        permissions = [
            Permission(
                resource=resource,
                action=action,
                tenant_id=tenant_id,
                description=f"{action} {resource}",
            )
            for action in requested
        ]

        try:
            async with atomic(db):
                db.add_all(permissions)
                await db.flush()
        except IntegrityError as e:
            raise ConflictError(f"Permissions already exist for {resource}") from e

        rbac_mutations_total.labels(operation="permission_create_bulk").inc()
        logger.info(
            "permissions_created",
            resource=resource,
            actions=requested,
            tenant_id=tenant_id,
        )
        return permissions

    @staticmethod
    async def update(
        db: AsyncSession,
        permission_id: str,
        tenant_id: str,
        description: str | None,
    ) -> Permission:
        """Update the description; identity fields are immutable."""
        permission = await PermissionRegistry.get_or_404(db, permission_id, tenant_id)

        async with atomic(db):
            permission.description = description
            await db.flush()

        rbac_mutations_total.labels(operation="permission_update").inc()
        return permission

    @staticmethod
    async def delete(db: AsyncSession, permission_id: str, tenant_id: str) -> None:
        """Delete a permission and detach it from every role."""
        permission = await PermissionRegistry.get_or_404(db, permission_id, tenant_id)

        async with atomic(db):
            await db.execute(
                delete(role_permissions).where(role_permissions.c.permission_id == permission.id)
            )
            await db.delete(permission)

        rbac_mutations_total.labels(operation="permission_delete").inc()
        logger.info("permission_deleted", permission=permission.name, tenant_id=tenant_id)

    @staticmethod
    async def bootstrap_defaults(
        db: AsyncSession,
        tenant_id: str,
        resources: Iterable[str] = DEFAULT_RESOURCES,
        actions: Iterable[str] = DEFAULT_ACTIONS,
    ) -> list[Permission]:
        """
        Create the default catalog (resources x actions) for a tenant.

        Safe to re-run: resources that already have some of the actions only
        get the missing ones. Returns the permissions created by this call.
        """
        actions = tuple(actions)
        created: list[Permission] = []

        for resource in resources:
            try:
                created.extend(await PermissionRegistry.create_bulk(db, resource, actions, tenant_id))
            except ConflictError as e:
                existing = set(e.details.get("existing_actions", ()))
                missing = [action for action in actions if action not in existing]
                if missing:
                    created.extend(
                        await PermissionRegistry.create_bulk(db, resource, missing, tenant_id)
                    )
                logger.debug(
                    "permission_bootstrap_skipped",
                    resource=resource,
                    existing=sorted(existing),
                    tenant_id=tenant_id,
                )

        logger.info("permissions_bootstrapped", created=len(created), tenant_id=tenant_id)
        return created


# Singleton instance
permission_registry = PermissionRegistry()
