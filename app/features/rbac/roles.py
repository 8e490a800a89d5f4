"""
Role registry: tenant-scoped named bundles of permissions.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.core.database import atomic
from app.core.exceptions import ConflictError, NotFoundError
from app.core.logging_config import get_logger
from app.core.metrics import rbac_mutations_total
from app.core.tenant import tenant_scoped
from app.models.role import Permission, Role, role_permissions

logger = get_logger(__name__)


async def _clear_default(db: AsyncSession, tenant_id: str, keep_role_id: str | None = None) -> None:
    stmt = update(Role).where(Role.tenant_id == tenant_id, Role.is_default.is_(True))
    if keep_role_id is not None:
        stmt = stmt.where(Role.id != keep_role_id)
    await db.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))


class RoleRegistry:
    """Create and look up roles within one tenant."""

    @staticmethod
    async def get(db: AsyncSession, role_id: str, tenant_id: str) -> Role | None:
        result = await db.execute(tenant_scoped(Role, tenant_id).where(Role.id == role_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_404(db: AsyncSession, role_id: str, tenant_id: str) -> Role:
        role = await RoleRegistry.get(db, role_id, tenant_id)
        if role is None:
            raise NotFoundError("Role not found", details={"role_id": role_id})
        return role

    @staticmethod
    async def get_with_permissions(db: AsyncSession, role_id: str, tenant_id: str) -> Role:
        """Load a role with a fresh view of its bound permissions."""
        result = await db.execute(
            tenant_scoped(Role, tenant_id)
            .where(Role.id == role_id)
            .options(selectinload(Role.permissions))
            .execution_options(populate_existing=True)
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError("Role not found", details={"role_id": role_id})
        return role

    @staticmethod
    async def find_by_name(db: AsyncSession, name: str, tenant_id: str) -> Role | None:
        result = await db.execute(tenant_scoped(Role, tenant_id).where(Role.name == name))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_default(db: AsyncSession, tenant_id: str) -> Role | None:
        result = await db.execute(
            tenant_scoped(Role, tenant_id)
            .where(Role.is_default.is_(True))
            .order_by(Role.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_tenant(db: AsyncSession, tenant_id: str) -> list[Role]:
        result = await db.execute(tenant_scoped(Role, tenant_id).order_by(Role.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_role_permissions(db: AsyncSession, role_id: str, tenant_id: str) -> list[Permission]:
        """Permissions bound to a role, both sides filtered on the tenant."""
        await RoleRegistry.get_or_404(db, role_id, tenant_id)

        result = await db.execute(
            select(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(
                role_permissions.c.role_id == role_id,
                Permission.tenant_id == tenant_id,
            )
            .order_by(Permission.resource, Permission.action)
        )
        return list(result.scalars().all())

    @staticmethod
    async def create(
        db: AsyncSession,
        name: str,
        display_name: str,
        tenant_id: str,
        is_default: bool = False,
        description: str | None = None,
    ) -> Role:
        """
        Create a role.

        A new default role replaces the tenant's previous default.

        Raises:
            ConflictError: the name is taken in the tenant
        """
        if await RoleRegistry.find_by_name(db, name, tenant_id) is not None:
            raise ConflictError(f'Role "{name}" already exists in this tenant', details={"name": name})

        role = Role(
            name=name,
            display_name=display_name,
            description=description,
            tenant_id=tenant_id,
            is_default=is_default,
        )

        try:
            async with atomic(db):
                if is_default:
                    await _clear_default(db, tenant_id)
                db.add(role)
                await db.flush()
        except IntegrityError as e:
            raise ConflictError(f'Role "{name}" already exists in this tenant') from e

        # A brand new role has no bindings; avoid a lazy load on first access
        set_committed_value(role, "permissions", [])

        rbac_mutations_total.labels(operation="role_create").inc()
        logger.info("role_created", role=name, tenant_id=tenant_id, is_default=is_default)
        return role

    @staticmethod
    async def set_default(db: AsyncSession, role_id: str, tenant_id: str) -> Role:
        """Make a role the tenant's only default role."""
        role = await RoleRegistry.get_or_404(db, role_id, tenant_id)

        async with atomic(db):
            await _clear_default(db, tenant_id, keep_role_id=role.id)
            role.is_default = True
            await db.flush()

        rbac_mutations_total.labels(operation="role_set_default").inc()
        logger.info("default_role_changed", role=role.name, tenant_id=tenant_id)
        return role


# Singleton instance
role_registry = RoleRegistry()
