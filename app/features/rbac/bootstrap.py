"""
Default tenant setup: permission catalog, role hierarchy and bindings.

Every step is idempotent, so re-running a bootstrap converges on the same
roles and bindings.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.logging_config import get_logger
from app.core.performance import timed_operation
from app.features.rbac.bindings import BindingManager
from app.features.rbac.catalog import DEFAULT_ROLE_TEMPLATES, RoleTemplate
from app.features.rbac.permissions import PermissionRegistry
from app.features.rbac.roles import RoleRegistry
from app.models.role import Permission, Role

logger = get_logger(__name__)


@dataclass
class BootstrapResult:
    tenant_id: str
    permissions_created: list[Permission]
    permissions_total: int
    roles: list[Role]

    def role_permission_counts(self) -> dict[str, int]:
        return {role.name: len(role.permissions) for role in self.roles}


def permissions_for(template: RoleTemplate, permissions: list[Permission]) -> list[Permission]:
    """Apply a role template to a tenant's permissions."""
    return [p for p in permissions if template.includes(p.action, p.resource)]


async def _upsert_role(db: AsyncSession, template: RoleTemplate, tenant_id: str) -> Role:
    role = await RoleRegistry.find_by_name(db, template.name, tenant_id)
    if role is None:
        return await RoleRegistry.create(
            db,
            name=template.name,
            display_name=template.display_name,
            description=template.description,
            tenant_id=tenant_id,
            is_default=template.is_default,
        )

    if role.display_name != template.display_name:
        async with atomic(db):
            role.display_name = template.display_name
            await db.flush()

    if template.is_default and not role.is_default:
        role = await RoleRegistry.set_default(db, role.id, tenant_id)

    return role


async def bootstrap_default_roles(
    db: AsyncSession,
    tenant_id: str,
    templates: tuple[RoleTemplate, ...] = DEFAULT_ROLE_TEMPLATES,
) -> list[Role]:
    """
    Create the default role hierarchy and bind each role to its permissions.

    Bindings are replaced, so each role ends up with exactly the permissions
    its template selects from what the tenant currently has.
    """
    permissions = await PermissionRegistry.list_by_tenant(db, tenant_id)

    roles: list[Role] = []
    for template in templates:
        role = await _upsert_role(db, template, tenant_id)
        granted = permissions_for(template, permissions)
        roles.append(
            await BindingManager.assign_permissions_to_role(
                db, role.id, [p.id for p in granted], tenant_id
            )
        )

    logger.info(
        "roles_bootstrapped",
        tenant_id=tenant_id,
        roles={role.name: len(role.permissions) for role in roles},
    )
    return roles


async def bootstrap_tenant(db: AsyncSession, tenant_id: str) -> BootstrapResult:
    """Seed a tenant's permission catalog, then its default roles."""
    async with timed_operation("tenant_bootstrap", tenant_id=tenant_id):
        created = await PermissionRegistry.bootstrap_defaults(db, tenant_id)
        roles = await bootstrap_default_roles(db, tenant_id)
        total = len(await PermissionRegistry.list_by_tenant(db, tenant_id))

    return BootstrapResult(
        tenant_id=tenant_id,
        permissions_created=created,
        permissions_total=total,
        roles=roles,
    )
