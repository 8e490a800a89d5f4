"""
Tenant lifecycle and membership.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.exceptions import NotFoundError
from app.core.logging_config import get_logger
from app.core.tenant import invalidate_tenant_cache
from app.features.rbac.engine import AuthorizationEngine
from app.models.tenant import Tenant, TenantStatus, user_tenants
from app.models.user import User

logger = get_logger(__name__)


@dataclass
class Member:
    user: User
    membership_status: str
    roles: list[str]


class TenantService:
    """Tenant status changes and member listings."""

    @staticmethod
    async def get_or_404(db: AsyncSession, tenant_id: str) -> Tenant:
        tenant = await db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found", details={"tenant_id": tenant_id})
        return tenant

    @staticmethod
    async def set_status(db: AsyncSession, tenant_id: str, status: TenantStatus) -> Tenant:
        """
        Move a tenant to another lifecycle status.

        Cached resolutions are dropped after the commit, so a suspended
        tenant stops resolving on the next request instead of after the
        cache TTL.
        """
        tenant = await TenantService.get_or_404(db, tenant_id)

        async with atomic(db):
            tenant.status = status.value
            await db.flush()

        await invalidate_tenant_cache(tenant)
        logger.info("tenant_status_changed", tenant_id=tenant.id, status=status.value)
        return tenant

    @staticmethod
    async def list_members(db: AsyncSession, tenant_id: str) -> list[Member]:
        """Users with a membership row in the tenant, with their role names there."""
        result = await db.execute(
            select(User, user_tenants.c.status)
            .join(user_tenants, user_tenants.c.user_id == User.id)
            .where(user_tenants.c.tenant_id == tenant_id)
            .order_by(User.email)
        )

        members = []
        for user, membership_status in result.all():
            roles = await AuthorizationEngine.get_user_roles(db, user.id, tenant_id)
            members.append(Member(user=user, membership_status=membership_status, roles=[r.name for r in roles]))
        return members


# Singleton instance
tenant_service = TenantService()
