"""
Tenant resolution and isolation utilities.

Tenant context comes from the request, in this order:
1. ``X-Tenant-Slug`` header
2. First label of the ``Host`` header (subdomain) as a slug
3. Full ``Host`` as a custom domain
"""

from dataclasses import asdict, dataclass
from typing import Annotated, Any, Mapping, Type, TypeVar

import structlog
from fastapi import Depends, Request
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.cache import cache_manager
from app.core.context import set_request_context
from app.core.database import get_db
from app.core.exceptions import TenantInactiveError, TenantNotFoundError, TenantRequiredError
from app.models.base import BaseModel
from app.models.tenant import Tenant, TenantStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

CACHE_NAMESPACE = "tenant"


@dataclass(frozen=True)
class TenantContext:
    """What authorization needs to know about the resolved tenant."""

    id: str
    slug: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value


def tenant_scoped(model: Type[T], tenant_id: str) -> Select:
    """
    Create a query scoped to one tenant.

    There is no bypass: every caller gets rows of ``tenant_id`` only.

    Usage:
        query = tenant_scoped(Role, tenant_id).where(Role.name == "admin")
    """
    return select(model).where(model.tenant_id == tenant_id)


def _host_without_port(host: str | None) -> str | None:
    if not host:
        return None
    return host.split(":", 1)[0].strip().lower() or None


async def _lookup(db: AsyncSession, field: str, value: str) -> TenantContext | None:
    cache_key = f"{field}:{value}"
    cached = await cache_manager.get(CACHE_NAMESPACE, cache_key)
    if cached is not None:
        return TenantContext(**cached)

    column = Tenant.slug if field == "slug" else Tenant.domain
    result = await db.execute(
        select(Tenant.id, Tenant.slug, Tenant.status).where(column == value)
    )
    row = result.first()
    if row is None:
        return None

    resolved = TenantContext(id=row.id, slug=row.slug, status=row.status)
    await cache_manager.set(
        CACHE_NAMESPACE, cache_key, asdict(resolved), ttl=settings.cache_tenant_ttl
    )
    return resolved


async def resolve_tenant(db: AsyncSession, headers: Mapping[str, Any]) -> TenantContext:
    """
    Resolve the tenant for a request.

    Args:
        db: Database session
        headers: Request headers (case-insensitive mapping)

    Returns:
        The active tenant

    Raises:
        TenantRequiredError: no tenant header and no host
        TenantNotFoundError: nothing matches
        TenantInactiveError: the matched tenant is not active
    """
    slug = (headers.get(settings.tenant_header) or "").strip()
    host = _host_without_port(headers.get("host"))

    if not slug and not host:
        raise TenantRequiredError("Tenant context is required")

    tenant = None
    if slug:
        tenant = await _lookup(db, "slug", slug)

    if tenant is None and host and "." in host:
        tenant = await _lookup(db, "slug", host.split(".", 1)[0])

    if tenant is None and host:
        tenant = await _lookup(db, "domain", host)

    if tenant is None:
        logger.info("tenant_not_found", slug=slug or None, host=host)
        raise TenantNotFoundError("Tenant not found")

    if not tenant.is_active:
        logger.info("tenant_inactive", tenant_id=tenant.id, status=tenant.status)
        raise TenantInactiveError("Tenant is not active")

    return tenant


async def invalidate_tenant_cache(tenant: Tenant) -> None:
    """Drop cached resolutions after a tenant's slug, domain or status changes."""
    await cache_manager.delete(CACHE_NAMESPACE, f"slug:{tenant.slug}")
    if tenant.domain:
        await cache_manager.delete(CACHE_NAMESPACE, f"domain:{tenant.domain}")


async def get_current_tenant(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TenantContext:
    """FastAPI dependency resolving the request's tenant."""
    tenant = await resolve_tenant(db, request.headers)

    request.state.tenant_id = tenant.id
    set_request_context(tenant_id=tenant.id, tenant_slug=tenant.slug)

    return tenant


CurrentTenant = Annotated[TenantContext, Depends(get_current_tenant)]
