"""
Tenant context endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.logging_config import get_logger
from app.core.tenant import CurrentTenant
from app.features.auth.dependencies import CurrentUser
from app.features.rbac.bootstrap import bootstrap_tenant
from app.features.rbac.dependencies import require_admin, require_super_admin
from app.features.rbac.engine import authorization_engine
from app.features.tenants.service import tenant_service
from app.models.tenant import Tenant
from app.models.user import User
from app.schemas.common import ApiResponse
from app.schemas.tenant import TenantBootstrapResult, TenantMember, TenantRead, TenantStatusUpdate

logger = get_logger(__name__)

router = APIRouter(prefix="/tenants", tags=["Tenants"])


@router.get("/current", response_model=ApiResponse[TenantRead])
async def get_current_tenant_info(
    tenant: CurrentTenant,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[TenantRead]:
    """Tenant resolved from the request (header, subdomain or custom domain)."""
    record = await db.get(Tenant, tenant.id)
    return ApiResponse(data=TenantRead.model_validate(record))


@router.get(
    "/current/members",
    response_model=ApiResponse[list[TenantMember]],
    dependencies=[Depends(require_admin())],
)
async def list_members(
    tenant: CurrentTenant,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[list[TenantMember]]:
    """Members of the current tenant with their roles there. Tenant administrators only."""
    members = await tenant_service.list_members(db, tenant.id)
    return ApiResponse(data=[TenantMember.model_validate(m) for m in members])


@router.put("/{tenant_id}/status", response_model=ApiResponse[TenantRead])
async def set_tenant_status(
    tenant_id: str,
    body: TenantStatusUpdate,
    current_user: Annotated[User, Depends(require_super_admin())],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[TenantRead]:
    """Activate or suspend a tenant. Platform administrators only."""
    record = await tenant_service.set_status(db, tenant_id, body.status)
    logger.info("tenant_status_set", target_tenant_id=tenant_id, by_user_id=current_user.id)
    return ApiResponse(message="Tenant status updated", data=TenantRead.model_validate(record))


@router.post("/{tenant_id}/bootstrap", response_model=ApiResponse[TenantBootstrapResult])
async def bootstrap(
    tenant_id: str,
    current_user: CurrentUser,
    tenant: CurrentTenant,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[TenantBootstrapResult]:
    """
    Seed default permissions and roles for a tenant.

    Allowed for ``manage:tenant`` holders on their own tenant and for
    platform administrators on any tenant. Safe to repeat.
    """
    if not await authorization_engine.can_manage_tenant(db, current_user.id, tenant.id, tenant_id):
        raise ForbiddenError("You cannot manage this tenant")

    if await db.get(Tenant, tenant_id) is None:
        raise NotFoundError("Tenant not found")

    result = await bootstrap_tenant(db, tenant_id)
    logger.info("tenant_bootstrapped", target_tenant_id=tenant_id, by_user_id=current_user.id)

    return ApiResponse(
        message="Tenant bootstrapped",
        data=TenantBootstrapResult(
            tenant_id=tenant_id,
            permissions_created=len(result.permissions_created),
            permissions_total=result.permissions_total,
            roles=result.role_permission_counts(),
        ),
    )
