"""
Pydantic schemas for Tenant.
"""

from datetime import datetime

from pydantic import Field

from app.models.tenant import TenantStatus
from app.schemas.common import BaseSchema
from app.schemas.user import UserRead


class TenantRead(BaseSchema):
    """Schema for reading tenant data."""

    id: str
    name: str
    slug: str
    domain: str | None = None
    description: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime


class TenantBootstrapResult(BaseSchema):
    """Outcome of seeding a tenant's default permissions and roles."""

    tenant_id: str
    permissions_created: int = Field(..., description="Permissions inserted by this run")
    permissions_total: int
    roles: dict[str, int] = Field(..., description="Role name -> bound permission count")


class TenantStatusUpdate(BaseSchema):
    status: TenantStatus = Field(..., examples=["suspended"])


class TenantMember(BaseSchema):
    """A user of the tenant with the roles held there."""

    user: UserRead
    membership_status: str
    roles: list[str]
