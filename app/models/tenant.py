"""
Tenant model for multi-tenancy.

Each tenant represents one storefront/business using the platform.
"""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.models.base import BaseModel, utcnow


class TenantStatus(str, enum.Enum):
    """Tenant lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


# Many-to-many: User <-> Tenant membership
user_tenants = Table(
    "user_tenants",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("tenant_id", String(36), ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True),
    Column("status", String(50), nullable=False, default="active"),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=utcnow),
    UniqueConstraint("user_id", "tenant_id", name="uq_user_tenants_user_tenant"),
)


class Tenant(BaseModel):
    """
    Tenant (storefront) model.

    Resolved per request from the tenant header, a subdomain (slug) or a
    custom domain. Every RBAC record carries its tenant_id.
    """

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Business name"
    )

    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        comment="URL-friendly identifier (e.g., 'acme')"
    )

    domain: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Custom domain (e.g., 'shop.acme.com')"
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default=TenantStatus.ACTIVE.value,
        nullable=False,
        comment="active | inactive | suspended"
    )

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug={self.slug})>"
