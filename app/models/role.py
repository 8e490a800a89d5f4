"""
Role-Based Access Control (RBAC) models.

Every row is tenant scoped; the same role or permission name may exist in
any number of tenants as unrelated records.
"""

from sqlalchemy import Boolean, Column, ForeignKey, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.core.database import Base
from app.core.exceptions import ValidationError
from app.models.base import BaseModel


# Many-to-many: User <-> Role, qualified by tenant
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("tenant_id", String(36), ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True, index=True),
)


# Many-to-many: Role <-> Permission (tenant implied by both sides)
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


def permission_name(action: str, resource: str) -> str:
    """Canonical permission name: ``{action}:{resource}``."""
    return f"{action}:{resource}"


class Permission(BaseModel):
    """
    Permission model for fine-grained access control.

    Identified by (resource, action) within a tenant. ``name`` is always
    ``"{action}:{resource}"`` and is derived, never assigned.

    Examples:
    - read:product
    - manage:order
    - manage:*   (wildcard catch-all)
    """

    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("name", "tenant_id", name="uq_permissions_name_tenant"),
        UniqueConstraint("resource", "action", "tenant_id", name="uq_permissions_resource_action_tenant"),
    )

    name: Mapped[str] = mapped_column(
        String(150),
        nullable=False,
        index=True,
        comment="Derived identifier (action:resource format)"
    )

    resource: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Human-readable permission description"
    )

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __init__(self, **kwargs):
        if "name" in kwargs:
            raise ValidationError("Permission name is derived from action and resource")
        super().__init__(**kwargs)

    @validates("action", "resource")
    def _derive_name(self, key: str, value: str) -> str:
        if not isinstance(value, str) or not value.strip() or ":" in value:
            raise ValidationError(f"Invalid permission {key}: {value!r}")

        action = value if key == "action" else self.action
        resource = value if key == "resource" else self.resource
        if action and resource:
            self.name = permission_name(action, resource)
        return value

    def __repr__(self) -> str:
        return f"<Permission(name={self.name}, tenant_id={self.tenant_id})>"


class Role(BaseModel):
    """
    Role model for grouping permissions.

    Built-in roles (seeded per tenant):
    - super_admin, admin, manager, staff
    - customer (default role, assigned at registration)

    Custom roles can be created per tenant.
    """

    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("name", "tenant_id", name="uq_roles_name_tenant"),
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Role name (e.g., 'admin', 'customer')"
    )

    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    is_default: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Auto-assigned to new members of the tenant"
    )

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Read side only; bindings are written through role_permissions
    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        viewonly=True,
        lazy="selectin",
        order_by="Permission.name",
    )

    def __repr__(self) -> str:
        return f"<Role(name={self.name}, tenant_id={self.tenant_id})>"
