"""
Database models package.
"""

from app.core.database import Base
from app.models.base import BaseModel
from app.models.tenant import Tenant, TenantStatus, user_tenants
from app.models.user import User, UserStatus
from app.models.role import Permission, Role, permission_name, role_permissions, user_roles
from app.models.refresh_token import REFRESH_TOKEN_TYPE, RefreshToken

__all__ = [
    "Base",
    "BaseModel",
    "Tenant",
    "TenantStatus",
    "user_tenants",
    "User",
    "UserStatus",
    "Permission",
    "Role",
    "permission_name",
    "role_permissions",
    "user_roles",
    "REFRESH_TOKEN_TYPE",
    "RefreshToken",
]
