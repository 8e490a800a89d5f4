"""
Pydantic schemas package.
"""

from app.schemas.common import (
    ApiResponse,
    BaseSchema,
    ErrorDetail,
    ErrorResponse,
    MessageResponse,
)
from app.schemas.tenant import TenantBootstrapResult, TenantRead
from app.schemas.user import UserCreate, UserRead

__all__ = [
    # Common
    "ApiResponse",
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    "MessageResponse",
    # Tenant
    "TenantBootstrapResult",
    "TenantRead",
    # User
    "UserCreate",
    "UserRead",
]
