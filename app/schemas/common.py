"""
Common/shared Pydantic schemas.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


# Base configuration for all schemas
class BaseSchema(BaseModel):
    """
    Base schema with common configuration.

    All schemas should inherit from this.
    """

    model_config = ConfigDict(
        from_attributes=True,  # Allow ORM mode (SQLAlchemy objects)
        populate_by_name=True,  # Allow population by field name or alias
        str_strip_whitespace=True,  # Strip whitespace from strings
        validate_assignment=True,  # Validate on assignment, not just creation
    )


T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    """
    Standard response envelope.

    Usage:
        ApiResponse[RoleRead](success=True, data=role)
    """

    success: bool = True
    message: str | None = None
    data: T | None = None


class MessageResponse(BaseModel):
    """Simple message response."""
    success: bool = True
    message: str


class ErrorDetail(BaseModel):
    """Error detail structure."""
    field: str | None = None
    message: str
    type: str | None = None


class ErrorResponse(BaseModel):
    """Standardized error response."""
    success: bool = False
    message: str
    code: str
    errors: list[ErrorDetail] | None = None
    details: dict[str, Any] | None = Field(default=None, description="Extra error context")
