"""
Custom exception hierarchy for the application.

Every domain error carries an HTTP status and a stable machine-readable
code; the application renders them through a single exception handler.
"""

from typing import Any

from fastapi import HTTPException, status


class StoreGateError(Exception):
    """Base exception for all application exceptions."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "E_BAD_REQUEST"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidCredentialsError(StoreGateError):
    """Raised when email/password verification fails."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "E_INVALID_CREDENTIALS"


class InvalidTokenError(StoreGateError):
    """Raised for unknown, expired or already used tokens."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "E_INVALID_TOKEN"


class AccountInactiveError(StoreGateError):
    """Raised when valid credentials belong to a non-active account."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "E_ACCOUNT_INACTIVE"


class ForbiddenError(StoreGateError):
    """Raised when user lacks permissions."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "E_FORBIDDEN"


class NotFoundError(StoreGateError):
    """
    Raised when a requested resource doesn't exist.

    A record belonging to another tenant is reported exactly like a missing
    one.
    """

    status_code = status.HTTP_404_NOT_FOUND
    code = "E_NOT_FOUND"


class UnknownReferenceError(NotFoundError):
    """Raised when a batch references ids that do not exist in the tenant."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "E_UNKNOWN_REFERENCE"


class ConflictError(StoreGateError):
    """Raised on duplicate permission/role/email creation."""

    status_code = status.HTTP_409_CONFLICT
    code = "E_CONFLICT"


class EmailAlreadyExistsError(ConflictError):
    """Raised when registering an email that is already taken."""

    code = "E_EMAIL_EXISTS"


class TenantRequiredError(StoreGateError):
    """Raised when the request carries no tenant context."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "E_TENANT_REQUIRED"


class TenantNotFoundError(StoreGateError):
    """Raised when the tenant context does not resolve to a tenant."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "E_TENANT_NOT_FOUND"


class TenantInactiveError(StoreGateError):
    """Raised when the resolved tenant is not active."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "E_TENANT_INACTIVE"


class ValidationError(StoreGateError):
    """Raised when input validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "E_VALIDATION"


# HTTP Exception helpers
def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    """Return 401 Unauthorized exception."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )
