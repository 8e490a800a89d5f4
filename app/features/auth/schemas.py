"""
Authentication-specific schemas.
"""

from pydantic import EmailStr, Field

from app.schemas.common import BaseSchema
from app.schemas.user import UserCreate, UserRead


class LoginRequest(BaseSchema):
    """Login request schema."""

    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., min_length=1, description="User password")


class RegisterRequest(UserCreate):
    """Registration request; the tenant is resolved from the request."""


class TokenResponse(BaseSchema):
    """Token response schema."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str | None = Field(None, description="Opaque refresh token (absent when not rotated)")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration in seconds")


class OAuth2TokenResponse(BaseSchema):
    """Flat token response for the OAuth2 password flow (API docs)."""

    access_token: str
    token_type: str = "bearer"
    refresh_token: str | None = None
    expires_in: int


class AuthResponse(BaseSchema):
    """User plus freshly issued tokens."""

    user: UserRead
    tokens: TokenResponse


class RefreshTokenRequest(BaseSchema):
    """Refresh token request."""

    refresh_token: str = Field(..., min_length=1, description="Valid refresh token")


class LogoutRequest(BaseSchema):
    refresh_token: str = Field(..., min_length=1, description="Refresh token of the session to end")


class TokenValidationResponse(BaseSchema):
    valid: bool
    user_id: str
    email: str
    expires_at: int
