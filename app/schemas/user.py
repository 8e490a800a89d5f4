"""
Pydantic schemas for User.
"""

from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from app.models.user import UserStatus
from app.schemas.common import BaseSchema

PASSWORD_RULES = (
    (str.isupper, "Password must contain at least one uppercase letter"),
    (str.islower, "Password must contain at least one lowercase letter"),
    (str.isdigit, "Password must contain at least one digit"),
)


class UserCreate(BaseSchema):
    """Self-registration payload; the tenant comes from the request."""

    email: EmailStr = Field(..., examples=["alice@acme.com"])
    password: str = Field(..., min_length=8, max_length=100)
    full_name: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """At least one uppercase letter, one lowercase letter and one digit."""
        for check, message in PASSWORD_RULES:
            if not any(check(char) for char in v):
                raise ValueError(message)
        return v


class UserRead(BaseSchema):
    """Public view of an account (never includes the password hash)."""

    id: str
    email: str
    full_name: str | None = None
    phone: str | None = None
    status: str
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UserStatusUpdate(BaseSchema):
    status: UserStatus = Field(..., examples=["suspended"])
