"""
Refresh token model.

Only the SHA-256 hash of the opaque token is stored.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel

REFRESH_TOKEN_TYPE = "jwt_refresh_token"


class RefreshToken(BaseModel):
    """
    Persisted refresh token.

    One row per login session; consumed (deleted) when rotated or revoked.
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Token owner (tokenable id)"
    )

    type: Mapped[str] = mapped_column(
        String(50),
        default=REFRESH_TOKEN_TYPE,
        nullable=False,
    )

    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Session label (e.g. client name)"
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        comment="SHA-256 hex digest of the token"
    )

    abilities: Mapped[list[str]] = mapped_column(
        JSON,
        default=lambda: ["*"],
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<RefreshToken(user_id={self.user_id}, expires_at={self.expires_at})>"
