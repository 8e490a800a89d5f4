"""
Token service: stateless access tokens and persisted refresh tokens.

Refresh token lifecycle:
    issued -> consumed (rotated or revoked at logout)
    issued -> expired (row deleted when presented)

With rotation enabled (default) every refresh consumes the presented token
and returns a new one. Consumption is a single conditional DELETE, so two
concurrent refreshes with the same token cannot both succeed.
"""

from dataclasses import dataclass
from datetime import timedelta

from jose import JWTError
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import atomic
from app.core.exceptions import AccountInactiveError, InvalidTokenError
from app.core.logging_config import get_logger
from app.core.metrics import token_refresh_total
from app.core.security import (
    as_utc,
    create_access_token,
    decode_token,
    generate_refresh_token,
    hash_token,
    utcnow,
)
from app.models.refresh_token import REFRESH_TOKEN_TYPE, RefreshToken
from app.models.user import User

logger = get_logger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str | None
    expires_in: int
    token_type: str = "bearer"


@dataclass
class RefreshResult:
    user: User
    tokens: TokenPair


class TokenService:
    """Issues, validates, rotates and revokes tokens."""

    @staticmethod
    def issue_access_token(user: User) -> str:
        return create_access_token(user_id=user.id, email=user.email)

    @staticmethod
    def verify_access_token(token: str) -> dict:
        """
        Decode an access token. Pure: no database access.

        Raises:
            InvalidTokenError: bad signature, expired, wrong type or no subject
        """
        try:
            payload = decode_token(token)
        except JWTError as e:
            raise InvalidTokenError("Invalid or expired token") from e

        if payload.get("type") != "access":
            raise InvalidTokenError("Invalid token type. Use access token.")
        if not payload.get("sub"):
            raise InvalidTokenError("Invalid token payload")

        return payload

    @staticmethod
    def _new_refresh_row(user_id: str, name: str | None, abilities: list[str] | None) -> tuple[str, RefreshToken]:
        plain = generate_refresh_token()
        row = RefreshToken(
            user_id=user_id,
            type=REFRESH_TOKEN_TYPE,
            name=name,
            token_hash=hash_token(plain),
            abilities=list(abilities) if abilities else ["*"],
            expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
        )
        return plain, row

    @staticmethod
    async def issue_refresh_token(
        db: AsyncSession,
        user_id: str,
        name: str | None = None,
        abilities: list[str] | None = None,
    ) -> str:
        """Persist a new refresh token (hash only) and return the plaintext once."""
        plain, row = TokenService._new_refresh_row(user_id, name, abilities)

        async with atomic(db):
            db.add(row)
            await db.flush()

        logger.info("refresh_token_issued", user_id=user_id)
        return plain

    @staticmethod
    async def issue_pair(db: AsyncSession, user: User, name: str | None = None) -> TokenPair:
        refresh_token = await TokenService.issue_refresh_token(db, user.id, name=name)
        return TokenPair(
            access_token=TokenService.issue_access_token(user),
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_seconds,
        )

    @staticmethod
    async def refresh(db: AsyncSession, refresh_token: str) -> RefreshResult:
        """
        Exchange a refresh token for a new access token.

        Raises:
            InvalidTokenError: unknown, expired or already consumed token
            AccountInactiveError: the owner is no longer active
        """
        if not isinstance(refresh_token, str) or not refresh_token.startswith(settings.refresh_token_prefix):
            token_refresh_total.labels(outcome="invalid").inc()
            raise InvalidTokenError("Invalid refresh token")

        token_hash = hash_token(refresh_token)
        result = await db.execute(
            select(RefreshToken.id, RefreshToken.user_id, RefreshToken.expires_at, RefreshToken.name).where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.type == REFRESH_TOKEN_TYPE,
            )
        )
        row = result.first()

        if row is None:
            token_refresh_total.labels(outcome="invalid").inc()
            raise InvalidTokenError("Invalid refresh token")

        if as_utc(row.expires_at) <= utcnow():
            async with atomic(db):
                await db.execute(delete(RefreshToken).where(RefreshToken.id == row.id))
            token_refresh_total.labels(outcome="expired").inc()
            logger.info("refresh_token_expired", user_id=row.user_id)
            raise InvalidTokenError("Refresh token has expired")

        user = await db.get(User, row.user_id)
        if user is None:
            token_refresh_total.labels(outcome="invalid").inc()
            raise InvalidTokenError("Invalid refresh token")
        if not user.is_active:
            token_refresh_total.labels(outcome="inactive").inc()
            raise AccountInactiveError("Account is not active")

        new_refresh_token: str | None = None

        if settings.refresh_token_rotation:
            plain, replacement = TokenService._new_refresh_row(user.id, row.name, None)
            # The session was just used; the consumed row goes away with that fact
            replacement.last_used_at = utcnow()
            async with atomic(db):
                consumed = await db.execute(
                    delete(RefreshToken).where(
                        RefreshToken.id == row.id,
                        RefreshToken.token_hash == token_hash,
                    )
                )
                if consumed.rowcount != 1:
                    raise InvalidTokenError("Refresh token has already been used")
                db.add(replacement)
                await db.flush()
            new_refresh_token = plain
            logger.info("refresh_token_rotated", user_id=user.id)
        else:
            async with atomic(db):
                await db.execute(
                    update(RefreshToken)
                    .where(RefreshToken.id == row.id)
                    .values(last_used_at=utcnow())
                )

        token_refresh_total.labels(outcome="success").inc()
        return RefreshResult(
            user=user,
            tokens=TokenPair(
                access_token=TokenService.issue_access_token(user),
                refresh_token=new_refresh_token,
                expires_in=settings.access_token_expire_seconds,
            ),
        )

    @staticmethod
    async def revoke(db: AsyncSession, user_id: str, refresh_token: str) -> None:
        """
        Invalidate one refresh token owned by the user (logout).

        Raises:
            InvalidTokenError: the token is unknown or belongs to someone else
        """
        if not isinstance(refresh_token, str) or not refresh_token:
            raise InvalidTokenError("Invalid refresh token")

        async with atomic(db):
            result = await db.execute(
                delete(RefreshToken).where(
                    RefreshToken.token_hash == hash_token(refresh_token),
                    RefreshToken.user_id == user_id,
                )
            )

        if result.rowcount == 0:
            raise InvalidTokenError("Invalid refresh token")

        logger.info("refresh_token_revoked", user_id=user_id)

    @staticmethod
    async def revoke_all_for_user(db: AsyncSession, user_id: str) -> int:
        """Delete every refresh token of a user; returns how many were removed."""
        async with atomic(db):
            result = await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))

        logger.info("refresh_tokens_revoked", user_id=user_id, count=result.rowcount)
        return result.rowcount


# Singleton instance
token_service = TokenService()
