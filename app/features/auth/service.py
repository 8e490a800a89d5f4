"""
Authentication business logic.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.exceptions import (
    AccountInactiveError,
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    NotFoundError,
)
from app.core.logging_config import get_logger
from app.core.metrics import login_attempts_total
from app.core.security import hash_password, pwd_context, utcnow, verify_password
from app.features.auth.tokens import RefreshResult, TokenPair, TokenService
from app.features.rbac.bindings import BindingManager
from app.features.rbac.roles import RoleRegistry
from app.models.role import Role
from app.models.user import User, UserStatus
from app.schemas.user import UserCreate

logger = get_logger(__name__)


@dataclass
class AuthResult:
    user: User
    tokens: TokenPair
    role: Role | None = None


class AuthService:
    """Authentication service with business logic."""

    @staticmethod
    async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def verify_credentials(db: AsyncSession, email: str, password: str) -> User:
        """
        Check email and password.

        Raises:
            InvalidCredentialsError: unknown email or wrong password
        """
        user = await AuthService.get_user_by_email(db, email)

        if user is None:
            # Same hashing cost whether or not the account exists
            pwd_context.dummy_verify()
            raise InvalidCredentialsError("Invalid credentials")

        if not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError("Invalid credentials")

        return user

    @staticmethod
    async def authenticate(
        db: AsyncSession,
        email: str,
        password: str,
        session_name: str | None = None,
    ) -> AuthResult:
        """
        Log a user in.

        Raises:
            InvalidCredentialsError: wrong email/password (401)
            AccountInactiveError: valid credentials, non-active account (403)
        """
        try:
            user = await AuthService.verify_credentials(db, email, password)
        except InvalidCredentialsError:
            login_attempts_total.labels(outcome="invalid_credentials").inc()
            logger.info("login_failed", reason="invalid_credentials")
            raise

        if not user.is_active:
            login_attempts_total.labels(outcome="inactive").inc()
            logger.info("login_failed", reason="account_inactive", user_id=user.id)
            raise AccountInactiveError("Account is not active")

        tokens = await TokenService.issue_pair(db, user, name=session_name)

        async with atomic(db):
            user.last_login_at = utcnow()
            await db.flush()

        login_attempts_total.labels(outcome="success").inc()
        logger.info("login_succeeded", user_id=user.id)
        return AuthResult(user=user, tokens=tokens)

    @staticmethod
    async def register(db: AsyncSession, data: UserCreate, tenant_id: str) -> AuthResult:
        """
        Create an account in a tenant and log it in.

        The user becomes a member of the tenant and receives the tenant's
        default role (if one is configured) in the same transaction.

        Raises:
            EmailAlreadyExistsError: the email is taken (409)
        """
        email = data.email.lower()
        if await AuthService.get_user_by_email(db, email) is not None:
            raise EmailAlreadyExistsError("Email already registered", details={"email": email})

        default_role = await RoleRegistry.get_default(db, tenant_id)

        user = User(
            email=email,
            hashed_password=hash_password(data.password),
            full_name=data.full_name,
            phone=data.phone,
            status=UserStatus.ACTIVE.value,
        )

        try:
            async with atomic(db):
                db.add(user)
                await db.flush()
                if default_role is not None:
                    await BindingManager.bind_role_edge(db, user.id, default_role.id, tenant_id)
                else:
                    await BindingManager.ensure_membership(db, user.id, tenant_id)
        except IntegrityError as e:
            raise EmailAlreadyExistsError("Email already registered") from e

        logger.info(
            "user_registered",
            user_id=user.id,
            tenant_id=tenant_id,
            role=default_role.name if default_role else None,
        )

        tokens = await TokenService.issue_pair(db, user)
        return AuthResult(user=user, tokens=tokens, role=default_role)

    @staticmethod
    async def refresh(db: AsyncSession, refresh_token: str) -> RefreshResult:
        return await TokenService.refresh(db, refresh_token)

    @staticmethod
    async def logout(db: AsyncSession, user: User, refresh_token: str) -> None:
        """Invalidate the refresh token of this session; the access token expires naturally."""
        await TokenService.revoke(db, user.id, refresh_token)
        logger.info("user_logged_out", user_id=user.id)

    @staticmethod
    async def set_status(db: AsyncSession, user_id: str, status: UserStatus) -> User:
        """
        Move an account to another lifecycle status.

        Leaving ``active`` revokes every refresh token of the account.
        """
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", details={"user_id": user_id})

        async with atomic(db):
            user.status = status.value
            await db.flush()

        if status is not UserStatus.ACTIVE:
            await TokenService.revoke_all_for_user(db, user.id)

        logger.info("user_status_changed", user_id=user.id, status=status.value)
        return user


# Singleton instance
auth_service = AuthService()
