"""
Integration tests for authentication service.
"""

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    AccountInactiveError,
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
)
from app.features.auth.service import auth_service
from app.features.auth.tokens import TokenService
from app.features.rbac.engine import AuthorizationEngine
from app.models import RefreshToken, User, user_tenants
from app.models.user import UserStatus
from app.schemas.user import UserCreate
from tests.factories import UserFactory


@pytest.mark.integration
class TestAuthenticate:
    """Login flow."""

    async def test_success(self, db_session):
        user = await UserFactory.create(db_session, email="auth@acme.com", password="Secret123!")

        result = await auth_service.authenticate(db_session, email="auth@acme.com", password="Secret123!")

        assert result.user.id == user.id
        assert result.tokens.access_token
        assert result.tokens.refresh_token.startswith("rf_")
        assert result.user.last_login_at is not None

    async def test_email_is_case_insensitive(self, db_session):
        await UserFactory.create(db_session, email="auth@acme.com", password="Secret123!")

        result = await auth_service.authenticate(db_session, email="AUTH@acme.com", password="Secret123!")

        assert result.user.email == "auth@acme.com"

    async def test_wrong_password(self, db_session):
        await UserFactory.create(db_session, email="auth@acme.com", password="Secret123!")

        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate(db_session, email="auth@acme.com", password="Wrong123!")

    async def test_unknown_email(self, db_session):
        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate(db_session, email="nobody@acme.com", password="Secret123!")

    async def test_inactive_account(self, db_session):
        await UserFactory.create(
            db_session,
            email="auth@acme.com",
            password="Secret123!",
            status=UserStatus.INACTIVE.value,
        )

        with pytest.raises(AccountInactiveError):
            await auth_service.authenticate(db_session, email="auth@acme.com", password="Secret123!")

        tokens = await db_session.execute(select(func.count()).select_from(RefreshToken))
        assert tokens.scalar_one() == 0


@pytest.mark.integration
class TestRegister:
    """Registration creates user, membership and default role together."""

    def _data(self, **overrides) -> UserCreate:
        values = {"email": "alice@acme.com", "password": "Alice123!", "full_name": "Alice"}
        values.update(overrides)
        return UserCreate(**values)

    async def test_register_with_default_role(self, db_session, bootstrapped_tenant, tenant):
        result = await auth_service.register(db_session, self._data(), tenant.id)

        assert result.role.name == "customer"
        assert result.tokens.refresh_token is not None
        assert await AuthorizationEngine.has_role(db_session, result.user.id, "customer", tenant.id)

    async def test_register_without_default_role(self, db_session, tenant):
        result = await auth_service.register(db_session, self._data(), tenant.id)

        assert result.role is None
        membership = await db_session.execute(
            select(func.count()).select_from(user_tenants).where(user_tenants.c.user_id == result.user.id)
        )
        assert membership.scalar_one() == 1

    async def test_email_is_normalised(self, db_session, tenant):
        result = await auth_service.register(db_session, self._data(email="Alice@Acme.com"), tenant.id)

        assert result.user.email == "alice@acme.com"

    async def test_duplicate_email(self, db_session, tenant):
        await auth_service.register(db_session, self._data(), tenant.id)

        with pytest.raises(EmailAlreadyExistsError):
            await auth_service.register(db_session, self._data(), tenant.id)

        users = await db_session.execute(select(func.count()).select_from(User))
        assert users.scalar_one() == 1


@pytest.mark.integration
class TestSessionLifecycle:
    """Refresh, logout and status changes."""

    async def test_logout_invalidates_refresh_token(self, db_session):
        user = await UserFactory.create(db_session, email="auth@acme.com", password="Secret123!")
        result = await auth_service.authenticate(db_session, email="auth@acme.com", password="Secret123!")

        await auth_service.logout(db_session, user, result.tokens.refresh_token)

        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, result.tokens.refresh_token)

    async def test_deactivation_revokes_sessions(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user)

        user = await auth_service.set_status(db_session, test_user.id, UserStatus.SUSPENDED)

        assert user.is_active is False
        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, pair.refresh_token)

    async def test_set_status_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            await auth_service.set_status(db_session, "ghost", UserStatus.ACTIVE)
