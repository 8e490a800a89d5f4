"""
Integration tests for the refresh token lifecycle.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from app.config import settings
from app.core.exceptions import AccountInactiveError, InvalidTokenError
from app.core.security import decode_token, hash_token, utcnow
from app.features.auth.tokens import TokenService
from app.models import RefreshToken, User
from app.models.user import UserStatus


async def _row(db, plain: str) -> RefreshToken | None:
    result = await db.execute(select(RefreshToken).where(RefreshToken.token_hash == hash_token(plain)))
    return result.scalar_one_or_none()


@pytest.mark.integration
class TestIssue:
    """Tokens are issued as a pair; only the hash is stored."""

    async def test_issue_pair(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user)

        assert pair.token_type == "bearer"
        assert pair.expires_in == 3600
        assert decode_token(pair.access_token)["sub"] == test_user.id

        row = await _row(db_session, pair.refresh_token)
        assert row is not None
        assert row.user_id == test_user.id
        assert row.token_hash != pair.refresh_token

    async def test_multiple_sessions(self, db_session, test_user):
        first = await TokenService.issue_pair(db_session, test_user)
        second = await TokenService.issue_pair(db_session, test_user)

        assert await _row(db_session, first.refresh_token) is not None
        assert await _row(db_session, second.refresh_token) is not None


@pytest.mark.integration
class TestRefresh:
    """Rotation, double spend and expiry."""

    async def test_rotation(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user, name="web")

        result = await TokenService.refresh(db_session, pair.refresh_token)

        assert result.user.id == test_user.id
        assert result.tokens.refresh_token is not None
        assert result.tokens.refresh_token != pair.refresh_token
        assert await _row(db_session, pair.refresh_token) is None

        replacement = await _row(db_session, result.tokens.refresh_token)
        assert replacement.name == "web"

    async def test_rotation_records_last_use(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user)
        before = utcnow()

        result = await TokenService.refresh(db_session, pair.refresh_token)

        replacement = await _row(db_session, result.tokens.refresh_token)
        assert replacement.last_used_at is not None
        assert replacement.last_used_at.replace(tzinfo=None) >= before.replace(tzinfo=None)

    async def test_consumed_token_cannot_be_reused(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user)
        await TokenService.refresh(db_session, pair.refresh_token)

        with pytest.raises(InvalidTokenError):
            await TokenService.refresh(db_session, pair.refresh_token)

    async def test_rotated_token_keeps_working(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user)

        first = await TokenService.refresh(db_session, pair.refresh_token)
        second = await TokenService.refresh(db_session, first.tokens.refresh_token)

        assert second.user.id == test_user.id

    async def test_without_rotation(self, db_session, test_user, monkeypatch):
        monkeypatch.setattr(settings, "refresh_token_rotation", False)
        pair = await TokenService.issue_pair(db_session, test_user)

        first = await TokenService.refresh(db_session, pair.refresh_token)
        second = await TokenService.refresh(db_session, pair.refresh_token)

        assert first.tokens.refresh_token is None
        assert second.tokens.access_token
        row = await _row(db_session, pair.refresh_token)
        await db_session.refresh(row)
        assert row.last_used_at is not None

    async def test_expired_token_is_deleted(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user)
        await db_session.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == hash_token(pair.refresh_token))
            .values(expires_at=utcnow() - timedelta(seconds=1))
        )
        await db_session.commit()

        with pytest.raises(InvalidTokenError, match="expired"):
            await TokenService.refresh(db_session, pair.refresh_token)

        assert await _row(db_session, pair.refresh_token) is None

    @pytest.mark.parametrize("token", ["", "garbage", "rf_unknown", None])
    async def test_unknown_tokens(self, db_session, token):
        with pytest.raises(InvalidTokenError):
            await TokenService.refresh(db_session, token)

    async def test_inactive_owner(self, db_session, test_user):
        pair = await TokenService.issue_pair(db_session, test_user)
        test_user.status = UserStatus.SUSPENDED.value
        await db_session.commit()

        with pytest.raises(AccountInactiveError):
            await TokenService.refresh(db_session, pair.refresh_token)


@pytest.mark.integration
class TestRevoke:
    """Logout removes exactly the presented token."""

    async def test_revoke(self, db_session, test_user):
        kept = await TokenService.issue_pair(db_session, test_user)
        ended = await TokenService.issue_pair(db_session, test_user)

        await TokenService.revoke(db_session, test_user.id, ended.refresh_token)

        assert await _row(db_session, ended.refresh_token) is None
        assert await _row(db_session, kept.refresh_token) is not None
        with pytest.raises(InvalidTokenError):
            await TokenService.refresh(db_session, ended.refresh_token)

    async def test_revoke_unknown(self, db_session, test_user):
        with pytest.raises(InvalidTokenError):
            await TokenService.revoke(db_session, test_user.id, "rf_unknown")

    async def test_cannot_revoke_someone_elses_token(self, db_session, test_user):
        other = User(email="other@acme.com", hashed_password="x")
        db_session.add(other)
        await db_session.commit()
        pair = await TokenService.issue_pair(db_session, other)

        with pytest.raises(InvalidTokenError):
            await TokenService.revoke(db_session, test_user.id, pair.refresh_token)

        assert await _row(db_session, pair.refresh_token) is not None

    async def test_revoke_all(self, db_session, test_user):
        for _ in range(3):
            await TokenService.issue_pair(db_session, test_user)

        assert await TokenService.revoke_all_for_user(db_session, test_user.id) == 3
