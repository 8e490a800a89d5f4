"""
Unit tests for security utilities.

Tests password hashing, JWT access tokens and opaque refresh tokens.
"""

import pytest
from datetime import datetime, timedelta, timezone

from jose import JWTError

from app.config import settings
from app.core.exceptions import InvalidTokenError
from app.core.security import (
    as_utc,
    create_access_token,
    decode_token,
    generate_refresh_token,
    hash_password,
    hash_token,
    verify_password,
)
from app.features.auth.tokens import TokenService


@pytest.mark.unit
class TestPasswordHashing:
    """Test password hashing and verification."""

    def test_hash_password(self):
        password = "TestPassword123!"
        hashed = hash_password(password)

        assert hashed != password
        assert hashed.startswith("$2b$")  # Bcrypt prefix

    def test_verify_password_success(self):
        hashed = hash_password("TestPassword123!")

        assert verify_password("TestPassword123!", hashed) is True

    def test_verify_password_failure(self):
        hashed = hash_password("TestPassword123!")

        assert verify_password("WrongPassword123!", hashed) is False

    def test_verify_against_malformed_hash(self):
        """An unidentifiable hash is a mismatch, not a crash."""
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_different_hashes_for_same_password(self):
        """Same password hashed twice produces different hashes (salt)."""
        hash1 = hash_password("TestPassword123!")
        hash2 = hash_password("TestPassword123!")

        assert hash1 != hash2
        assert verify_password("TestPassword123!", hash1) is True
        assert verify_password("TestPassword123!", hash2) is True


@pytest.mark.unit
class TestAccessTokens:
    """Test JWT access token generation and validation."""

    def test_create_access_token(self):
        token = create_access_token(user_id="user-123", email="alice@acme.com")

        payload = decode_token(token)
        assert payload["sub"] == "user-123"
        assert payload["email"] == "alice@acme.com"
        assert payload["type"] == "access"

    def test_claims_are_tenant_independent(self):
        payload = decode_token(create_access_token(user_id="user-123", email="alice@acme.com"))

        assert "tenant_id" not in payload

    def test_default_lifetime(self):
        payload = decode_token(create_access_token(user_id="user-123", email="alice@acme.com"))

        assert payload["exp"] - payload["iat"] == settings.access_token_expire_seconds

    def test_custom_expiration(self):
        token = create_access_token(
            user_id="user-123",
            email="alice@acme.com",
            expires_delta=timedelta(minutes=5),
        )

        payload = decode_token(token)
        assert payload["exp"] - payload["iat"] == 300

    def test_decode_invalid_token(self):
        with pytest.raises(JWTError):
            decode_token("invalid.token.here")

    def test_verify_expired_token(self):
        token = create_access_token(
            user_id="user-123",
            email="alice@acme.com",
            expires_delta=timedelta(seconds=-1),
        )

        with pytest.raises(InvalidTokenError):
            TokenService.verify_access_token(token)

    def test_verify_rejects_other_token_types(self):
        from jose import jwt

        token = jwt.encode(
            {"sub": "user-123", "type": "refresh", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            settings.secret_key,
            algorithm=settings.algorithm,
        )

        with pytest.raises(InvalidTokenError, match="token type"):
            TokenService.verify_access_token(token)

    def test_verify_rejects_foreign_signature(self):
        from jose import jwt

        token = jwt.encode(
            {"sub": "user-123", "type": "access", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            "another-secret",
            algorithm=settings.algorithm,
        )

        with pytest.raises(InvalidTokenError):
            TokenService.verify_access_token(token)


@pytest.mark.unit
class TestRefreshTokenPrimitives:
    """Opaque refresh tokens and their stored hashes."""

    def test_generated_tokens_are_prefixed_and_unique(self):
        first = generate_refresh_token()
        second = generate_refresh_token()

        assert first.startswith(settings.refresh_token_prefix)
        assert first != second

    def test_hash_is_deterministic_sha256(self):
        token = generate_refresh_token()

        assert hash_token(token) == hash_token(token)
        assert len(hash_token(token)) == 64
        assert hash_token(token) != token

    def test_as_utc_treats_naive_values_as_utc(self):
        naive = datetime(2024, 1, 1, 12, 0)

        assert as_utc(naive).tzinfo == timezone.utc
        assert as_utc(naive).hour == 12
