"""
Authentication dependencies for dependency injection.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_request_context
from app.core.database import get_db
from app.core.exceptions import AccountInactiveError, InvalidTokenError, unauthorized
from app.features.auth.tokens import TokenService
from app.models.user import User

logger = logging.getLogger(__name__)

# Security schemes
bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_payload(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> dict:
    """Decode the bearer access token without touching the database."""
    if not credentials:
        raise unauthorized("Authentication required")

    try:
        return TokenService.verify_access_token(credentials.credentials)
    except InvalidTokenError as e:
        raise unauthorized(e.message) from e


async def get_current_user(
    request: Request,
    payload: Annotated[dict, Depends(get_token_payload)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Get current authenticated user from the bearer access token.

    Authorization: Bearer <access token>
    """
    user_id: str = payload["sub"]

    user = await db.get(User, user_id)

    if not user:
        logger.warning(f"Token valid but user not found: {user_id}")
        raise unauthorized("User not found")

    if not user.is_active:
        raise AccountInactiveError("Account is not active")

    request.state.user_id = user.id
    set_request_context(user_id=user.id)

    return user


# Type aliases for cleaner code
TokenPayload = Annotated[dict, Depends(get_token_payload)]
CurrentUser = Annotated[User, Depends(get_current_user)]
