"""
Authentication endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging_config import get_logger
from app.core.rate_limit import rate_limit
from app.core.tenant import CurrentTenant
from app.features.auth.dependencies import CurrentUser, TokenPayload
from app.features.auth.schemas import (
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    OAuth2TokenResponse,
    RefreshTokenRequest,
    RegisterRequest,
    TokenResponse,
    TokenValidationResponse,
)
from app.features.auth.service import AuthResult, auth_service
from app.features.rbac.dependencies import require_super_admin
from app.models.user import User
from app.schemas.common import ApiResponse, MessageResponse
from app.schemas.user import UserRead, UserStatusUpdate

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        user=UserRead.model_validate(result.user),
        tokens=TokenResponse.model_validate(result.tokens),
    )


@router.post(
    "/register",
    response_model=ApiResponse[AuthResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("auth"))],
)
async def register(
    user_data: RegisterRequest,
    tenant: CurrentTenant,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[AuthResponse]:
    """
    Register a new user in the current tenant.

    The account receives the tenant's default role.
    """
    result = await auth_service.register(db, user_data, tenant.id)
    return ApiResponse(message="User registered successfully", data=_auth_response(result))


@router.post(
    "/login",
    response_model=ApiResponse[AuthResponse],
    dependencies=[Depends(rate_limit("auth"))],
)
async def login(
    login_data: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[AuthResponse]:
    """Login with a JSON body."""
    result = await auth_service.authenticate(db, email=login_data.email, password=login_data.password)
    return ApiResponse(message="Login successful", data=_auth_response(result))


@router.post(
    "/token",
    response_model=OAuth2TokenResponse,
    dependencies=[Depends(rate_limit("auth"))],
)
async def login_form(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> OAuth2TokenResponse:
    """
    OAuth2 compatible token login (used by the interactive API docs).

    We treat 'username' as email.
    """
    result = await auth_service.authenticate(db, email=form_data.username, password=form_data.password)
    return OAuth2TokenResponse.model_validate(result.tokens)


@router.post(
    "/refresh",
    response_model=ApiResponse[TokenResponse],
    dependencies=[Depends(rate_limit("refresh"))],
)
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[TokenResponse]:
    """
    Exchange a refresh token for a new access token.

    The presented refresh token is consumed; use the one returned.
    """
    result = await auth_service.refresh(db, refresh_data.refresh_token)
    return ApiResponse(data=TokenResponse.model_validate(result.tokens))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    logout_data: LogoutRequest,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    """End the session: the given refresh token stops working immediately."""
    await auth_service.logout(db, current_user, logout_data.refresh_token)
    return MessageResponse(message="Successfully logged out")


@router.get("/me", response_model=ApiResponse[UserRead])
async def get_current_user_info(current_user: CurrentUser) -> ApiResponse[UserRead]:
    """Get current authenticated user's information."""
    return ApiResponse(data=UserRead.model_validate(current_user))


@router.post("/validate-token", response_model=ApiResponse[TokenValidationResponse])
async def validate_token(payload: TokenPayload) -> ApiResponse[TokenValidationResponse]:
    """Check an access token's signature and expiry (no database access)."""
    return ApiResponse(
        data=TokenValidationResponse(
            valid=True,
            user_id=payload["sub"],
            email=payload.get("email", ""),
            expires_at=int(payload["exp"]),
        )
    )


@router.put("/users/{user_id}/status", response_model=ApiResponse[UserRead])
async def set_user_status(
    user_id: str,
    body: UserStatusUpdate,
    current_user: Annotated[User, Depends(require_super_admin())],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[UserRead]:
    """
    Activate, deactivate or suspend an account. Platform administrators only.

    Leaving ``active`` revokes every refresh token of the account.
    """
    user = await auth_service.set_status(db, user_id, body.status)
    logger.info("user_status_set", target_user_id=user_id, by_user_id=current_user.id)
    return ApiResponse(message="User status updated", data=UserRead.model_validate(user))
