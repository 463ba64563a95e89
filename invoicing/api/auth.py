"""
Authentication API endpoints.

WHY: These endpoints provide the staff authentication flow:
1. Login - Authenticate user and return JWT token
2. Logout - Blacklist token to prevent further use
3. Me - Get current user information
4. Forgot/reset password - Email a one-time link and set a new password

Security:
- Passwords are compared using constant-time comparison (bcrypt)
- Generic error messages prevent user enumeration attacks
- Failed logins are logged with the attempted email (OWASP A09)
"""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.auth import (
    verify_password,
    create_access_token,
    blacklist_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
)
from invoicing.core.deps import get_current_user, security
from invoicing.core.exceptions import AuthenticationError, ValidationError
from invoicing.core.config import settings
from invoicing.db.session import get_db
from invoicing.dao.user import UserDAO
from invoicing.models.user import User
from invoicing.schemas.auth import (
    LoginRequest,
    TokenResponse,
    UserResponse,
    LogoutResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    ResetPasswordRequest,
    ResetPasswordResponse,
)
from invoicing.services.email import EmailService, get_email_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/login",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="User login",
    description="Authenticate with email and password to receive a JWT access token",
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """
    Authenticate user and return JWT access token.

    Args:
        credentials: Login credentials (email + password)
        db: Database session

    Returns:
        JWT access token and metadata

    Raises:
        AuthenticationError (401): If credentials are invalid
    """
    user = await UserDAO(db).get_by_email(credentials.email)

    # WHY: Same message for unknown email and wrong password
    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.warning(
            "Failed login attempt",
            extra={"attempted_email": credentials.email},
        )
        raise AuthenticationError(message="Invalid email or password")

    if not user.is_active:
        logger.warning(
            "Login attempt on inactive account",
            extra={"user_id": user.id},
        )
        raise AuthenticationError(message="Account is inactive", user_id=user.id)

    access_token = create_access_token(
        {
            "user_id": user.id,
            "role": user.role.value,
            "email": user.email,
        }
    )

    logger.info("User logged in", extra={"user_id": user.id})

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.JWT_EXPIRATION_MINUTES * 60,
    )


@router.post(
    "/logout",
    response_model=LogoutResponse,
    status_code=status.HTTP_200_OK,
    summary="User logout",
    description="Revoke the current access token",
)
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    current_user: User = Depends(get_current_user),
) -> LogoutResponse:
    """
    Blacklist the caller's token until it expires.

    Args:
        credentials: Bearer token being revoked
        current_user: Authenticated user

    Returns:
        Logout confirmation
    """
    await blacklist_token(credentials.credentials, current_user.id)
    logger.info("User logged out", extra={"user_id": current_user.id})
    return LogoutResponse()


@router.get(
    "/me",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Get current user",
    description="Return the authenticated user's profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Return the authenticated user."""
    return UserResponse.model_validate(current_user)


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    status_code=status.HTTP_200_OK,
    summary="Request password reset",
    description="Send a password reset link to the email address",
)
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
) -> ForgotPasswordResponse:
    """
    Email a one-time password reset link.

    Security:
    - Always returns the same message to prevent user enumeration
    - Unknown and inactive accounts get no email
    - A new request replaces any earlier token
    - Only a digest of the token is stored

    Args:
        data: Email address for the reset link
        db: Database session
        email_service: Email sender

    Returns:
        Generic message (always)
    """
    user_dao = UserDAO(db)
    user = await user_dao.get_by_email(data.email)

    if not user or not user.is_active:
        logger.warning(
            "Password reset requested for unknown or inactive account",
            extra={"attempted_email": data.email},
        )
        return ForgotPasswordResponse()

    token = generate_reset_token()
    expires_at = datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRATION_MINUTES)
    await user_dao.set_password_reset(user, hash_reset_token(token), expires_at)
    # Token must be durable before the link goes out
    await db.commit()

    await email_service.send_password_reset_email(
        to_email=user.email,
        user_name=user.name,
        reset_token=token,
    )
    logger.info("Password reset requested", extra={"user_id": user.id})

    return ForgotPasswordResponse()


@router.post(
    "/reset-password",
    response_model=ResetPasswordResponse,
    status_code=status.HTTP_200_OK,
    summary="Reset password with token",
    description="Set a new password using the token from the reset email",
)
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> ResetPasswordResponse:
    """
    Reset a password using the emailed token.

    The token is consumed on success, so a link works once.

    Raises:
        ValidationError (400): If passwords differ or the token is invalid or expired
    """
    if data.password != data.password_confirm:
        raise ValidationError(message="Passwords do not match", field="password_confirm")

    user_dao = UserDAO(db)
    user = await user_dao.get_by_reset_token_hash(hash_reset_token(data.token))
    if user is None:
        logger.warning("Password reset attempted with invalid or expired token")
        raise ValidationError(message="Invalid or expired reset token")

    await user_dao.complete_password_reset(user, hash_password(data.password))
    logger.info("Password reset completed", extra={"user_id": user.id})

    return ResetPasswordResponse()
