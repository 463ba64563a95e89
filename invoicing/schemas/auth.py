"""
Pydantic schemas for authentication endpoints.

WHY: Schemas define request/response contracts, providing:
1. Automatic validation of request data
2. API documentation (OpenAPI/Swagger)
3. Clear separation between API and database models
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from invoicing.models.user import UserRole


class LoginRequest(BaseModel):
    """Login request schema."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "admin@example.com",
                "password": "SecurePassword123!",
            }
        }
    )

    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="User's password",
    )


class TokenResponse(BaseModel):
    """
    JWT token response schema.

    WHY: Returns access token with its lifetime so the front end can
    schedule re-authentication.
    """

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type (always 'bearer')")
    expires_in: int = Field(..., description="Token expiration time in seconds")


class UserResponse(BaseModel):
    """
    User response schema.

    WHY: Returns user data without sensitive information (no password hash).
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="User ID")
    email: str = Field(..., description="User's email address")
    name: Optional[str] = Field(default=None, description="User's full name")
    role: UserRole = Field(..., description="User role (ADMIN or STAFF)")
    is_active: bool = Field(..., description="Whether user account is active")
    created_at: datetime = Field(..., description="Account creation timestamp")


class LogoutResponse(BaseModel):
    """Logout response schema."""

    message: str = Field(
        default="Successfully logged out",
        description="Logout confirmation message",
    )


class ForgotPasswordRequest(BaseModel):
    """
    Request to initiate password reset.

    WHY: The response is the same whether or not the email exists, so
    the endpoint cannot be used to enumerate accounts.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"email": "staff@example.com"}})

    email: EmailStr = Field(..., description="Email address to send reset link to")


class ForgotPasswordResponse(BaseModel):
    """Response for password reset request (always generic)."""

    message: str = Field(
        default="If an account exists with this email, you will receive a password reset link.",
        description="Status message",
    )


class ResetPasswordRequest(BaseModel):
    """Request to reset password with the emailed token."""

    token: str = Field(..., min_length=1, max_length=128, description="Password reset token from email")
    password: str = Field(..., min_length=8, max_length=100, description="New password")
    password_confirm: str = Field(..., min_length=8, max_length=100, description="New password confirmation")


class ResetPasswordResponse(BaseModel):
    """Response for password reset."""

    message: str = Field(
        default="Password reset successfully. You can now log in with your new password.",
        description="Status message",
    )
