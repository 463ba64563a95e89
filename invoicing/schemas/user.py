"""
Pydantic schemas for user management (ADMIN only).
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from invoicing.models.user import UserRole
from invoicing.schemas.auth import UserResponse


class UserCreate(BaseModel):
    """Schema for creating a staff user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr = Field(..., description="Login email (unique, case-insensitive)")
    password: str = Field(..., min_length=8, max_length=100, description="Initial password")
    name: Optional[str] = Field(default=None, max_length=255, description="Full name")
    role: UserRole = Field(default=UserRole.STAFF, description="ADMIN or STAFF")


class UserUpdate(BaseModel):
    """
    Schema for updating a user.

    WHY: All fields optional so admins can change a single attribute
    (e.g. deactivate an account) without resending the rest.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=100)


class UserListResponse(BaseModel):
    """Paginated list response for users."""

    items: List[UserResponse]
    total: int
    skip: int
    limit: int
