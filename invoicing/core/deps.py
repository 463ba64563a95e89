"""
FastAPI dependencies for authentication and authorization.

WHY: Dependencies provide reusable authentication and authorization logic
that can be injected into route handlers, ensuring consistent security
across the staff API. Public payment routes and the Stripe webhook do not
use them.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.auth import verify_token, is_token_blacklisted
from invoicing.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    TokenExpiredError,
    TokenInvalidError,
)
from invoicing.db.session import get_db
from invoicing.models.user import User, UserRole
from invoicing.dao.user import UserDAO


# HTTP Bearer token security scheme
# WHY: auto_error=False so a missing header goes through AuthenticationError
# and renders as the same 401 envelope as a bad token.
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    WHY: This dependency:
    1. Extracts token from Authorization header
    2. Verifies token signature and expiration
    3. Checks if token is blacklisted (logged out)
    4. Fetches user from database
    5. Ensures user still exists and is active

    Args:
        credentials: JWT token from Authorization header
        db: Database session

    Returns:
        Authenticated User instance

    Raises:
        AuthenticationError: If token is missing, invalid, expired, or
            user not found
    """
    if credentials is None:
        raise AuthenticationError(message="Not authenticated")

    token = credentials.credentials

    try:
        payload = verify_token(token)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(
            message=str(e),
            status_code=e.status_code,
        )

    # WHY: Even valid tokens should be rejected if user logged out
    if await is_token_blacklisted(token):
        raise AuthenticationError(
            message="Token has been revoked",
            reason="logged_out",
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError(
            message="Invalid token: missing user_id",
        )

    # WHY: User data in token might be stale; always fetch current data
    user = await UserDAO(db).get_by_id(user_id)

    if not user:
        raise AuthenticationError(
            message="User not found",
            user_id=user_id,
        )

    if not user.is_active:
        raise AuthenticationError(
            message="User account is inactive",
            user_id=user_id,
        )

    return user


def require_role(required_role: str):
    """
    Factory function to create a role requirement dependency.

    Usage:
        @router.delete("/{id}")
        async def delete_invoice(admin: User = Depends(require_role("ADMIN"))):
            ...

    Args:
        required_role: Role name ("ADMIN" or "STAFF")

    Returns:
        Dependency function that checks for the required role
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        """
        Check if user has required role.

        Raises:
            AuthorizationError: If user doesn't have required role
        """
        if current_user.role.value != required_role:
            raise AuthorizationError(
                message=f"{required_role} access required",
                user_id=current_user.id,
                user_role=current_user.role.value,
                required_role=required_role,
            )
        return current_user

    return role_checker


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Require user to have ADMIN role.

    WHY: Destructive invoice operations and user management are limited
    to admins (OWASP A01: Broken Access Control).

    Raises:
        AuthorizationError: If user is not ADMIN
    """
    if current_user.role != UserRole.ADMIN:
        raise AuthorizationError(
            message="Admin access required",
            user_id=current_user.id,
            user_role=current_user.role.value,
            required_role=UserRole.ADMIN.value,
        )

    return current_user
