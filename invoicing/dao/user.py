"""
User Data Access Object.

WHY: UserDAO provides database operations for the User model, following
the DAO pattern for separation of concerns and testability.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.dao.base import BaseDAO
from invoicing.models.user import User, UserRole
from invoicing.core.exceptions import ResourceAlreadyExistsError


class UserDAO(BaseDAO[User]):
    """Data Access Object for User model."""

    def __init__(self, session: AsyncSession):
        """Initialize UserDAO with a session."""
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve user by email address.

        WHY: Case-insensitive comparison prevents duplicate accounts with
        different casing (user@example.com vs USER@EXAMPLE.COM).

        Args:
            email: User's email address

        Returns:
            User instance if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        """
        Check if email already exists in database.

        Args:
            email: Email address to check

        Returns:
            True if email exists, False otherwise
        """
        result = await self.session.execute(
            select(User.id).where(func.lower(User.email) == email.lower()).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create_user(
        self,
        email: str,
        hashed_password: str,
        name: Optional[str] = None,
        role: UserRole = UserRole.STAFF,
    ) -> User:
        """
        Create a new user.

        Args:
            email: User's email address
            hashed_password: Already hashed password (use hash_password())
            name: User's full name
            role: User role (ADMIN or STAFF)

        Returns:
            Created User instance

        Raises:
            ResourceAlreadyExistsError: If email already exists
        """
        if await self.email_exists(email):
            raise ResourceAlreadyExistsError(
                message="User with this email already exists",
                resource_type="User",
                email=email,
            )

        return await self.create(
            email=email,
            hashed_password=hashed_password,
            name=name,
            role=role,
            is_active=True,
        )

    async def set_password_reset(
        self,
        user: User,
        token_hash: str,
        expires_at: datetime,
    ) -> None:
        """
        Store a reset token digest, replacing any earlier one.

        Args:
            user: User requesting the reset
            token_hash: SHA-256 digest of the emailed token
            expires_at: When the token stops being accepted (UTC)
        """
        user.reset_password_token_hash = token_hash
        user.reset_password_expires = expires_at
        await self.session.flush()

    async def get_by_reset_token_hash(
        self,
        token_hash: str,
        now: Optional[datetime] = None,
    ) -> Optional[User]:
        """
        Find the active user holding an unexpired reset token.

        Args:
            token_hash: SHA-256 digest of the presented token
            now: Reference time (defaults to utcnow)

        Returns:
            User instance, or None if the token is unknown or expired
        """
        now = now or datetime.utcnow()
        result = await self.session.execute(
            select(User).where(
                User.reset_password_token_hash == token_hash,
                User.reset_password_expires > now,
                User.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def complete_password_reset(self, user: User, hashed_password: str) -> None:
        """
        Set a new password and consume the reset token.

        Args:
            user: User whose token was validated
            hashed_password: Already hashed new password
        """
        user.hashed_password = hashed_password
        user.reset_password_token_hash = None
        user.reset_password_expires = None
        await self.session.flush()
