"""
Bootstrap the first administrator account.

WHAT: Creates an ADMIN user from ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME
settings unless a user with that email already exists.

WHY: There is no public sign-up; every other account is created by an
admin, so a fresh database needs one to start from.

Usage (after ``alembic upgrade head``)::

    ADMIN_PASSWORD='...' invoicing-seed
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.auth import hash_password
from invoicing.core.config import settings
from invoicing.core.exceptions import ValidationError
from invoicing.dao.user import UserDAO
from invoicing.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def seed_admin(
    session: AsyncSession,
    email: Optional[str] = None,
    password: Optional[str] = None,
    name: Optional[str] = None,
) -> Optional[User]:
    """
    Create the admin user if it does not exist yet.

    Safe to run repeatedly: an existing account is left untouched,
    including its password.

    Args:
        session: Database session (committed on creation)
        email: Admin email (defaults to settings.ADMIN_EMAIL)
        password: Admin password (defaults to settings.ADMIN_PASSWORD)
        name: Display name (defaults to settings.ADMIN_NAME)

    Returns:
        The created user, or None if it already existed

    Raises:
        ValidationError: If a user must be created but no password is set
    """
    email = email or settings.ADMIN_EMAIL
    user_dao = UserDAO(session)

    if await user_dao.email_exists(email):
        logger.info(f"Admin user {email} already exists, nothing to do")
        return None

    password = password or settings.ADMIN_PASSWORD
    if not password:
        raise ValidationError(message="ADMIN_PASSWORD must be set to create the admin user")

    user = await user_dao.create_user(
        email=email,
        hashed_password=hash_password(password),
        name=name or settings.ADMIN_NAME,
        role=UserRole.ADMIN,
    )
    await session.commit()
    logger.info(f"Created admin user {email}", extra={"user_id": user.id})
    return user


async def _run() -> None:
    from invoicing.db.session import AsyncSessionLocal, engine

    try:
        async with AsyncSessionLocal() as session:
            await seed_admin(session)
    finally:
        await engine.dispose()


def main() -> int:
    """Console entry point; returns the process exit code."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(_run())
    except ValidationError as e:
        logger.error(e.message)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
