"""
User management API endpoints (ADMIN only).

WHAT: List, create, update and delete staff accounts.
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.auth import hash_password
from invoicing.core.deps import require_admin
from invoicing.core.exceptions import ResourceNotFoundError, ValidationError
from invoicing.db.session import get_db
from invoicing.dao.user import UserDAO
from invoicing.models.user import User
from invoicing.schemas.auth import UserResponse
from invoicing.schemas.user import UserCreate, UserUpdate, UserListResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "",
    response_model=UserListResponse,
    summary="List users",
    description="List staff accounts (ADMIN only)",
)
async def list_users(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserListResponse:
    """List users newest first."""
    user_dao = UserDAO(db)
    users = await user_dao.get_all(skip=skip, limit=limit)
    total = await user_dao.count()
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
    description="Create a staff account (ADMIN only)",
)
async def create_user(
    data: UserCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Create a user.

    Raises:
        ResourceAlreadyExistsError (409): If the email is taken
    """
    user = await UserDAO(db).create_user(
        email=data.email,
        hashed_password=hash_password(data.password),
        name=data.name,
        role=data.role,
    )
    logger.info(
        "User created",
        extra={"user_id": user.id, "actor_user_id": admin.id},
    )
    return UserResponse.model_validate(user)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update user",
    description="Update name, role, active flag or password (ADMIN only)",
)
async def update_user(
    user_id: int,
    data: UserUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Update a user.

    Raises:
        ResourceNotFoundError (404): If user not found
    """
    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True, exclude={"password"}).items()
        if value is not None
    }
    if data.password:
        changes["hashed_password"] = hash_password(data.password)

    user = await UserDAO(db).update(user_id, **changes)
    if user is None:
        raise ResourceNotFoundError(
            message=f"User with id {user_id} not found",
            resource_type="User",
            resource_id=user_id,
        )
    return UserResponse.model_validate(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
    description="Delete a staff account (ADMIN only, not your own)",
)
async def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Delete a user.

    Raises:
        ValidationError (400): If an admin tries to delete themselves
        ResourceNotFoundError (404): If user not found
    """
    if user_id == admin.id:
        raise ValidationError(message="You cannot delete your own account")

    if not await UserDAO(db).delete(user_id):
        raise ResourceNotFoundError(
            message=f"User with id {user_id} not found",
            resource_type="User",
            resource_id=user_id,
        )
    logger.info("User deleted", extra={"user_id": user_id, "actor_user_id": admin.id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
