"""
Client management API endpoints.

WHAT: CRUD for billed clients. Any staff member may create clients;
editing and deletion are ADMIN only, and deletion is refused while
invoices exist.
"""

import logging

from fastapi import APIRouter, Body, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.deps import get_current_user, require_admin
from invoicing.core.exceptions import ClientNotFoundError, ValidationError
from invoicing.db.session import get_db
from invoicing.dao.client import ClientDAO
from invoicing.models.base import MAX_ID
from invoicing.models.user import User
from invoicing.schemas.client import (
    ClientCreate,
    ClientUpdate,
    ClientResponse,
    ClientListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["clients"])


@router.get(
    "",
    response_model=ClientListResponse,
    summary="List clients",
    description="List clients, newest first",
)
async def list_clients(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ClientListResponse:
    """List clients."""
    client_dao = ClientDAO(db)
    clients = await client_dao.get_all(skip=skip, limit=limit)
    total = await client_dao.count()
    return ClientListResponse(
        items=[ClientResponse.model_validate(c) for c in clients],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{client_id}",
    response_model=ClientResponse,
    summary="Get client",
)
async def get_client(
    client_id: int = Path(..., gt=0, le=MAX_ID),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ClientResponse:
    """
    Get a client by ID.

    Raises:
        ClientNotFoundError (404): If client not found
    """
    client = await ClientDAO(db).get_by_id(client_id)
    if client is None:
        raise ClientNotFoundError(client_id=client_id)
    return ClientResponse.model_validate(client)


@router.post(
    "",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create client",
)
async def create_client(
    data: ClientCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ClientResponse:
    """Create a client."""
    client = await ClientDAO(db).create(**data.model_dump())
    logger.info(
        "Client created",
        extra={"client_id": client.id, "actor_user_id": current_user.id},
    )
    return ClientResponse.model_validate(client)


@router.put(
    "/{client_id}",
    response_model=ClientResponse,
    summary="Update client",
    description="Edit a client (ADMIN only)",
)
async def update_client(
    client_id: int = Path(..., gt=0, le=MAX_ID),
    data: ClientUpdate = Body(...),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ClientResponse:
    """
    Update a client.

    Raises:
        ClientNotFoundError (404): If client not found
        AuthorizationError (403): If the caller is not an admin
    """
    client = await ClientDAO(db).update(client_id, **data.model_dump(exclude_unset=True))
    if client is None:
        raise ClientNotFoundError(client_id=client_id)
    logger.info("Client updated", extra={"client_id": client_id, "actor_user_id": admin.id})
    return ClientResponse.model_validate(client)


@router.delete(
    "/{client_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete client",
    description="Delete a client with no invoices (ADMIN only)",
)
async def delete_client(
    client_id: int = Path(..., gt=0, le=MAX_ID),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Delete a client.

    Raises:
        ClientNotFoundError (404): If client not found
        ValidationError (400): If the client still has invoices
    """
    client_dao = ClientDAO(db)
    if not await client_dao.exists(id=client_id):
        raise ClientNotFoundError(client_id=client_id)

    invoice_count = await client_dao.count_invoices(client_id)
    if invoice_count:
        raise ValidationError(
            message="Cannot delete a client that has invoices",
            client_id=client_id,
            invoice_count=invoice_count,
        )

    await client_dao.delete(client_id)
    logger.info("Client deleted", extra={"client_id": client_id, "actor_user_id": admin.id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
