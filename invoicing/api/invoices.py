"""
Invoice management API endpoints.

WHAT: RESTful API for invoice CRUD and dashboard statistics.

WHY: Staff create invoices here; clients then pay through the public
payment link and Stripe. Payment status is never writable through this
API: only the webhook reconciler marks an invoice paid.

HOW: FastAPI router with:
- RBAC (any staff creates, views and emails; ADMIN edits and deletes)
- Invoice numbers allocated with bounded collision retry
- Edits and deletes guarded on status so paid invoices stay immutable
"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.config import settings
from invoicing.core.deps import get_current_user, require_role
from invoicing.core.exceptions import (
    ClientNotFoundError,
    InvalidStateTransitionError,
    InvoiceNotFoundError,
    ValidationError,
)
from invoicing.db.session import get_db
from invoicing.dao.client import ClientDAO
from invoicing.dao.invoice import InvoiceDAO
from invoicing.models.base import MAX_ID
from invoicing.models.invoice import Invoice, InvoiceStatus
from invoicing.models.user import User
from invoicing.schemas.invoice import (
    InvoiceClientSummary,
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceResponse,
    InvoiceListResponse,
    InvoiceStats,
    InvoiceEmailResponse,
)
from invoicing.services.checkout_service import payment_page_url
from invoicing.services.email import EmailService, get_email_service
from invoicing.services.invoice_numbers import InvoiceNumberAllocator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])

CHECKOUT_LOCKED_MESSAGE = "Amount and currency cannot change after a checkout session has been opened"


def _invoice_to_response(invoice: Invoice) -> InvoiceResponse:
    """
    Convert Invoice model to InvoiceResponse schema.

    WHY: Centralized conversion keeps the derived fields (display status,
    payment link) consistent across endpoints.

    Args:
        invoice: Invoice model instance with client loaded

    Returns:
        InvoiceResponse schema instance
    """
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        status=invoice.status,
        display_status=invoice.display_status,
        client_id=invoice.client_id,
        client=InvoiceClientSummary.model_validate(invoice.client) if invoice.client else None,
        amount=invoice.amount,
        currency=invoice.currency,
        description=invoice.description,
        stripe_payment_intent_id=invoice.stripe_payment_intent_id,
        stripe_checkout_session_id=invoice.stripe_checkout_session_id,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        paid_at=invoice.paid_at,
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
        is_editable=invoice.is_editable,
        is_paid=invoice.is_paid,
        payment_link=payment_page_url(invoice.id),
    )


async def _get_invoice_or_404(invoice_dao: InvoiceDAO, invoice_id: int) -> Invoice:
    invoice = await invoice_dao.get_with_client(invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError(
            message=f"Invoice with id {invoice_id} not found",
            invoice_id=invoice_id,
        )
    return invoice


# ============================================================================
# Invoice CRUD Endpoints
# ============================================================================


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create invoice",
    description="Create a new pending invoice for a client",
)
async def create_invoice(
    data: InvoiceCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InvoiceResponse:
    """
    Create a new invoice.

    WHAT: Creates an invoice in PENDING status under a freshly allocated
    ``INV-{year}-{6 digits}`` number.

    Args:
        data: Invoice creation data
        current_user: Current authenticated user
        db: Database session

    Returns:
        Created invoice data

    Raises:
        ClientNotFoundError (404): If client not found
        ValidationError (400): If due date precedes issue date
        NumberAllocationExhausted (500): If no unique number could be allocated
    """
    if not await ClientDAO(db).exists(id=data.client_id):
        raise ClientNotFoundError(
            message=f"Client with id {data.client_id} not found",
            client_id=data.client_id,
        )

    issue_date = data.issue_date or date.today()
    due_date = data.due_date or issue_date + timedelta(days=settings.INVOICE_DEFAULT_DUE_DAYS)
    if due_date < issue_date:
        raise ValidationError(
            message="Due date cannot be before issue date",
            issue_date=str(issue_date),
            due_date=str(due_date),
        )

    invoice = await InvoiceNumberAllocator(db).create_invoice(
        client_id=data.client_id,
        amount=data.amount,
        currency=data.currency or settings.DEFAULT_CURRENCY,
        issue_date=issue_date,
        due_date=due_date,
        description=data.description,
    )

    logger.info(
        f"Invoice {invoice.invoice_number} created",
        extra={"invoice_id": invoice.id, "actor_user_id": current_user.id},
    )

    invoice = await _get_invoice_or_404(InvoiceDAO(db), invoice.id)
    return _invoice_to_response(invoice)


@router.get(
    "",
    response_model=InvoiceListResponse,
    status_code=status.HTTP_200_OK,
    summary="List invoices",
    description="List invoices, optionally filtered by status (pending, paid, overdue)",
)
async def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(default=None, alias="status"),
    client_id: Optional[int] = Query(default=None, gt=0),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InvoiceListResponse:
    """
    List invoices newest first.

    WHAT: ``status=overdue`` selects pending invoices past their due date;
    ``status=pending`` selects pending invoices that are not yet due.
    """
    invoices, total = await InvoiceDAO(db).list_invoices(
        status=status_filter,
        client_id=client_id,
        skip=skip,
        limit=limit,
    )
    return InvoiceListResponse(
        items=[_invoice_to_response(i) for i in invoices],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/stats",
    response_model=InvoiceStats,
    status_code=status.HTTP_200_OK,
    summary="Invoice statistics",
    description="Counts by status and total paid amount",
)
async def get_invoice_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InvoiceStats:
    """Aggregate invoice statistics for the dashboard."""
    return InvoiceStats(**await InvoiceDAO(db).get_stats())


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Get invoice",
)
async def get_invoice(
    invoice_id: int = Path(..., gt=0, le=MAX_ID),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InvoiceResponse:
    """
    Get an invoice with its client.

    Raises:
        InvoiceNotFoundError (404): If invoice not found
    """
    invoice = await _get_invoice_or_404(InvoiceDAO(db), invoice_id)
    return _invoice_to_response(invoice)


@router.put(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Update invoice",
    description="Edit a pending invoice (ADMIN only)",
)
async def update_invoice(
    invoice_id: int = Path(..., gt=0, le=MAX_ID),
    data: InvoiceUpdate = Body(...),
    current_user: User = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
) -> InvoiceResponse:
    """
    Update a pending invoice.

    WHY: Paid invoices are immutable financial records. The UPDATE is
    guarded on status, so an edit racing a payment confirmation loses.

    Args:
        invoice_id: Invoice ID
        data: Fields to change
        current_user: Current authenticated admin user
        db: Database session

    Returns:
        Updated invoice data

    Raises:
        InvoiceNotFoundError (404): If invoice not found
        ClientNotFoundError (404): If the new client does not exist
        InvalidStateTransitionError (400): If invoice is already paid, or
            the amount or currency changes after checkout was opened
        ValidationError (400): If due date would precede issue date
    """
    invoice_dao = InvoiceDAO(db)
    invoice = await _get_invoice_or_404(invoice_dao, invoice_id)

    if not invoice.is_editable:
        raise InvalidStateTransitionError(
            message="Paid invoices cannot be edited",
            invoice_id=invoice_id,
            current_status=invoice.status.value,
        )

    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None
    }

    if "client_id" in changes and not await ClientDAO(db).exists(id=changes["client_id"]):
        raise ClientNotFoundError(
            message=f"Client with id {changes['client_id']} not found",
            client_id=changes["client_id"],
        )

    issue_date = changes.get("issue_date", invoice.issue_date)
    due_date = changes.get("due_date", invoice.due_date)
    if due_date < issue_date:
        raise ValidationError(
            message="Due date cannot be before issue date",
            issue_date=str(issue_date),
            due_date=str(due_date),
        )

    pricing_changed = (
        "amount" in changes and changes["amount"] != invoice.amount
    ) or ("currency" in changes and changes["currency"] != invoice.currency)
    if pricing_changed and invoice.stripe_checkout_session_id:
        raise InvalidStateTransitionError(
            message=CHECKOUT_LOCKED_MESSAGE,
            invoice_id=invoice_id,
        )

    if changes and not await invoice_dao.update_if_pending(
        invoice_id, without_checkout=pricing_changed, **changes
    ):
        current = await invoice_dao.reload(invoice_id)
        if current is not None and current.is_editable:
            raise InvalidStateTransitionError(
                message=CHECKOUT_LOCKED_MESSAGE,
                invoice_id=invoice_id,
            )
        raise InvalidStateTransitionError(
            message="Paid invoices cannot be edited",
            invoice_id=invoice_id,
        )

    invoice = await _get_invoice_or_404(invoice_dao, invoice_id)
    return _invoice_to_response(invoice)


@router.delete(
    "/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete invoice",
    description="Delete a pending invoice (ADMIN only)",
)
async def delete_invoice(
    invoice_id: int = Path(..., gt=0, le=MAX_ID),
    current_user: User = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Delete a pending invoice.

    Raises:
        InvoiceNotFoundError (404): If invoice not found
        InvalidStateTransitionError (400): If invoice is already paid
    """
    invoice_dao = InvoiceDAO(db)
    invoice = await _get_invoice_or_404(invoice_dao, invoice_id)

    if not invoice.is_editable or not await invoice_dao.delete_if_pending(invoice_id):
        raise InvalidStateTransitionError(
            message="Paid invoices cannot be deleted",
            invoice_id=invoice_id,
        )

    logger.info(
        f"Invoice {invoice.invoice_number} deleted",
        extra={"invoice_id": invoice_id, "actor_user_id": current_user.id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{invoice_id}/send-email",
    response_model=InvoiceEmailResponse,
    status_code=status.HTTP_200_OK,
    summary="Email invoice",
    description="Email the invoice and its payment link to the billed client",
)
async def send_invoice_email(
    invoice_id: int = Path(..., gt=0, le=MAX_ID),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
) -> InvoiceEmailResponse:
    """
    Send the invoice to its client.

    Raises:
        InvoiceNotFoundError (404): If invoice not found
        ValidationError (400): If the invoice has no client to send to
        EmailServiceError (502): If the email provider rejects the message
    """
    invoice = await _get_invoice_or_404(InvoiceDAO(db), invoice_id)
    if invoice.client is None:
        raise ValidationError(
            message="Client information not found for this invoice",
            invoice_id=invoice_id,
        )

    await email_service.send_invoice_email(invoice)
    logger.info(
        f"Invoice {invoice.invoice_number} emailed",
        extra={"invoice_id": invoice_id, "actor_user_id": current_user.id},
    )
    return InvoiceEmailResponse(sent_to=invoice.client.email)
