"""
Payment API endpoints.

WHAT: Checkout session creation (staff and public payment link), the
public invoice read, and the Stripe webhook receiver.

WHY: Payment is a two-step, asynchronous flow:
1. A checkout session is opened and the payer is redirected to Stripe
2. Stripe later confirms payment through a signed webhook

Opening a session never changes invoice status; only the webhook
reconciler does.

HOW: Three routers:
- ``/stripe``: authenticated checkout and the (signature-verified) webhook
- ``/pay``: unauthenticated payment-link endpoints (mounted without the
  API prefix so links stay short)
"""

import logging

from fastapi import APIRouter, Depends, Header, Path, Request, status
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.deps import get_current_user
from invoicing.core.exceptions import InvoiceNotFoundError, ValidationError
from invoicing.db.session import get_db
from invoicing.dao.invoice import InvoiceDAO
from invoicing.models.base import MAX_ID
from invoicing.models.user import User
from invoicing.schemas.payment import (
    CheckoutRequest,
    CheckoutResponse,
    PublicClientInfo,
    PublicInvoiceResponse,
    WebhookAck,
)
from invoicing.services.checkout_service import CheckoutService
from invoicing.services.payment_reconciler import PaymentReconciler
from invoicing.services.stripe_service import StripeService, get_stripe_service
from invoicing.services.webhook_events import parse_event

logger = logging.getLogger(__name__)

stripe_router = APIRouter(prefix="/stripe", tags=["payments"])
public_router = APIRouter(prefix="/pay", tags=["public"])


async def _open_checkout(
    invoice_id: int,
    db: AsyncSession,
    stripe_service: StripeService,
) -> CheckoutResponse:
    result = await CheckoutService(db, stripe_service).create_session(invoice_id)
    return CheckoutResponse(session_id=result.session_id, redirect_url=result.redirect_url)


# ============================================================================
# Checkout Endpoints
# ============================================================================


@stripe_router.post(
    "/create-checkout-session",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Create checkout session",
    description="Open a Stripe Checkout Session for an invoice",
)
async def create_checkout_session(
    data: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutResponse:
    """
    Create a checkout session on behalf of a payer.

    Args:
        data: Request carrying the invoice ID
        current_user: Current authenticated user
        db: Database session
        stripe_service: Stripe wrapper

    Returns:
        Session ID and the URL to redirect the payer to

    Raises:
        ValidationError (400): If invoice_id is missing
        InvoiceNotFoundError (404): If invoice not found
        InvoiceAlreadyPaidError (400): If invoice is already paid
        PaymentProviderError (500): If Stripe rejects the request
    """
    if data.invoice_id is None:
        raise ValidationError(message="Invoice ID is required")
    return await _open_checkout(data.invoice_id, db, stripe_service)


@public_router.post(
    "/invoice/{invoice_id}/pay",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Pay invoice",
    description="Open a Stripe Checkout Session from the public payment link (no auth)",
)
async def pay_invoice(
    invoice_id: int = Path(..., gt=0, le=MAX_ID),
    db: AsyncSession = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutResponse:
    """
    Public variant of checkout session creation.

    Raises:
        InvoiceNotFoundError (404): If invoice not found
        InvoiceAlreadyPaidError (400): If invoice is already paid
        PaymentProviderError (500): If Stripe rejects the request
    """
    return await _open_checkout(invoice_id, db, stripe_service)


@public_router.get(
    "/invoice/{invoice_id}",
    response_model=PublicInvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Public invoice",
    description="Invoice details shown to the payer before paying (no auth)",
)
async def get_public_invoice(
    invoice_id: int = Path(..., gt=0, le=MAX_ID),
    db: AsyncSession = Depends(get_db),
) -> PublicInvoiceResponse:
    """
    Read an invoice for the public payment page.

    WHY: Unauthenticated, so the response carries only display fields:
    no Stripe references and no client ID.

    Raises:
        InvoiceNotFoundError (404): If invoice not found
    """
    invoice = await InvoiceDAO(db).get_with_client(invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError(invoice_id=invoice_id)

    return PublicInvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        amount=invoice.amount,
        currency=invoice.currency,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        status=invoice.status,
        display_status=invoice.display_status,
        description=invoice.description,
        client=PublicClientInfo.model_validate(invoice.client) if invoice.client else None,
    )


# ============================================================================
# Webhook Endpoint
# ============================================================================


@stripe_router.post(
    "/webhook",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Stripe webhook",
    description="Receive Stripe events (no auth; verified by signature)",
)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> WebhookAck:
    """
    Handle Stripe webhook events.

    WHAT: Verifies the signature over the raw body, parses the event and
    hands it to the payment reconciler.

    WHY: Stripe retries any non-2xx response. Everything except a bad
    signature (400) or an unreachable ledger (503) is acknowledged,
    including events that match no invoice and signed bodies that are
    not event objects, so Stripe does not retry outcomes that will
    never change.

    Security: Uses signature verification to validate the webhook came
    from Stripe (OWASP A02). No authentication required.

    Args:
        request: Raw request with webhook payload
        stripe_signature: Stripe-Signature header
        db: Database session
        stripe_service: Stripe wrapper

    Returns:
        ``{"received": true}``

    Raises:
        WebhookSignatureError (400): If signature verification fails
        LedgerUnavailableError (503): If the database is unavailable
    """
    # WHY: Signature covers the exact bytes sent, so read the raw body
    payload = await request.body()
    # None means a signed body that is not an event object; acknowledge it as unrecognized
    event = stripe_service.verify_webhook_signature(payload, stripe_signature) or {}

    outcome = await PaymentReconciler(db).handle(parse_event(event))
    logger.info(
        f"Webhook event {event.get('id')} reconciled: {outcome.value}",
        extra={
            "event_id": event.get("id"),
            "event_type": event.get("type"),
            "outcome": outcome.value,
        },
    )
    return WebhookAck(received=True)
