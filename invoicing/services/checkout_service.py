"""
Checkout session initiation.

WHAT: Opens a Stripe Checkout Session for an invoice and returns where
to send the payer.

WHY: Shared by the staff endpoint and the public payment link. Opening
a session is not a payment, so this never changes invoice status; the
webhook reconciler is the only writer of PAID.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.config import settings
from invoicing.core.exceptions import InvoiceAlreadyPaidError, InvoiceNotFoundError
from invoicing.dao.invoice import InvoiceDAO
from invoicing.services.stripe_service import StripeService

logger = logging.getLogger(__name__)


def payment_page_url(invoice_id: int) -> str:
    """Public payment page for an invoice on the front end."""
    return f"{settings.FRONTEND_URL.rstrip('/')}/pay/invoice/{invoice_id}"


@dataclass
class CheckoutSessionResult:
    """Session ID and payer redirect target."""

    session_id: str
    redirect_url: str


class CheckoutService:
    """
    Creates checkout sessions for invoices.

    Args:
        session: Async database session
        stripe_service: Stripe wrapper used for the provider call
    """

    def __init__(self, session: AsyncSession, stripe_service: StripeService):
        self.session = session
        self.stripe_service = stripe_service
        self.invoice_dao = InvoiceDAO(session)

    async def create_session(self, invoice_id: int) -> CheckoutSessionResult:
        """
        Open a checkout session for a pending invoice.

        WHAT: Both redirect targets carry the invoice ID so the front end
        can resume on the right invoice.

        Args:
            invoice_id: Invoice to collect payment for

        Returns:
            CheckoutSessionResult with the Stripe session ID and URL

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            InvoiceAlreadyPaidError: If the invoice is already paid
                (raised before any provider call)
            PaymentProviderError: If Stripe rejects the request
        """
        invoice = await self.invoice_dao.get_with_client(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id=invoice_id)

        if invoice.is_paid:
            raise InvoiceAlreadyPaidError(invoice_id=invoice_id)

        page_url = payment_page_url(invoice.id)
        checkout = await self.stripe_service.create_checkout_session(
            invoice=invoice,
            success_url=f"{page_url}?payment=success",
            cancel_url=f"{page_url}?payment=cancelled",
        )

        await self.invoice_dao.record_checkout_session(invoice.id, checkout.id)

        logger.info(
            f"Opened checkout session for invoice {invoice.invoice_number}",
            extra={"invoice_id": invoice.id, "checkout_session_id": checkout.id},
        )
        return CheckoutSessionResult(session_id=checkout.id, redirect_url=checkout.url)
