"""
Webhook payment reconciliation.

WHAT: Applies verified Stripe webhook events to the invoice ledger.

WHY: Stripe delivers webhooks at least once, and a single payment is
reported twice (``checkout.session.completed`` and
``payment_intent.succeeded``) in no guaranteed order. Whatever arrives,
and however often, each invoice must move PENDING -> PAID exactly once
and never move back.

HOW:
1. Dispatch on the typed event (see webhook_events.parse_event)
2. Resolve the invoice from the invoice_id metadata (authoritative), or
   from the stored PaymentIntent ID when no metadata is present
3. Apply InvoiceDAO.mark_paid, a conditional UPDATE guarded on status
4. Commit before the endpoint acknowledges the delivery

Only ledger connectivity failures escape as LedgerUnavailableError,
which the endpoint turns into a retryable 503. Every other outcome is
acknowledged.
"""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.exceptions import LedgerUnavailableError
from invoicing.dao.invoice import InvoiceDAO
from invoicing.models.invoice import Invoice
from invoicing.services.webhook_events import (
    CheckoutSessionCompleted,
    PaymentIntentSucceeded,
    UnrecognizedEvent,
    WebhookEvent,
)

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    """
    Result of applying one webhook event.

    - PAID: This event moved the invoice from PENDING to PAID
    - ALREADY_PAID: Invoice was already PAID; nothing changed
    - UNMATCHED: No invoice could be resolved from the event
    - PAYMENT_NOT_SUCCESSFUL: Checkout completed without collecting funds
    - IGNORED: Event type is not one we act on
    """

    PAID = "paid"
    ALREADY_PAID = "already_paid"
    UNMATCHED = "unmatched"
    PAYMENT_NOT_SUCCESSFUL = "payment_not_successful"
    IGNORED = "ignored"


# Errors that mean the ledger could not be reached, not that the event is bad.
TRANSIENT_LEDGER_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, OSError)


class PaymentReconciler:
    """
    Reconciles Stripe payment events against invoices.

    Args:
        session: Async database session. The reconciler commits it after
            each event so the result is durable before acknowledgement.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.invoice_dao = InvoiceDAO(session)

    async def handle(self, event: WebhookEvent) -> ReconciliationOutcome:
        """
        Apply one webhook event and commit.

        Args:
            event: Typed webhook event

        Returns:
            ReconciliationOutcome describing what happened

        Raises:
            LedgerUnavailableError: If the database could not be read or
                written; the event should be redelivered
        """
        try:
            if isinstance(event, CheckoutSessionCompleted):
                outcome = await self._on_checkout_completed(event)
            elif isinstance(event, PaymentIntentSucceeded):
                outcome = await self._on_payment_intent_succeeded(event)
            else:
                outcome = self._on_unrecognized(event)
            await self.session.commit()
        except TRANSIENT_LEDGER_ERRORS as e:
            logger.error(
                f"Ledger unavailable while reconciling event {event.event_id}: {e}",
                extra={"event_id": event.event_id},
            )
            raise LedgerUnavailableError(event_id=event.event_id)

        return outcome

    async def _on_checkout_completed(
        self,
        event: CheckoutSessionCompleted,
    ) -> ReconciliationOutcome:
        """Handle a completed Checkout Session."""
        if event.correlation_key is None:
            logger.info(
                f"Checkout session {event.session_id} carries no invoice metadata",
                extra={"event_id": event.event_id, "checkout_session_id": event.session_id},
            )
            return ReconciliationOutcome.UNMATCHED

        invoice = await self.invoice_dao.reload(event.correlation_key.invoice_id)
        if invoice is None:
            logger.info(
                f"Checkout session {event.session_id} references unknown invoice "
                f"{event.correlation_key.invoice_id}",
                extra={
                    "event_id": event.event_id,
                    "invoice_id": event.correlation_key.invoice_id,
                },
            )
            return ReconciliationOutcome.UNMATCHED

        if invoice.is_paid:
            return self._already_paid(invoice, event.event_id)

        if not event.is_paid:
            logger.info(
                f"Checkout session {event.session_id} completed with payment_status "
                f"{event.payment_status!r}; invoice {invoice.id} stays pending",
                extra={"event_id": event.event_id, "invoice_id": invoice.id},
            )
            return ReconciliationOutcome.PAYMENT_NOT_SUCCESSFUL

        return await self._mark_paid(invoice.id, event.payment_intent_id, event.event_id)

    async def _on_payment_intent_succeeded(
        self,
        event: PaymentIntentSucceeded,
    ) -> ReconciliationOutcome:
        """
        Handle a captured PaymentIntent.

        WHY: The invoice_id metadata (copied onto the PaymentIntent at
        checkout) is the authoritative correlation. The stored PaymentIntent
        ID is only written when an invoice is marked paid, so matching on it
        can only confirm an earlier transition.
        """
        if event.correlation_key is not None:
            invoice = await self.invoice_dao.reload(event.correlation_key.invoice_id)
        else:
            invoice = await self.invoice_dao.get_by_stripe_payment_intent(event.payment_intent_id)

        if invoice is None:
            logger.info(
                f"PaymentIntent {event.payment_intent_id} matches no invoice",
                extra={"event_id": event.event_id, "payment_intent_id": event.payment_intent_id},
            )
            return ReconciliationOutcome.UNMATCHED

        if invoice.is_paid:
            return self._already_paid(invoice, event.event_id)

        return await self._mark_paid(invoice.id, event.payment_intent_id, event.event_id)

    def _on_unrecognized(self, event: UnrecognizedEvent) -> ReconciliationOutcome:
        """Acknowledge event types we do not act on."""
        logger.info(
            f"Ignoring webhook event type {event.event_type!r}",
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )
        return ReconciliationOutcome.IGNORED

    async def _mark_paid(
        self,
        invoice_id: int,
        payment_intent_id: Optional[str],
        event_id: str,
    ) -> ReconciliationOutcome:
        """
        Run the conditional PENDING -> PAID update.

        WHY: Another delivery may have won the race since the invoice was
        read. Losing the race is reported as ALREADY_PAID, not an error.
        """
        if await self.invoice_dao.mark_paid(invoice_id, payment_intent_id):
            logger.info(
                f"Invoice {invoice_id} marked as paid via webhook",
                extra={
                    "event_id": event_id,
                    "invoice_id": invoice_id,
                    "payment_intent_id": payment_intent_id,
                },
            )
            return ReconciliationOutcome.PAID

        invoice = await self.invoice_dao.reload(invoice_id)
        if invoice is None:
            return ReconciliationOutcome.UNMATCHED
        return self._already_paid(invoice, event_id)

    def _already_paid(self, invoice: Invoice, event_id: str) -> ReconciliationOutcome:
        logger.info(
            f"Invoice {invoice.id} already paid; event {event_id} is a no-op",
            extra={"event_id": event_id, "invoice_id": invoice.id},
        )
        return ReconciliationOutcome.ALREADY_PAID
