"""
Typed Stripe webhook events.

WHAT: Parses a verified Stripe event dict into one of a closed set of
event types the payment reconciler knows how to handle.

WHY: Stripe identifies events by free-form ``type`` strings and carries
our invoice ID inside an untyped metadata blob. Parsing both once, at the
boundary, gives the reconciler:
1. An exhaustive set of event classes to dispatch on
2. A validated InvoiceCorrelationKey instead of a raw metadata string
3. A catch-all UnrecognizedEvent for event types Stripe adds later

HOW: Frozen dataclasses, one per recognized kind, built by parse_event().
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from invoicing.models.base import MAX_ID


CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"

# Checkout Session payment_status that means funds were collected.
PAYMENT_STATUS_PAID = "paid"


@dataclass(frozen=True)
class InvoiceCorrelationKey:
    """
    Invoice ID recovered from Stripe metadata.

    WHAT: The ``invoice_id`` metadata value written at checkout time,
    validated as a positive integer that fits the invoices.id column.
    """

    invoice_id: int

    @classmethod
    def from_metadata(
        cls,
        metadata: Optional[Mapping[str, Any]],
    ) -> Optional["InvoiceCorrelationKey"]:
        """
        Extract the correlation key from a metadata mapping.

        Args:
            metadata: Stripe metadata (may be None or empty)

        Returns:
            InvoiceCorrelationKey, or None if absent or not a valid ID
        """
        if not metadata:
            return None

        raw = metadata.get("invoice_id")
        if raw is None:
            return None

        try:
            invoice_id = int(str(raw).strip())
        except ValueError:
            return None

        if not 0 < invoice_id <= MAX_ID:
            return None
        return cls(invoice_id=invoice_id)


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    """A Checkout Session finished (``checkout.session.completed``)."""

    event_id: str
    session_id: Optional[str]
    payment_status: Optional[str]
    payment_intent_id: Optional[str]
    correlation_key: Optional[InvoiceCorrelationKey]

    @property
    def is_paid(self) -> bool:
        """True if the session reports that payment was collected."""
        return self.payment_status == PAYMENT_STATUS_PAID


@dataclass(frozen=True)
class PaymentIntentSucceeded:
    """A PaymentIntent was captured (``payment_intent.succeeded``)."""

    event_id: str
    payment_intent_id: str
    correlation_key: Optional[InvoiceCorrelationKey]


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Any event type the reconciler does not act on."""

    event_id: str
    event_type: str


WebhookEvent = Union[CheckoutSessionCompleted, PaymentIntentSucceeded, UnrecognizedEvent]


def _object_id(value: Any) -> Optional[str]:
    """Return an ID from a field that Stripe sends either as a string or expanded."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def parse_event(event: Dict[str, Any]) -> WebhookEvent:
    """
    Convert a verified Stripe event dict into a typed event.

    WHAT: ``checkout.session.completed`` and
    ``checkout.session.async_payment_succeeded`` both become
    CheckoutSessionCompleted; ``payment_intent.succeeded`` becomes
    PaymentIntentSucceeded; everything else is UnrecognizedEvent.

    Args:
        event: Decoded Stripe event (``{"id", "type", "data": {"object": ...}}``)

    Returns:
        Typed webhook event
    """
    event_id = str(event.get("id") or "")
    event_type = str(event.get("type") or "")
    data = event.get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        return UnrecognizedEvent(event_id=event_id, event_type=event_type)

    if event_type in (CHECKOUT_SESSION_COMPLETED, CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED):
        return CheckoutSessionCompleted(
            event_id=event_id,
            session_id=obj.get("id"),
            payment_status=obj.get("payment_status"),
            payment_intent_id=_object_id(obj.get("payment_intent")),
            correlation_key=InvoiceCorrelationKey.from_metadata(obj.get("metadata")),
        )

    if event_type == PAYMENT_INTENT_SUCCEEDED and obj.get("id"):
        return PaymentIntentSucceeded(
            event_id=event_id,
            payment_intent_id=obj["id"],
            correlation_key=InvoiceCorrelationKey.from_metadata(obj.get("metadata")),
        )

    return UnrecognizedEvent(event_id=event_id, event_type=event_type)
