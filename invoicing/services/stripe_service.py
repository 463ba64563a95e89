"""
Stripe payment service for invoice payment processing.

WHAT: Thin interface over the Stripe SDK for the two provider-facing
operations the payment flow needs: opening Checkout Sessions and
verifying webhook signatures.

WHY: Keeping every Stripe call in one place means:
1. Amount conversion to minor units happens exactly once
2. Provider failures are translated into PaymentProviderError in one spot
3. Tests can patch a single module instead of the SDK everywhere

HOW: Uses the Stripe Python SDK with:
- Checkout Sessions (hosted payment page, mode=payment)
- Invoice ID embedded as metadata on the session and its PaymentIntent
- Webhook.construct_event for signature verification of raw webhook bodies

Design decisions:
- Checkout Sessions over direct charges: PCI compliance, hosted payment page
- Webhook-first status updates: no polling of session status
- Service class pattern: testable with a mocked Stripe SDK
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import stripe

from invoicing.core.config import settings
from invoicing.core.exceptions import (
    PaymentProviderError,
    ValidationError,
    WebhookSignatureError,
)
from invoicing.models.invoice import Invoice

logger = logging.getLogger(__name__)


# ============================================================================
# Stripe Configuration
# ============================================================================


def configure_stripe() -> None:
    """
    Configure Stripe SDK with API key from settings.

    WHY: Must be called before any Stripe API operations. The API version
    is pinned so webhook payload shapes do not drift under us.
    """
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = settings.STRIPE_API_VERSION


# Initialize Stripe on module load
configure_stripe()


# ============================================================================
# Amounts
# ============================================================================


# Currencies Stripe charges in whole units (no minor unit).
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)


def to_minor_units(amount: Decimal, currency: str) -> int:
    """
    Convert a decimal amount into Stripe's integer minor units.

    WHAT: 150.00 USD -> 15000; 1500 JPY -> 1500.

    WHY: Float arithmetic (``amount * 100``) can land one cent short;
    Decimal with half-up rounding matches how currency amounts are rounded.

    Args:
        amount: Amount in major units
        currency: ISO 4217 currency code

    Returns:
        Integer amount in the currency's smallest unit
    """
    exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
    scaled = Decimal(str(amount)).scaleb(exponent)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ============================================================================
# Data Classes
# ============================================================================


@dataclass
class CheckoutSession:
    """
    Represents a Stripe Checkout Session.

    WHAT: Data container for the fields of a created session we use.
    """

    id: str
    """Stripe Checkout Session ID (cs_xxx)."""

    url: str
    """URL to redirect the payer to."""

    amount_total: Optional[int] = None
    """Total amount in minor units."""

    currency: Optional[str] = None
    """Lowercase currency code as reported by Stripe."""

    metadata: Dict[str, str] = field(default_factory=dict)
    """Metadata echoed back by Stripe."""


# ============================================================================
# Stripe Service
# ============================================================================


class StripeService:
    """
    Service for Stripe payment operations.

    WHAT: Opens Checkout Sessions for invoices and authenticates webhooks.

    HOW: Uses the Stripe Python SDK with error translation and
    structured logging for every provider call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        """
        Initialize Stripe service.

        Args:
            api_key: Optional Stripe API key (defaults to settings)
            webhook_secret: Optional webhook signing secret (defaults to settings)
        """
        if api_key:
            stripe.api_key = api_key
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

    # ========================================================================
    # Checkout Sessions
    # ========================================================================

    async def create_checkout_session(
        self,
        invoice: Invoice,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """
        Create a Stripe Checkout Session for invoice payment.

        WHAT: Creates a hosted checkout page for collecting payment.

        WHY: The invoice ID travels as metadata on both the session and the
        PaymentIntent it creates, so either webhook kind can be correlated
        back to the invoice without a lookup table.

        Args:
            invoice: Invoice to create payment for (client loaded)
            success_url: URL to redirect after successful payment
            cancel_url: URL to redirect if payment cancelled

        Returns:
            CheckoutSession with session ID and redirect URL

        Raises:
            ValidationError: If invoice amount is not positive
            PaymentProviderError: If the Stripe API call fails
        """
        if invoice.amount is None or invoice.amount <= 0:
            raise ValidationError(
                message="Invoice amount must be greater than zero",
                invoice_id=invoice.id,
                amount=str(invoice.amount),
            )

        amount_minor = to_minor_units(invoice.amount, invoice.currency)
        client_name = invoice.client.name if invoice.client else "client"
        metadata = {
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
        }

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": invoice.currency.lower(),
                            "product_data": {
                                "name": f"Invoice {invoice.invoice_number}",
                                "description": f"Invoice for {client_name}",
                            },
                            "unit_amount": amount_minor,
                        },
                        "quantity": 1,
                    }
                ],
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                client_reference_id=str(invoice.id),
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            provider_message = getattr(e, "user_message", None) or str(e)
            logger.error(
                f"Stripe checkout session error: {provider_message}",
                extra={"invoice_id": invoice.id},
            )
            raise PaymentProviderError(
                message=f"Failed to create checkout session: {provider_message}",
                provider_message=provider_message,
                invoice_id=invoice.id,
            )

        logger.info(
            f"Created checkout session {session['id']} for invoice {invoice.id}",
            extra={
                "checkout_session_id": session["id"],
                "invoice_id": invoice.id,
                "amount_minor": amount_minor,
            },
        )

        return CheckoutSession(
            id=session["id"],
            url=session["url"],
            amount_total=session.get("amount_total"),
            currency=session.get("currency"),
            metadata=dict(session.get("metadata") or {}),
        )

    # ========================================================================
    # Webhook Handling
    # ========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """
        Verify Stripe webhook signature and decode the event.

        WHAT: Validates that the webhook came from Stripe, then decodes it.

        WHY: Security critical (OWASP A02): prevents webhook forgery. The
        signature covers the exact bytes Stripe sent, so this must be given
        the raw request body, never a re-serialized one.

        HOW: ``stripe.Webhook.construct_event`` checks the HMAC-SHA256
        signature over ``"{timestamp}.{payload}"`` (with a timestamp
        tolerance to limit replay) before it parses the body.

        Args:
            payload: Raw request body bytes
            signature: Stripe-Signature header value

        Returns:
            Decoded event as a plain dict, or None if the body is correctly
            signed but is not a JSON object

        Raises:
            WebhookSignatureError: If the header is missing or does not match
        """
        if not signature:
            logger.warning("Webhook rejected: missing Stripe-Signature header")
            raise WebhookSignatureError(message="Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Webhook rejected: body is not UTF-8: {e}")
            raise WebhookSignatureError(provider_message=str(e))

        try:
            event = stripe.Webhook.construct_event(
                body,
                signature,
                self.webhook_secret,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError(provider_message=str(e))
        except (ValueError, TypeError, AttributeError) as e:
            # Signature already verified; the body is not an event object
            logger.warning(
                f"Signed webhook body is not a Stripe event object: {e}",
                extra={"body_length": len(body)},
            )
            return None

        data = event.to_dict()
        logger.info(
            f"Verified webhook event {data.get('id')} type {data.get('type')}",
            extra={"event_id": data.get("id"), "event_type": data.get("type")},
        )
        return data


# ============================================================================
# Module-level convenience functions
# ============================================================================


_stripe_service: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """
    Get or create the global Stripe service instance.

    WHY: Used as a FastAPI dependency so tests can override it.

    Returns:
        StripeService instance
    """
    global _stripe_service

    if _stripe_service is None:
        _stripe_service = StripeService()

    return _stripe_service
