"""
Payment schemas: checkout sessions, the public invoice page and webhook
acknowledgements.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from invoicing.models.base import MAX_ID
from invoicing.models.invoice import InvoiceStatus


class CheckoutRequest(BaseModel):
    """
    Request body for staff-initiated checkout.

    WHY: invoice_id is optional at the schema level so a missing ID is
    reported as a plain 400 "Invoice ID is required" by the route.
    """

    invoice_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID, description="Invoice to pay")


class CheckoutResponse(BaseModel):
    """
    Response for checkout session creation.

    WHY: Provides client with:
    - Redirect URL for the hosted payment page
    - Session ID for reference
    """

    session_id: str = Field(description="Stripe Checkout Session ID")
    redirect_url: str = Field(description="URL to redirect the payer to")


class PublicClientInfo(BaseModel):
    """Non-sensitive client display fields."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    email: str
    company_name: Optional[str]


class PublicInvoiceResponse(BaseModel):
    """
    Invoice as shown to a payer on the public payment page.

    WHY: The page is unauthenticated. It exposes no internal identifiers
    other than the invoice's own ID and never the Stripe references.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    amount: Decimal
    currency: str
    issue_date: date
    due_date: date
    status: InvoiceStatus
    display_status: InvoiceStatus
    description: str
    client: Optional[PublicClientInfo]


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe."""

    received: bool = True
