"""
Invoice schemas for API request/response validation.

WHAT: Pydantic schemas for invoice data validation.

WHY: Schemas provide:
1. Type-safe request/response handling
2. Automatic validation with clear error messages
3. OpenAPI documentation generation

Status and the Stripe correlation fields are deliberately absent from
the request schemas: only the webhook reconciler may mark an invoice paid.

HOW: Uses Pydantic v2 with Field validators and model_config.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from invoicing.models.base import MAX_ID
from invoicing.models.invoice import InvoiceStatus


def _normalize_currency(value: Optional[str]) -> Optional[str]:
    """Upper-case a currency code and require three letters."""
    if value is None:
        return value
    value = value.strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError("currency must be a 3-letter ISO 4217 code")
    return value


# ============================================================================
# Request Schemas
# ============================================================================


class InvoiceCreate(BaseModel):
    """
    Schema for creating an invoice.

    WHAT: The invoice number is allocated by the server and status
    always starts as pending.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    client_id: int = Field(..., gt=0, le=MAX_ID, description="Billed client ID")
    amount: Decimal = Field(
        ...,
        ge=0,
        max_digits=10,
        decimal_places=2,
        description="Amount due",
    )
    currency: Optional[str] = Field(
        default=None,
        description="ISO 4217 currency code (defaults to DEFAULT_CURRENCY)",
    )
    issue_date: Optional[date] = Field(
        default=None,
        description="Issue date (defaults to today)",
    )
    due_date: Optional[date] = Field(
        default=None,
        description="Due date (defaults to issue date + INVOICE_DEFAULT_DUE_DAYS)",
    )
    description: str = Field(..., min_length=1, description="What is being billed")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_currency(v)

    @model_validator(mode="after")
    def validate_dates(self) -> "InvoiceCreate":
        """Due date cannot precede issue date."""
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        return self


class InvoiceUpdate(BaseModel):
    """
    Schema for updating a pending invoice.

    WHY: Only pending invoices can be edited; paid invoices are
    immutable financial records.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    client_id: Optional[int] = Field(default=None, gt=0, le=MAX_ID)
    amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    currency: Optional[str] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    description: Optional[str] = Field(default=None, min_length=1)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_currency(v)


# ============================================================================
# Response Schemas
# ============================================================================


class InvoiceClientSummary(BaseModel):
    """Client display data embedded in invoice responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    company_name: Optional[str]


class InvoiceResponse(BaseModel):
    """
    Schema for invoice response data.

    WHY: ``status`` is what is stored (pending/paid); ``display_status``
    adds the derived overdue label.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    status: InvoiceStatus
    display_status: InvoiceStatus

    client_id: int
    client: Optional[InvoiceClientSummary] = None

    amount: Decimal
    currency: str
    description: str

    stripe_payment_intent_id: Optional[str]
    stripe_checkout_session_id: Optional[str]

    issue_date: date
    due_date: date
    paid_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    is_editable: bool
    is_paid: bool
    payment_link: str


class InvoiceListResponse(BaseModel):
    """
    Paginated list response for invoices.

    WHY: Standard pagination structure for list endpoints.
    """

    items: List[InvoiceResponse]
    total: int
    skip: int
    limit: int


class InvoiceStats(BaseModel):
    """Invoice statistics for the dashboard."""

    total_invoices: int = Field(description="Total number of invoices")
    paid_invoices: int = Field(description="Invoices marked paid")
    pending_invoices: int = Field(description="Pending invoices not yet due")
    overdue_invoices: int = Field(description="Pending invoices past due date")
    total_paid_amount: Decimal = Field(description="Sum of paid invoice amounts")


class InvoiceEmailResponse(BaseModel):
    """Confirmation that the invoice was emailed to its client."""

    message: str = "Invoice email sent successfully"
    sent_to: str
