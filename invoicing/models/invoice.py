"""
Invoice model for billing and payment tracking.

WHAT: SQLAlchemy model representing an invoice issued to a client.

WHY: The invoices table is the ledger for payment state:
1. Tracks amounts owed by clients
2. Records whether payment has been confirmed
3. Stores the Stripe references used to correlate asynchronous
   payment confirmations back to the invoice

HOW: Uses SQLAlchemy 2.0 with:
- Client relationship (many invoices per client)
- Status enum with a single stored transition (pending -> paid)
- Fixed-point Numeric amount (never float)
- Stripe correlation fields
"""

from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional, TYPE_CHECKING
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    ForeignKey,
    Numeric,
    CheckConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship, Mapped

from invoicing.models.base import Base

if TYPE_CHECKING:
    from invoicing.models.client import Client


class InvoiceStatus(str, Enum):
    """
    Invoice payment status.

    WHAT: Enumeration of invoice states.

    WHY: Only two values are ever stored:
    - PENDING: Created, awaiting payment
    - PAID: Payment confirmed by the payment provider (terminal)

    OVERDUE is a label derived at read time for pending invoices whose
    due date has passed. Nothing writes it to the database.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class Invoice(Base):
    """
    Invoice model for billing and payments.

    Attributes:
        id: Primary key (also the correlation key embedded in checkout metadata)
        invoice_number: Unique human-readable identifier, assigned once
        client_id: Billed client
        amount: Amount due (Numeric(10, 2))
        currency: ISO 4217 currency code
        issue_date: When invoice was issued
        due_date: Payment due date
        description: Free-text description of what is billed
        status: PENDING or PAID
        stripe_payment_intent_id: Correlation token, set once on payment
        stripe_checkout_session_id: Most recent checkout session opened
        paid_at: When payment was confirmed
        created_at: Record creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_invoices_amount_non_negative"),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)

    invoice_number: Mapped[str] = Column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique invoice number (e.g., INV-2024-000123)",
    )

    # WHY: values_callable stores the lowercase value, not the member name.
    # native_enum=False keeps the column portable (VARCHAR) across backends.
    status: Mapped[InvoiceStatus] = Column(
        SQLEnum(
            InvoiceStatus,
            name="invoicestatus",
            native_enum=False,
            length=20,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=InvoiceStatus.PENDING,
        index=True,
        comment="Current payment status",
    )

    client_id: Mapped[int] = Column(
        Integer,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Billed client",
    )

    amount: Mapped[Decimal] = Column(
        Numeric(10, 2),
        nullable=False,
        comment="Amount due",
    )
    currency: Mapped[str] = Column(
        String(3),
        nullable=False,
        default="USD",
        comment="ISO 4217 currency code",
    )
    description: Mapped[str] = Column(
        Text,
        nullable=False,
        comment="What is being billed",
    )

    # Stripe integration
    stripe_payment_intent_id: Mapped[Optional[str]] = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Stripe PaymentIntent ID recorded when payment is confirmed",
    )
    stripe_checkout_session_id: Mapped[Optional[str]] = Column(
        String(255),
        nullable=True,
        comment="Most recent Stripe Checkout Session ID",
    )

    # Dates
    issue_date: Mapped[date] = Column(
        Date,
        nullable=False,
        default=date.today,
        comment="Date invoice was issued",
    )
    due_date: Mapped[date] = Column(
        Date,
        nullable=False,
        comment="Payment due date",
    )
    paid_at: Mapped[Optional[datetime]] = Column(
        DateTime,
        nullable=True,
        comment="When payment was confirmed",
    )

    created_at: Mapped[datetime] = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        comment="Record creation timestamp",
    )
    updated_at: Mapped[datetime] = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        comment="Last modification timestamp",
    )

    client: Mapped["Client"] = relationship(
        "Client",
        back_populates="invoices",
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status})>"

    @property
    def is_paid(self) -> bool:
        """True once payment has been confirmed."""
        return self.status == InvoiceStatus.PAID

    @property
    def is_editable(self) -> bool:
        """
        Check if invoice can be edited or deleted.

        WHY: Paid invoices are immutable financial records.

        Returns:
            True if invoice is still PENDING
        """
        return self.status == InvoiceStatus.PENDING

    @property
    def is_overdue(self) -> bool:
        """
        Check if invoice is past due date and unpaid.

        Returns:
            True if due_date has passed and invoice is still pending
        """
        if self.status != InvoiceStatus.PENDING or not self.due_date:
            return False
        return date.today() > self.due_date

    @property
    def display_status(self) -> InvoiceStatus:
        """
        Status shown to users, with OVERDUE derived at read time.

        Returns:
            OVERDUE for pending invoices past due, the stored status otherwise
        """
        if self.is_overdue:
            return InvoiceStatus.OVERDUE
        return self.status
