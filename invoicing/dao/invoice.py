"""
Invoice Data Access Object (DAO).

WHAT: Database operations for the Invoice model (the payment ledger).

WHY: The DAO pattern:
1. Separates data access from business logic
2. Keeps every status write behind a single conditional UPDATE
3. Encapsulates the correlation lookups used by webhook reconciliation

HOW: Extends BaseDAO with invoice-specific queries:
- Display-status filtering (overdue is derived from due_date)
- Stripe correlation lookups
- Guarded writes: pending -> paid, edits and deletes of pending invoices
- Dashboard statistics
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select, update, delete, func, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invoicing.dao.base import BaseDAO
from invoicing.models.invoice import Invoice, InvoiceStatus


class InvoiceDAO(BaseDAO[Invoice]):
    """
    Data Access Object for Invoice model.

    WHY: Status changes must never be a read followed by an unconditional
    write. Every mutating method here carries ``status = 'pending'`` in its
    WHERE clause and reports through the affected row count whether it won.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize InvoiceDAO.

        Args:
            session: Async database session
        """
        super().__init__(Invoice, session)

    async def get_with_client(self, invoice_id: int) -> Optional[Invoice]:
        """
        Get invoice with its client eagerly loaded.

        WHY: Checkout line items and the public invoice page both need
        client display data; loading it up front avoids lazy loads, which
        async sessions do not support.

        Args:
            invoice_id: Invoice ID

        Returns:
            Invoice with client loaded, or None
        """
        result = await self.session.execute(
            select(Invoice)
            .options(selectinload(Invoice.client))
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def reload(self, invoice_id: int) -> Optional[Invoice]:
        """
        Re-read an invoice from the database, bypassing the identity map.

        WHY: Conditional updates are issued as bulk UPDATE statements,
        which do not refresh objects already loaded in the session.

        Args:
            invoice_id: Invoice ID

        Returns:
            Fresh invoice instance, or None
        """
        result = await self.session.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_invoice_number(self, invoice_number: str) -> Optional[Invoice]:
        """
        Get an invoice by its human-readable number.

        Args:
            invoice_number: The invoice number (e.g., INV-2024-000123)

        Returns:
            Invoice if found, None otherwise
        """
        result = await self.session.execute(
            select(Invoice).where(Invoice.invoice_number == invoice_number)
        )
        return result.scalar_one_or_none()

    async def invoice_number_exists(self, invoice_number: str) -> bool:
        """Check whether an invoice number is already taken."""
        result = await self.session.execute(
            select(Invoice.id).where(Invoice.invoice_number == invoice_number).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_by_stripe_payment_intent(
        self,
        payment_intent_id: str,
    ) -> Optional[Invoice]:
        """
        Get an invoice by its recorded Stripe PaymentIntent ID.

        WHY: Fallback correlation for webhook events that carry only the
        PaymentIntent ID. The ID is recorded when the invoice is marked
        paid, so this lookup only ever finds paid invoices.

        Args:
            payment_intent_id: Stripe PaymentIntent ID

        Returns:
            Invoice if found, None otherwise
        """
        result = await self.session.execute(
            select(Invoice)
            .where(Invoice.stripe_payment_intent_id == payment_intent_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    def _display_status_filter(self, status: InvoiceStatus):
        """Translate a display status into a WHERE clause."""
        today = date.today()
        if status == InvoiceStatus.OVERDUE:
            return (Invoice.status == InvoiceStatus.PENDING) & (Invoice.due_date < today)
        if status == InvoiceStatus.PENDING:
            return (Invoice.status == InvoiceStatus.PENDING) & (Invoice.due_date >= today)
        return Invoice.status == status

    async def list_invoices(
        self,
        status: Optional[InvoiceStatus] = None,
        client_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Invoice], int]:
        """
        List invoices newest first, optionally filtered by display status.

        WHAT: ``overdue`` selects pending invoices past due; ``pending``
        selects pending invoices not yet due.

        Args:
            status: Optional display status filter
            client_id: Optional client filter
            skip: Pagination offset
            limit: Pagination limit

        Returns:
            Tuple of (page of invoices with clients loaded, total matching count)
        """
        conditions = []
        if status is not None:
            conditions.append(self._display_status_filter(status))
        if client_id is not None:
            conditions.append(Invoice.client_id == client_id)

        query = select(Invoice).options(selectinload(Invoice.client))
        count_query = select(func.count(Invoice.id))
        for condition in conditions:
            query = query.where(condition)
            count_query = count_query.where(condition)

        result = await self.session.execute(
            query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(skip).limit(limit)
        )
        total = (await self.session.execute(count_query)).scalar_one()
        return list(result.scalars().all()), total

    async def record_checkout_session(
        self,
        invoice_id: int,
        checkout_session_id: str,
    ) -> bool:
        """
        Remember the most recent checkout session opened for an invoice.

        WHY: Reference only. Correlation happens through the invoice ID
        embedded in session metadata, and the status is never touched here.

        Args:
            invoice_id: Invoice ID
            checkout_session_id: Stripe Checkout Session ID

        Returns:
            True if the invoice was still pending and the ID was stored
        """
        result = await self.session.execute(
            update(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.status == InvoiceStatus.PENDING,
            )
            .values(
                stripe_checkout_session_id=checkout_session_id,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_paid(
        self,
        invoice_id: int,
        payment_intent_id: Optional[str] = None,
    ) -> bool:
        """
        Transition an invoice from PENDING to PAID.

        WHAT: Single conditional UPDATE:
        ``SET status='paid' WHERE id=:id AND status='pending'``.

        WHY: Duplicate or concurrent webhook deliveries race on this row.
        The database applies the WHERE clause atomically, so exactly one
        writer sees rowcount == 1 and every other writer sees 0 (a no-op).
        The correlation token is written with COALESCE so an existing value
        is never replaced.

        Args:
            invoice_id: Invoice ID
            payment_intent_id: Stripe PaymentIntent ID to record as the
                correlation token (if not already set)

        Returns:
            True if this call performed the transition, False otherwise
        """
        now = datetime.utcnow()
        result = await self.session.execute(
            update(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.status == InvoiceStatus.PENDING,
            )
            .values(
                status=InvoiceStatus.PAID,
                paid_at=now,
                updated_at=now,
                stripe_payment_intent_id=func.coalesce(
                    Invoice.stripe_payment_intent_id,
                    payment_intent_id,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_if_pending(
        self,
        invoice_id: int,
        without_checkout: bool = False,
        **values: Any,
    ) -> bool:
        """
        Apply an edit to an invoice only while it is still pending.

        WHY: A staff edit can race with a payment confirmation. Guarding
        the UPDATE on status means a paid invoice is never modified.

        Args:
            invoice_id: Invoice ID
            without_checkout: Also require that no checkout session has
                been opened (used when the amount or currency changes)
            **values: Column values to set

        Returns:
            True if the invoice matched the guards and was updated
        """
        values["updated_at"] = datetime.utcnow()
        conditions = [Invoice.id == invoice_id, Invoice.status == InvoiceStatus.PENDING]
        if without_checkout:
            conditions.append(Invoice.stripe_checkout_session_id.is_(None))
        result = await self.session.execute(
            update(Invoice)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_if_pending(self, invoice_id: int) -> bool:
        """
        Delete an invoice only while it is still pending.

        Args:
            invoice_id: Invoice ID

        Returns:
            True if a pending invoice was deleted
        """
        result = await self.session.execute(
            delete(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.status == InvoiceStatus.PENDING,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_stats(self) -> Dict[str, Any]:
        """
        Aggregate invoice counts and paid total for the dashboard.

        Returns:
            Dict with total, paid, pending, overdue counts and paid amount
        """
        today = date.today()
        is_pending = Invoice.status == InvoiceStatus.PENDING
        result = await self.session.execute(
            select(
                func.count(Invoice.id),
                func.coalesce(func.sum(case((Invoice.status == InvoiceStatus.PAID, 1), else_=0)), 0),
                func.coalesce(func.sum(case((is_pending & (Invoice.due_date >= today), 1), else_=0)), 0),
                func.coalesce(func.sum(case((is_pending & (Invoice.due_date < today), 1), else_=0)), 0),
                func.coalesce(
                    func.sum(case((Invoice.status == InvoiceStatus.PAID, Invoice.amount), else_=0)),
                    0,
                ),
            )
        )
        total, paid, pending, overdue, paid_amount = result.one()
        return {
            "total_invoices": int(total),
            "paid_invoices": int(paid),
            "pending_invoices": int(pending),
            "overdue_invoices": int(overdue),
            "total_paid_amount": Decimal(str(paid_amount)).quantize(Decimal("0.01")),
        }
