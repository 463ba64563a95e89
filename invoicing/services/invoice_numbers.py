"""
Invoice number allocation.

WHAT: Produces human-readable invoice numbers of the form
``INV-{year}-{6 digits}`` and inserts new invoices under them.

WHY: Numbers are random, so two invoices can draw the same one. The
unique index on ``invoices.invoice_number`` is the real guarantee; this
module turns a collision at insert time into a retry with a fresh number
instead of a failed request.

HOW: Each insert attempt runs inside a SAVEPOINT (``begin_nested``). A
unique violation rolls back only that savepoint, leaving the caller's
transaction usable for the next attempt. After a bounded number of
collisions the allocator gives up with NumberAllocationExhausted.
"""

import logging
import secrets
from datetime import date
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.config import settings
from invoicing.core.exceptions import NumberAllocationExhausted
from invoicing.dao.invoice import InvoiceDAO
from invoicing.models.invoice import Invoice, InvoiceStatus

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PREFIX = "INV"
INVOICE_NUMBER_DIGITS = 6


def generate_invoice_number(year: Optional[int] = None) -> str:
    """
    Draw a random invoice number.

    Args:
        year: Year to embed (defaults to the current year)

    Returns:
        Invoice number, e.g. INV-2024-000123
    """
    year = year or date.today().year
    suffix = secrets.randbelow(10**INVOICE_NUMBER_DIGITS)
    return f"{INVOICE_NUMBER_PREFIX}-{year}-{suffix:0{INVOICE_NUMBER_DIGITS}d}"


class InvoiceNumberAllocator:
    """
    Allocates invoice numbers and creates invoices with bounded retry.

    Args:
        session: Async database session (caller owns the transaction)
        max_attempts: Insert attempts before giving up
            (defaults to settings.INVOICE_NUMBER_MAX_ATTEMPTS)
        number_factory: Callable returning a candidate number
            (defaults to generate_invoice_number)
    """

    def __init__(
        self,
        session: AsyncSession,
        max_attempts: Optional[int] = None,
        number_factory: Optional[Callable[[], str]] = None,
    ):
        self.session = session
        self.max_attempts = max_attempts or settings.INVOICE_NUMBER_MAX_ATTEMPTS
        self.number_factory = number_factory or generate_invoice_number
        self.invoice_dao = InvoiceDAO(session)

    def allocate(self) -> str:
        """Return a candidate invoice number (not yet reserved)."""
        return self.number_factory()

    async def create_invoice(self, **fields: Any) -> Invoice:
        """
        Insert a new PENDING invoice under a freshly allocated number.

        WHAT: Tries up to ``max_attempts`` numbers. Only a collision on
        the invoice number is retried; any other integrity failure is
        re-raised unchanged.

        Args:
            **fields: Invoice column values (client_id, amount, currency,
                issue_date, due_date, description)

        Returns:
            The created invoice

        Raises:
            NumberAllocationExhausted: If every attempt collided
            IntegrityError: If the insert failed for another reason
        """
        fields.pop("invoice_number", None)
        fields["status"] = InvoiceStatus.PENDING

        for attempt in range(1, self.max_attempts + 1):
            invoice_number = self.allocate()
            invoice = Invoice(invoice_number=invoice_number, **fields)

            try:
                async with self.session.begin_nested():
                    self.session.add(invoice)
                    await self.session.flush()
            except IntegrityError:
                if not await self.invoice_dao.invoice_number_exists(invoice_number):
                    raise
                logger.warning(
                    f"Invoice number collision on {invoice_number} "
                    f"(attempt {attempt}/{self.max_attempts})",
                    extra={"invoice_number": invoice_number, "attempt": attempt},
                )
                continue

            await self.session.refresh(invoice)
            logger.info(
                f"Created invoice {invoice.invoice_number}",
                extra={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
            )
            return invoice

        logger.error(
            f"Invoice number allocation exhausted after {self.max_attempts} attempts",
            extra={"max_attempts": self.max_attempts},
        )
        raise NumberAllocationExhausted(attempts=self.max_attempts)
