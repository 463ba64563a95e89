"""
Tests for webhook payment reconciliation.

WHY: Stripe delivers at least once and reports one payment through two
event kinds in either order. These tests pin down that:
1. Any number of deliveries moves an invoice to PAID exactly once
2. Both event kinds, in either order, converge on the same state
3. A paid invoice never changes again (status, paid_at, token)
4. Unmatched and unsuccessful events are acknowledged without effect
5. Only ledger outages surface as a retryable error
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from invoicing.core.exceptions import LedgerUnavailableError
from invoicing.dao.invoice import InvoiceDAO
from invoicing.models.invoice import InvoiceStatus
from invoicing.services.payment_reconciler import PaymentReconciler, ReconciliationOutcome
from invoicing.services.webhook_events import (
    CheckoutSessionCompleted,
    InvoiceCorrelationKey,
    PaymentIntentSucceeded,
    UnrecognizedEvent,
    parse_event,
)
from tests.factories import (
    ClientFactory,
    InvoiceFactory,
    checkout_completed_event,
    payment_intent_succeeded_event,
)


@pytest_asyncio.fixture
async def invoice(db_session):
    client = await ClientFactory.create(db_session)
    return await InvoiceFactory.create(
        db_session,
        client,
        invoice_number="INV-2024-000123",
        amount=Decimal("150.00"),
    )


async def _state(db_session, invoice_id):
    return await InvoiceDAO(db_session).reload(invoice_id)


class TestCheckoutSessionCompleted:
    """Tests for checkout.session.completed handling."""

    @pytest.mark.asyncio
    async def test_marks_invoice_paid(self, db_session, invoice):
        event = parse_event(checkout_completed_event(invoice.id, payment_intent_id="pi_1"))

        outcome = await PaymentReconciler(db_session).handle(event)

        assert outcome == ReconciliationOutcome.PAID
        paid = await _state(db_session, invoice.id)
        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_at is not None
        assert paid.stripe_payment_intent_id == "pi_1"

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, db_session, invoice):
        """Five deliveries of the same event: one transition, four no-ops."""
        event = parse_event(checkout_completed_event(invoice.id, payment_intent_id="pi_1"))
        reconciler = PaymentReconciler(db_session)

        outcomes = [await reconciler.handle(event) for _ in range(5)]

        assert outcomes[0] == ReconciliationOutcome.PAID
        assert outcomes[1:] == [ReconciliationOutcome.ALREADY_PAID] * 4

    @pytest.mark.asyncio
    async def test_paid_at_is_not_moved_by_redelivery(self, db_session, invoice):
        event = parse_event(checkout_completed_event(invoice.id))
        reconciler = PaymentReconciler(db_session)

        await reconciler.handle(event)
        first_paid_at = (await _state(db_session, invoice.id)).paid_at
        await reconciler.handle(event)

        assert (await _state(db_session, invoice.id)).paid_at == first_paid_at

    @pytest.mark.asyncio
    async def test_unpaid_session_leaves_invoice_pending(self, db_session, invoice):
        event = parse_event(checkout_completed_event(invoice.id, payment_status="unpaid"))

        outcome = await PaymentReconciler(db_session).handle(event)

        assert outcome == ReconciliationOutcome.PAYMENT_NOT_SUCCESSFUL
        assert (await _state(db_session, invoice.id)).status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_missing_metadata_is_unmatched(self, db_session, invoice):
        event = parse_event(checkout_completed_event(invoice_id=None))

        outcome = await PaymentReconciler(db_session).handle(event)

        assert outcome == ReconciliationOutcome.UNMATCHED
        assert (await _state(db_session, invoice.id)).status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_invoice_is_unmatched(self, db_session, invoice):
        event = parse_event(checkout_completed_event(invoice_id=invoice.id + 1000))

        outcome = await PaymentReconciler(db_session).handle(event)

        assert outcome == ReconciliationOutcome.UNMATCHED

    @pytest.mark.asyncio
    async def test_async_payment_succeeded_marks_paid(self, db_session, invoice):
        raw = checkout_completed_event(invoice.id, payment_intent_id="pi_async")
        raw["type"] = "checkout.session.async_payment_succeeded"

        outcome = await PaymentReconciler(db_session).handle(parse_event(raw))

        assert outcome == ReconciliationOutcome.PAID


class TestPaymentIntentSucceeded:
    """Tests for payment_intent.succeeded handling."""

    @pytest.mark.asyncio
    async def test_marks_paid_from_metadata(self, db_session, invoice):
        event = parse_event(payment_intent_succeeded_event("pi_1", invoice_id=invoice.id))

        outcome = await PaymentReconciler(db_session).handle(event)

        assert outcome == ReconciliationOutcome.PAID
        assert (await _state(db_session, invoice.id)).stripe_payment_intent_id == "pi_1"

    @pytest.mark.asyncio
    async def test_without_metadata_matches_only_recorded_token(self, db_session, invoice):
        """A bare PaymentIntent cannot be tied to a pending invoice."""
        event = parse_event(payment_intent_succeeded_event("pi_unknown"))

        outcome = await PaymentReconciler(db_session).handle(event)

        assert outcome == ReconciliationOutcome.UNMATCHED
        assert (await _state(db_session, invoice.id)).status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_without_metadata_after_checkout_is_already_paid(self, db_session, invoice):
        reconciler = PaymentReconciler(db_session)
        await reconciler.handle(parse_event(checkout_completed_event(invoice.id, payment_intent_id="pi_1")))

        outcome = await reconciler.handle(parse_event(payment_intent_succeeded_event("pi_1")))

        assert outcome == ReconciliationOutcome.ALREADY_PAID


class TestDualChannel:
    """Both event kinds for one payment, in either order."""

    @pytest.mark.asyncio
    async def test_checkout_then_payment_intent(self, db_session, invoice):
        reconciler = PaymentReconciler(db_session)

        first = await reconciler.handle(
            parse_event(checkout_completed_event(invoice.id, payment_intent_id="pi_1"))
        )
        second = await reconciler.handle(
            parse_event(payment_intent_succeeded_event("pi_1", invoice_id=invoice.id))
        )

        assert (first, second) == (ReconciliationOutcome.PAID, ReconciliationOutcome.ALREADY_PAID)
        final = await _state(db_session, invoice.id)
        assert final.status == InvoiceStatus.PAID
        assert final.stripe_payment_intent_id == "pi_1"

    @pytest.mark.asyncio
    async def test_payment_intent_then_checkout(self, db_session, invoice):
        reconciler = PaymentReconciler(db_session)

        first = await reconciler.handle(
            parse_event(payment_intent_succeeded_event("pi_1", invoice_id=invoice.id))
        )
        second = await reconciler.handle(
            parse_event(checkout_completed_event(invoice.id, payment_intent_id="pi_1"))
        )

        assert (first, second) == (ReconciliationOutcome.PAID, ReconciliationOutcome.ALREADY_PAID)
        final = await _state(db_session, invoice.id)
        assert final.status == InvoiceStatus.PAID
        assert final.stripe_payment_intent_id == "pi_1"

    @pytest.mark.asyncio
    async def test_token_is_never_replaced(self, db_session, invoice):
        reconciler = PaymentReconciler(db_session)
        await reconciler.handle(parse_event(checkout_completed_event(invoice.id, payment_intent_id="pi_1")))

        outcome = await reconciler.handle(
            parse_event(payment_intent_succeeded_event("pi_2", invoice_id=invoice.id))
        )

        assert outcome == ReconciliationOutcome.ALREADY_PAID
        assert (await _state(db_session, invoice.id)).stripe_payment_intent_id == "pi_1"

    @pytest.mark.asyncio
    async def test_losing_a_race_reports_already_paid(self, db_session, invoice):
        """Another delivery commits between our read and our update."""
        reconciler = PaymentReconciler(db_session)
        real_mark_paid = reconciler.invoice_dao.mark_paid

        async def racing_mark_paid(invoice_id, payment_intent_id=None):
            await real_mark_paid(invoice_id, "pi_winner")
            return await real_mark_paid(invoice_id, payment_intent_id)

        reconciler.invoice_dao.mark_paid = racing_mark_paid

        outcome = await reconciler.handle(
            parse_event(checkout_completed_event(invoice.id, payment_intent_id="pi_loser"))
        )

        assert outcome == ReconciliationOutcome.ALREADY_PAID
        assert (await _state(db_session, invoice.id)).stripe_payment_intent_id == "pi_winner"


class TestOtherOutcomes:
    """Ignored events and ledger failures."""

    @pytest.mark.asyncio
    async def test_unrecognized_event_is_ignored(self, db_session, invoice):
        outcome = await PaymentReconciler(db_session).handle(
            UnrecognizedEvent(event_id="evt_x", event_type="customer.created")
        )

        assert outcome == ReconciliationOutcome.IGNORED
        assert (await _state(db_session, invoice.id)).status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_database_outage_raises_ledger_unavailable(self):
        session = MagicMock()
        session.commit = AsyncMock()
        reconciler = PaymentReconciler(session)
        reconciler.invoice_dao = MagicMock()
        reconciler.invoice_dao.reload = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )
        event = CheckoutSessionCompleted(
            event_id="evt_outage",
            session_id="cs_1",
            payment_status="paid",
            payment_intent_id="pi_1",
            correlation_key=InvoiceCorrelationKey(1),
        )

        with pytest.raises(LedgerUnavailableError) as exc_info:
            await reconciler.handle(event)

        assert exc_info.value.status_code == 503
        assert exc_info.value.context["event_id"] == "evt_outage"
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_commit_failure_raises_ledger_unavailable(self):
        session = MagicMock()
        session.commit = AsyncMock(side_effect=ConnectionResetError("reset by peer"))
        reconciler = PaymentReconciler(session)
        reconciler.invoice_dao = MagicMock()
        reconciler.invoice_dao.get_by_stripe_payment_intent = AsyncMock(return_value=None)

        with pytest.raises(LedgerUnavailableError):
            await reconciler.handle(
                PaymentIntentSucceeded(event_id="evt_1", payment_intent_id="pi_1", correlation_key=None)
            )

    @pytest.mark.asyncio
    async def test_programming_errors_are_not_masked(self):
        """Only connectivity failures are turned into a retryable 503."""
        session = MagicMock()
        session.commit = AsyncMock()
        reconciler = PaymentReconciler(session)
        reconciler.invoice_dao = MagicMock()
        reconciler.invoice_dao.reload = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await reconciler.handle(
                CheckoutSessionCompleted(
                    event_id="evt_bug",
                    session_id="cs_1",
                    payment_status="paid",
                    payment_intent_id=None,
                    correlation_key=InvoiceCorrelationKey(1),
                )
            )
