"""
Test factories for creating test data.

WHY: Factories provide a consistent, reusable way to create test objects,
reducing duplication and keeping tests consistent when models change.
Also home to the Stripe webhook signing helper, so webhook tests sign
payloads exactly the way Stripe does.
"""

import hashlib
import hmac
import json
import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.auth import create_access_token, hash_password
from invoicing.core.config import settings
from invoicing.models.client import Client
from invoicing.models.invoice import Invoice, InvoiceStatus
from invoicing.models.user import User, UserRole


class UserFactory:
    """Factory for creating User test instances."""

    _counter = 0

    @staticmethod
    async def create(
        session: AsyncSession,
        email: Optional[str] = None,
        password: str = "SecurePassword123!",
        name: Optional[str] = "Test User",
        role: UserRole = UserRole.STAFF,
        is_active: bool = True,
    ) -> User:
        """
        Create a user for testing.

        Args:
            session: Database session
            email: Email (auto-generated if omitted)
            password: Plain password (hashed before storing)
            name: Full name
            role: ADMIN or STAFF
            is_active: Whether the account is active

        Returns:
            Created User instance
        """
        if email is None:
            UserFactory._counter += 1
            email = f"user{UserFactory._counter}@example.com"

        user = User(
            email=email,
            hashed_password=hash_password(password),
            name=name,
            role=role,
            is_active=is_active,
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)
        return user


class ClientFactory:
    """Factory for creating Client test instances."""

    @staticmethod
    async def create(
        session: AsyncSession,
        name: str = "Jane Doe",
        email: str = "jane@acme.example",
        phone: str = "+1 555 0100",
        address: str = "1 Main Street, Springfield",
        company_name: Optional[str] = "Acme Corp",
    ) -> Client:
        """Create a client for testing."""
        client = Client(
            name=name,
            email=email,
            phone=phone,
            address=address,
            company_name=company_name,
        )
        session.add(client)
        await session.flush()
        await session.refresh(client)
        return client


class InvoiceFactory:
    """
    Factory for creating Invoice test instances.

    WHY: Inserts rows directly with a chosen number and status so tests
    can start from any ledger state (including PAID).
    """

    _counter = 0

    @staticmethod
    async def create(
        session: AsyncSession,
        client: Client,
        invoice_number: Optional[str] = None,
        amount: Decimal = Decimal("150.00"),
        currency: str = "USD",
        status: InvoiceStatus = InvoiceStatus.PENDING,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        description: str = "Consulting services",
        stripe_payment_intent_id: Optional[str] = None,
        stripe_checkout_session_id: Optional[str] = None,
    ) -> Invoice:
        """
        Create an invoice for testing.

        Args:
            session: Database session
            client: Billed client
            invoice_number: Number (auto-generated if omitted)
            amount: Amount due
            currency: Currency code
            status: Stored status
            issue_date: Issue date (defaults to today)
            due_date: Due date (defaults to 30 days after issue)
            description: Description
            stripe_payment_intent_id: Correlation token
            stripe_checkout_session_id: Checkout session already opened for it

        Returns:
            Created Invoice instance
        """
        if invoice_number is None:
            InvoiceFactory._counter += 1
            invoice_number = f"INV-2024-{InvoiceFactory._counter:06d}"

        issue_date = issue_date or date.today()
        invoice = Invoice(
            invoice_number=invoice_number,
            client_id=client.id,
            amount=amount,
            currency=currency,
            status=status,
            issue_date=issue_date,
            due_date=due_date or issue_date + timedelta(days=30),
            description=description,
            stripe_payment_intent_id=stripe_payment_intent_id,
            stripe_checkout_session_id=stripe_checkout_session_id,
        )
        session.add(invoice)
        await session.flush()
        await session.refresh(invoice)
        return invoice


def auth_headers_for(user: User) -> Dict[str, str]:
    """Build a bearer Authorization header for a user."""
    token = create_access_token(
        {"user_id": user.id, "role": user.role.value, "email": user.email}
    )
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Stripe webhook helpers
# ============================================================================


def sign_stripe_payload(
    payload: str,
    secret: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> str:
    """
    Build a Stripe-Signature header for a payload.

    HOW: ``t={timestamp},v1=HMAC_SHA256(secret, "{timestamp}.{payload}")``,
    the scheme Stripe uses for webhook signatures.
    """
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(
    invoice_id: Optional[int],
    payment_intent_id: Optional[str] = "pi_test_123",
    payment_status: str = "paid",
    event_id: str = "evt_checkout_1",
    session_id: str = "cs_test_123",
) -> Dict[str, Any]:
    """Stripe ``checkout.session.completed`` event body."""
    metadata = {} if invoice_id is None else {"invoice_id": str(invoice_id)}
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "created": int(time.time()),
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "mode": "payment",
                "payment_status": payment_status,
                "payment_intent": payment_intent_id,
                "metadata": metadata,
            }
        },
    }


def payment_intent_succeeded_event(
    payment_intent_id: str = "pi_test_123",
    invoice_id: Optional[int] = None,
    event_id: str = "evt_pi_1",
) -> Dict[str, Any]:
    """Stripe ``payment_intent.succeeded`` event body."""
    metadata = {} if invoice_id is None else {"invoice_id": str(invoice_id)}
    return {
        "id": event_id,
        "object": "event",
        "type": "payment_intent.succeeded",
        "created": int(time.time()),
        "data": {
            "object": {
                "id": payment_intent_id,
                "object": "payment_intent",
                "status": "succeeded",
                "amount": 15000,
                "currency": "usd",
                "metadata": metadata,
            }
        },
    }


def signed_webhook(event: Dict[str, Any], secret: Optional[str] = None):
    """Serialize an event and return (body, headers) ready to POST."""
    body = json.dumps(event)
    headers = {
        "Stripe-Signature": sign_stripe_payload(body, secret=secret),
        "Content-Type": "application/json",
    }
    return body, headers
