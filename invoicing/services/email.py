"""
Email service for sending transactional emails.

WHAT: A provider-independent interface for the two emails the back
office sends: an invoice with its payment link, and a password reset
link.

WHY: Email delivery is an external dependency like Stripe. Keeping the
provider behind an interface lets the API send through Resend in
production and through an in-memory mock in development and tests.

HOW:
- EmailProvider implementations do the delivery (Resend over httpx, or mock)
- Jinja2 templates under invoicing/templates/email render HTML and text bodies
- EmailService composes messages and logs every send
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from invoicing.core.config import settings
from invoicing.core.exceptions import EmailServiceError
from invoicing.models.invoice import Invoice
from invoicing.services.checkout_service import payment_page_url

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "email"
RESEND_API_URL = "https://api.resend.com/emails"


# ============================================================================
# Messages
# ============================================================================


class EmailType(str, Enum):
    """Types of transactional emails, used for logging."""

    INVOICE = "invoice"
    PASSWORD_RESET = "password_reset"


@dataclass
class EmailMessage:
    """An email ready to hand to a provider."""

    to_email: str
    subject: str
    html_content: str
    text_content: Optional[str] = None
    from_email: Optional[str] = None
    reply_to: Optional[str] = None
    email_type: EmailType = EmailType.INVOICE
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class EmailResult:
    """
    Result of an email send operation.

    WHY: Providers report failure as a value rather than raising, so the
    caller decides whether a failed send should fail the request.
    """

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[str] = None


# ============================================================================
# Providers
# ============================================================================


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send an email message.

        Args:
            message: The email message to send

        Returns:
            EmailResult with success status and provider details
        """

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if credentials are present."""


class ResendProvider(EmailProvider):
    """Resend (https://resend.com) email provider."""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        self._api_key = api_key or settings.RESEND_API_KEY
        self._default_from = from_email or settings.EMAIL_FROM or self._fallback_sender()

    @staticmethod
    def _fallback_sender() -> str:
        domain = urlparse(settings.FRONTEND_URL).netloc or "localhost"
        return f"{settings.PROJECT_NAME} <noreply@{domain}>"

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send email via the Resend REST API.

        Returns:
            EmailResult; network and API errors are reported, not raised
        """
        if not self.is_configured():
            return EmailResult(success=False, error="Resend API key not configured", provider="resend")

        payload = {
            "from": message.from_email or self._default_from,
            "to": [message.to_email],
            "subject": message.subject,
            "html": message.html_content,
        }
        if message.text_content:
            payload["text"] = message.text_content
        if message.reply_to:
            payload["reply_to"] = message.reply_to

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                    timeout=30.0,
                )
        except httpx.HTTPError as e:
            logger.error(f"Resend send error: {e}")
            return EmailResult(success=False, error=str(e), provider="resend")

        if response.status_code in (200, 201):
            return EmailResult(success=True, message_id=response.json().get("id"), provider="resend")

        return EmailResult(
            success=False,
            error=f"Resend API error: {response.status_code} - {response.text}",
            provider="resend",
        )


class MockEmailProvider(EmailProvider):
    """
    Mock email provider for development and tests.

    Logs emails instead of sending them and records them in ``sent_emails``.
    """

    sent_emails: List[EmailMessage] = []

    def is_configured(self) -> bool:
        return True

    async def send(self, message: EmailMessage) -> EmailResult:
        logger.info(
            f"[MOCK EMAIL] To: {message.to_email}, "
            f"Subject: {message.subject}, "
            f"Type: {message.email_type.value}"
        )
        MockEmailProvider.sent_emails.append(message)
        return EmailResult(
            success=True,
            message_id=f"mock-{datetime.utcnow().timestamp()}",
            provider="mock",
        )

    @classmethod
    def clear_sent_emails(cls):
        """Clear sent emails list (for test cleanup)."""
        cls.sent_emails = []


# ============================================================================
# Email Service
# ============================================================================


class EmailService:
    """
    Compose, render and send transactional emails.

    HOW: Bodies come from Jinja2 templates with HTML autoescaping, so
    client names and descriptions cannot inject markup.
    """

    def __init__(
        self,
        provider: Optional[EmailProvider] = None,
        template_dir: Optional[Path] = None,
    ):
        """
        Initialize email service.

        Args:
            provider: Email provider (Resend when an API key is set, else mock)
            template_dir: Template directory (defaults to the packaged templates)
        """
        if provider:
            self._provider = provider
        elif settings.RESEND_API_KEY:
            self._provider = ResendProvider()
        else:
            logger.warning("No email provider configured, using mock provider")
            self._provider = MockEmailProvider()

        self._env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    @property
    def provider(self) -> EmailProvider:
        return self._provider

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render a template with the base context merged in.

        Raises:
            EmailServiceError: If the template is missing
        """
        full_context = {
            "year": datetime.utcnow().year,
            "platform_name": settings.PROJECT_NAME,
            **context,
        }
        try:
            return self._env.get_template(template_name).render(**full_context)
        except TemplateNotFound:
            logger.error(f"Email template not found: {template_name}")
            raise EmailServiceError(
                message=f"Email template not found: {template_name}",
                template=template_name,
            )

    async def send_email(self, message: EmailMessage) -> EmailResult:
        """
        Send a message through the configured provider and log the result.

        Returns:
            EmailResult with send status
        """
        logger.info(
            f"Sending {message.email_type.value} email to {message.to_email}",
            extra={"email_type": message.email_type.value, "to": message.to_email},
        )

        result = await self._provider.send(message)

        if result.success:
            logger.info(
                f"Email sent successfully: {result.message_id}",
                extra={"message_id": result.message_id, "provider": result.provider},
            )
        else:
            logger.error(
                f"Email send failed: {result.error}",
                extra={
                    "email_type": message.email_type.value,
                    "to": message.to_email,
                    "error": result.error,
                },
            )
        return result

    async def send_invoice_email(self, invoice: Invoice) -> EmailResult:
        """
        Email an invoice and its payment link to the billed client.

        Args:
            invoice: Invoice with its client loaded

        Returns:
            EmailResult of a successful send

        Raises:
            EmailServiceError (502): If the provider did not accept the email
        """
        client = invoice.client
        subject = f"Invoice {invoice.invoice_number} - Payment Required"
        context = {
            "subject": subject,
            "client_name": client.name,
            "invoice_number": invoice.invoice_number,
            "amount": f"{invoice.amount:.2f}",
            "currency": invoice.currency,
            "issue_date": invoice.issue_date.isoformat(),
            "due_date": invoice.due_date.isoformat(),
            "description": invoice.description,
            "payment_link": payment_page_url(invoice.id),
        }

        result = await self.send_email(
            EmailMessage(
                to_email=client.email,
                subject=subject,
                html_content=self.render("invoice.html", context),
                text_content=self.render("invoice.txt", context),
                email_type=EmailType.INVOICE,
                metadata={"invoice_id": invoice.id},
            )
        )
        if not result.success:
            raise EmailServiceError(
                message="Failed to send invoice email",
                invoice_id=invoice.id,
                provider=result.provider,
            )
        return result

    async def send_password_reset_email(
        self,
        to_email: str,
        user_name: Optional[str],
        reset_token: str,
    ) -> EmailResult:
        """
        Send a password reset link.

        Returns:
            EmailResult; failures are reported, not raised, so the caller
            can keep its response identical for known and unknown emails
        """
        reset_url = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password?token={reset_token}"
        minutes = settings.PASSWORD_RESET_EXPIRATION_MINUTES
        expires_in = "1 hour" if minutes == 60 else f"{minutes} minutes"
        subject = "Reset your password"
        context = {
            "subject": subject,
            "user_name": user_name or to_email,
            "reset_url": reset_url,
            "expires_in": expires_in,
        }

        return await self.send_email(
            EmailMessage(
                to_email=to_email,
                subject=subject,
                html_content=self.render("password_reset.html", context),
                text_content=self.render("password_reset.txt", context),
                email_type=EmailType.PASSWORD_RESET,
            )
        )


# Global service instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """
    Get or create the global email service instance.

    Used as a FastAPI dependency, so tests can override it.
    """
    global _email_service

    if _email_service is None:
        _email_service = EmailService()

    return _email_service
