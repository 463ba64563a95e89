"""
Tests for custom exception hierarchy.

WHY: Comprehensive exception testing ensures:
1. Exceptions serialize correctly without leaking sensitive data
2. Each failure class maps to the HTTP status the payment flow relies on
3. Exception handlers render the shared error envelope
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from invoicing.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    TokenExpiredError,
    TokenInvalidError,
    ValidationError,
    ResourceNotFoundError,
    ResourceAlreadyExistsError,
    InvoiceNotFoundError,
    ClientNotFoundError,
    InvalidStateTransitionError,
    InvoiceAlreadyPaidError,
    PaymentProviderError,
    EmailServiceError,
    NumberAllocationExhausted,
    WebhookSignatureError,
    LedgerUnavailableError,
)
from invoicing.core.exception_handlers import app_exception_handler, generic_exception_handler


class TestAppException:
    """Test base AppException class."""

    def test_default_message(self):
        """Verify default message is used when none provided."""
        exc = AppException()
        assert exc.message == "An unexpected error occurred"
        assert exc.status_code == 500

    def test_custom_message(self):
        """Verify custom message overrides default."""
        exc = AppException(message="Custom error message")
        assert exc.message == "Custom error message"

    def test_custom_status_code(self):
        """Verify custom status code overrides class default."""
        exc = AppException(status_code=418)
        assert exc.status_code == 418

    def test_custom_status_code_does_not_leak_to_class(self):
        """Overriding status on one instance leaves the class default alone."""
        AuthenticationError(status_code=419)
        assert AuthenticationError().status_code == 401

    def test_context_data(self):
        """Verify context data is stored."""
        exc = AppException(user_id=123, invoice_id=456, action="delete")
        assert exc.context == {"user_id": 123, "invoice_id": 456, "action": "delete"}

    def test_to_dict_basic(self):
        """Verify exception serializes to dict correctly."""
        exc = AppException(message="Test error", user_id=123)
        result = exc.to_dict()

        assert result["error"] == "AppException"
        assert result["message"] == "Test error"
        assert result["status_code"] == 500
        assert result["details"] == {"user_id": 123}

    def test_to_dict_filters_sensitive_data(self):
        """Verify sensitive fields are filtered from dict."""
        exc = AppException(
            message="Test error",
            user_id=123,
            password="secret123",
            token="abc123",
            api_key="key123",
            secret="mysecret",
            signature="t=1,v1=abc",
            regular_field="visible",
        )
        result = exc.to_dict()

        assert "password" not in result["details"]
        assert "token" not in result["details"]
        assert "api_key" not in result["details"]
        assert "secret" not in result["details"]
        assert "signature" not in result["details"]

        assert result["details"]["user_id"] == 123
        assert result["details"]["regular_field"] == "visible"

    def test_to_dict_no_context(self):
        """Verify to_dict works with no context data."""
        exc = AppException(message="Test error")
        result = exc.to_dict()

        assert result["details"] is None


class TestAuthenticationExceptions:
    """Test authentication-related exceptions."""

    def test_authentication_error_status_code(self):
        """Verify AuthenticationError returns 401."""
        exc = AuthenticationError()
        assert exc.status_code == 401
        assert exc.message == "Authentication failed"

    def test_authorization_error_status_code(self):
        """Verify AuthorizationError returns 403."""
        assert AuthorizationError().status_code == 403

    def test_token_expired_error(self):
        """Verify TokenExpiredError has appropriate message."""
        exc = TokenExpiredError()
        assert exc.status_code == 401
        assert "expired" in exc.message.lower()

    def test_token_invalid_error(self):
        """Verify TokenInvalidError has appropriate message."""
        exc = TokenInvalidError()
        assert exc.status_code == 401
        assert "invalid" in exc.message.lower()


class TestClientErrors:
    """Caller mistakes: 4xx, never retried."""

    def test_validation_error_status_code(self):
        assert ValidationError().status_code == 400

    def test_validation_error_with_field_context(self):
        """Verify validation errors can include field information."""
        exc = ValidationError(message="Invoice ID is required", field="invoice_id")
        result = exc.to_dict()

        assert result["message"] == "Invoice ID is required"
        assert result["details"]["field"] == "invoice_id"

    def test_resource_not_found_status_code(self):
        assert ResourceNotFoundError().status_code == 404

    def test_resource_already_exists_status_code(self):
        assert ResourceAlreadyExistsError().status_code == 409

    def test_invoice_and_client_not_found_are_404(self):
        assert InvoiceNotFoundError().status_code == 404
        assert ClientNotFoundError().status_code == 404
        assert isinstance(InvoiceNotFoundError(), ResourceNotFoundError)

    def test_invalid_state_transition_is_400(self):
        assert InvalidStateTransitionError().status_code == 400

    def test_invoice_already_paid_is_a_state_transition_error(self):
        """Paying a paid invoice is a caller mistake (400), not a server fault."""
        exc = InvoiceAlreadyPaidError(invoice_id=7)

        assert isinstance(exc, InvalidStateTransitionError)
        assert exc.status_code == 400
        assert exc.message == "Invoice is already paid"
        assert exc.to_dict()["details"] == {"invoice_id": 7}


class TestPaymentFailureClasses:
    """Provider, integrity, security and transient failures."""

    def test_payment_provider_error_keeps_provider_message(self):
        exc = PaymentProviderError(provider_message="Your card was declined.")

        assert exc.status_code == 500
        assert exc.to_dict()["details"]["provider_message"] == "Your card was declined."

    def test_email_service_error_is_bad_gateway(self):
        assert EmailServiceError(invoice_id=7).status_code == 502

    def test_number_allocation_exhausted_is_server_fault(self):
        exc = NumberAllocationExhausted(attempts=5)

        assert exc.status_code == 500
        assert exc.context["attempts"] == 5

    def test_webhook_signature_error_is_400(self):
        assert WebhookSignatureError().status_code == 400

    def test_ledger_unavailable_is_retryable_503(self):
        """Only this webhook outcome asks the provider to redeliver."""
        exc = LedgerUnavailableError(event_id="evt_1")

        assert exc.status_code == 503
        assert exc.to_dict()["details"] == {"event_id": "evt_1"}


class TestExceptionHandlerIntegration:
    """Test exception handler integration with FastAPI."""

    @pytest.fixture
    def app(self):
        """Create test FastAPI app with exception handlers."""
        app = FastAPI()
        app.add_exception_handler(AppException, app_exception_handler)
        app.add_exception_handler(Exception, generic_exception_handler)

        @app.get("/auth-error")
        async def auth_error():
            raise AuthenticationError(message="Invalid credentials", user_id=123)

        @app.get("/sensitive-data")
        async def sensitive_data():
            raise AppException(
                message="Error with sensitive data",
                user_id=123,
                password="should-be-filtered",
            )

        @app.get("/ledger-down")
        async def ledger_down():
            raise LedgerUnavailableError(event_id="evt_123")

        @app.get("/boom")
        async def boom():
            raise RuntimeError("database password is hunter2")

        return app

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return TestClient(app, raise_server_exceptions=False)

    def test_exception_handler_returns_json(self, client):
        """Verify exception handler returns JSON response."""
        response = client.get("/auth-error")

        assert response.status_code == 401
        assert response.headers["content-type"] == "application/json"

        data = response.json()
        assert data["error"] == "AuthenticationError"
        assert data["message"] == "Invalid credentials"
        assert data["status_code"] == 401
        assert data["details"]["user_id"] == 123

    def test_exception_handler_filters_sensitive_data(self, client):
        """Verify exception handler filters sensitive data from response."""
        data = client.get("/sensitive-data").json()

        assert "password" not in data.get("details", {})
        assert data["details"]["user_id"] == 123

    def test_ledger_unavailable_renders_503(self, client):
        response = client.get("/ledger-down")

        assert response.status_code == 503
        assert response.json()["error"] == "LedgerUnavailableError"

    def test_unexpected_errors_do_not_leak_details(self, client):
        """Unhandled exceptions become a generic 500."""
        response = client.get("/boom")

        assert response.status_code == 500
        assert "hunter2" not in response.text
        assert response.json()["message"] == "An unexpected error occurred"
