"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages (OWASP A04)

The payment subsystem sorts every failure into one of five classes:
client errors (4xx, never retried), provider errors (the payer may retry
checkout), integrity errors (retried internally by the number allocator),
security errors (rejected webhook signatures) and transient errors (the
only class that asks the payment provider to redeliver a webhook).
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        # WHY: Filter out sensitive fields to prevent data leaks
        sensitive_fields = {"password", "token", "secret", "key", "api_key", "signature"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization Exceptions (OWASP A07)
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class AuthorizationError(AppException):
    """
    Raised when user lacks permissions for an action.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "You do not have permission to perform this action"


class TokenExpiredError(AuthenticationError):
    """Raised when JWT token has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when JWT token is malformed or has invalid signature."""

    default_message = "Token is invalid"


# ============================================================================
# Client Errors
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class ResourceAlreadyExistsError(AppException):
    """
    Raised when attempting to create a resource that already exists.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Resource already exists"


class InvoiceNotFoundError(ResourceNotFoundError):
    """Raised when an invoice doesn't exist."""

    default_message = "Invoice not found"


class ClientNotFoundError(ResourceNotFoundError):
    """Raised when a client doesn't exist."""

    default_message = "Client not found"


class InvalidStateTransitionError(AppException):
    """
    Raised when an invalid state transition is attempted by a caller.

    WHY: Paid invoices are immutable financial records. Attempts to edit,
    delete or re-pay them fail with a clear 400 instead of silently
    succeeding.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid state transition"


class InvoiceAlreadyPaidError(InvalidStateTransitionError):
    """
    Raised when a checkout is requested for an invoice that is already paid.

    WHY: This is a payer/caller mistake, not a server fault. It is raised
    before any payment provider call is made.
    """

    default_message = "Invoice is already paid"


# ============================================================================
# Provider Errors
# ============================================================================


class PaymentProviderError(AppException):
    """
    Raised when the payment provider rejects or cannot complete a request.

    WHY: Network failures, invalid amounts and provider outages all surface
    the same way to the payer, who may re-initiate checkout. The provider's
    own message is kept in context as ``provider_message``.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Payment processing error"


class EmailServiceError(AppException):
    """
    Raised when an email could not be rendered or delivered.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "Email service error"


# ============================================================================
# Integrity Errors
# ============================================================================


class NumberAllocationExhausted(AppException):
    """
    Raised when no unique invoice number could be allocated.

    WHY: Random invoice number suffixes can collide. Collisions are retried
    a bounded number of times; exhausting the budget is a server fault.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Could not allocate a unique invoice number"


# ============================================================================
# Security Errors
# ============================================================================


class WebhookSignatureError(AppException):
    """
    Raised when an inbound webhook fails signature verification.

    WHY: Unsigned or mis-signed events must never reach the ledger.
    They are rejected with a 400 and never retried by the provider as
    a success.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid webhook signature"


# ============================================================================
# Transient Errors
# ============================================================================


class LedgerUnavailableError(AppException):
    """
    Raised when the invoice ledger cannot be read or written right now.

    WHY: This is the only webhook outcome that should make the payment
    provider redeliver the event, so it maps to a retryable 503.

    HTTP Status: 503 Service Unavailable
    """

    status_code = 503
    default_message = "Invoice ledger temporarily unavailable"
