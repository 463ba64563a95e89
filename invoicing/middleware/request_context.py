"""
Request context middleware.

WHAT: Assigns every request an ID and records who sent it, making both
available to log records for the lifetime of the request.

WHY: Webhook deliveries, checkout attempts and staff edits for the same
invoice interleave. A request ID on every log line (and echoed back in
the ``X-Request-ID`` response header) lets one delivery be traced from
signature check to ledger update.

HOW: Starlette BaseHTTPMiddleware stores a RequestContext in a ContextVar;
RequestIdLogFilter copies the current request ID onto each log record.
"""

import logging
import re
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Inbound IDs are echoed into logs and headers, so accept only a safe shape.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


@dataclass
class RequestContext:
    """
    Container for request-scoped context data.

    Fields:
    - request_id: Identifier for log correlation
    - ip_address: Client's real IP (considering proxies)
    - user_agent: Client's browser/application identifier
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    ip_address: str
    user_agent: Optional[str]
    path: str
    method: str


# WHY: ContextVar gives each concurrent request its own isolated context
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request, None otherwise
    """
    return _request_context.get()


def get_client_ip(request: Request) -> str:
    """
    Extract the real client IP address from a request.

    HOW: Checks headers in order of trust:
    1. X-Real-IP (set by proxies like nginx)
    2. X-Forwarded-For (first entry is the original client)
    3. request.client.host (direct connection IP)

    Args:
        request: The incoming request

    Returns:
        Client IP address as string
    """
    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    """Extract the User-Agent header from a request."""
    return request.headers.get("User-Agent")


def resolve_request_id(request: Request) -> str:
    """
    Reuse the caller's X-Request-ID when it is well formed, else mint one.

    Args:
        request: The incoming request

    Returns:
        Request ID string
    """
    incoming = request.headers.get(REQUEST_ID_HEADER)
    if incoming and _REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIdLogFilter(logging.Filter):
    """
    Logging filter that stamps records with the current request ID.

    Usage:
        handler.addFilter(RequestIdLogFilter())
        formatter = logging.Formatter("%(request_id)s %(message)s")
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = _request_context.get()
        record.request_id = context.request_id if context else "-"
        return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    HOW: Stores context in both:
    - request.state (for access from request handlers)
    - ContextVar (for access from services and log filters)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request and add context.

        Args:
            request: Incoming request
            call_next: Next middleware/handler

        Returns:
            Response with request ID header added
        """
        context = RequestContext(
            request_id=resolve_request_id(request),
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            path=request.url.path,
            method=request.method,
        )

        request.state.context = context
        token = _request_context.set(context)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = context.request_id

            logger.info(
                f"{context.method} {context.path} -> {response.status_code}",
                extra={
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                    "ip_address": context.ip_address,
                },
            )
            return response

        finally:
            _request_context.reset(token)
