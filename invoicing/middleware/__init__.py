"""
Middleware package.

WHY: Middleware provides cross-cutting concerns (request IDs and
request logging) that apply to all requests.
"""

from invoicing.middleware.request_context import (
    RequestContextMiddleware,
    RequestIdLogFilter,
    get_request_context,
    get_client_ip,
    get_user_agent,
    RequestContext,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestIdLogFilter",
    "get_request_context",
    "get_client_ip",
    "get_user_agent",
    "RequestContext",
]
