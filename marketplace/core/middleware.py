"""
HTTP middleware for the marketplace backend.

Security headers, per-request correlation ids, and the cache-only session
hint used for coarse routing decisions.
"""

import logging
import re

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from marketplace.core.logging_config import correlation_id_ctx, get_correlation_id

logger = logging.getLogger(__name__)

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to every response.

    Authentication responses additionally get ``Cache-Control: no-store`` so
    intermediaries never cache a response that sets or clears a session.
    """

    security_headers = {
        # Prevent content type sniffing
        "X-Content-Type-Options": "nosniff",
        # Prevent clickjacking
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        for header, value in self.security_headers.items():
            response.headers.setdefault(header, value)

        if request.url.path.startswith("/api/auth"):
            response.headers["Cache-Control"] = "no-store"

        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to the request for structured logs."""

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get("x-request-id")
        token = correlation_id_ctx.set(
            incoming if incoming and _REQUEST_ID_PATTERN.match(incoming) else None
        )
        try:
            correlation_id = get_correlation_id()
            response = await call_next(request)
            response.headers["X-Request-ID"] = correlation_id
            return response
        finally:
            correlation_id_ctx.reset(token)


class SessionHintMiddleware(BaseHTTPMiddleware):
    """
    Attach a cache-only session hint to ``request.state.session_hint``.

    The hint may be None for a session that exists durably but is not cached
    in this process. Never use it to authorize anything.
    """

    async def dispatch(self, request: Request, call_next):
        reader = getattr(request.app.state, "fast_path_reader", None)
        request.state.session_hint = reader.read(request) if reader is not None else None
        return await call_next(request)
