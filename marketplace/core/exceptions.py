"""
Error taxonomy for the session and authorization layer.

Every error carries the HTTP status it maps to at the boundary and a public
message that is safe to show to clients.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Base class for session layer errors."""

    status_code: int = 500
    code: str = "session_error"
    default_message: str = "Session error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class AuthenticationRequired(SessionError):
    """No valid session was found for the request."""

    status_code = 401
    code = "authentication_required"
    default_message = "Authentication required"


class InsufficientPrivilege(SessionError):
    """A valid session exists but its role does not satisfy the route."""

    status_code = 403
    code = "insufficient_privilege"
    default_message = "Insufficient privilege"


class InvalidCredentials(SessionError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class StorageUnavailable(SessionError):
    """The durable session store failed on a write or delete.

    ``deleted`` reports how many records were removed before the failure
    when a batch operation was only partially applied.
    """

    status_code = 503
    code = "storage_unavailable"
    default_message = "Session storage unavailable"

    def __init__(self, message: Optional[str] = None, deleted: int = 0):
        super().__init__(message)
        self.deleted = deleted


class InvalidRole(SessionError, ValueError):
    status_code = 400
    code = "invalid_role"
    default_message = "Invalid role"


class InvalidSessionUpdate(SessionError):
    status_code = 400
    code = "invalid_session_update"
    default_message = "Invalid session update"


def error_payload(error: SessionError) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": error.message, "code": error.code}
    if error.details:
        payload["details"] = error.details
    return payload


async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
    """Translate a SessionError into its boundary response."""
    if exc.status_code >= 500:
        logger.error(
            "Session layer failure on %s: %s", request.url.path, exc.message
        )
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: never leak internals to the client."""
    logger.exception("Unexpected error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "internal_error"},
    )
