"""
Security utilities for the marketplace backend

This module provides session identifier generation, password hashing,
shared-secret verification and request metadata extraction.
"""

import hmac
import logging
import re
import secrets
from typing import Optional

from fastapi import Request
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

# 32 random bytes rendered as lowercase hex
SESSION_ID_BYTES = 32
_SESSION_ID_PATTERN = re.compile(r"^[0-9a-f]{%d}$" % (SESSION_ID_BYTES * 2))

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def generate_session_id() -> str:
    """
    Generate an opaque session identifier.

    The value comes from the operating system CSPRNG and carries 256 bits
    of entropy. It encodes nothing about the user or the time of issue.
    """
    return secrets.token_hex(SESSION_ID_BYTES)


def is_well_formed_session_id(value: Optional[str]) -> bool:
    """Check the shape of a presented session identifier."""
    if not value or not isinstance(value, str):
        return False
    return bool(_SESSION_ID_PATTERN.match(value))


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        logger.warning("Stored password hash could not be parsed")
        return False


def verify_bearer_token(authorization: Optional[str], expected: str) -> bool:
    """
    Validate an ``Authorization: Bearer <token>`` header in constant time.

    Args:
        authorization: Raw header value, may be None
        expected: The configured shared secret

    Returns:
        True if the header carries exactly the expected secret
    """
    if not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip().encode("utf-8"), expected.encode("utf-8"))


def get_client_ip(request: Request) -> Optional[str]:
    """
    Resolve the caller's IP address.

    Prefers the first hop of X-Forwarded-For, then X-Real-IP, then the socket
    peer address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return None
