"""
Structured logging configuration with security focus.

Provides JSON-formatted logging with correlation IDs, security event tagging,
and message sanitization so session identifiers and secrets never reach the
log stream.
"""

import hashlib
import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variable for correlation ID (used across request lifecycle)
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

SECURITY_LOGGER_NAME = "marketplace.security"

_STANDARD_RECORD_FIELDS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message", "asctime",
}


class SecurityLogFilter(logging.Filter):
    """
    Filter to identify and tag security-related log events.

    Adds security context and ensures sensitive data is not logged.
    """

    security_keywords = (
        "authentication", "authorization", "credential", "token", "secret",
        "login", "logout", "session", "revoke", "forbidden", "unauthorized",
        "privilege", "suspicious",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message_lower = record.getMessage().lower()
        is_security = getattr(record, "security_event", False) or any(
            keyword in message_lower for keyword in self.security_keywords
        )

        record.security_event = is_security
        if not hasattr(record, "security_level"):
            record.security_level = (
                self._determine_security_level(message_lower) if is_security else "info"
            )

        # Sanitize after formatting so %-args are covered too
        record.msg = sanitize_message(record.getMessage())
        record.args = None
        return True

    def _determine_security_level(self, message_lower: str) -> str:
        if any(word in message_lower for word in ("unauthorized", "forbidden", "revoke")):
            return "high"
        if any(word in message_lower for word in ("suspicious", "failed", "invalid", "expired")):
            return "medium"
        return "low"


def sanitize_message(message: str) -> str:
    """Mask tokens, emails and key=value secrets in a log message."""
    # Hex/base64-looking runs of 20+ characters (session ids, tokens)
    message = re.sub(r"\b[A-Za-z0-9+/_-]{20,}\b", "****", message)

    # Keep the first letter and the domain of email addresses
    message = re.sub(
        r"\b([a-zA-Z])[a-zA-Z0-9._%+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b",
        r"\1****@\2",
        message,
    )

    message = re.sub(
        r"(password|secret|key|token)[\s]*[=:][\s]*[^\s]+",
        r"\1=****",
        message,
        flags=re.IGNORECASE,
    )
    return message


def session_fingerprint(session_id: str) -> str:
    """Short, non-reversible handle for a session id, safe to log."""
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:8]


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging with security context.
    """

    def __init__(self, include_sensitive: bool = False):
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if getattr(record, "security_event", False):
            log_entry["security"] = {
                "event": True,
                "level": getattr(record, "security_level", "info"),
            }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_FIELDS or key in ("security_event", "security_level"):
                continue
            if not self.include_sensitive and self._is_sensitive_field(key):
                extra_fields[key] = "[REDACTED]"
            else:
                extra_fields[key] = value

        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=self._json_default)

    def _is_sensitive_field(self, key: str) -> bool:
        sensitive_keywords = {
            "password", "secret", "token", "credential", "cookie", "private",
            "session_id",
        }
        key_lower = key.lower()
        return any(keyword in key_lower for keyword in sensitive_keywords)

    def _json_default(self, obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


class PlainTextSecurityFormatter(logging.Formatter):
    """
    Plain text formatter that prefixes security events.

    Used when structured logging is disabled.
    """

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        if getattr(record, "security_event", False):
            security_level = getattr(record, "security_level", "info").upper()
            formatted = f"[SECURITY:{security_level}] {formatted}"
        return formatted


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    log_file: Optional[str] = None,
    include_sensitive: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
        log_file: Optional file path for logging
        include_sensitive: Whether to include sensitive extras in JSON logs
    """
    logging.root.handlers.clear()

    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = PlainTextSecurityFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    security_filter = SecurityLogFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(security_filter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(security_filter)
        root_logger.addHandler(file_handler)

    # Reduce noise from external libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_correlation_id() -> str:
    """Get or create a correlation ID for request tracking."""
    correlation_id = correlation_id_ctx.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        correlation_id_ctx.set(correlation_id)
    return correlation_id


def log_security_event(
    event_type: str,
    message: str,
    level: str = "low",
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a security event with structured context.

    Args:
        event_type: Type of security event (e.g. 'session_created')
        message: Human-readable message
        level: Security level ('low', 'medium', 'high')
        user_id: Optional user identifier
        ip_address: Optional IP address
        extra: Optional additional context
    """
    logger = logging.getLogger(SECURITY_LOGGER_NAME)

    log_level = logging.WARNING if level == "high" else logging.INFO
    log_extra: Dict[str, Any] = {
        "event_type": event_type,
        "security_level": level,
        "security_event": True,
    }
    if user_id:
        log_extra["user_id"] = user_id
    if ip_address:
        log_extra["ip_address"] = ip_address
    if extra:
        log_extra["context"] = extra

    logger.log(log_level, message, extra=log_extra)


def log_authentication_attempt(
    success: bool, user_id: Optional[str] = None, ip_address: Optional[str] = None
) -> None:
    """Log an authentication attempt"""
    if success:
        log_security_event(
            "authentication_success",
            f"Successful authentication for user: {user_id or 'unknown'}",
            level="low",
            user_id=user_id,
            ip_address=ip_address,
        )
    else:
        log_security_event(
            "authentication_failure",
            "Failed authentication attempt",
            level="medium",
            ip_address=ip_address,
        )


def init_application_logging(log_level: str = "INFO", structured: bool = False) -> None:
    """Initialize logging for the FastAPI application"""
    setup_logging(log_level=log_level, enable_json=structured)
    logging.getLogger(SECURITY_LOGGER_NAME).info(
        "Security-aware logging enabled (structured=%s)", structured
    )
