"""Structured logging utilities with context support."""

import logging
import threading
import uuid
from typing import Any, Dict, Optional, cast

# Thread-local storage for log context
_thread_local = threading.local()

# Sensitive field names to redact
SENSITIVE_FIELDS = {
    "password",
    "token",
    "api_key",
    "secret",
    "private_key",
    "access_token",
    "refresh_token",
    "credentials",
    "authorization",
    "jwt",
}


def generate_correlation_id() -> str:
    """
    Generate a unique correlation ID for tracking a command or request.

    Returns:
        UUID string to use as correlation ID
    """
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """
    Get the current correlation ID from thread-local context.

    Returns:
        Current correlation ID or None if not set
    """
    context = getattr(_thread_local, "context", None)
    if context:
        return context.get("correlation_id")
    return None


def get_log_context() -> Dict[str, Any]:
    """Copy of the fields currently attached to log records."""
    return dict(getattr(_thread_local, "context", {}))


class LogContext:
    """
    Context manager for adding structured fields to log records.

    Fields live in thread-local storage and are copied onto every record by
    the filter installed by ``configure_logging``. Nested contexts merge
    their fields and restore the outer ones on exit.

    Example:
        with LogContext(nap_id="NAP_1700000000000_ab12cd", operation="validate"):
            logger.info("Updating NAP status")
    """

    def __init__(self, **kwargs):
        self.fields = kwargs
        self.previous_context: Optional[Dict[str, Any]] = None

    def __enter__(self):
        if not hasattr(_thread_local, "context"):
            _thread_local.context = {}

        self.previous_context = _thread_local.context.copy()
        _thread_local.context.update(self.fields)

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_context is not None:
            _thread_local.context = self.previous_context
        else:
            _thread_local.context = {}


class _ContextFilter(logging.Filter):
    """Logging filter that adds context fields to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in getattr(_thread_local, "context", {}).items():
            setattr(record, key, value)
        return True


def sanitize_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Sanitize sensitive fields in a dictionary.

    Recursively redacts values whose key contains a sensitive field name
    (case-insensitive).

    Args:
        data: Dictionary to sanitize

    Returns:
        Sanitized copy with sensitive values redacted
    """
    if not isinstance(data, dict):
        return data

    sanitized: Dict[str, Any] = {}

    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in SENSITIVE_FIELDS):
            sanitized[key] = "***REDACTED***" if value is not None else None
        elif isinstance(value, dict):
            sanitized[key] = sanitize_sensitive_data(cast(Dict[str, Any], value))
        else:
            sanitized[key] = value

    return sanitized
