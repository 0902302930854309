"""
Error classification utilities for distinguishing retryable from fatal errors.

The classifier does not depend on a particular client library: it reads the
HTTP status from a Google ``HttpError`` (``resp.status``) or from any error
carrying ``response.status`` / ``response.status_code``, network error codes
from ``code`` or ``errno``, and rate-limit markers from the message text.
"""

import errno
import logging
import socket
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import requests.exceptions
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ENOTFOUND", "ECONNREFUSED", "ETIMEDOUT"})
NETWORK_ERRNOS = frozenset({errno.ECONNRESET, errno.ECONNREFUSED, errno.ETIMEDOUT})
RATE_LIMIT_CODES = frozenset({"RATE_LIMIT_EXCEEDED", "QUOTA_EXCEEDED"})
RATE_LIMIT_MARKERS = ("quota exceeded", "rate limit", "ratelimitexceeded")

NETWORK_EXCEPTIONS = (
    socket.timeout,
    socket.gaierror,
    ConnectionError,
    TimeoutError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


class ErrorType(Enum):
    """Classification of error types."""

    RETRYABLE = "retryable"  # 429, 5xx, network errors, quota markers
    FATAL = "fatal"  # 4xx except 429
    UNKNOWN = "unknown"  # nothing recognizable, not retried


def get_status_code(exception: BaseException) -> Optional[int]:
    """
    Extract an HTTP status code from an exception, if it carries one.

    Args:
        exception: The exception to inspect

    Returns:
        Status code as int, or None
    """
    if isinstance(exception, HttpError):
        return _as_int(getattr(exception.resp, "status", None))

    response = getattr(exception, "response", None)
    if response is None:
        return None

    for attr in ("status", "status_code"):
        status = _as_int(getattr(response, attr, None))
        if status is not None:
            return status

    return None


def message_contains(exception: BaseException, markers: Iterable[str]) -> bool:
    """Case-insensitive check of the exception text against markers."""
    text = str(exception).lower()
    message = getattr(exception, "message", None)
    if isinstance(message, str):
        text = f"{text} {message.lower()}"
    return any(marker.lower() in text for marker in markers)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _is_network_error(exception: BaseException) -> bool:
    if isinstance(exception, NETWORK_EXCEPTIONS):
        return True

    code = getattr(exception, "code", None)
    if isinstance(code, str) and code in NETWORK_ERROR_CODES:
        return True

    return getattr(exception, "errno", None) in NETWORK_ERRNOS


def classify_error(exception: BaseException) -> ErrorType:
    """
    Classify an exception into retryable, fatal, or unknown.

    Args:
        exception: The exception to classify

    Returns:
        ErrorType classification
    """
    if _is_network_error(exception):
        return ErrorType.RETRYABLE

    status_code = get_status_code(exception)
    if status_code is not None and (status_code == 429 or 500 <= status_code < 600):
        return ErrorType.RETRYABLE

    # Google reports per-user quota as 403 with a rate-limit reason
    code = getattr(exception, "code", None)
    if isinstance(code, str) and code in RATE_LIMIT_CODES:
        return ErrorType.RETRYABLE
    if message_contains(exception, RATE_LIMIT_MARKERS):
        return ErrorType.RETRYABLE

    if status_code is not None and 400 <= status_code < 500:
        return ErrorType.FATAL

    return ErrorType.UNKNOWN


def is_retryable(exception: BaseException) -> bool:
    """
    Check if an exception should be retried.

    Args:
        exception: The exception to check

    Returns:
        True if retryable, False otherwise
    """
    return classify_error(exception) is ErrorType.RETRYABLE


def is_rate_limited(exception: BaseException) -> bool:
    """True for HTTP 429 and quota/rate-limit signals."""
    if get_status_code(exception) == 429:
        return True
    code = getattr(exception, "code", None)
    if isinstance(code, str) and code in RATE_LIMIT_CODES:
        return True
    return message_contains(exception, RATE_LIMIT_MARKERS)


def describe_error(exception: BaseException) -> str:
    """
    Get a human-readable error description.

    Args:
        exception: The exception to describe

    Returns:
        Error description string
    """
    error_type = classify_error(exception)
    status_code = get_status_code(exception)

    if status_code == 429 or (status_code is None and is_rate_limited(exception)):
        return f"Rate limit error - {error_type.value}"
    if status_code is not None and 500 <= status_code < 600:
        return f"Server error (HTTP {status_code}) - {error_type.value}"
    if status_code is not None and 400 <= status_code < 500:
        return f"Client error (HTTP {status_code}) - {error_type.value}"

    if isinstance(exception, (socket.timeout, TimeoutError, requests.exceptions.Timeout)):
        return f"Network timeout error - {error_type.value}"
    if _is_network_error(exception):
        return f"Network connection error - {error_type.value}"

    return f"{type(exception).__name__}: {exception} - {error_type.value}"


class ErrorClassifier:
    """
    Classifies errors and keeps per-type counters.

    Used by services that want to report how their failures were distributed
    between transient and fatal causes.
    """

    def __init__(self):
        """Initialize error classifier with statistics tracking."""
        self._stats: Dict[str, int] = {
            "retryable": 0,
            "fatal": 0,
            "unknown": 0,
            "total": 0,
        }

    def classify(self, exception: BaseException) -> ErrorType:
        error_type = classify_error(exception)
        self._stats["total"] += 1
        self._stats[error_type.value] += 1
        return error_type

    def classify_batch(self, exceptions: List[BaseException]) -> List[ErrorType]:
        return [self.classify(exc) for exc in exceptions]

    def get_statistics(self) -> Dict[str, int]:
        return self._stats.copy()

    def reset_statistics(self):
        self._stats = {"retryable": 0, "fatal": 0, "unknown": 0, "total": 0}
