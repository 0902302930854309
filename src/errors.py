"""
Application error model for the NAP registry.

Errors are described by a single exception type carrying an ``ErrorKind``.
Each kind knows its HTTP status and machine-readable code, so the boundary
that renders errors (CLI or HTTP) only has to switch on the kind.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Kinds of application errors with their status code and code string."""

    VALIDATION = (400, "VALIDATION_ERROR")
    AUTHENTICATION = (401, "AUTHENTICATION_ERROR")
    AUTHORIZATION = (403, "AUTHORIZATION_ERROR")
    NOT_FOUND = (404, "NOT_FOUND_ERROR")
    CONFLICT = (409, "CONFLICT_ERROR")
    RATE_LIMIT = (429, "RATE_LIMIT_ERROR")
    INTERNAL = (500, "INTERNAL_ERROR")
    EXTERNAL_SERVICE = (502, "EXTERNAL_SERVICE_ERROR")
    SERVICE_UNAVAILABLE = (503, "SERVICE_UNAVAILABLE")

    def __init__(self, status_code: int, code: str):
        self.status_code = status_code
        self.code = code


class ErrorCodes:
    """Scenario-specific error codes attached to ``AppError.error_code``."""

    # Google Sheets
    SHEETS_CONNECTION_FAILED = "SHEETS_001"
    SHEETS_INVALID_RANGE = "SHEETS_002"
    SHEETS_PERMISSION_DENIED = "SHEETS_003"
    SHEETS_QUOTA_EXCEEDED = "SHEETS_004"

    # NAP validation
    INVALID_COORDINATES = "NAP_001"

    # General
    INTERNAL_SERVER_ERROR = "GEN_001"


class AppError(Exception):
    """
    Application error tagged with an ``ErrorKind``.

    Attributes:
        kind: The error kind (drives status code and code string)
        message: Human-readable message
        error_code: Optional scenario code from ``ErrorCodes``
        details: Optional extra information (never shown to end users verbatim)
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        error_code: Optional[str] = None,
        details: Any = None,
    ):
        self.kind = kind
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def code(self) -> str:
        return self.error_code or self.kind.code

    def __repr__(self) -> str:
        return f"AppError({self.kind.name}, {self.message!r}, code={self.code!r})"

    @classmethod
    def validation(
        cls, message: str, details: Any = None, error_code: Optional[str] = None
    ) -> "AppError":
        return cls(ErrorKind.VALIDATION, message, error_code=error_code, details=details)

    @classmethod
    def not_found(cls, resource: str = "Resource") -> "AppError":
        return cls(ErrorKind.NOT_FOUND, f"{resource} not found")

    @classmethod
    def external_service(
        cls,
        service: str,
        message: str,
        error_code: Optional[str] = None,
        details: Any = None,
    ) -> "AppError":
        return cls(
            ErrorKind.EXTERNAL_SERVICE,
            f"{service} service error: {message}",
            error_code=error_code,
            details=details,
        )

    @classmethod
    def service_unavailable(cls, service: str) -> "AppError":
        """Error raised by an open circuit breaker."""
        return cls(
            ErrorKind.SERVICE_UNAVAILABLE,
            f"{service} temporarily unavailable",
        )


def to_error_response(
    error: Exception, request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the error payload returned to API clients.

    Unknown exceptions are reported as ``INTERNAL`` with a generic message
    so that internal details never leak to clients.

    Args:
        error: The exception to render
        request_id: Optional request/correlation id

    Returns:
        Dictionary with ``success`` flag and ``error`` body
    """
    if isinstance(error, AppError):
        app_error = error
    else:
        logger.error(f"Unhandled error: {type(error).__name__}: {error}")
        app_error = AppError(
            ErrorKind.INTERNAL,
            "Internal server error",
            error_code=ErrorCodes.INTERNAL_SERVER_ERROR,
        )

    body: Dict[str, Any] = {
        "code": app_error.code,
        "message": app_error.message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    # Details of external failures may hold raw client errors
    if app_error.details is not None and app_error.kind is ErrorKind.VALIDATION:
        body["details"] = app_error.details

    if request_id:
        body["request_id"] = request_id

    return {"success": False, "status_code": app_error.status_code, "error": body}
