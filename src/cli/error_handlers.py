"""Error handling for CLI commands."""

import sys
import traceback
from typing import Dict, Optional, Tuple

import click
from pydantic import ValidationError

from src.cli.utils.formatters import format_error, format_warning
from src.errors import AppError, ErrorKind

# Exit code, title and recovery hint per error kind
KIND_EXIT_CODES: Dict[ErrorKind, Tuple[int, str, Optional[str]]] = {
    ErrorKind.EXTERNAL_SERVICE: (
        2,
        "Google Sheets Error",
        "Check the spreadsheet ID and range in your .env file",
    ),
    ErrorKind.VALIDATION: (3, "Invalid Input", None),
    ErrorKind.CONFLICT: (4, "Conflict", None),
    ErrorKind.AUTHENTICATION: (
        5,
        "Authentication Failed",
        "Check your service account credentials in the .env file",
    ),
    ErrorKind.AUTHORIZATION: (
        6,
        "Permission Denied",
        "Share the spreadsheet with the service account email",
    ),
    ErrorKind.NOT_FOUND: (7, "Not Found", None),
    ErrorKind.RATE_LIMIT: (
        8,
        "Rate Limit Exceeded",
        "Wait a few minutes before retrying",
    ),
    ErrorKind.INTERNAL: (9, "Internal Error", None),
    ErrorKind.SERVICE_UNAVAILABLE: (
        10,
        "Service Unavailable",
        "Google Sheets is failing repeatedly; try again in a minute",
    ),
}


class ConfigurationError(Exception):
    """Settings could not be loaded."""

    def __init__(self, message: str, recovery_hint: Optional[str] = None):
        self.message = message
        self.recovery_hint = recovery_hint
        super().__init__(message)


def handle_cli_error(error: BaseException, debug: bool = False) -> int:
    """
    Print a user-friendly message for an error.

    Args:
        error: The exception that occurred
        debug: Whether to show full stack trace

    Returns:
        Exit code for the error
    """
    if isinstance(error, ConfigurationError):
        click.echo(format_error(f"Configuration Error: {error.message}"))
        if error.recovery_hint:
            click.echo(format_warning(f"Hint: {error.recovery_hint}"))
        return 1

    if isinstance(error, AppError):
        exit_code, title, hint = KIND_EXIT_CODES[error.kind]
        click.echo(format_error(f"{title} [{error.code}]: {error.message}"))
        if hint:
            click.echo(format_warning(f"Hint: {hint}"))
        if debug and error.details:
            click.echo(f"Details: {error.details}")
        return exit_code

    if isinstance(error, ValidationError):
        click.echo(format_error("Invalid Input"))
        for issue in error.errors():
            location = ".".join(str(part) for part in issue["loc"])
            click.echo(f"  {location}: {issue['msg']}")
        return 3

    if isinstance(error, click.Abort):
        click.echo(format_warning("\nOperation cancelled by user"))
        return 130  # Standard exit code for SIGINT

    click.echo(format_error(f"Unexpected Error: {type(error).__name__}"))
    click.echo(str(error))

    if debug:
        click.echo("\nFull stack trace:")
        click.echo("".join(traceback.format_exception(type(error), error, error.__traceback__)))
    else:
        click.echo(format_warning("\nRun with --debug flag for full stack trace"))

    return 255


class _ErrorHandler:
    """Context manager exiting the process with ``handle_cli_error``'s code."""

    def __init__(self, show_debug: bool):
        self.show_debug = show_debug

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_val is not None and not isinstance(exc_val, SystemExit):
            sys.exit(handle_cli_error(exc_val, self.show_debug))
        return False


def with_error_handling(debug: bool = False) -> _ErrorHandler:
    """
    Standardized error handling for CLI command bodies.

    Example:
        with with_error_handling(debug):
            service.get_all_naps()
    """
    return _ErrorHandler(debug)
