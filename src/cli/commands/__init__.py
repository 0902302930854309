"""CLI commands."""

from src.cli.commands.health import health
from src.cli.commands.naps import add_nap, list_naps, show_nap, validate_nap

__all__ = ["add_nap", "health", "list_naps", "show_nap", "validate_nap"]
