"""CLI utility functions."""

from src.cli.utils.formatters import (
    format_error,
    format_info,
    format_nap_details,
    format_nap_table,
    format_stats,
    format_success,
    format_table,
    format_warning,
)

__all__ = [
    "format_error",
    "format_info",
    "format_nap_details",
    "format_nap_table",
    "format_stats",
    "format_success",
    "format_table",
    "format_warning",
]
