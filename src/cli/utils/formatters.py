"""Output formatting utilities for CLI."""

from typing import Any, Dict, List

import click

from src.models.nap import Nap, NapStatus

STATUS_COLORS = {
    NapStatus.PENDING: "yellow",
    NapStatus.UNDER_CONSTRUCTION: "cyan",
    NapStatus.ACTIVE: "blue",
    NapStatus.VALIDATED: "green",
    NapStatus.REJECTED: "red",
}


def format_success(message: str) -> str:
    return click.style(f"✓ {message}", fg="green", bold=True)


def format_error(message: str) -> str:
    return click.style(f"✗ {message}", fg="red", bold=True)


def format_warning(message: str) -> str:
    return click.style(f"⚠ {message}", fg="yellow", bold=True)


def format_info(message: str) -> str:
    return click.style(f"ℹ {message}", fg="blue")


def format_status(status: NapStatus) -> str:
    return click.style(status.value, fg=STATUS_COLORS.get(status))


def format_table(headers: List[str], rows: List[List[Any]], max_width: int = 40) -> str:
    """Format data as a plain-text table.

    Args:
        headers: List of column headers
        rows: List of data rows (each row is a list of cell values)
        max_width: Maximum width for each column; longer cells are truncated

    Returns:
        Formatted table as a string
    """
    if not headers:
        return ""

    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[: len(headers)]):
            col_widths[i] = max(col_widths[i], len(str(cell)))
    col_widths = [min(w, max_width) for w in col_widths]

    def _line(cells: List[Any]) -> str:
        return (
            "|"
            + "|".join(
                f" {str(cell)[:width]:<{width}} "
                for cell, width in zip(cells, col_widths)
            )
            + "|"
        )

    separator = "+" + "+".join("-" * (w + 2) for w in col_widths) + "+"

    lines = [separator, _line(headers), separator]
    if rows:
        lines.extend(_line(row) for row in rows)
        lines.append(separator)

    return "\n".join(lines)


def format_nap_table(naps: List[Nap]) -> str:
    """Table of NAPs with id, position, status, municipality and registrant."""
    headers = ["ID", "Lat", "Lng", "Status", "Municipality", "Registered By"]
    rows = [
        [
            nap.id,
            f"{nap.coordinates.latitude:.5f}",
            f"{nap.coordinates.longitude:.5f}",
            nap.status.value,
            nap.municipality,
            nap.registered_by,
        ]
        for nap in naps
    ]
    return format_table(headers, rows)


def format_nap_details(nap: Nap) -> str:
    """Multi-line description of a single NAP."""
    lines = [
        f"ID:            {nap.id}",
        f"Status:        {format_status(nap.status)}",
        f"Coordinates:   {nap.coordinates.latitude}, {nap.coordinates.longitude}",
        f"Municipality:  {nap.municipality}",
        f"Sector:        {nap.sector}",
        f"Registered by: {nap.registered_by} ({nap.registration_date:%Y-%m-%d %H:%M})",
    ]
    if nap.validated_by:
        validated_at = (
            f" ({nap.validation_date:%Y-%m-%d %H:%M})" if nap.validation_date else ""
        )
        lines.append(f"Validated by:  {nap.validated_by}{validated_at}")
    if nap.validation_comments:
        lines.append(f"Comments:      {nap.validation_comments}")
    if nap.observations:
        lines.append(f"Observations:  {nap.observations}")
    if nap.photos:
        lines.append(f"Photos:        {len(nap.photos)}")
    return "\n".join(lines)


def format_stats(title: str, stats: Dict[str, Any]) -> str:
    """Indented ``key: value`` block under a title."""
    lines = [click.style(title, bold=True)]
    lines.extend(f"  {key}: {value}" for key, value in stats.items())
    return "\n".join(lines)
