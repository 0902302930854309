"""Health check command."""

import click

from src.cli.error_handlers import with_error_handling
from src.cli.utils.formatters import format_error, format_stats, format_success
from src.cli.utils.services import build_nap_service


@click.command(name="health")
@click.option("--stats", "show_stats", is_flag=True, help="Show cache/retry statistics")
@click.pass_context
def health(ctx: click.Context, show_stats: bool):
    """Check access to the NAP spreadsheet.

    Exits with code 1 when the spreadsheet cannot be reached.
    """
    debug = bool(ctx.obj and ctx.obj.get("debug"))

    with with_error_handling(debug):
        with build_nap_service() as service:
            status = service.get_health_status()
            statistics = service.get_statistics()

    if status["status"] == "healthy":
        click.echo(format_success(f"Spreadsheet {status['spreadsheet_id']} is reachable"))
    else:
        click.echo(format_error(f"Spreadsheet unreachable: {status.get('error', 'unknown')}"))

    click.echo(f"Circuit breaker: {statistics['circuit_breaker']['state']}")

    if show_stats:
        click.echo()
        click.echo(format_stats("Cache", statistics["cache"]))
        click.echo(format_stats("Retry", statistics["retry"]))
        click.echo(format_stats("Errors", statistics["errors"]))

    if status["status"] != "healthy":
        ctx.exit(1)
