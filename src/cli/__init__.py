"""NAP Registry CLI.

This module provides a command-line interface to the NAP registry
spreadsheet: listing, inspecting, registering and validating NAPs, and
checking the health of the Google Sheets connection.
"""

from typing import Optional

import click

from src.cli.commands.health import health
from src.cli.commands.naps import add_nap, list_naps, show_nap, validate_nap
from src.config.logging_config import LoggingConfig, configure_logging
from src.utils.logging_utils import LogContext, generate_correlation_id

__version__ = "1.0.0"


@click.group(help="NAP Registry CLI - Register and validate NAP cabinets")
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Verbose logging and full stack traces")
@click.option(
    "--log-format",
    type=click.Choice(["standard", "json"]),
    default=None,
    help="Log output format (default: LOG_FORMAT or standard)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, log_format: Optional[str]):
    """NAP Registry CLI main entry point."""
    configure_logging(
        LoggingConfig.from_env(
            log_level="DEBUG" if debug else None, log_format=log_format
        )
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.with_resource(LogContext(correlation_id=generate_correlation_id()))


cli.add_command(list_naps)
cli.add_command(show_nap)
cli.add_command(validate_nap)
cli.add_command(add_nap)
cli.add_command(health)


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
