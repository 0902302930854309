"""NAP listing, inspection, registration and validation commands."""

import datetime as dt
from typing import Optional

import click
from pydantic import ValidationError

from src.cli.error_handlers import with_error_handling
from src.cli.utils.formatters import (
    format_info,
    format_nap_details,
    format_nap_table,
    format_success,
    format_warning,
)
from src.cli.utils.services import build_nap_service
from src.errors import AppError, ErrorCodes
from src.models.nap import Coordinates, NapCreate, NapStatus, NapUpdate

STATUS_CHOICES = [status.value for status in NapStatus]

# Statuses that record who validated the NAP and when
VALIDATION_OUTCOMES = {NapStatus.VALIDATED, NapStatus.REJECTED}


def _debug(ctx: click.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("debug"))


@click.command(name="list-naps")
@click.option("--pending", is_flag=True, help="Only NAPs awaiting validation")
@click.option("--municipality", type=str, default=None, help="Filter by municipality")
@click.pass_context
def list_naps(ctx: click.Context, pending: bool, municipality: Optional[str]):
    """List NAPs registered in the spreadsheet.

    Example:
        nap-cli list-naps
        nap-cli list-naps --pending --municipality Chia
    """
    with with_error_handling(_debug(ctx)):
        with build_nap_service() as service:
            naps = service.get_pending_naps() if pending else service.get_all_naps()

        if municipality:
            wanted = municipality.strip().lower()
            naps = [nap for nap in naps if nap.municipality.lower() == wanted]

        if not naps:
            click.echo(format_info("No NAPs found."))
            return

        click.echo(format_nap_table(naps))
        click.echo()
        click.echo(format_success(f"Found {len(naps)} NAP(s)"))


@click.command(name="show-nap")
@click.argument("nap_id")
@click.pass_context
def show_nap(ctx: click.Context, nap_id: str):
    """Show the details of a single NAP."""
    with with_error_handling(_debug(ctx)):
        with build_nap_service() as service:
            nap = service.get_nap_by_id(nap_id)

        if nap is None:
            raise AppError.not_found(f"NAP {nap_id}")

        click.echo(format_nap_details(nap))


@click.command(name="validate-nap")
@click.argument("nap_id")
@click.option(
    "--status",
    type=click.Choice(STATUS_CHOICES),
    required=True,
    help="New status of the NAP",
)
@click.option("--by", "validated_by", type=str, required=True, help="Validator email")
@click.option("--comments", type=str, default=None, help="Validation comments")
@click.pass_context
def validate_nap(
    ctx: click.Context,
    nap_id: str,
    status: str,
    validated_by: str,
    comments: Optional[str],
):
    """Record a validation decision or status change for a NAP.

    Example:
        nap-cli validate-nap NAP_1700000000000_ab12cd --status validado --by ana@isp.co
    """
    with with_error_handling(_debug(ctx)):
        new_status = NapStatus(status)
        update = NapUpdate(status=new_status, validation_comments=comments)
        if new_status in VALIDATION_OUTCOMES:
            update.validated_by = validated_by
            update.validation_date = dt.datetime.now(dt.timezone.utc)

        with build_nap_service() as service:
            updated = service.update_nap_status(nap_id, update)

        if updated:
            click.echo(format_success(f"NAP {nap_id} set to {new_status.value}"))
        else:
            click.echo(format_warning(f"Nothing to update for NAP {nap_id}"))


@click.command(name="add-nap")
@click.option("--lat", "latitude", type=float, required=True, help="Latitude")
@click.option("--lng", "longitude", type=float, required=True, help="Longitude")
@click.option("--by", "registered_by", type=str, required=True, help="Technician email")
@click.option("--municipality", type=str, required=True)
@click.option("--sector", type=str, required=True)
@click.option("--observations", type=str, default="")
@click.pass_context
def add_nap(
    ctx: click.Context,
    latitude: float,
    longitude: float,
    registered_by: str,
    municipality: str,
    sector: str,
    observations: str,
):
    """Register a new NAP in the spreadsheet."""
    with with_error_handling(_debug(ctx)):
        try:
            coordinates = Coordinates(latitude=latitude, longitude=longitude)
        except ValidationError as e:
            raise AppError.validation(
                f"Invalid coordinates ({latitude}, {longitude}): latitude must be "
                f"within [-90, 90] and longitude within [-180, 180]",
                details=e.errors(),
                error_code=ErrorCodes.INVALID_COORDINATES,
            ) from e

        nap = NapCreate(
            coordinates=coordinates,
            registered_by=registered_by,
            municipality=municipality,
            sector=sector,
            observations=observations,
        )

        with build_nap_service() as service:
            nap_id = service.add_nap(nap)

        click.echo(format_success(f"Registered NAP {nap_id}"))
