"""Construction of the services used by CLI commands."""

import logging

from pydantic import ValidationError

from src.cli.error_handlers import ConfigurationError
from src.config.settings import get_config
from src.services.nap_sheets_service import NapSheetsService

logger = logging.getLogger(__name__)


def build_nap_service() -> NapSheetsService:
    """
    Load settings and build the NAP service.

    Raises:
        ConfigurationError: If the settings are missing or invalid
    """
    try:
        settings = get_config()
    except ValidationError as e:
        missing = ", ".join(
            str(issue["loc"][0]) for issue in e.errors() if issue.get("loc")
        )
        raise ConfigurationError(
            f"Invalid or missing settings: {missing}",
            recovery_hint="Set GOOGLE_SPREADSHEET_ID and credentials in your .env file",
        ) from e

    logger.debug(f"Loaded settings: {settings.safe_dump()}")
    # One-shot commands do not live long enough to need the cache sweep
    return NapSheetsService.from_config(settings, start_cleanup=False)
