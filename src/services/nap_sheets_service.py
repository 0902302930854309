"""
Google Sheets access layer for NAP records.

Every read is fronted by the TTL cache and every Sheets API call goes
through the circuit breaker and the retry handler. Writes invalidate the
cache entries derived from the changed rows.
"""

import datetime as dt
import logging
import secrets
import threading
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

import google.auth
from google.oauth2 import service_account
from googleapiclient.discovery import build

from src.errors import AppError, ErrorCodes, ErrorKind
from src.models.nap import Nap, NapCreate, NapStatus, NapUpdate, SHEET_COLUMNS
from src.services.cache_service import CacheKeys, CacheService
from src.services.error_classifier import (
    ErrorClassifier,
    describe_error,
    get_status_code,
    is_rate_limited,
)
from src.services.retry_handler import (
    CircuitBreaker,
    RetryHandler,
    RetryOptions,
    google_sheets_retry_condition,
)
from src.utils.logging_utils import LogContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NapSheetsService:
    """
    NAP repository backed by a Google Sheets spreadsheet.

    Features:
    - Service account credentials or Application Default Credentials (ADC)
    - Cached reads with a TTL per query type
    - Retry with exponential backoff inside a circuit breaker
    - Cascading cache invalidation on writes
    - Polling change listener

    Example:
        >>> from src.config.settings import get_config
        >>> with NapSheetsService.from_config(get_config()) as naps:
        ...     pending = naps.get_pending_naps()
    """

    SERVICE_NAME = "Google Sheets"

    def __init__(
        self,
        config: Any,
        cache: Optional[CacheService] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_handler: Optional[RetryHandler] = None,
        service: Any = None,
    ):
        """
        Initialize the service.

        Args:
            config: NapRegistryConfig (or compatible object)
            cache: Cache instance (built from config when None)
            circuit_breaker: Breaker guarding the Sheets API
            retry_handler: Retry policy for Sheets calls
            service: Prebuilt Sheets API client (built from credentials when None)
        """
        self.config = config
        self.spreadsheet_id = config.google_spreadsheet_id
        self.range_name = config.google_sheets_range
        self._sheet_prefix = (
            self.range_name.split("!", 1)[0] + "!" if "!" in self.range_name else ""
        )

        if cache is None:
            cache = CacheService(
                max_size=config.cache_max_size,
                ttl_policy=config.get_cache_ttl_policy(),
                cleanup_interval=config.cache_cleanup_interval,
            )
        if circuit_breaker is None:
            circuit_breaker = CircuitBreaker(
                failure_threshold=config.circuit_breaker_threshold,
                recovery_timeout=config.circuit_breaker_timeout,
                name=self.SERVICE_NAME,
            )
        if retry_handler is None:
            retry_handler = RetryHandler(
                RetryOptions(
                    max_attempts=config.max_retries,
                    base_delay=config.retry_delay,
                    max_delay=config.retry_max_delay,
                    backoff_factor=config.retry_backoff_factor,
                    retry_condition=google_sheets_retry_condition,
                )
            )
        self.cache = cache
        self.circuit_breaker = circuit_breaker
        self.retry_handler = retry_handler
        self.error_classifier = ErrorClassifier()

        self._service = service if service is not None else self._create_service()

        self._listener_thread: Optional[threading.Thread] = None
        self._listener_stop: Optional[threading.Event] = None

    @classmethod
    def from_config(cls, config: Any, start_cleanup: bool = True) -> "NapSheetsService":
        """Build the service and its collaborators from settings."""
        instance = cls(config)
        if start_cleanup:
            instance.cache.start_periodic_cleanup()
        return instance

    def _create_service(self):
        """
        Create Google Sheets API client using a service account or ADC.

        Returns:
            Google Sheets API service instance
        """
        scopes = self.config.google_scopes
        credentials_info = self.config.get_google_service_account_info()

        try:
            if credentials_info:
                credentials = service_account.Credentials.from_service_account_info(
                    credentials_info, scopes=scopes
                )
                logger.info(
                    f"Google Sheets client initialized with service account "
                    f"{credentials_info['client_email']}"
                )
            else:
                credentials, project = google.auth.default(scopes=scopes)
                logger.info(f"Google Sheets client initialized with ADC for project: {project}")

            return build("sheets", "v4", credentials=credentials, cache_discovery=False)

        except Exception as e:
            logger.error(f"Failed to initialize Google Sheets client: {e}")
            raise AppError(
                ErrorKind.EXTERNAL_SERVICE,
                "Google Sheets client could not be initialized",
                error_code=ErrorCodes.SHEETS_CONNECTION_FAILED,
                details=str(e),
            ) from e

    def _execute(self, operation: Callable[[], T], operation_name: str) -> T:
        """
        Run a Sheets API call through the breaker and the retry handler.

        Raises:
            AppError: For circuit-open rejections and any API failure
        """
        with LogContext(operation=operation_name):
            try:
                return self.circuit_breaker.execute(
                    self.retry_handler.execute_with_retry, operation
                )
            except AppError:
                raise
            except Exception as e:
                self.error_classifier.classify(e)
                logger.error(f"{operation_name} failed: {describe_error(e)}")
                raise self._to_app_error(e, operation_name) from e

    def _to_app_error(self, error: Exception, operation_name: str) -> AppError:
        if is_rate_limited(error):
            return AppError(
                ErrorKind.RATE_LIMIT,
                f"Google Sheets quota exceeded during {operation_name}",
                error_code=ErrorCodes.SHEETS_QUOTA_EXCEEDED,
                details=str(error),
            )

        status_code = get_status_code(error)
        if status_code in (401, 403):
            return AppError.external_service(
                self.SERVICE_NAME,
                "Permission denied - check service account access",
                error_code=ErrorCodes.SHEETS_PERMISSION_DENIED,
                details=str(error),
            )
        if status_code in (400, 404):
            return AppError.external_service(
                self.SERVICE_NAME,
                f"Spreadsheet or range not found ({self.range_name})",
                error_code=ErrorCodes.SHEETS_INVALID_RANGE,
                details=str(error),
            )

        return AppError.external_service(
            self.SERVICE_NAME,
            f"{operation_name} failed",
            error_code=ErrorCodes.SHEETS_CONNECTION_FAILED,
            details=str(error),
        )

    def _get_values(self, range_name: str, operation_name: str) -> List[List[Any]]:
        def _read_operation():
            return (
                self._service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=self.spreadsheet_id,
                    range=range_name,
                    valueRenderOption="UNFORMATTED_VALUE",
                )
                .execute()
            )

        result = self._execute(_read_operation, operation_name)
        return result.get("values", [])

    def initialize(self) -> None:
        """Validate access to the spreadsheet once at startup."""
        title = self.test_connection()
        logger.info(f"Google Sheets service initialized (spreadsheet: {title})")

    def test_connection(self) -> str:
        """
        Check that the spreadsheet is reachable.

        Returns:
            Spreadsheet title

        Raises:
            AppError: If the spreadsheet cannot be read
        """

        def _metadata_operation():
            return (
                self._service.spreadsheets()
                .get(spreadsheetId=self.spreadsheet_id, fields="properties.title")
                .execute()
            )

        result = self._execute(_metadata_operation, "Validate connection")
        title = result.get("properties", {}).get("title", "")
        logger.debug(f"Connected to spreadsheet '{title}' ({self.spreadsheet_id})")
        return title

    def get_all_naps(self) -> List[Nap]:
        """Get all NAPs from the spreadsheet (cached)."""
        return self.cache.cached(
            CacheKeys.ALL_NAPS, self._fetch_all_naps, self.cache.get_ttl("naps_all")
        )

    def _fetch_all_naps(self) -> List[Nap]:
        rows = self._get_values(self.range_name, "Get all NAPs")

        if len(rows) <= 1:
            logger.info("No NAP data found in spreadsheet")
            return []

        naps = []
        # Row 1 holds the headers; sheet rows are 1-based
        for row_number, row in enumerate(rows[1:], start=2):
            if not row or not str(row[0]).strip():
                continue
            try:
                naps.append(Nap.from_row(row))
            except ValueError as e:
                logger.warning(f"Skipping invalid NAP row {row_number}: {e}")

        logger.info(f"Retrieved {len(naps)} NAPs from spreadsheet")
        return naps

    def get_nap_by_id(self, nap_id: str) -> Optional[Nap]:
        """Get a single NAP (cached); None when no row has this id.

        A missing id is not cached, so a NAP added later is found on the
        next lookup.
        """
        key = CacheKeys.nap_by_id(nap_id)
        nap = self.cache.get(key)
        if nap is not None:
            return nap

        nap = next((n for n in self.get_all_naps() if n.id == nap_id), None)
        if nap is not None:
            self.cache.set(key, nap, self.cache.get_ttl("nap_single"))
        return nap

    def get_pending_naps(self) -> List[Nap]:
        """Get NAPs awaiting validation (cached)."""

        def _filter():
            pending = [n for n in self.get_all_naps() if n.status is NapStatus.PENDING]
            logger.info(f"Found {len(pending)} pending NAPs")
            return pending

        return self.cache.cached(
            CacheKeys.PENDING_NAPS, _filter, self.cache.get_ttl("naps_pending")
        )

    def update_nap_status(self, nap_id: str, update: NapUpdate) -> bool:
        """
        Write status and validation fields of a NAP.

        Args:
            nap_id: Id of the NAP to update
            update: Fields to write (unset fields are left untouched)

        Returns:
            True if cells were written, False if the update was empty

        Raises:
            AppError: NOT_FOUND for an unknown id, or a Sheets failure
        """
        with LogContext(nap_id=nap_id):
            row_number = self._find_nap_row_number(nap_id)
            if row_number is None:
                raise AppError.not_found(f"NAP {nap_id}")

            data = [
                {"range": f"{self._sheet_prefix}{column}{row_number}", "values": [[value]]}
                for column, value in update.column_values()
            ]
            if not data:
                return False

            def _batch_update_operation():
                return (
                    self._service.spreadsheets()
                    .values()
                    .batchUpdate(
                        spreadsheetId=self.spreadsheet_id,
                        body={"valueInputOption": "RAW", "data": data},
                    )
                    .execute()
                )

            self._execute(_batch_update_operation, f"Update NAP {nap_id}")
            logger.info(f"Updated NAP {nap_id} in row {row_number}")

            self.invalidate_nap_cache(nap_id)
            return True

    def _find_nap_row_number(self, nap_id: str) -> Optional[int]:
        id_column = SHEET_COLUMNS["id"]
        rows = self._get_values(
            f"{self._sheet_prefix}{id_column}:{id_column}", f"Find NAP {nap_id}"
        )
        for row_number, row in enumerate(rows, start=1):
            if row and str(row[0]).strip() == nap_id:
                return row_number
        return None

    def add_nap(self, nap: NapCreate) -> str:
        """
        Append a new NAP row.

        Returns:
            The generated NAP id
        """
        nap_id = self.generate_nap_id()
        record = Nap(id=nap_id, **nap.model_dump())

        def _append_operation():
            return (
                self._service.spreadsheets()
                .values()
                .append(
                    spreadsheetId=self.spreadsheet_id,
                    range=self.range_name,
                    valueInputOption="RAW",
                    insertDataOption="INSERT_ROWS",
                    body={"values": [record.to_row()]},
                )
                .execute()
            )

        with LogContext(nap_id=nap_id):
            self._execute(_append_operation, "Add new NAP")
            logger.info(f"Added new NAP with ID {nap_id}")

        self.invalidate_all_naps_cache()
        return nap_id

    @staticmethod
    def generate_nap_id() -> str:
        return f"NAP_{int(time.time() * 1000)}_{secrets.token_hex(3)}"

    def get_health_status(self) -> Dict[str, Any]:
        """Health snapshot of the spreadsheet connection (cached, never raises)."""

        def _check():
            status: Dict[str, Any] = {
                "status": "healthy",
                "last_check": dt.datetime.now(dt.timezone.utc).isoformat(),
                "spreadsheet_id": self.spreadsheet_id,
            }
            try:
                self.test_connection()
            except AppError as e:
                status["status"] = "unhealthy"
                status["error"] = e.message
            return status

        return self.cache.cached(
            CacheKeys.HEALTH_STATUS, _check, self.cache.get_ttl("health_status")
        )

    def check_for_changes(self, since: dt.datetime) -> List[Nap]:
        """NAPs registered or validated after ``since``."""
        return [nap for nap in self.get_all_naps() if nap.changed_since(since)]

    def start_change_listener(
        self, callback: Callable[[List[Nap]], None], interval: float = 30.0
    ) -> threading.Thread:
        """
        Poll the spreadsheet and call ``callback`` with all NAPs on change.

        Args:
            callback: Receives the full NAP list when changes are detected
            interval: Polling interval in seconds

        Returns:
            The polling thread
        """
        if self._listener_thread is not None and self._listener_thread.is_alive():
            return self._listener_thread

        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._poll_changes,
            args=(callback, interval, stop_event),
            name="nap-change-listener",
            daemon=True,
        )
        self._listener_stop = stop_event
        self._listener_thread = thread
        thread.start()

        logger.info(f"Started change listener with {interval}s interval")
        return thread

    def _poll_changes(
        self,
        callback: Callable[[List[Nap]], None],
        interval: float,
        stop_event: threading.Event,
    ):
        last_check = dt.datetime.now(dt.timezone.utc)
        while not stop_event.wait(interval):
            try:
                if self.check_for_changes(last_check):
                    logger.info("Changes detected in spreadsheet")
                    callback(self.get_all_naps())
                    last_check = dt.datetime.now(dt.timezone.utc)
            except Exception as e:
                # The listener keeps polling; failures are reported, not fatal
                logger.error(f"Error polling for changes: {e}")

    def stop_change_listener(self, timeout: Optional[float] = 5.0):
        thread, stop_event = self._listener_thread, self._listener_stop
        self._listener_thread = None
        self._listener_stop = None
        if thread is None or stop_event is None:
            return
        stop_event.set()
        thread.join(timeout)
        logger.info("Stopped change listener")

    def invalidate_nap_cache(self, nap_id: str):
        """Drop a NAP and the aggregates that contain it."""
        self.cache.delete(CacheKeys.nap_by_id(nap_id))
        self.cache.delete(CacheKeys.ALL_NAPS)
        self.cache.delete(CacheKeys.PENDING_NAPS)
        logger.debug(f"Invalidated cache for NAP {nap_id}")

    def invalidate_all_naps_cache(self):
        """Drop every cached NAP and aggregate."""
        self.cache.delete(CacheKeys.ALL_NAPS)
        self.cache.delete(CacheKeys.PENDING_NAPS)
        self.cache.invalidate_pattern(CacheKeys.SINGLE_NAP_PATTERN)
        logger.debug("Invalidated all NAPs cache")

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def get_circuit_state(self) -> str:
        return self.circuit_breaker.get_state()

    def get_statistics(self) -> Dict[str, Any]:
        """Cache, retry, circuit breaker and error statistics."""
        return {
            "cache": self.cache.get_stats(),
            "retry": self.retry_handler.get_retry_statistics(),
            "circuit_breaker": self.circuit_breaker.get_statistics(),
            "errors": self.error_classifier.get_statistics(),
        }

    def close(self):
        """Stop background threads."""
        self.stop_change_listener()
        self.cache.stop_periodic_cleanup()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
