"""
Retry with exponential backoff, per-service retry conditions, and a circuit
breaker for Google API calls.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

from src.errors import AppError
from src.services.error_classifier import is_retryable, message_contains

logger = logging.getLogger(__name__)

T = TypeVar("T")

SHEETS_TRANSIENT_MARKERS = ("service unavailable", "backend error", "internal error")
MAPS_TRANSIENT_MARKERS = ("OVER_QUERY_LIMIT", "UNKNOWN_ERROR")


@dataclass(frozen=True)
class RetryOptions:
    """
    Options for ``with_retry``.

    Attributes:
        max_attempts: Total number of attempts, including the first one
        base_delay: Delay before the first retry (seconds)
        max_delay: Upper bound for any single delay (seconds)
        backoff_factor: Multiplier applied per attempt
        retry_condition: Predicate deciding whether an error is retried
            (``default_retry_condition`` when None)
        on_retry: Callback invoked with (error, attempt) before each wait
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    retry_condition: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[BaseException, int], None]] = None


def default_retry_condition(error: BaseException) -> bool:
    """Retry network errors, HTTP 429/5xx and quota or rate-limit signals."""
    return is_retryable(error)


def google_sheets_retry_condition(error: BaseException) -> bool:
    """Default condition plus transient Google Sheets backend messages."""
    if default_retry_condition(error):
        return True
    return message_contains(error, SHEETS_TRANSIENT_MARKERS)


def google_maps_retry_condition(error: BaseException) -> bool:
    """Default condition plus retryable Google Maps status strings."""
    if default_retry_condition(error):
        return True
    return message_contains(error, MAPS_TRANSIENT_MARKERS)


def compute_delay(attempt: int, options: RetryOptions) -> float:
    """
    Delay before retrying after the given (1-based) failed attempt.

    Args:
        attempt: Number of the attempt that just failed
        options: Retry options

    Returns:
        Delay in seconds, capped at ``options.max_delay``
    """
    delay = options.base_delay * (options.backoff_factor ** (attempt - 1))
    return min(delay, options.max_delay)


def with_retry(
    operation: Callable[[], T], options: Optional[RetryOptions] = None
) -> T:
    """
    Call ``operation`` until it succeeds, retrying transient failures.

    The last error is re-raised unchanged once attempts are exhausted, and
    immediately when the retry condition rejects it. Delays grow
    exponentially without jitter.

    Args:
        operation: Zero-argument callable to execute
        options: Retry options (defaults to ``RetryOptions()``)

    Returns:
        Result of the first successful call

    Raises:
        ValueError: If max_attempts is less than 1
        Exception: The error of the last failed attempt
    """
    options = options or RetryOptions()
    if options.max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {options.max_attempts}")

    retry_condition = options.retry_condition or default_retry_condition

    for attempt in range(1, options.max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            if attempt == options.max_attempts or not retry_condition(e):
                raise

            delay = compute_delay(attempt, options)
            logger.warning(
                f"Operation failed, retrying in {delay:.2f}s "
                f"(attempt {attempt}/{options.max_attempts}). "
                f"Error: {type(e).__name__}: {e}"
            )

            if options.on_retry is not None:
                options.on_retry(e, attempt)

            time.sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("with_retry exited without a result")


def _log_retry(operation_name: str) -> Callable[[BaseException, int], None]:
    def on_retry(error: BaseException, attempt: int):
        logger.warning(f"{operation_name} failed, retrying (attempt {attempt}): {error}")

    return on_retry


SHEETS_RETRY_OPTIONS = RetryOptions(
    max_attempts=3,
    base_delay=1.0,
    max_delay=5.0,
    retry_condition=google_sheets_retry_condition,
)

MAPS_RETRY_OPTIONS = RetryOptions(
    max_attempts=2,
    base_delay=2.0,
    max_delay=8.0,
    retry_condition=google_maps_retry_condition,
)


def with_sheets_retry(
    operation: Callable[[], T], operation_name: str = "Google Sheets operation"
) -> T:
    """Run a Google Sheets call with the Sheets retry preset."""
    return with_retry(
        operation, replace(SHEETS_RETRY_OPTIONS, on_retry=_log_retry(operation_name))
    )


def with_maps_retry(
    operation: Callable[[], T], operation_name: str = "Google Maps operation"
) -> T:
    """Run a Google Maps call with the Maps retry preset."""
    return with_retry(
        operation, replace(MAPS_RETRY_OPTIONS, on_retry=_log_retry(operation_name))
    )


class RetryHandler:
    """
    Reusable retry policy with statistics.

    Wraps ``with_retry`` for a fixed set of options so a service can own one
    policy per external dependency.

    Features:
    - Exponential backoff without jitter, capped at max_delay
    - Pluggable retry condition
    - Thread-safe statistics tracking
    """

    def __init__(self, options: Optional[RetryOptions] = None):
        """
        Initialize retry handler.

        Args:
            options: Retry options (defaults to ``RetryOptions()``)
        """
        self.options = options or RetryOptions()

        # Statistics
        self._total_calls = 0
        self._total_retries = 0
        self._total_failures = 0

        self._lock = threading.Lock()

    def execute_with_retry(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Result of function execution

        Raises:
            Exception: The last error if the call never succeeded
        """
        with self._lock:
            self._total_calls += 1

        user_on_retry = self.options.on_retry

        def on_retry(error: BaseException, attempt: int):
            with self._lock:
                self._total_retries += 1
            if user_on_retry is not None:
                user_on_retry(error, attempt)

        options = replace(self.options, on_retry=on_retry)

        try:
            return with_retry(lambda: func(*args, **kwargs), options)
        except Exception:
            with self._lock:
                self._total_failures += 1
            raise

    def get_retry_statistics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "total_calls": self._total_calls,
                "total_retries": self._total_retries,
                "total_failures": self._total_failures,
            }

    def reset_statistics(self):
        with self._lock:
            self._total_calls = 0
            self._total_retries = 0
            self._total_failures = 0


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Circuit breaker guarding one external dependency.

    After ``failure_threshold`` consecutive failures the breaker opens and
    rejects calls without invoking them. Once ``recovery_timeout`` seconds
    have passed since the last failure a single trial call is let through;
    its outcome closes the breaker or opens it again.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "default",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds to wait in OPEN before a trial call
            name: Name of the guarded service (used in errors and logs)
            clock: Time source returning seconds
        """
        if failure_threshold < 1:
            raise ValueError(
                f"failure_threshold must be at least 1, got {failure_threshold}"
            )

        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False
        self._rejected_calls = 0

        self._lock = threading.Lock()

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float:
        return self._last_failure_time

    def get_state(self) -> str:
        """Current state name: ``CLOSED``, ``OPEN`` or ``HALF_OPEN``."""
        with self._lock:
            return self._state.value

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute function through the breaker.

        Args:
            func: Function to execute
            *args: Positional arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Result of function execution

        Raises:
            AppError: SERVICE_UNAVAILABLE if the breaker rejects the call
            Exception: Whatever the function raises
        """
        self._before_call()

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise
        except BaseException:
            self._abandon_trial()
            raise

        self._record_success()
        return result

    def _before_call(self):
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return

            elapsed = self._clock() - self._last_failure_time
            if (
                self._state is CircuitState.OPEN
                and elapsed >= self.recovery_timeout
                and not self._trial_in_flight
            ):
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                logger.info(f"Circuit breaker '{self.name}' half-open, allowing trial call")
                return

            self._rejected_calls += 1

        raise AppError.service_unavailable(self.name)

    def _record_success(self):
        with self._lock:
            self._failure_count = 0
            self._trial_in_flight = False
            if self._state is not CircuitState.CLOSED:
                logger.info(f"Circuit breaker '{self.name}' closed")
                self._state = CircuitState.CLOSED

    def _record_failure(self):
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state is CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker '{self.name}' re-opened after failed trial")
            elif (
                self._state is CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._state = CircuitState.OPEN
                logger.warning(
                    f"Circuit breaker '{self.name}' opened after "
                    f"{self._failure_count} failures "
                    f"(threshold {self.failure_threshold})"
                )

    def _abandon_trial(self):
        # Interrupted calls are not failures, but the trial slot must be freed
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker '{self.name}' trial call interrupted")

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "last_failure_time": self._last_failure_time,
                "rejected_calls": self._rejected_calls,
            }

    def reset(self):
        """Manually close the breaker and clear its failure state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = 0.0
            self._trial_in_flight = False

        logger.info(f"Circuit breaker '{self.name}' manually reset")
