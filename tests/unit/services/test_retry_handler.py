"""
Unit tests for retry with exponential backoff.
"""

from unittest.mock import Mock, call, patch

import pytest
from googleapiclient.errors import HttpError

from src.services.retry_handler import (
    MAPS_RETRY_OPTIONS,
    SHEETS_RETRY_OPTIONS,
    RetryHandler,
    RetryOptions,
    compute_delay,
    default_retry_condition,
    google_maps_retry_condition,
    google_sheets_retry_condition,
    with_maps_retry,
    with_retry,
    with_sheets_retry,
)


def http_error(status: int, message: str = "error") -> HttpError:
    return HttpError(
        resp=Mock(status=status, reason=message),
        content=f'{{"error": {{"code": {status}, "message": "{message}"}}}}'.encode(),
    )


class TestComputeDelay:
    """Test backoff delay computation."""

    def test_exponential_growth(self):
        options = RetryOptions(base_delay=1.0, max_delay=100.0, backoff_factor=2.0)

        assert compute_delay(1, options) == 1.0
        assert compute_delay(2, options) == 2.0
        assert compute_delay(3, options) == 4.0

    def test_capped_at_max_delay(self):
        options = RetryOptions(base_delay=1.0, max_delay=3.0, backoff_factor=2.0)

        assert compute_delay(5, options) == 3.0


class TestRetryConditions:
    """Test per-service retry conditions."""

    def test_default_condition(self):
        assert default_retry_condition(http_error(503))
        assert default_retry_condition(http_error(429))
        assert default_retry_condition(ConnectionError("reset"))
        assert not default_retry_condition(http_error(404))
        assert not default_retry_condition(ValueError("bad input"))

    def test_sheets_condition_adds_backend_messages(self):
        assert google_sheets_retry_condition(Exception("Backend Error"))
        assert google_sheets_retry_condition(Exception("The service is currently unavailable: Service Unavailable"))
        assert not google_sheets_retry_condition(Exception("Invalid range"))

    def test_maps_condition_adds_status_strings(self):
        assert google_maps_retry_condition(Exception("OVER_QUERY_LIMIT"))
        assert google_maps_retry_condition(Exception("status UNKNOWN_ERROR"))
        assert not google_maps_retry_condition(Exception("ZERO_RESULTS"))


class TestWithRetry:
    """Test the retry loop."""

    def test_success_without_retry(self):
        operation = Mock(return_value="ok")

        with patch("time.sleep") as mock_sleep:
            assert with_retry(operation) == "ok"

        operation.assert_called_once()
        mock_sleep.assert_not_called()

    def test_retries_then_succeeds(self):
        operation = Mock(side_effect=[http_error(503), http_error(503), "ok"])

        with patch("time.sleep") as mock_sleep:
            result = with_retry(operation, RetryOptions(max_attempts=3, base_delay=1.0))

        assert result == "ok"
        assert operation.call_count == 3
        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]

    def test_reraises_last_error_unchanged(self):
        errors = [http_error(500, "first"), http_error(500, "second")]
        operation = Mock(side_effect=errors)

        with patch("time.sleep"):
            with pytest.raises(HttpError) as exc_info:
                with_retry(operation, RetryOptions(max_attempts=2))

        assert exc_info.value is errors[1]

    def test_non_retryable_raises_immediately(self):
        error = http_error(404)
        operation = Mock(side_effect=error)

        with patch("time.sleep") as mock_sleep:
            with pytest.raises(HttpError) as exc_info:
                with_retry(operation)

        assert exc_info.value is error
        operation.assert_called_once()
        mock_sleep.assert_not_called()

    def test_unknown_error_not_retried(self):
        operation = Mock(side_effect=KeyError("x"))

        with patch("time.sleep"):
            with pytest.raises(KeyError):
                with_retry(operation)

        operation.assert_called_once()

    def test_custom_condition(self):
        operation = Mock(side_effect=[KeyError("x"), "ok"])
        options = RetryOptions(retry_condition=lambda e: isinstance(e, KeyError))

        with patch("time.sleep"):
            assert with_retry(operation, options) == "ok"

    def test_on_retry_called_with_error_and_attempt(self):
        error = http_error(502)
        operation = Mock(side_effect=[error, error, "ok"])
        on_retry = Mock()

        with patch("time.sleep"):
            with_retry(operation, RetryOptions(on_retry=on_retry))

        assert on_retry.call_args_list == [call(error, 1), call(error, 2)]

    def test_single_attempt_never_sleeps(self):
        operation = Mock(side_effect=http_error(503))

        with patch("time.sleep") as mock_sleep:
            with pytest.raises(HttpError):
                with_retry(operation, RetryOptions(max_attempts=1))

        mock_sleep.assert_not_called()

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="max_attempts"):
            with_retry(Mock(), RetryOptions(max_attempts=0))

    def test_delays_capped(self):
        operation = Mock(side_effect=[http_error(503)] * 4 + ["ok"])
        options = RetryOptions(max_attempts=5, base_delay=1.0, max_delay=3.0)

        with patch("time.sleep") as mock_sleep:
            with_retry(operation, options)

        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0, 3.0, 3.0]


class TestPresets:
    """Test the Sheets and Maps presets."""

    def test_preset_values(self):
        assert SHEETS_RETRY_OPTIONS.max_attempts == 3
        assert SHEETS_RETRY_OPTIONS.max_delay == 5.0
        assert MAPS_RETRY_OPTIONS.max_attempts == 2
        assert MAPS_RETRY_OPTIONS.base_delay == 2.0

    def test_with_sheets_retry(self):
        operation = Mock(side_effect=[Exception("Backend Error"), "rows"])

        with patch("time.sleep") as mock_sleep:
            assert with_sheets_retry(operation, "Get all NAPs") == "rows"

        mock_sleep.assert_called_once_with(1.0)

    def test_with_maps_retry_gives_up_after_two_attempts(self):
        operation = Mock(side_effect=Exception("OVER_QUERY_LIMIT"))

        with patch("time.sleep") as mock_sleep:
            with pytest.raises(Exception, match="OVER_QUERY_LIMIT"):
                with_maps_retry(operation, "Geocode")

        assert operation.call_count == 2
        mock_sleep.assert_called_once_with(2.0)


class TestRetryHandler:
    """Test cases for RetryHandler."""

    @pytest.fixture
    def retry_handler(self):
        """RetryHandler instance with test configuration."""
        return RetryHandler(RetryOptions(max_attempts=3, base_delay=0.1, max_delay=1.0))

    def test_initialization_with_defaults(self):
        handler = RetryHandler()

        assert handler.options == RetryOptions()

    def test_passes_arguments(self, retry_handler):
        func = Mock(return_value="success")

        assert retry_handler.execute_with_retry(func, 1, key="v") == "success"
        func.assert_called_once_with(1, key="v")

    def test_statistics(self, retry_handler):
        func = Mock(side_effect=[http_error(429), "success"])

        with patch("time.sleep"):
            retry_handler.execute_with_retry(func)

        failing = Mock(side_effect=http_error(500))
        with patch("time.sleep"):
            with pytest.raises(HttpError):
                retry_handler.execute_with_retry(failing)

        assert retry_handler.get_retry_statistics() == {
            "total_calls": 2,
            "total_retries": 3,
            "total_failures": 1,
        }

    def test_user_on_retry_still_called(self):
        on_retry = Mock()
        handler = RetryHandler(RetryOptions(on_retry=on_retry))
        func = Mock(side_effect=[http_error(503), "ok"])

        with patch("time.sleep"):
            handler.execute_with_retry(func)

        on_retry.assert_called_once()

    def test_reset_statistics(self, retry_handler):
        retry_handler.execute_with_retry(Mock(return_value=1))
        retry_handler.reset_statistics()

        assert retry_handler.get_retry_statistics()["total_calls"] == 0
