"""
Tests for utility modules: validation, retry, logging.
"""

import logging
from unittest.mock import Mock, patch

import pytest
import requests

from roofline.utils.logging_config import FileFormatter, RooflineFormatter, setup_logging
from roofline.utils.retry import (
    RetryableRequest,
    RetryConfig,
    calculate_delay,
    retry_with_backoff,
    should_retry_exception,
)
from roofline.utils.validation import (
    ValidationError,
    validate_address,
    validate_coordinates,
    validate_positive,
)


class TestValidateAddress:
    """Tests for address validation."""

    def test_whitespace_normalized(self):
        assert validate_address("  1600  Pennsylvania Ave NW,\tWashington ") == (
            "1600 Pennsylvania Ave NW, Washington"
        )

    def test_empty_address(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_address("   ")
        assert exc_info.value.field == "address"
        assert exc_info.value.suggestions

    def test_none_address(self):
        with pytest.raises(ValidationError):
            validate_address(None)

    def test_too_short(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_address("ab")
        assert "too short" in str(exc_info.value)

    def test_too_long(self):
        with pytest.raises(ValidationError):
            validate_address("x" * 600)

    def test_digits_only_allowed(self):
        assert validate_address("12345") == "12345"


class TestValidateCoordinates:
    """Tests for coordinate validation."""

    def test_valid(self):
        assert validate_coordinates(-77.0365, 38.8977) == (-77.0365, 38.8977)

    def test_string_numbers(self):
        assert validate_coordinates("-77.0365", "38.8977") == (-77.0365, 38.8977)

    def test_latitude_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_coordinates(38.8977, -977.0)
        assert exc_info.value.field == "latitude"

    def test_longitude_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_coordinates(200.0, 0.0)
        assert exc_info.value.field == "longitude"

    def test_not_finite(self):
        with pytest.raises(ValidationError):
            validate_coordinates(float("nan"), 0.0)

    def test_not_numbers(self):
        with pytest.raises(ValidationError):
            validate_coordinates("east", None)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_coordinates(0.0, 95.0)

    @pytest.mark.parametrize("value", [0, -1, float("inf"), None])
    def test_validate_positive(self, value):
        with pytest.raises(ValidationError):
            validate_positive(value, "search_radius_m")


class TestRetry:
    """Tests for retry utilities."""

    def test_calculate_delay_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert calculate_delay(0, config) == 1.0
        assert calculate_delay(2, config) == 4.0
        assert calculate_delay(5, config) == 5.0

    def test_calculate_delay_with_jitter(self):
        config = RetryConfig(base_delay=1.0, jitter=True)
        assert 1.0 <= calculate_delay(0, config) <= 1.25

    def test_should_retry_by_type(self):
        config = RetryConfig()
        assert should_retry_exception(requests.ConnectionError("x"), config)
        assert not should_retry_exception(ValueError("x"), config)

    def test_should_retry_by_status(self):
        config = RetryConfig()
        error = requests.HTTPError(response=Mock(status_code=503))
        assert should_retry_exception(error, config)
        error = requests.HTTPError(response=Mock(status_code=404))
        assert not should_retry_exception(error, config)

    def test_retries_then_succeeds(self):
        sleep = Mock()
        config = RetryConfig(max_retries=3, jitter=False, sleep=sleep)
        attempts = []

        @retry_with_backoff(config=config)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise requests.ConnectionError("down")
            return "ok"

        assert flaky() == "ok"
        assert len(attempts) == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_gives_up(self):
        config = RetryConfig(max_retries=2, jitter=False, sleep=Mock())
        func = Mock(side_effect=requests.Timeout("slow"), __name__="func")

        with pytest.raises(requests.Timeout):
            retry_with_backoff(func, config=config)()
        assert func.call_count == 3

    def test_non_retryable_raises_immediately(self):
        config = RetryConfig(max_retries=5, sleep=Mock())
        func = Mock(side_effect=KeyError("bad"), __name__="func")

        with pytest.raises(KeyError):
            retry_with_backoff(func, config=config)()
        assert func.call_count == 1

    def test_max_retries_override_keeps_config(self):
        config = RetryConfig(max_retries=5, jitter=False, sleep=Mock())
        func = Mock(side_effect=requests.ConnectionError("down"), __name__="func")

        with pytest.raises(requests.ConnectionError):
            retry_with_backoff(func, config=config, max_retries=1)()
        assert func.call_count == 2
        assert config.max_retries == 5

    def test_on_retry_callback(self):
        on_retry = Mock()
        config = RetryConfig(max_retries=1, jitter=False, sleep=Mock())
        func = Mock(side_effect=[requests.ConnectionError("down"), "ok"], __name__="func")

        assert retry_with_backoff(func, config=config, on_retry=on_retry)() == "ok"
        on_retry.assert_called_once()


class TestRetryableRequest:
    """Tests for RetryableRequest."""

    def test_post_retries_on_status(self):
        busy = Mock(status_code=503)
        busy.raise_for_status.side_effect = requests.HTTPError(response=busy)
        ok = Mock(status_code=200)

        session = Mock()
        session.headers = {}
        session.post.side_effect = [busy, ok]

        config = RetryConfig(max_retries=2, jitter=False, sleep=Mock())
        http = RetryableRequest(config, session=session, headers={"User-Agent": "test"}, timeout=5)

        assert http.post("https://example.test", data={"data": "q"}) is ok
        assert session.post.call_count == 2
        assert session.post.call_args.kwargs["timeout"] == 5
        assert session.headers["User-Agent"] == "test"

    def test_context_manager_closes(self):
        session = Mock()
        session.headers = {}
        with RetryableRequest(session=session):
            pass
        session.close.assert_called_once()


class TestLogging:
    """Tests for logging formatters."""

    def _record(self, **extra):
        record = logging.LogRecord("roofline.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_console_formatter_appends_context(self):
        formatter = RooflineFormatter(use_colors=False)
        output = formatter.format(self._record(polygon_id="roof_1", strategy="box"))
        assert "hello" in output
        assert output.endswith("[polygon_id=roof_1, strategy=box]")

    def test_console_formatter_without_context(self):
        output = RooflineFormatter(use_colors=False).format(self._record())
        assert "[" not in output.split("|")[-1]

    def test_file_formatter(self):
        output = FileFormatter().format(self._record(address="1600 Pennsylvania Ave"))
        assert "'message': 'hello'" in output
        assert "'address': '1600 Pennsylvania Ave'" in output

    def test_setup_logging_configures_package_logger(self):
        with patch("roofline.utils.logging_config.sys") as mock_sys:
            mock_sys.stdout.isatty.return_value = False
            setup_logging("DEBUG")
        logger = logging.getLogger("roofline")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        setup_logging("WARNING")
        assert logging.getLogger("roofline").level == logging.WARNING
