"""Tests for the retry policy: backoff schedule, classification, loop."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest

from stayassist.services.errors import (
    CallCancelled,
    HttpStatusError,
    MalformedResponseError,
    MissingResultError,
    NetworkError,
    RequestTimeoutError,
    RpcError,
    ToolCallFailed,
)
from stayassist.services.retry import (
    DEFAULT_MAX_ATTEMPTS,
    backoff_delay,
    is_retriable,
    with_retry,
)


class TestBackoffDelay:
    @pytest.mark.parametrize(
        "attempt,expected",
        [(1, 1.0), (2, 2.0), (3, 4.0), (4, 8.0), (5, 8.0), (10, 8.0)],
    )
    def test_doubles_and_caps(self, attempt, expected):
        assert backoff_delay(attempt) == expected


class TestIsRetriable:
    @pytest.mark.parametrize(
        "error",
        [
            RequestTimeoutError(60_000),
            NetworkError("ConnectError: Connection refused"),
            HttpStatusError(500, "Internal Server Error"),
            HttpStatusError(503, "Service Unavailable"),
            HttpStatusError(599),
        ],
    )
    def test_transient_errors_are_retriable(self, error):
        assert is_retriable(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            HttpStatusError(400, "Bad Request"),
            HttpStatusError(404, "Not Found"),
            HttpStatusError(429, "Too Many Requests"),
            RpcError(-32602, "Invalid params"),
            MalformedResponseError("not JSON"),
            MissingResultError(),
            CallCancelled(),
        ],
    )
    def test_everything_else_is_fatal(self, error):
        assert is_retriable(error) is False


class TestWithRetry:
    @patch("stayassist.services.retry.time.sleep")
    def test_success_on_first_attempt(self, mock_sleep):
        op = MagicMock(return_value={"a": 1})
        assert with_retry(op, "x") == {"a": 1}
        op.assert_called_once()
        mock_sleep.assert_not_called()

    @patch("stayassist.services.retry.time.sleep")
    def test_k_failures_mean_k_plus_one_attempts(self, mock_sleep):
        for k in range(DEFAULT_MAX_ATTEMPTS):
            op = MagicMock(side_effect=[NetworkError("down")] * k + ["ok"])
            assert with_retry(op, "x") == "ok"
            assert op.call_count == k + 1

    @patch("stayassist.services.retry.time.sleep")
    def test_wraps_last_error(self, mock_sleep):
        first, last = NetworkError("first"), RequestTimeoutError(10)
        op = MagicMock(side_effect=[first, last])

        with pytest.raises(ToolCallFailed) as exc_info:
            with_retry(op, "create_booking", max_attempts=2)

        assert exc_info.value.cause is last
        assert exc_info.value.tool_name == "create_booking"
        assert exc_info.value.__cause__ is last

    @patch("stayassist.services.retry.time.sleep")
    def test_non_mcp_errors_propagate_unwrapped(self, mock_sleep):
        op = MagicMock(side_effect=KeyError("bug"))
        with pytest.raises(KeyError):
            with_retry(op, "x")
        op.assert_called_once()

    @patch("stayassist.services.metrics.metrics.record_retry")
    @patch("stayassist.services.retry.time.sleep")
    def test_records_each_scheduled_retry(self, mock_sleep, mock_record):
        op = MagicMock(side_effect=[HttpStatusError(502), HttpStatusError(502), "ok"])
        with_retry(op, "tools/list")
        assert mock_record.call_count == 2
        mock_record.assert_called_with("tools/list", error_type="http_status")

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            with_retry(MagicMock(), "x", max_attempts=0)

    def test_cancel_before_first_attempt_reports_zero_attempts(self):
        cancel = threading.Event()
        cancel.set()
        op = MagicMock()

        with pytest.raises(ToolCallFailed) as exc_info:
            with_retry(op, "x", cancel=cancel)

        op.assert_not_called()
        assert isinstance(exc_info.value.cause, CallCancelled)
        assert exc_info.value.attempts == 0
        assert "after 0 attempts" in str(exc_info.value)

    def test_cancel_between_attempts_counts_only_sent_ones(self):
        cancel = threading.Event()

        def op():
            cancel.set()
            raise NetworkError("down")

        with pytest.raises(ToolCallFailed) as exc_info:
            with_retry(op, "x", cancel=cancel)

        assert isinstance(exc_info.value.cause, CallCancelled)
        assert exc_info.value.attempts == 1
