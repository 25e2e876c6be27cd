"""Bounded retry with exponential backoff for MCP calls."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

from stayassist.services.errors import (
    CallCancelled,
    ErrorKind,
    HttpStatusError,
    McpError,
    ToolCallFailed,
)
from stayassist.services.metrics import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ── Backoff configuration ───────────────────────────────────────────
DEFAULT_MAX_ATTEMPTS = 5  # 1 initial attempt + 4 retries
INITIAL_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 8.0

_RETRIABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.NETWORK})


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed *attempt* (1-based): 1, 2, 4, 8, 8, …"""
    return min(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)), MAX_BACKOFF_SECONDS)


def is_retriable(error: McpError) -> bool:
    """Transport trouble and 5xx responses are worth another try; nothing else is."""
    if error.kind in _RETRIABLE_KINDS:
        return True
    if isinstance(error, HttpStatusError):
        return 500 <= error.status <= 599
    return False


def _wait(delay: float, cancel: threading.Event | None) -> None:
    if cancel is None:
        time.sleep(delay)
    elif cancel.wait(delay):
        raise CallCancelled("Call cancelled during retry backoff")


def with_retry(
    operation: Callable[[], T],
    tool_name: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    cancel: threading.Event | None = None,
) -> T:
    """Run *operation* until it succeeds, fails fatally, or runs out of attempts.

    Attempts are strictly sequential.  Between attempts the caller is
    suspended for :func:`backoff_delay` seconds; setting *cancel* wakes it
    up and ends the loop.

    Raises:
        ToolCallFailed: wrapping the last :class:`McpError`.
    """
    for attempt in range(1, max_attempts + 1):
        if cancel is not None and cancel.is_set():
            # Counts only attempts that were actually sent
            cancelled = CallCancelled()
            logger.error(
                "%s cancelled after %d attempt(s)", tool_name, attempt - 1,
            )
            raise ToolCallFailed(tool_name, cancelled, attempt - 1)
        try:
            logger.debug("%s — attempt %d/%d", tool_name, attempt, max_attempts)
            result = operation()
        except McpError as exc:
            if attempt == max_attempts or not is_retriable(exc):
                logger.error(
                    "%s failed after %d attempt(s): %s", tool_name, attempt, exc,
                )
                raise ToolCallFailed(tool_name, exc, attempt) from exc

            delay = backoff_delay(attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s). Retrying in %.1fs…",
                tool_name, attempt, max_attempts, exc, delay,
            )
            metrics.record_retry(tool_name, error_type=exc.kind.value)
            try:
                _wait(delay, cancel)
            except CallCancelled as cancelled:
                raise ToolCallFailed(tool_name, cancelled, attempt) from cancelled
            continue

        if attempt > 1:
            logger.info("%s succeeded on attempt %d", tool_name, attempt)
        return result

    # max_attempts < 1 never enters the loop
    raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
