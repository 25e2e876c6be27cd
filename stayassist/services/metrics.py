"""Per-attempt MCP client metrics, batched and pushed to CloudWatch.

Every physical attempt against the MCP server is recorded as a success or
a failure (with its latency and error kind), and every scheduled retry is
counted, so dashboards can tell a flaky availability service from a dead one.

* Data points accumulate in a lock-protected buffer.
* With ``METRICS_ENABLED=true`` a daemon thread pushes the buffer every
  ``FLUSH_INTERVAL_SECONDS`` and once more at interpreter exit.
* Otherwise points are only logged at DEBUG and dropped on flush.

>>> from stayassist.services.metrics import metrics
>>> metrics.record_success("get_all_availability_30_days", latency_ms=84.2)
>>> metrics.record_failure("tools/list", error_type="timeout", latency_ms=60000)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "StayAssist"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit

_SERVICE_DIM = {"Name": "Service", "Value": "mcp"}


def _datum(name: str, value: float, unit: str, **dims: str) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [_SERVICE_DIM] + [{"Name": k, "Value": v} for k, v in dims.items()],
        "Timestamp": datetime.now(UTC),
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Buffers MCP client data points and ships them in batches."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None
        self._stop = threading.Event()

        if self._enabled:
            self._start_flush_thread()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Recording ────────────────────────────────────────────────────

    def record_success(self, operation: str, latency_ms: float) -> None:
        """One attempt that returned a usable result."""
        self._append(
            _datum("McpClient/AttemptCount", 1, "Count", Status="success"),
            _datum("McpClient/Latency", latency_ms, "Milliseconds", Operation=operation),
        )
        logger.debug("Metric: %s success latency=%.1fms", operation, latency_ms)

    def record_failure(
        self,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """One attempt that failed, tagged with its error kind."""
        points = [
            _datum("McpClient/AttemptCount", 1, "Count", Status="failure"),
            _datum("McpClient/ErrorCount", 1, "Count", ErrorKind=error_type),
        ]
        if latency_ms > 0:
            points.append(
                _datum("McpClient/Latency", latency_ms, "Milliseconds", Operation=operation)
            )
        self._append(*points)
        logger.debug(
            "Metric: %s failure kind=%s latency=%.1fms", operation, error_type, latency_ms,
        )

    def record_retry(self, operation: str, error_type: str) -> None:
        """A backoff was scheduled after a retriable failure."""
        self._append(
            _datum("McpClient/RetryCount", 1, "Count", Operation=operation, ErrorKind=error_type),
        )

    # ── Shipping ─────────────────────────────────────────────────────

    def flush(self) -> int:
        """Drain the buffer.  Returns the number of points sent to CloudWatch."""
        with self._lock:
            batch, self._buffer = self._buffer, []

        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Metrics disabled, dropping %d points", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metric points to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    def close(self) -> None:
        """Stop the flush thread and push whatever is left."""
        self._stop.set()
        self.flush()

    def _append(self, *points: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop():
            while not self._stop.wait(FLUSH_INTERVAL_SECONDS):
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
