"""JSON-RPC 2.0 client for the availability MCP server, with retries,
per-attempt deadlines and cancellation.

The server exposes MCP tools over a single HTTP endpoint.  Tool calls are
``tools/call`` requests whose result wraps the real payload as a JSON string
inside ``content[{"type": "text", "text": ...}]``; this client decodes that
second layer so callers get plain Python data back.

Failure handling
----------------
* Each attempt has its own deadline (``request_timeout_ms``).  It covers the
  whole exchange.  A timer shuts the attempt's socket down when it expires,
  so a server trickling its headers cannot stretch the attempt, and the
  body is read in chunks with the deadline re-checked after each one.
* Timeouts, connection failures and 5xx responses are retried with
  exponential backoff (1s, 2s, 4s, 8s).  Anything else fails on the spot.
* Callers only ever see :class:`ToolCallFailed`.
* Every public operation accepts an optional ``threading.Event``.  Setting
  it stops the current body read and any pending backoff wait.
"""

from __future__ import annotations

import itertools
import json
import logging
import socket
import threading
import time
from typing import Any

import httpx

from stayassist.config import MCP_MAX_ATTEMPTS, MCP_REQUEST_TIMEOUT_MS, MCP_SERVER_URL
from stayassist.services.errors import (
    CallCancelled,
    HttpStatusError,
    MalformedResponseError,
    McpError,
    MissingResultError,
    NetworkError,
    RequestTimeoutError,
    RpcError,
    ToolCallFailed,
)
from stayassist.services.metrics import metrics
from stayassist.services.retry import with_retry

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

_REQUEST_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "Connection": "close",
}


class _AttemptWatchdog:
    """Aborts one HTTP attempt when its deadline passes.

    httpx applies its timeout to each socket operation separately, so a server
    that trickles its status line or headers can hold an attempt open far past
    the deadline.  The watchdog learns the attempt's socket from the httpcore
    ``trace`` extension and shuts it down from a timer thread, which wakes the
    blocked read.  The request is sent with ``Connection: close`` so every
    attempt opens its own connection and the trace always sees it.
    """

    _CONNECT_EVENTS = ("connection.connect_tcp.complete", "connection.start_tls.complete")

    def __init__(self, timeout_s: float):
        self.fired = False
        self._lock = threading.Lock()
        self._stream: Any = None
        self._timer = threading.Timer(timeout_s, self._fire)
        self._timer.daemon = True

    def __enter__(self) -> _AttemptWatchdog:
        self._timer.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._timer.cancel()

    def trace(self, event_name: str, info: dict[str, Any]) -> None:
        if event_name not in self._CONNECT_EVENTS:
            return
        with self._lock:
            self._stream = info.get("return_value")
            fired = self.fired
        if fired:
            self._abort()

    def _fire(self) -> None:
        with self._lock:
            self.fired = True
        logger.debug("Attempt deadline passed, aborting the connection")
        self._abort()

    def _abort(self) -> None:
        with self._lock:
            stream = self._stream
        sock = stream.get_extra_info("socket") if stream is not None else None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already closed it
            logger.debug("Socket was already closed when the deadline passed")


def unwrap_tool_result(result: Any) -> Any:
    """Return the decoded first ``text`` content item, or *result* unchanged."""
    content = result.get("content") if isinstance(result, dict) else None
    if not isinstance(content, list):
        return result

    for item in content:
        if isinstance(item, dict) and item.get("type") == "text":
            try:
                return json.loads(item.get("text"))
            except (TypeError, ValueError) as exc:
                raise MalformedResponseError(
                    f"Tool returned text content that is not valid JSON: {exc}"
                ) from exc
    return result


class McpClient:
    """Resilient JSON-RPC client bound to one MCP endpoint.

    Configuration is fixed at construction.  The only other per-instance
    state is the request-id counter and the one-shot connection check, so a
    single client can be shared between threads.

    Request ids come from a per-instance counter and are fresh for every
    physical attempt, so a retried call shows up in server logs under a new
    id.
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        *,
        request_timeout_ms: int | None = None,
        max_attempts: int | None = None,
        http_client: httpx.Client | None = None,
    ):
        self._endpoint_url = endpoint_url or MCP_SERVER_URL
        self._timeout_ms = request_timeout_ms if request_timeout_ms is not None else MCP_REQUEST_TIMEOUT_MS
        self._max_attempts = max_attempts if max_attempts is not None else MCP_MAX_ATTEMPTS

        if not self._endpoint_url:
            raise ValueError("endpoint_url must be a non-empty URL")
        if self._timeout_ms <= 0:
            raise ValueError(f"request_timeout_ms must be positive, got {self._timeout_ms}")
        if self._max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self._max_attempts}")

        self._timeout_s = self._timeout_ms / 1000
        self._client = http_client or httpx.Client(timeout=self._timeout_s)
        self._ids = itertools.count(1)
        # Deadline clock, swappable in tests
        self._clock = time.monotonic

        self._connect_lock = threading.Lock()
        self._connection_checked = False
        self.connection_verified = False

    def __enter__(self) -> McpClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    @property
    def request_timeout_ms(self) -> int:
        return self._timeout_ms

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def connection_checked(self) -> bool:
        return self._connection_checked

    # ── Single attempt ───────────────────────────────────────────────

    def _post(
        self, envelope: dict[str, Any], cancel: threading.Event | None,
    ) -> tuple[int, str, bytes]:
        """POST *envelope* and read the full body before the deadline."""
        deadline = self._clock() + self._timeout_s
        with _AttemptWatchdog(self._timeout_s) as watchdog:
            try:
                with self._client.stream(
                    "POST",
                    self._endpoint_url,
                    json=envelope,
                    headers=_REQUEST_HEADERS,
                    timeout=self._timeout_s,
                    extensions={"trace": watchdog.trace},
                ) as response:
                    body = bytearray()
                    for chunk in response.iter_bytes():
                        if cancel is not None and cancel.is_set():
                            raise CallCancelled("Call cancelled while reading the response")
                        if self._clock() > deadline:
                            raise RequestTimeoutError(self._timeout_ms)
                        body.extend(chunk)
                    # A close-delimited body cut short by the watchdog ends cleanly
                    if watchdog.fired:
                        raise RequestTimeoutError(self._timeout_ms)
                    return response.status_code, response.reason_phrase, bytes(body)
            except httpx.TimeoutException as exc:
                raise RequestTimeoutError(self._timeout_ms) from exc
            except httpx.DecodingError as exc:
                raise MalformedResponseError(f"Could not decode response body: {exc}") from exc
            except httpx.RequestError as exc:
                if watchdog.fired:
                    raise RequestTimeoutError(self._timeout_ms) from exc
                raise NetworkError(f"{type(exc).__name__}: {exc}") from exc

    def _exchange(self, envelope: dict[str, Any], cancel: threading.Event | None) -> Any:
        status, reason, body = self._post(envelope, cancel)
        if not 200 <= status < 300:
            raise HttpStatusError(status, reason)

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise MalformedResponseError(f"Response body is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise MalformedResponseError("Response body is not a JSON-RPC object")

        error = data.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise RpcError(error.get("code"), str(error.get("message", "Unknown error")))
            raise RpcError(None, str(error))

        result = data.get("result")
        if result is None:
            raise MissingResultError()
        return unwrap_tool_result(result)

    def invoke_once(
        self,
        method: str,
        params: dict[str, Any],
        *,
        cancel: threading.Event | None = None,
    ) -> Any:
        """Perform exactly one JSON-RPC exchange and return the decoded payload.

        Raises:
            McpError: the attempt-level failure, for the retry loop to classify.
        """
        request_id = next(self._ids)
        envelope = {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id,
            "method": method,
            "params": params,
        }
        operation = params.get("name") or method
        logger.debug("MCP → %s id=%d (%s)", method, request_id, operation)

        t0 = time.perf_counter()
        try:
            payload = self._exchange(envelope, cancel)
        except McpError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(operation, error_type=exc.kind.value, latency_ms=elapsed)
            logger.debug("MCP ✗ id=%d %s after %.0fms", request_id, exc, elapsed)
            raise

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success(operation, latency_ms=elapsed)
        logger.debug("MCP ← id=%d ok in %.0fms", request_id, elapsed)
        return payload

    # ── Public API ───────────────────────────────────────────────────

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> Any:
        """Invoke MCP tool *name* and return its parsed payload.

        Args:
            name: Tool name as advertised by ``tools/list``.
            arguments: JSON-serialisable tool arguments (may be empty).
            cancel: Optional event that aborts the call when set.

        Raises:
            ToolCallFailed: after all attempts, or on the first fatal error.
        """
        if not name:
            raise ValueError("tool name must be non-empty")

        params = {"name": name, "arguments": arguments or {}}
        logger.debug("Calling MCP tool %s with %s", name, params["arguments"])
        return with_retry(
            lambda: self.invoke_once("tools/call", params, cancel=cancel),
            name,
            max_attempts=self._max_attempts,
            cancel=cancel,
        )

    def _list_tools_once(self, cancel: threading.Event | None) -> list[Any]:
        result = self.invoke_once("tools/list", {}, cancel=cancel)
        tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools, list) or not tools:
            raise MalformedResponseError("Unexpected MCP response format: no tools listed")
        return tools

    def test_connection(self, *, cancel: threading.Event | None = None) -> bool:
        """Check that the server answers ``tools/list`` with at least one tool.

        Diagnostic only: every failure is logged and reported as ``False``.
        """
        try:
            tools = with_retry(
                lambda: self._list_tools_once(cancel),
                "tools/list",
                max_attempts=self._max_attempts,
                cancel=cancel,
            )
        except ToolCallFailed as exc:
            logger.error("MCP server at %s is not reachable: %s", self._endpoint_url, exc)
            return False
        except Exception:
            logger.exception("Unexpected error while testing the MCP connection")
            return False

        names = [t.get("name", "?") if isinstance(t, dict) else str(t) for t in tools]
        logger.info("MCP server connected; available tools: %s", ", ".join(map(str, names)))
        return True

    def ensure_connected(self, *, cancel: threading.Event | None = None) -> bool:
        """Run :meth:`test_connection` once per client and remember the outcome."""
        if self._connection_checked:
            return self.connection_verified

        with self._connect_lock:
            if not self._connection_checked:
                self.connection_verified = self.test_connection(cancel=cancel)
                self._connection_checked = True
                if self.connection_verified:
                    logger.info("MCP server connection verified")
                else:
                    logger.warning(
                        "MCP server connection test failed — availability tools may not work",
                    )
        return self.connection_verified


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: McpClient | None = None
_client_lock = threading.Lock()


def get_mcp_client() -> McpClient:
    """Return the process-wide :class:`McpClient` built from configuration."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = McpClient()
    return _client


def reset_mcp_client() -> None:
    """Forget the singleton so the next :func:`get_mcp_client` builds a new one."""
    global _client
    with _client_lock:
        _client = None
