"""Error taxonomy for the MCP client.

Every failure an attempt can hit is an :class:`McpError` tagged with an
:class:`ErrorKind`.  The retry loop classifies errors by matching on the
kind, never on message text.  Callers only ever see :class:`ToolCallFailed`,
which wraps the last attempt error.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    RPC = "rpc"
    MALFORMED = "malformed"
    MISSING_RESULT = "missing_result"
    CANCELLED = "cancelled"


class McpError(Exception):
    """Base class for a single failed attempt against the MCP server."""

    kind: ErrorKind

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RequestTimeoutError(McpError):
    """The attempt ran past its deadline and was aborted."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timeout after {timeout_ms}ms")


class NetworkError(McpError):
    """Connection refused, DNS failure, reset socket and friends."""

    kind = ErrorKind.NETWORK


class HttpStatusError(McpError):
    """The server answered with a non-2xx status."""

    kind = ErrorKind.HTTP_STATUS

    def __init__(self, status: int, reason: str = ""):
        self.status = status
        self.reason = reason
        super().__init__(f"HTTP {status}: {reason}" if reason else f"HTTP {status}")


class RpcError(McpError):
    """The JSON-RPC envelope carried an ``error`` member."""

    kind = ErrorKind.RPC

    def __init__(self, code: int | None, message: str):
        self.code = code
        self.rpc_message = message
        prefix = f"MCP Error ({code})" if code is not None else "MCP Error"
        super().__init__(f"{prefix}: {message}")


class MalformedResponseError(McpError):
    kind = ErrorKind.MALFORMED


class MissingResultError(McpError):
    kind = ErrorKind.MISSING_RESULT

    def __init__(self, message: str = "No result in MCP response"):
        super().__init__(message)


class CallCancelled(McpError):
    """The caller's cancel event fired during a request or a backoff wait."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Call cancelled by caller"):
        super().__init__(message)


class ToolCallFailed(Exception):
    """Raised to the caller once retries are exhausted or a fatal error occurs."""

    def __init__(self, tool_name: str, cause: McpError, attempts: int):
        self.tool_name = tool_name
        self.cause = cause
        self.attempts = attempts
        super().__init__(
            f"Failed to call MCP tool {tool_name} after {attempts} "
            f"attempt{'s' if attempts != 1 else ''}: {cause}"
        )
