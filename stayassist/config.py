"""Centralized configuration for StayAssist.

Values come from the environment (a local ``.env`` is loaded first).  When
running on AWS (``AWS_EXECUTION_ENV`` set) required values that are not in
the environment are looked up in SSM Parameter Store under
``/stayassist/<VARIABLE_NAME>``.

Everything here is read once at import time and treated as immutable.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))
_SSM_PREFIX = "/stayassist"


def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM, or ``None`` if it is unavailable."""
    try:
        import boto3  # noqa: PLC0415 (only needed on AWS)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"{_SSM_PREFIX}/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value:
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store {_SSM_PREFIX}/{name} (AWS)."
    )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise OSError(f"Invalid configuration: {name}={raw!r} is not an integer.") from None


# ── MCP availability service ────────────────────────────────────────
MCP_SERVER_URL: str = _require_env("MCP_SERVER_URL")
MCP_REQUEST_TIMEOUT_MS: int = _int_env("MCP_REQUEST_TIMEOUT_MS", 60_000)
MCP_MAX_ATTEMPTS: int = _int_env("MCP_MAX_ATTEMPTS", 5)

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = _int_env("SERVER_PORT", 8000)
