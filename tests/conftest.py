"""Shared test fixtures for the StayAssist test suite."""

from __future__ import annotations

import os

import httpx
import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("MCP_SERVER_URL", "http://mcp.test/message")
    os.environ.setdefault("METRICS_ENABLED", "false")


@pytest.fixture
def make_client():
    """Factory fixture: an McpClient whose HTTP traffic goes to *handler*."""
    from stayassist.services.mcp_client import McpClient

    created = []

    def _make(handler, **kwargs) -> McpClient:
        http = httpx.Client(transport=httpx.MockTransport(handler))
        client = McpClient("http://mcp.test/message", http_client=http, **kwargs)
        created.append(client)
        return client

    yield _make
    for client in created:
        client.close()
