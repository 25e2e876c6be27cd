"""FastAPI route definitions: health, MCP diagnostics and availability tools."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from stayassist.api.schemas import (
    AvailabilityReply,
    HealthResponse,
    McpStatusResponse,
    ToolCallRequest,
    ToolCallResponse,
)
from stayassist.services.errors import ToolCallFailed
from stayassist.services.mcp_client import McpClient
from stayassist.tools.availability import TOOLS_BY_NAME

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_client(request: Request) -> McpClient:
    """Return the MCP client created during the lifespan, or 503."""
    client = getattr(request.app.state, "mcp_client", None)
    if client is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return client


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    client = getattr(request.app.state, "mcp_client", None)
    if client is None or not client.connection_checked:
        return HealthResponse()
    return HealthResponse(
        mcp_connection="verified" if client.connection_verified else "unreachable",
    )


@router.get("/mcp/status", response_model=McpStatusResponse)
async def mcp_status(request: Request):
    """Run a live ``tools/list`` check against the MCP server.

    ``test_connection`` blocks through its retries, so it runs in a worker
    thread.
    """
    client = _get_client(request)
    connected = await asyncio.to_thread(client.test_connection)
    return McpStatusResponse(endpoint=client.endpoint_url, connected=connected)


@router.post("/tools/{tool_name}", response_model=ToolCallResponse)
async def call_tool(tool_name: str, body: ToolCallRequest, http_request: Request):
    """Forward a tool call to the MCP server and return the decoded payload."""
    client = _get_client(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(client.call_tool, tool_name, body.arguments)
    except ToolCallFailed as e:
        # Full cause goes to the log only
        logger.error("[%s] Tool %s failed: %s", request_id, tool_name, e)
        raise HTTPException(
            status_code=502,
            detail=f"The availability service could not complete '{tool_name}'. Please try again.",
        ) from e

    return ToolCallResponse(tool=tool_name, result=result)


@router.post("/availability/{tool_name}", response_model=AvailabilityReply)
async def run_availability_tool(tool_name: str, body: ToolCallRequest, http_request: Request):
    """Run one of the guest-facing availability tools and return its reply.

    The tools handle MCP failures themselves and answer with an apology, so
    only unknown tools and bad arguments are errors here.
    """
    _get_client(http_request)
    selected = TOOLS_BY_NAME.get(tool_name)
    if selected is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown availability tool '{tool_name}'. Known tools: {', '.join(TOOLS_BY_NAME)}.",
        )

    try:
        reply = await asyncio.to_thread(selected.invoke, body.arguments)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False, include_input=False)) from e

    return AvailabilityReply(tool=tool_name, reply=reply)
