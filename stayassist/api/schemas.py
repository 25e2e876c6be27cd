"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness plus the outcome of the startup MCP connection check."""

    status: str = "ok"
    service: str = "stayassist"
    mcp_connection: Literal["pending", "verified", "unreachable"] = "pending"


class McpStatusResponse(BaseModel):
    endpoint: str
    connected: bool


class ToolCallRequest(BaseModel):
    arguments: dict[str, Any] = Field(
        default_factory=dict, description="Arguments forwarded to the MCP tool",
    )


class ToolCallResponse(BaseModel):
    tool: str
    result: Any = Field(..., description="Decoded tool payload")


class AvailabilityReply(BaseModel):
    tool: str
    reply: str = Field(..., description="Guest-facing text produced by the tool")
