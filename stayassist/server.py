"""FastAPI server exposing health and MCP diagnostics.

Run with:
    uvicorn stayassist.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response

from stayassist.api.routes import router
from stayassist.config import SERVER_HOST, SERVER_PORT
from stayassist.services.mcp_client import get_mcp_client, reset_mcp_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create the MCP client and check the connection in the background.

    The check retries with backoff, so it must not hold up startup.  Its
    outcome is only logged and surfaced on ``/api/health``.
    """
    client = get_mcp_client()
    application.state.mcp_client = client
    shutdown = threading.Event()
    check = asyncio.create_task(
        asyncio.to_thread(client.ensure_connected, cancel=shutdown),
    )
    logger.info("MCP client ready for %s", client.endpoint_url)
    yield
    shutdown.set()
    await check
    application.state.mcp_client = None
    client.close()
    reset_mcp_client()
    logger.info("MCP client closed")


app = FastAPI(
    title="StayAssist",
    description="Availability and booking-link service backed by the rental MCP server.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Tag each request with an ``X-Request-ID`` for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "StayAssist",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting StayAssist API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run("stayassist.server:app", host=SERVER_HOST, port=SERVER_PORT, reload=True)
