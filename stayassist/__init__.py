"""StayAssist — availability and booking tools for a vacation-rental chat agent.

Architecture Overview
=====================

The rental availability data lives in a separate MCP microservice that
speaks JSON-RPC 2.0 over a single HTTP endpoint.  This package is the
client side of that service:

1. **McpClient** — sends ``tools/call`` / ``tools/list`` requests with a
   per-attempt deadline, retries timeouts, connection failures and 5xx
   responses with exponential backoff (1s, 2s, 4s, 8s; 5 attempts), and
   fails fast on everything else.

2. **Availability tools** — LangChain tools built on the client that an
   agent can bind: 30-day overview, one property by dates, booking link.

3. **API / CLI** — a small FastAPI app (health, live MCP status, tool
   passthrough) and a terminal CLI for manual checks.

Key Design Decisions
--------------------
- **Errors**: every attempt failure is a tagged ``McpError``; callers only
  ever see ``ToolCallFailed``, which names the tool and the cause.
- **Connection check**: each client runs ``tools/list`` at most once via
  ``ensure_connected()``; the server does it in the background at startup.
- **Cancellation**: all client calls accept a ``threading.Event`` that cuts
  short both the response read and the backoff wait.

Package Structure
-----------------
- ``stayassist/config.py`` — configuration from environment variables
- ``stayassist/models.py`` — pydantic models for availability payloads
- ``stayassist/services/`` — MCP client, retry policy, errors, metrics
- ``stayassist/tools/`` — LangChain availability tools
- ``stayassist/api/`` — FastAPI routes and schemas
- ``stayassist/server.py`` — FastAPI application
- ``stayassist/main.py`` — CLI
"""
