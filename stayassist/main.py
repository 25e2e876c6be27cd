"""CLI for poking the availability MCP server by hand.

Usage:
    python -m stayassist.main check
    python -m stayassist.main call get_all_availability_30_days --args '{"refresh": false}'
    python -m stayassist.main --debug call create_booking --args '{...}'
    python -m stayassist.main tool get_property_availability_by_dates --args '{...}'
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG (including HTTP traffic) with --debug."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("stayassist").setLevel(logging.DEBUG if debug else logging.INFO)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="StayAssist MCP client CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", help="Test the connection to the MCP server")

    call = sub.add_parser("call", help="Call an MCP tool and print its result")
    call.add_argument("tool", help="Tool name, e.g. get_all_availability_30_days")
    call.add_argument(
        "--args", dest="tool_args", default="{}",
        help="Tool arguments as a JSON object",
    )

    run = sub.add_parser("tool", help="Run a guest-facing availability tool and print its reply")
    run.add_argument("tool", help="Tool name, e.g. create_booking")
    run.add_argument(
        "--args", dest="tool_args", default="{}",
        help="Tool arguments as a JSON object",
    )
    return parser


def _parse_tool_args(raw: str) -> dict | None:
    try:
        tool_args = json.loads(raw)
    except ValueError as e:
        print(f"--args is not valid JSON: {e}", file=sys.stderr)
        return None
    if not isinstance(tool_args, dict):
        print("--args must be a JSON object", file=sys.stderr)
        return None
    return tool_args


def _run_availability_tool(name: str, tool_args: dict) -> int:
    from stayassist.tools.availability import TOOLS_BY_NAME

    selected = TOOLS_BY_NAME.get(name)
    if selected is None:
        print(f"Unknown tool {name!r}. Known tools: {', '.join(TOOLS_BY_NAME)}", file=sys.stderr)
        return 2
    try:
        print(selected.invoke(tool_args))
    except ValidationError as e:
        print(f"Invalid arguments for {name}: {e}", file=sys.stderr)
        return 2
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    # Imported late so a missing MCP_SERVER_URL is reported after logging is set up
    from stayassist.services.errors import ToolCallFailed
    from stayassist.services.mcp_client import get_mcp_client

    if args.command == "check":
        client = get_mcp_client()
        ok = client.test_connection()
        print(f"{client.endpoint_url}: {'connected' if ok else 'UNREACHABLE'}")
        return 0 if ok else 1

    tool_args = _parse_tool_args(args.tool_args)
    if tool_args is None:
        return 2

    if args.command == "tool":
        return _run_availability_tool(args.tool, tool_args)

    try:
        result = get_mcp_client().call_tool(args.tool, tool_args)
    except ToolCallFailed as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
