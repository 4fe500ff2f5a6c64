"""
toolwire CLI: list, call and cancel tools on an MCP server over HTTP.

Examples:
    toolwire tools
    toolwire call search --arg query=apples --arg maxCount= --timeout 30
    toolwire cancel 4c1f... --reason "user aborted"
    toolwire serve --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from toolwire.core.config import get_settings
from toolwire.core.mcp_client import MCPClient, MCPError
from toolwire.tools.cancellation import cancel_tool_execution
from toolwire.tools.catalog import list_server_tools
from toolwire.tools.dispatcher import call_tool
from toolwire.tools.formatting import format_call_result, format_tool_listing
from toolwire.tools.results import CallSuccess, to_response_dict


def parse_arg_pairs(pairs: List[str]) -> Dict[str, Any]:
    """Turn ``key=value`` strings into an argument map.

    Values are parsed as JSON when possible and kept as strings otherwise;
    an empty value (``key=``) means the argument is absent.
    """
    arguments: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got '{pair}'")
        if raw == "":
            arguments[key] = None
            continue
        try:
            arguments[key] = json.loads(raw)
        except ValueError:
            arguments[key] = raw
    return arguments


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="toolwire", description="Call tools on an MCP server")
    parser.add_argument("--url", help="MCP endpoint (default: MCP_SERVER_URL)")
    parser.add_argument("--name", help="Server display name (default: MCP_SERVER_NAME)")
    parser.add_argument("--json", action="store_true", help="Print raw JSON instead of formatted text")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("tools", help="List tools exposed by the server")

    call = sub.add_parser("call", help="Call a tool")
    call.add_argument("tool", help="Tool name")
    call.add_argument("--arg", action="append", default=[], metavar="KEY=VALUE", help="Tool argument (repeatable)")
    call.add_argument("--args-json", help="Tool arguments as a JSON object")
    call.add_argument("--timeout", type=float, help="Seconds before giving up (-1 for no timeout)")

    cancel = sub.add_parser("cancel", help="Send a cancellation notification for a call")
    cancel.add_argument("token", help="Progress token of the call to cancel")
    cancel.add_argument("--reason", default="Cancelled by user", help="Reason sent to the server")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", help="Bind address (default: API_HOST)")
    serve.add_argument("--port", type=int, help="Bind port (default: API_PORT)")
    return parser


def _connect(args: argparse.Namespace) -> MCPClient:
    client = MCPClient(server_url=args.url, name=args.name)
    client.initialize()
    return client


def _collect_arguments(args: argparse.Namespace) -> Dict[str, Any]:
    arguments: Dict[str, Any] = {}
    if args.args_json:
        loaded = json.loads(args.args_json)
        if not isinstance(loaded, dict):
            raise ValueError("--args-json must be a JSON object")
        arguments.update(loaded)
    arguments.update(parse_arg_pairs(args.arg))
    return arguments


def run_tools(client: Any, args: argparse.Namespace) -> int:
    listing = asyncio.run(list_server_tools(client, client.name))
    if args.json:
        print(json.dumps({
            "tools": [t.model_dump(by_alias=True) for t in listing.tools],
            **({"error": listing.error} if listing.error else {}),
        }, indent=2))
    else:
        print(format_tool_listing(listing, client.name))
    return 1 if listing.error else 0


def run_call(client: Any, args: argparse.Namespace) -> int:
    arguments = _collect_arguments(args)
    result = asyncio.run(call_tool(client, client.name, args.tool, arguments, args.timeout))
    if args.json:
        print(json.dumps(to_response_dict(result), indent=2, default=str))
    else:
        print(format_call_result(result))
    return 0 if isinstance(result, CallSuccess) else 1


def run_cancel(client: Any, args: argparse.Namespace) -> int:
    try:
        asyncio.run(cancel_tool_execution(client, args.token, args.reason))
    except Exception as e:
        print(f"❌ Failed to send cancellation: {e}")
        return 1
    print(f"✅ Cancellation sent for {args.token}")
    return 0


def run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from toolwire.api.app import create_app

    s = get_settings()
    handles: Dict[str, Any] = {}
    if args.url or s.server_url:
        try:
            client = _connect(args)
        except MCPError as e:
            print(f"❌ Could not initialize MCP session: {e}")
            return 1
        handles[client.name] = client
    else:
        print("⚠️  No MCP server configured (set MCP_SERVER_URL or pass --url)")
    uvicorn.run(create_app(handles), host=args.host or s.api_host, port=args.port or s.api_port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    s = get_settings()
    logging.basicConfig(level=getattr(logging, s.log_level.upper(), logging.INFO))

    if args.command == "serve":
        return run_serve(args)

    if not (args.url or s.server_url):
        print("❌ Missing configuration: set MCP_SERVER_URL in your .env file or pass --url")
        return 2

    try:
        client = _connect(args)
    except MCPError as e:
        print(f"❌ Could not initialize MCP session: {e}")
        return 1

    try:
        if args.command == "tools":
            return run_tools(client, args)
        if args.command == "call":
            return run_call(client, args)
        return run_cancel(client, args)
    except ValueError as e:
        print(f"❌ {e}")
        return 2
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
