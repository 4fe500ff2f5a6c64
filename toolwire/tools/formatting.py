from __future__ import annotations

import json
from typing import Any, List

from toolwire.core.mcp_client import parse_mcp_content_text
from toolwire.core.schemas import ToolDescriptor
from toolwire.tools.catalog import ToolListing
from toolwire.tools.results import CallResult, CallSuccess


def format_tool_listing(listing: ToolListing, server_name: str) -> str:
    if listing.error:
        return f"Error: {listing.error}"
    if not listing.tools:
        return f"Server {server_name} exposes no tools"
    formatted = f"Found {len(listing.tools)} tools on {server_name}:\n\n"
    for i, tool in enumerate(listing.tools, 1):
        formatted += f"{i}. {tool.name}\n"
        if tool.description:
            formatted += f"   {tool.description}\n"
        params = _parameter_names(tool)
        if params:
            formatted += f"   Parameters: {', '.join(params)}\n"
    return formatted


def _parameter_names(tool: ToolDescriptor) -> List[str]:
    props = tool.input_schema.get("properties") or {}
    required = set(tool.input_schema.get("required") or [])
    return [f"{name}*" if name in required else name for name in props]


def format_call_result(result: CallResult) -> str:
    if not isinstance(result, CallSuccess):
        formatted = f"Error ({result.status_code}, {result.error_kind.value}): {result.message}"
        if result.requires_authentication:
            formatted += "\nRe-authenticate the server and try again."
        if result.progress_token:
            formatted += f"\nProgress token: {result.progress_token}"
        return formatted

    payload: Any = result.payload
    if isinstance(payload, dict) and payload.get("error"):
        return f"Tool error: {payload['error']}"
    parsed = parse_mcp_content_text(payload) if isinstance(payload, dict) else None
    if parsed is not None:
        return json.dumps(parsed, indent=2)
    if isinstance(payload, dict) and isinstance(payload.get("content"), list):
        texts = [item.get("text", "") for item in payload["content"] if isinstance(item, dict) and item.get("type") == "text"]
        if texts:
            return "\n".join(texts)
    return json.dumps(payload, indent=2, default=str)
