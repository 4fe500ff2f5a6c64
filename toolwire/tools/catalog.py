from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from toolwire.adapters.server_handle import ServerHandle
from toolwire.core.schemas import ToolDescriptor

logger = logging.getLogger(__name__)


@dataclass
class ToolListing:
    tools: List[ToolDescriptor] = field(default_factory=list)
    error: Optional[str] = None


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def to_descriptor(entry: Any) -> ToolDescriptor:
    return ToolDescriptor(
        name=_field(entry, "name") or "",
        description=_field(entry, "description") or "",
        inputSchema=_field(entry, "inputSchema") or {},
    )


async def list_server_tools(handle: Optional[ServerHandle], server_name: str) -> ToolListing:
    """Fetch the server's tools; failures come back as `ToolListing.error`, never raised."""
    if handle is None or not getattr(handle, "connected", True):
        logger.warning("Server %s not connected", server_name)
        return ToolListing(error="Server not connected")

    try:
        logger.info("Listing tools for server %s", server_name)
        response = await handle.list_tools()
        entries = _field(response, "tools") or []
        tools = [to_descriptor(entry) for entry in entries]
    except Exception as e:
        logger.warning("Failed to list tools for server %s: %s", server_name, e)
        message = str(e) or "Unknown error"
        if "Connection timeout" in message:
            return ToolListing(error=message)
        return ToolListing(error=f"Failed to list tools: {message}")

    logger.debug("Processed %d tools for server %s", len(tools), server_name)
    return ToolListing(tools=tools)
