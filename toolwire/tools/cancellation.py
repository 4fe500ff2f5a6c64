from __future__ import annotations

import inspect
import json
import logging

from toolwire.adapters.server_handle import ServerHandle
from toolwire.core.constants import CANCELLED_NOTIFICATION_METHOD, JSONRPC_VERSION
from toolwire.core.mcp_client import TransportUnavailableError, in_worker_thread

logger = logging.getLogger(__name__)


def build_cancellation(request_id: str, reason: str) -> dict:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "method": CANCELLED_NOTIFICATION_METHOD,
        "params": {"requestId": request_id, "reason": reason},
    }


async def cancel_tool_execution(handle: ServerHandle, request_id: str, reason: str) -> None:
    """Tell the server to abandon the call tagged with `request_id`.

    The notification has no reply; this only reports whether the send itself
    worked. Raises TransportUnavailableError when the handle cannot send, and
    re-raises whatever the transport raised otherwise.
    """
    logger.debug("Cancelling request %s: %s", request_id, reason)
    transport = getattr(handle, "transport", None)
    if transport is None:
        raise TransportUnavailableError("Client has no transport")
    send = getattr(transport, "send", None)
    if not callable(send):
        raise TransportUnavailableError("Transport does not support sending messages")

    message = json.dumps(build_cancellation(request_id, reason))
    try:
        if inspect.iscoroutinefunction(send):
            await send(message)
        else:
            # blocking transports run off the event loop on a daemon thread
            sent = await in_worker_thread(send, message, name="mcp-cancel")
            if inspect.isawaitable(sent):
                await sent
    except Exception as e:
        logger.error("Failed to cancel tool execution: %s", e, extra={"progress_token": request_id})
        raise
    logger.info("Sent cancellation notification for request %s", request_id, extra={"progress_token": request_id})
