"""Call a tool on a connected server and always come back with a CallResult.

A call can hang forever, the caller can ask for a deadline, and the
cancellation handshake can fail on its own. The dispatcher folds all three
into one outcome:

* no timeout / ``-1``: await the remote call;
* positive timeout: race the remote call against a timer task. If the timer
  wins, the call task is cancelled and detached, a ``notifications/cancelled``
  message carrying the same progress token is sent in the background, and a 408
  failure is returned without waiting for it. Whatever the detached call
  does later is discarded.

Every other failure goes through the error classifier.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Tuple

from toolwire.adapters.server_handle import ServerHandle
from toolwire.core.constants import CANCEL_NOTIFICATION_TIMEOUT_SECONDS, INFINITE_TIMEOUT
from toolwire.core.events import EventLog
from toolwire.core.schemas import CallEnvelope
from toolwire.tools.cancellation import cancel_tool_execution
from toolwire.tools.errors import ErrorKind, classify_error, matching_rule
from toolwire.tools.normalizer import DefaultingStrategy, normalize_arguments
from toolwire.tools.results import CallFailure, CallResult, CallSuccess
from toolwire.tools.validation import validate_arguments

logger = logging.getLogger(__name__)


def new_progress_token() -> str:
    return str(uuid.uuid4())


def _seconds(timeout: float) -> str:
    return f"{timeout:g}"


def _is_valid_timeout(timeout: Any) -> bool:
    if timeout is None or timeout == INFINITE_TIMEOUT:
        return True
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        return False
    return math.isfinite(timeout) and timeout > 0


def _discard_late_outcome(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    # retrieve it so asyncio does not warn about an unobserved exception
    exc = task.exception()
    logger.debug("Discarding outcome of a tool call that finished after its timeout", extra={"error": str(exc) if exc else None})


async def race_with_timeout(call: Awaitable[Any], timeout: float) -> Tuple[bool, Any]:
    """Run `call` against a timer; returns ``(settled, payload)``.

    If the call settles first its result is returned (or its exception
    raised) and the timer is cancelled. If the timer fires first the call
    task is cancelled and left to finish on its own; ``(False, None)``.
    """
    call_task = asyncio.ensure_future(call)
    timer = asyncio.ensure_future(asyncio.sleep(timeout))
    try:
        await asyncio.wait({call_task, timer}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        call_task.cancel()
        timer.cancel()
        raise

    if call_task.done():
        timer.cancel()
        return True, call_task.result()

    call_task.cancel()
    call_task.add_done_callback(_discard_late_outcome)
    return False, None


# detached cancellation sends; referenced here until they finish
_pending_cancellations: Set[asyncio.Task] = set()


def _cancellation_sent(task: asyncio.Task, tool_name: str, progress_token: str, expiry: asyncio.TimerHandle) -> None:
    expiry.cancel()
    _pending_cancellations.discard(task)
    if task.cancelled():
        logger.warning("Cancellation notification for tool %s abandoned", tool_name, extra={"progress_token": progress_token})
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Failed to send cancellation notification: %s", str(exc) or type(exc).__name__, extra={"progress_token": progress_token})
    else:
        logger.info("Sent cancellation notification for timed out tool %s", tool_name, extra={"progress_token": progress_token})


def send_cancellation_in_background(handle: ServerHandle, tool_name: str, progress_token: str, reason: str) -> asyncio.Task:
    """Fire the cancellation notification without waiting for it.

    The send is given `CANCEL_NOTIFICATION_TIMEOUT_SECONDS` to finish before
    it is cancelled; its outcome is only logged.
    """
    task = asyncio.ensure_future(cancel_tool_execution(handle, progress_token, reason))
    expiry = asyncio.get_running_loop().call_later(CANCEL_NOTIFICATION_TIMEOUT_SECONDS, task.cancel)
    _pending_cancellations.add(task)
    task.add_done_callback(lambda t: _cancellation_sent(t, tool_name, progress_token, expiry))
    return task


async def _timed_out(handle: ServerHandle, tool_name: str, timeout: float, progress_token: str, events: EventLog) -> CallFailure:
    message = f"Tool execution timed out after {_seconds(timeout)} seconds"
    events.warning(f"Tool {tool_name} execution timed out after {_seconds(timeout)} seconds", tool=tool_name, progress_token=progress_token)

    send_cancellation_in_background(handle, tool_name, progress_token, f"Execution timed out after {_seconds(timeout)} seconds")
    events.info(f"Sending cancellation notification for timed out tool {tool_name}", progress_token=progress_token)
    # one loop turn lets the send start; its outcome is not awaited
    await asyncio.sleep(0)

    events.error(
        f"Tool {tool_name} execution timed out after {_seconds(timeout)} seconds",
        type="error",
        source="timeout",
        toolName=tool_name,
        timeout=timeout,
        progressToken=progress_token,
    )
    return CallFailure(
        tool_name=tool_name,
        error_kind=ErrorKind.TIMEOUT,
        message=message,
        status_code=408,
        progress_token=progress_token,
        timeout=timeout,
        events=events.events,
    )


async def call_tool(
    handle: Optional[ServerHandle],
    server_name: str,
    tool_name: str,
    arguments: Optional[Mapping[str, Any]],
    timeout: Optional[float] = None,
    *,
    input_schema: Optional[Dict[str, Any]] = None,
    strategy: Optional[DefaultingStrategy] = None,
    token_factory: Callable[[], str] = new_progress_token,
) -> CallResult:
    """Call `tool_name` on `handle`.

    `timeout` is in seconds: None waits forever, -1 explicitly waits forever,
    any positive number bounds the wait. When `input_schema` is given, the
    normalized arguments are checked against it before anything is sent.
    """
    events = EventLog(logger)
    if handle is None or not getattr(handle, "connected", True):
        events.warning(f"Server {server_name} not found", server=server_name, tool=tool_name)
        return CallFailure(
            tool_name=tool_name,
            error_kind=ErrorKind.NOT_CONNECTED,
            message=f"Server {server_name} not found",
            status_code=404,
            events=events.events,
        )

    if not _is_valid_timeout(timeout):
        events.warning(f"Rejecting invalid timeout {timeout!r} for tool {tool_name}", tool=tool_name)
        return CallFailure(
            tool_name=tool_name,
            error_kind=ErrorKind.INVALID_ARGUMENTS,
            message=f"Invalid timeout {timeout!r}: expected a positive number of seconds or {INFINITE_TIMEOUT}",
            status_code=400,
            events=events.events,
        )

    progress_token: Optional[str] = None
    try:
        normalized = normalize_arguments(arguments, tool_name, strategy=strategy, events=events)

        violations = validate_arguments(normalized, input_schema)
        if violations:
            events.warning(f"Arguments for tool {tool_name} do not match its input schema", tool=tool_name, violations=violations)
            return CallFailure(
                tool_name=tool_name,
                error_kind=ErrorKind.INVALID_ARGUMENTS,
                message=f"Invalid arguments for tool {tool_name}: " + "; ".join(violations),
                status_code=400,
                events=events.events,
            )

        progress_token = token_factory()
        envelope = CallEnvelope(tool_name=tool_name, arguments=normalized, progress_token=progress_token)
        events.debug(f"Generated progress token: {progress_token} for tool {tool_name}", tool=tool_name, progress_token=progress_token)

        if timeout is None:
            events.debug(f"No timeout specified for tool {tool_name}, using default (no timeout)", tool=tool_name)
            payload = await handle.call_tool(envelope.to_params())
        elif timeout == INFINITE_TIMEOUT:
            events.debug(f"No timeout set for tool {tool_name} (explicitly infinite)", tool=tool_name)
            payload = await handle.call_tool(envelope.to_params())
        else:
            events.debug(f"Setting timeout of {_seconds(timeout)}s for tool {tool_name}", tool=tool_name, timeout=timeout)
            settled, payload = await race_with_timeout(handle.call_tool(envelope.to_params()), timeout)
            if not settled:
                return await _timed_out(handle, tool_name, timeout, progress_token, events)
    except Exception as e:
        classified = classify_error(e)
        events.warning(
            f"Failed to call tool {tool_name} on server {server_name}: {e}",
            tool=tool_name,
            server=server_name,
            rule=matching_rule(e),
            status_code=classified.status_code,
        )
        return CallFailure(
            tool_name=tool_name,
            error_kind=classified.kind,
            message=classified.message,
            status_code=classified.status_code,
            progress_token=progress_token,
            requires_authentication=classified.requires_authentication,
            events=events.events,
        )

    return CallSuccess(tool_name=tool_name, payload=payload, progress_token=progress_token, events=events.events)
