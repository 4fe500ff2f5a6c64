from __future__ import annotations

import asyncio
import logging
import time

import pytest

from fakes import BlockingTransport, FakeServerHandle, FakeTransport, HangingTransport
from toolwire.tools import dispatcher
from toolwire.core.mcp_client import MCPError
from toolwire.tools.dispatcher import call_tool, race_with_timeout
from toolwire.tools.errors import ErrorKind
from toolwire.tools.results import CallFailure, CallSuccess, to_response_dict


def test_missing_handle_is_not_found_without_any_call():
    result = asyncio.run(call_tool(None, "files", "search", {"query": "x"}))
    assert isinstance(result, CallFailure)
    assert result.status_code == 404
    assert result.error_kind is ErrorKind.NOT_CONNECTED
    assert result.message == "Server files not found"
    assert to_response_dict(result)["success"] is False


def test_disconnected_handle_is_never_called():
    handle = FakeServerHandle()
    handle.connected = False
    result = asyncio.run(call_tool(handle, "files", "search", {}))
    assert result.status_code == 404
    assert handle.calls == []


def test_success_carries_payload_and_token_in_envelope():
    handle = FakeServerHandle(result={"content": [{"type": "text", "text": "42"}]})
    result = asyncio.run(call_tool(handle, "files", "search", {"query": "apples", "maxCount": None}))
    assert isinstance(result, CallSuccess)
    assert result.payload == {"content": [{"type": "text", "text": "42"}]}
    sent = handle.calls[0]
    assert sent["name"] == "search"
    assert sent["arguments"] == {"query": "apples", "maxCount": 0}
    assert sent["_meta"]["progressToken"] == result.progress_token
    assert handle.sent == []


def test_infinite_and_absent_timeout_differ_only_in_events():
    handle = FakeServerHandle()
    absent = asyncio.run(call_tool(handle, "files", "search", {}, token_factory=lambda: "tok"))
    infinite = asyncio.run(call_tool(handle, "files", "search", {}, -1, token_factory=lambda: "tok"))
    assert absent.model_dump(exclude={"events"}) == infinite.model_dump(exclude={"events"})
    assert [e.message for e in absent.events] != [e.message for e in infinite.events]
    assert any("explicitly infinite" in e.message for e in infinite.events)


def test_hanging_call_times_out_and_cancels_once():
    handle = FakeServerHandle(hang=True)
    start = time.monotonic()
    result = asyncio.run(call_tool(handle, "files", "slow_tool", {"query": "x"}, 1))
    elapsed = time.monotonic() - start

    assert elapsed < 1.5
    assert isinstance(result, CallFailure)
    assert result.status_code == 408
    assert result.error_kind is ErrorKind.TIMEOUT
    assert result.message == "Tool execution timed out after 1 seconds"
    body = to_response_dict(result)
    assert body["errorType"] == "timeout"
    assert body["toolName"] == "slow_tool"
    assert body["timeout"] == 1

    assert len(handle.sent) == 1
    notification = handle.sent[0]
    assert notification["method"] == "notifications/cancelled"
    assert notification["params"]["requestId"] == result.progress_token
    assert handle.calls[0]["_meta"]["progressToken"] == result.progress_token
    assert handle.cancelled_calls == 1


def test_timeout_emits_structured_error_event():
    handle = FakeServerHandle(hang=True)
    result = asyncio.run(call_tool(handle, "files", "slow_tool", {}, 0.05))
    errors = [e for e in result.events if e.level == "ERROR"]
    assert len(errors) == 1
    assert errors[0].fields["source"] == "timeout"
    assert errors[0].fields["progressToken"] == result.progress_token


def test_fast_call_beats_timer():
    handle = FakeServerHandle()
    result = asyncio.run(call_tool(handle, "files", "search", {}, 5))
    assert isinstance(result, CallSuccess)
    assert handle.sent == []


def _call_then_settle(handle, timeout, settle=0.05):
    async def scenario():
        result = await call_tool(handle, "files", "slow_tool", {}, timeout)
        await asyncio.sleep(settle)
        return result

    return asyncio.run(scenario())


def test_failed_cancellation_does_not_change_timeout_outcome(caplog):
    handle = FakeServerHandle(hang=True, transport=FakeTransport(fail=ConnectionError("pipe closed")))
    with caplog.at_level(logging.INFO, logger="toolwire.tools.dispatcher"):
        result = _call_then_settle(handle, 0.05)
    assert result.status_code == 408
    assert "Failed to send cancellation notification: pipe closed" in caplog.text
    assert not dispatcher._pending_cancellations


def test_timeout_does_not_wait_for_a_hanging_cancellation_send():
    transport = HangingTransport()
    handle = FakeServerHandle(hang=True, transport=transport)
    start = time.monotonic()
    result = asyncio.run(call_tool(handle, "files", "slow_tool", {}, 0.1))
    assert time.monotonic() - start < 0.6
    assert result.status_code == 408
    assert transport.attempts == 1
    assert any("Sending cancellation notification" in e.message for e in result.events)


def test_timeout_does_not_wait_for_a_blocking_cancellation_send():
    transport = BlockingTransport()
    handle = FakeServerHandle(hang=True, transport=transport)
    start = time.monotonic()
    try:
        result = asyncio.run(call_tool(handle, "files", "slow_tool", {}, 0.1))
        elapsed = time.monotonic() - start
    finally:
        transport.release.set()
    assert elapsed < 0.6
    assert result.status_code == 408


def test_background_cancellation_send_is_bounded(monkeypatch, caplog):
    monkeypatch.setattr(dispatcher, "CANCEL_NOTIFICATION_TIMEOUT_SECONDS", 0.05)
    handle = FakeServerHandle(hang=True, transport=HangingTransport())
    with caplog.at_level(logging.WARNING, logger="toolwire.tools.dispatcher"):
        result = _call_then_settle(handle, 0.02, settle=0.2)
    assert result.status_code == 408
    assert "Cancellation notification for tool slow_tool abandoned" in caplog.text
    assert not dispatcher._pending_cancellations


def test_timeout_without_transport_still_resolves():
    handle = FakeServerHandle(hang=True, transport=None)
    result = asyncio.run(call_tool(handle, "files", "slow_tool", {}, 0.05))
    assert result.status_code == 408
    assert result.error_kind is ErrorKind.TIMEOUT


def test_late_completion_is_discarded():
    finished = []

    async def slow_but_stubborn(params):
        async def work():
            await asyncio.sleep(0.1)
            finished.append(params["_meta"]["progressToken"])
            return {"content": []}
        # keeps running even after the dispatcher gives up on it
        return await asyncio.shield(work())

    async def scenario():
        handle = FakeServerHandle(respond=slow_but_stubborn)
        result = await call_tool(handle, "files", "slow_tool", {}, 0.02)
        await asyncio.sleep(0.2)
        return result

    result = asyncio.run(scenario())
    assert result.status_code == 408
    assert finished == [result.progress_token]


def test_late_failure_is_discarded():
    async def slow_then_fail(params):
        async def work():
            await asyncio.sleep(0.05)
            raise MCPError("too late", code=-32603)
        return await asyncio.shield(work())

    async def scenario():
        handle = FakeServerHandle(respond=slow_then_fail)
        result = await call_tool(handle, "files", "slow_tool", {}, 0.01)
        await asyncio.sleep(0.15)
        return result

    assert asyncio.run(scenario()).status_code == 408


def test_remote_errors_are_classified():
    handle = FakeServerHandle(error=MCPError("Invalid params", code=-32602))
    result = asyncio.run(call_tool(handle, "files", "search", {}, 5))
    assert result.status_code == 400
    assert result.error_kind is ErrorKind.INVALID_ARGUMENTS
    assert result.message == "Failed to call tool: Invalid params (Code: -32602)"
    assert result.progress_token == handle.calls[0]["_meta"]["progressToken"]


def test_auth_errors_request_reauthentication():
    handle = FakeServerHandle(error=RuntimeError("HTTP 401: Not Found"))
    result = asyncio.run(call_tool(handle, "files", "search", {}))
    body = to_response_dict(result)
    assert body["statusCode"] == 401
    assert body["requiresAuthentication"] is True


@pytest.mark.parametrize("timeout", [0, -5, float("nan"), True, "10"])
def test_invalid_timeouts_are_rejected_before_calling(timeout):
    handle = FakeServerHandle()
    result = asyncio.run(call_tool(handle, "files", "search", {}, timeout))
    assert result.status_code == 400
    assert result.error_kind is ErrorKind.INVALID_ARGUMENTS
    assert handle.calls == []


def test_schema_validation_runs_on_normalized_arguments():
    schema = {
        "type": "object",
        "properties": {"pageCount": {"type": "integer"}, "query": {"type": "string"}},
        "required": ["query"],
    }
    handle = FakeServerHandle()
    ok = asyncio.run(call_tool(handle, "files", "search", {"query": "x", "pageCount": None}, input_schema=schema))
    assert isinstance(ok, CallSuccess)

    bad = asyncio.run(call_tool(handle, "files", "search", {"pageCount": "ten"}, input_schema=schema))
    assert bad.status_code == 400
    assert "pageCount" in bad.message
    assert len(handle.calls) == 1


def test_concurrent_calls_are_independent():
    async def respond(params):
        if params["arguments"].get("slow"):
            await asyncio.Event().wait()
        return {"content": [{"type": "text", "text": "fast"}]}

    async def scenario():
        handle = FakeServerHandle(respond=respond)
        results = await asyncio.gather(
            call_tool(handle, "files", "search", {"slow": True}, 0.05),
            call_tool(handle, "files", "search", {"slow": False}, 5),
        )
        return handle, results

    handle, (slow, fast) = asyncio.run(scenario())
    assert slow.status_code == 408
    assert isinstance(fast, CallSuccess)
    assert slow.progress_token != fast.progress_token
    assert [n["params"]["requestId"] for n in handle.sent] == [slow.progress_token]


def test_tokens_are_never_reused():
    handle = FakeServerHandle()
    tokens = {asyncio.run(call_tool(handle, "files", "search", {})).progress_token for _ in range(5)}
    assert len(tokens) == 5


def test_caller_cancellation_cancels_the_remote_call():
    handle = FakeServerHandle(hang=True)

    async def scenario():
        task = asyncio.ensure_future(call_tool(handle, "files", "slow_tool", {}, 5))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert handle.cancelled_calls == 1


def test_race_returns_result_or_raises():
    async def value():
        return 7

    async def boom():
        raise ValueError("x")

    assert asyncio.run(race_with_timeout(value(), 1)) == (True, 7)
    with pytest.raises(ValueError):
        asyncio.run(race_with_timeout(boom(), 1))
