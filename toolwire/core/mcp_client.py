"""MCP server handle speaking JSON-RPC over HTTP.

This module encapsulates JSON-RPC envelopes, request ids, retries and
HTTP error mapping for a single remote tool server. `MCPClient` satisfies
the `ServerHandle` protocol so the tool-invocation layer can borrow it
without knowing anything about HTTP.

Blocking requests run on daemon worker threads, one `requests.Session` per
thread. A call the dispatcher gave up on keeps its thread until the socket
timeout, but never delays event loop or interpreter shutdown.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
import time
import weakref
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import get_settings
from .constants import JSONRPC_VERSION, NOTIFICATION_TIMEOUT_SECONDS, PROTOCOL_VERSION


class MCPError(RuntimeError):
    """A transport or JSON-RPC failure; `code` is set for protocol errors."""

    def __init__(self, message: str, *, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class TransportUnavailableError(MCPError):
    pass


async def in_worker_thread(fn: Callable[..., Any], *args: Any, name: str = "toolwire-worker") -> Any:
    """Await `fn(*args)` run on a fresh daemon thread.

    Cancelling the awaiting task abandons the thread instead of joining it;
    its late result is dropped.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def deliver(ok: bool, value: Any) -> None:
        if future.done():
            return
        if ok:
            future.set_result(value)
        else:
            future.set_exception(value)

    def work() -> None:
        try:
            outcome = (True, fn(*args))
        except Exception as e:
            outcome = (False, e)
        try:
            loop.call_soon_threadsafe(deliver, *outcome)
        except RuntimeError:
            # loop already closed; nobody is waiting any more
            pass

    threading.Thread(target=work, name=name, daemon=True).start()
    return await future


class HttpTransport:
    """POSTs JSON-RPC messages to a single endpoint.

    `requests.Session` is not thread-safe, so each thread gets its own,
    built by `session_factory` and carrying the shared `headers`.
    """

    def __init__(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        timeout_s: int = 30,
        retries: int = 3,
        backoff: float = 1.5,
        notify_timeout_s: float = NOTIFICATION_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.headers: Dict[str, str] = dict(headers or {})
        self.timeout_s = timeout_s
        self.retries = max(1, retries)
        self.backoff = backoff
        self.notify_timeout_s = notify_timeout_s
        self._session_factory = session_factory or requests.Session
        self._local = threading.local()
        self._sessions: "weakref.WeakSet[requests.Session]" = weakref.WeakSet()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._logger = logging.getLogger(__name__)

    @property
    def session(self) -> requests.Session:
        """The calling thread's session, created on first use."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.update(self.headers)
            self._local.session = session
            with self._lock:
                self._sessions.add(session)
        return session

    def release_session(self) -> None:
        session = getattr(self._local, "session", None)
        if session is not None:
            self._local.session = None
            session.close()

    def close(self) -> None:
        with self._lock:
            sessions = list(self._sessions)
            self._sessions.clear()
        for session in sessions:
            session.close()

    def next_id(self) -> int:
        with self._lock:
            return next(self._ids)

    def _post(self, method: str, body: str, *, timeout_s: Optional[float] = None, retries: Optional[int] = None) -> requests.Response:
        timeout_s = self.timeout_s if timeout_s is None else timeout_s
        retries = self.retries if retries is None else max(1, retries)
        for attempt in range(retries):
            try:
                resp = self.session.post(self.url, data=body, timeout=timeout_s)
            except requests.Timeout as e:
                raise MCPError(f"Connection timeout after {timeout_s:g}s waiting for {method}") from e
            except requests.ConnectionError as e:
                if attempt < retries - 1:
                    time.sleep(self.backoff ** attempt)
                    continue
                raise MCPError(f"MCP request failed for {method}: {e}") from e

            if resp.status_code == 429 and attempt < retries - 1:
                sleep_s = self.backoff ** attempt
                self._logger.warning("mcp.rpc 429 throttled; backing off", extra={"sleep": sleep_s})
                time.sleep(sleep_s)
                continue
            try:
                resp.raise_for_status()
            except requests.HTTPError as e:
                raise MCPError(f"MCP request failed for {method}: {e}") from e
            return resp
        raise MCPError(f"MCP request failed for {method}: retries exhausted")

    def rpc(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.next_id(), "method": method}
        if params is not None:
            payload["params"] = params
        self._logger.info("mcp.rpc call", extra={"method": method, "has_params": bool(params)})

        resp = self._post(method, json.dumps(payload))
        try:
            data = resp.json()
        except ValueError as e:
            raise MCPError(f"MCP invalid response for {method}: body is not JSON") from e

        if not isinstance(data, dict):
            raise MCPError(f"MCP invalid response for {method}: expected an object")
        if data.get("error") is not None:
            error = data["error"]
            if isinstance(error, dict):
                raise MCPError(
                    str(error.get("message") or "Unknown error"),
                    code=error.get("code") if isinstance(error.get("code"), int) else None,
                    data=error.get("data"),
                )
            raise MCPError(f"MCP error for {method}: {error}")
        if "result" not in data:
            raise MCPError(f"MCP invalid response for {method}: missing result")
        return data["result"] or {}

    def send(self, message: str) -> None:
        """Send a one-way message (notification); no JSON-RPC reply is expected.

        One attempt with a short socket timeout: a hung server must not pin
        the sending thread for the full request timeout.
        """
        self._logger.debug("mcp.send notification", extra={"size": len(message)})
        self._post("notification", message, timeout_s=self.notify_timeout_s, retries=1)

class MCPClient:
    """Server handle for one MCP endpoint.

    A handle may serve many concurrent calls: each runs on its own worker
    thread with its own session.
    """

    def __init__(
        self,
        *,
        server_url: Optional[str] = None,
        name: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: Optional[int] = None,
        retries: Optional[int] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        session_factory: Optional[Callable[[], requests.Session]] = None,
    ):
        cfg = get_settings()
        self.name = name or cfg.server_name
        self.base_url = server_url or cfg.server_url
        api_key = api_key if api_key is not None else cfg.api_key

        headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        if extra_headers:
            headers.update(extra_headers)

        self.transport: Optional[HttpTransport] = HttpTransport(
            self.base_url,
            headers=headers,
            session_factory=session_factory,
            timeout_s=timeout_s or cfg.http_timeout_seconds,
            retries=retries or cfg.http_retries,
        )
        self.server_info: Optional[Dict[str, Any]] = None
        self.capabilities: Optional[Dict[str, Any]] = None
        self._logger = logging.getLogger(__name__)

    @property
    def connected(self) -> bool:
        return self.transport is not None

    def _require_transport(self) -> HttpTransport:
        if self.transport is None:
            raise TransportUnavailableError(f"Server {self.name} is not connected")
        return self.transport

    def initialize(self, *, client_name: str = "toolwire", client_version: str = "1.0.0", protocol_version: Optional[str] = None) -> Dict[str, Any]:
        """Perform MCP initialize handshake and store server info/capabilities.

        Returns the raw 'result' object from the initialize call.
        """
        params = {
            "protocolVersion": protocol_version or PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": client_name, "version": client_version},
        }
        transport = self._require_transport()
        result = transport.rpc("initialize", params)
        self.server_info = result.get("serverInfo")
        self.capabilities = result.get("capabilities")
        transport.send(json.dumps({"jsonrpc": JSONRPC_VERSION, "method": "notifications/initialized"}))
        return result

    async def _rpc(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        transport = self._require_transport()

        def work() -> Dict[str, Any]:
            try:
                return transport.rpc(method, params)
            finally:
                transport.release_session()

        return await in_worker_thread(work, name=f"mcp-{self.name}-{method}")

    async def list_tools(self) -> Dict[str, Any]:
        return await self._rpc("tools/list", {})

    async def call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._rpc("tools/call", params)
        return surface_tool_error(params.get("name", ""), result)

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
            self.transport = None
            self._logger.info("mcp.client closed", extra={"server": self.name})


def surface_tool_error(name: str, result: Dict[str, Any]) -> Dict[str, Any]:
    """Attach a readable `error` to results flagged `isError` by the tool itself."""
    if not isinstance(result, dict) or not result.get("isError"):
        return result
    msg = None
    content = result.get("content", [])
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict):
            msg = first.get("text") or first.get("error")
    if msg:
        result["error"] = f"Tool '{name}' error: {msg}"
    else:
        result["error"] = f"Tool '{name}' reported an error. Check arguments/permissions."
    return result


def parse_mcp_content_text(mcp_result: Dict[str, Any]) -> Optional[Any]:
    """Extract and parse JSON payload from MCP CallToolResult.content.

    Preference order:
    1) structuredContent, when the server provides it
    2) content items with JSON mimeType (e.g., application/json) and 'text' body
    3) first content item with 'text' that contains JSON
    Returns the parsed value or None.
    """
    if not isinstance(mcp_result, dict):
        return None
    if mcp_result.get("structuredContent") is not None:
        return mcp_result["structuredContent"]

    content: List[Any] = mcp_result.get("content") or []
    if not isinstance(content, list) or not content:
        return None

    for item in content:
        if isinstance(item, dict):
            mime = item.get("mimeType") or item.get("mime")
            if mime and "json" in str(mime).lower() and isinstance(item.get("text"), str):
                try:
                    return json.loads(item["text"])
                except ValueError:
                    return None

    first = content[0]
    if isinstance(first, dict) and isinstance(first.get("text"), str):
        try:
            return json.loads(first["text"])
        except ValueError:
            return None
    return None
