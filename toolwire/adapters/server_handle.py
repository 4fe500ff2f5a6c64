from __future__ import annotations

from typing import Any, Awaitable, Dict, Optional, Protocol, Union


class Transport(Protocol):
    """Anything able to push a raw protocol message to the remote server.

    `send` may be a plain function or a coroutine function.
    """

    def send(self, message: str) -> Union[None, Awaitable[None]]:
        ...


class ServerHandle(Protocol):
    """Abstract interface for an already-connected tool server.

    Implementations may talk JSON-RPC over HTTP, stdio, or other transports.
    The tool-invocation layer only borrows a handle; it never opens or closes one.
    """

    name: str
    transport: Optional[Transport]

    @property
    def connected(self) -> bool:
        ...

    async def list_tools(self) -> Dict[str, Any]:
        ...

    async def call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        ...
