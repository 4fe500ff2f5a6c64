"""HTTP surface for listing, calling and cancelling tools.

Handles are owned by whoever builds the app; routes only look them up by
server name and borrow them for the duration of a request.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse

from toolwire.api.models import (
    CallToolRequest,
    CallToolResponse,
    CancelRequest,
    CancelResponse,
    HealthResponse,
    ToolListResponse,
)
from toolwire.core.config import get_settings
from toolwire.core.mcp_client import TransportUnavailableError
from toolwire.tools.cancellation import cancel_tool_execution
from toolwire.tools.catalog import list_server_tools
from toolwire.tools.dispatcher import call_tool
from toolwire.tools.errors import ErrorKind
from toolwire.tools.results import CallSuccess, to_response_dict


def _json(model: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=model.model_dump(mode="json", by_alias=True, exclude_none=True), status_code=status_code)


def _is_connected(handle: Any) -> bool:
    return handle is not None and bool(getattr(handle, "connected", True))


def create_app(handles: Optional[Mapping[str, Any]] = None) -> FastAPI:
    servers: Dict[str, Any] = dict(handles or {})
    app = FastAPI(title="toolwire", version="1.0.0")
    router_v1 = APIRouter(prefix="/api/v1")

    @app.get("/api/status", response_model=HealthResponse)
    async def get_status():
        s = get_settings()
        return HealthResponse(
            status="online",
            config_loaded=bool(s.server_url),
            servers=sorted(servers),
            timestamp=datetime.now().isoformat(),
        )

    @router_v1.get("/servers/{server_name}/tools", response_model=ToolListResponse)
    async def tools_v1(server_name: str):
        handle = servers.get(server_name)
        listing = await list_server_tools(handle, server_name)
        if listing.error is None:
            status = 200
        elif not _is_connected(handle):
            status = 404
        else:
            status = 502
        return _json(ToolListResponse(tools=listing.tools, error=listing.error), status)

    @router_v1.post("/servers/{server_name}/tools/{tool_name}/call", response_model=CallToolResponse)
    async def call_v1(server_name: str, tool_name: str, body: CallToolRequest):
        result = await call_tool(servers.get(server_name), server_name, tool_name, body.arguments, body.timeout)
        response = CallToolResponse.model_validate(to_response_dict(result))
        return _json(response, 200 if isinstance(result, CallSuccess) else result.status_code)

    @router_v1.post("/servers/{server_name}/cancel", response_model=CancelResponse)
    async def cancel_v1(server_name: str, body: CancelRequest):
        handle = servers.get(server_name)
        if not _is_connected(handle):
            return _json(
                CancelResponse(success=False, error=f"Server {server_name} not found", error_type=ErrorKind.NOT_CONNECTED.value),
                404,
            )
        try:
            await cancel_tool_execution(handle, body.progress_token, body.reason)
        except TransportUnavailableError as e:
            return _json(CancelResponse(success=False, error=str(e), error_type=ErrorKind.TRANSPORT_ERROR.value), 503)
        except Exception as e:
            return _json(CancelResponse(success=False, error=str(e) or "Unknown error", error_type=ErrorKind.TRANSPORT_ERROR.value), 502)
        return _json(CancelResponse(success=True))

    app.include_router(router_v1)
    return app
