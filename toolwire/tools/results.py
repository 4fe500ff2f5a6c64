from __future__ import annotations

from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from toolwire.core.events import LogEvent
from toolwire.tools.errors import ErrorKind


class CallSuccess(BaseModel):
    success: Literal[True] = True
    tool_name: str
    payload: Any = None
    progress_token: str
    events: List[LogEvent] = Field(default_factory=list)


class CallFailure(BaseModel):
    success: Literal[False] = False
    tool_name: Optional[str] = None
    error_kind: ErrorKind
    message: str
    status_code: int
    progress_token: Optional[str] = None
    timeout: Optional[float] = None
    requires_authentication: bool = False
    events: List[LogEvent] = Field(default_factory=list)


CallResult = Union[CallSuccess, CallFailure]


def to_response_dict(result: CallResult) -> dict:
    """Render a result in the JSON shape HTTP callers expect (camelCase, no nulls)."""
    if isinstance(result, CallSuccess):
        return {"success": True, "data": result.payload, "progressToken": result.progress_token}
    body = {
        "success": False,
        "error": result.message,
        "statusCode": result.status_code,
        "errorType": result.error_kind.value,
        "toolName": result.tool_name,
        "timeout": result.timeout,
        "progressToken": result.progress_token,
    }
    if result.requires_authentication:
        body["requiresAuthentication"] = True
    return {k: v for k, v in body.items() if v is not None}
