from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from toolwire.core.schemas import ToolDescriptor


class CallToolRequest(BaseModel):
    arguments: Dict[str, Any] = Field(default_factory=dict)
    timeout: Optional[float] = None


class CallToolResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    status_code: Optional[int] = Field(default=None, alias="statusCode")
    error_type: Optional[str] = Field(default=None, alias="errorType")
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    timeout: Optional[float] = None
    progress_token: Optional[str] = Field(default=None, alias="progressToken")
    requires_authentication: Optional[bool] = Field(default=None, alias="requiresAuthentication")


class ToolListResponse(BaseModel):
    tools: List[ToolDescriptor]
    error: Optional[str] = None


class CancelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    progress_token: str = Field(alias="progressToken")
    reason: str = "Cancelled by user"


class CancelResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = Field(default=None, alias="errorType")


class HealthResponse(BaseModel):
    status: str
    config_loaded: bool
    servers: List[str]
    timestamp: str
