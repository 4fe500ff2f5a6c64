from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class ToolDescriptor(BaseModel):
    """A tool as exposed by a server at query time."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class CallEnvelope(BaseModel):
    """One `tools/call` attempt; the progress token is never reused."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    progress_token: str

    def to_params(self) -> Dict[str, Any]:
        return {
            "name": self.tool_name,
            "arguments": dict(self.arguments),
            "_meta": {"progressToken": self.progress_token},
        }
