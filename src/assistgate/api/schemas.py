"""Pydantic request schemas for gateway-owned endpoints."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SetApiKeyRequest(BaseModel):
    apiKey: str = Field(min_length=1)


class RateLimitUpdate(BaseModel):
    windowMs: int = Field(gt=0)
    max: int = Field(gt=0)


class FileSizeUpdate(BaseModel):
    # Megabytes, as sent by the admin UI.
    fileSize: float = Field(gt=0)


class ToolFunction(BaseModel):
    name: str
    arguments: Optional[Any] = None

    class Config:
        extra = "allow"


class ToolCall(BaseModel):
    id: str
    type: str = "function"
    function: Optional[ToolFunction] = None
    arguments: Optional[Any] = None

    class Config:
        extra = "allow"


class ExecuteToolsRequest(BaseModel):
    tool_calls: List[ToolCall]

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [call.model_dump(exclude_none=True) for call in self.tool_calls]
