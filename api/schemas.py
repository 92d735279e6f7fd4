"""Request bodies for the REST gateway."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ToolCallRequest(BaseModel):
    name: str = Field(..., description="Namespaced tool name, 'integration/tool'")
    arguments: Optional[Any] = None


class ResourceReadRequest(BaseModel):
    uri: str


class PromptGetRequest(BaseModel):
    name: str
    arguments: Optional[dict[str, Any]] = None
