"""
Unified response models.
"""

from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field

from .request import ToolCall


class Usage(BaseModel):
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Completion(BaseModel):
    """A materialized (non-streaming) provider answer."""
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one tool call."""
    name: str
    status: Literal["success", "error"]
    result: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    arguments: Any = None
    call_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_wire(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "status": self.status,
            "arguments": self.arguments,
        }
        if self.ok:
            data["result"] = self.result
        else:
            data["error"] = self.error
            data["errorType"] = self.error_type
        return data


class ChatResult(BaseModel):
    """Result of a non-streaming turn."""
    full_message: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    usage: Optional[Usage] = None
    model: str = ""
    provider: str = ""
    warnings: List[str] = Field(default_factory=list)
