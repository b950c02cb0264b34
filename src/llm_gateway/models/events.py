"""
Uniform stream event model.

Every provider stream is normalized into these events. ``to_wire`` gives
the outbound JSON shape and ``to_sse`` frames it as a server-sent event.
"""

import json
from abc import ABC, abstractmethod
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .response import ToolResult


class _Event(BaseModel, ABC):

    @abstractmethod
    def to_wire(self) -> Dict[str, Any]:
        """Outbound JSON shape of the event."""
        pass

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_wire(), default=str)}\n\n"


class ContentDelta(_Event):
    """Incremental assistant text."""
    type: Literal["content_delta"] = "content_delta"
    content: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "contentDelta", "data": {"content": self.content}}


class ToolCallFragment(_Event):
    """
    Part of a tool call being streamed by the model.

    ``index`` identifies the call; ``name`` and ``call_id`` usually arrive
    with the first fragment and ``arguments`` is a piece of the JSON text.
    """
    type: Literal["tool_call_fragment"] = "tool_call_fragment"
    index: Optional[int] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": "toolCallFragment",
            "data": {
                "index": self.index,
                "id": self.call_id,
                "name": self.name,
                "arguments": self.arguments,
            },
        }


class ToolEvent(_Event):
    """Result of one executed tool call."""
    type: Literal["tool"] = "tool"
    result: ToolResult

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "tool", "data": self.result.to_wire()}


class Complete(_Event):
    """End of a turn: the full message and every tool result."""
    type: Literal["complete"] = "complete"
    full_message: str = ""
    tool_results: List[ToolResult] = Field(default_factory=list)
    context: Optional[Dict[str, Any]] = None

    def to_wire(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": "complete",
            "fullMessage": self.full_message,
            "toolResults": [r.to_wire() for r in self.tool_results],
        }
        if self.context is not None:
            data["context"] = self.context
        return data


class ErrorEvent(_Event):
    """A fatal error; nothing follows it."""
    type: Literal["error"] = "error"
    error: str
    code: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": "error", "error": self.error}
        if self.code:
            data["code"] = self.code
        return data


class WarningEvent(_Event):
    """A recoverable problem the caller may want to know about."""
    type: Literal["warning"] = "warning"
    message: str
    code: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": "warning", "message": self.message}
        if self.code:
            data["code"] = self.code
        return data


StreamEvent = Annotated[
    Union[ContentDelta, ToolCallFragment, ToolEvent, Complete, ErrorEvent, WarningEvent],
    Field(discriminator="type"),
]
