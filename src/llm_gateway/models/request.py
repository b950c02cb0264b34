"""
Provider-agnostic request models.
"""

from typing import Optional, List, Dict, Any, Union, Literal
from pydantic import BaseModel, ConfigDict, Field

from .tools import ToolDefinition


class Message(BaseModel):
    """A single conversation message."""
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""


class ToolCall(BaseModel):
    """A tool call emitted by the model. Arguments are raw, not yet validated."""
    id: Optional[str] = None
    name: str
    arguments: str = "{}"


class GatewayRequest(BaseModel):
    """
    Unified chat request accepted by the gateway.

    Sampling parameters a provider does not understand are dropped
    during translation with a warning rather than failing the call.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Required
    model: str = Field(..., description="Model identifier")
    prompt: str = Field(..., min_length=1, description="User prompt for this turn")

    system: str = ""
    history: List[Message] = Field(default_factory=list)

    # Sampling
    temperature: Optional[float] = Field(default=0.5, ge=0, le=2)
    top_p: Optional[float] = Field(default=1, ge=0, le=1)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    presence_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    stop: Optional[Union[str, List[str]]] = None
    max_tokens: Optional[int] = Field(default=None, ge=1)

    # Tool use
    tools: List[ToolDefinition] = Field(default_factory=list)
    tool_choice: Optional[Union[str, Dict[str, Any]]] = "auto"
    execute_tools: bool = True

    # Response format hint, e.g. {"type": "json_object"}
    response_format: Optional[Dict[str, Any]] = None

    stream: bool = False

    # Conversation
    context: Optional[Dict[str, Any]] = None
    conversation_id: Optional[str] = None
    ambient: Dict[str, Any] = Field(default_factory=dict)
    persist: bool = True

    def stop_sequences(self) -> List[str]:
        """Stop sequences as a list, empty when unset."""
        if not self.stop:
            return []
        return self.stop if isinstance(self.stop, list) else [self.stop]

    def wants_json(self) -> bool:
        return bool(self.response_format) and self.response_format.get("type") == "json_object"


class ProviderRequest(BaseModel):
    """
    Request after model resolution and budgeting.

    This is what adapters translate: the final system prompt, trimmed
    history and prompt, plus everything else from the inbound request.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: str
    messages: List[Message]
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: List[str] = Field(default_factory=list)
    max_tokens: Optional[int] = None
    tools: List[ToolDefinition] = Field(default_factory=list)
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    response_format: Optional[Dict[str, Any]] = None
    stream: bool = False

    @property
    def system(self) -> str:
        return "\n\n".join(m.content for m in self.messages if m.role == "system")

    @property
    def conversation(self) -> List[Message]:
        return [m for m in self.messages if m.role != "system"]
