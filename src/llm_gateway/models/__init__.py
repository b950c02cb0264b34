"""
Gateway data models.
"""

from .descriptor import ModelDescriptor, ProviderCapability
from .tools import InjectionRule, ToolDefinition
from .request import GatewayRequest, Message, ProviderRequest, ToolCall
from .response import ChatResult, Completion, ToolResult, Usage
from .events import (
    Complete,
    ContentDelta,
    ErrorEvent,
    StreamEvent,
    ToolCallFragment,
    ToolEvent,
    WarningEvent,
)

__all__ = [
    "ModelDescriptor",
    "ProviderCapability",
    "InjectionRule",
    "ToolDefinition",
    "GatewayRequest",
    "ProviderRequest",
    "Message",
    "ToolCall",
    "ChatResult",
    "Completion",
    "ToolResult",
    "Usage",
    "StreamEvent",
    "ContentDelta",
    "ToolCallFragment",
    "ToolEvent",
    "Complete",
    "ErrorEvent",
    "WarningEvent",
]
