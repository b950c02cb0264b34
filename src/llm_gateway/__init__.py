"""
LLM Gateway

Provider-agnostic access to chat models:
- One request shape for OpenAI, Groq, Perplexity, OpenRouter, Gemini and Claude
- Streaming normalized into a single event model
- Tool calling with schema-validated arguments
- Token budgeting and conversation context tracking
"""

from .core.gateway import LLMGateway
from .core.config import GatewayConfig, load_config
from .core.registry import ModelRegistry
from .core.errors import GatewayError
from .models.request import GatewayRequest, Message, ToolCall
from .models.response import ChatResult, ToolResult
from .models.tools import InjectionRule, ToolDefinition
from .store import ConversationStore, ObjectStorage

__all__ = [
    "LLMGateway",
    "GatewayConfig",
    "load_config",
    "ModelRegistry",
    "GatewayError",
    "GatewayRequest",
    "Message",
    "ToolCall",
    "ChatResult",
    "ToolResult",
    "InjectionRule",
    "ToolDefinition",
    "ConversationStore",
    "ObjectStorage",
]
