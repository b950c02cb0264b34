"""
Provider adapters.
"""

from .openai_adapter import OpenAIAdapter, GroqAdapter, PerplexityAdapter, OpenRouterAdapter
from .google_adapter import GoogleAdapter
from .anthropic_adapter import AnthropicAdapter

__all__ = [
    "OpenAIAdapter",
    "GroqAdapter",
    "PerplexityAdapter",
    "OpenRouterAdapter",
    "GoogleAdapter",
    "AnthropicAdapter",
]
