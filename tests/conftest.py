"""
Shared fixtures for gateway tests.

HTTP is faked with ``httpx.MockTransport``; no test reaches a network.
"""

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from llm_gateway.core.budget import CharacterEstimator, TokenBudgeter
from llm_gateway.core.client import ProviderClient
from llm_gateway.core.config import GatewayConfig, ProviderConfig
from llm_gateway.core.registry import ModelRegistry
from llm_gateway.models.descriptor import ModelDescriptor, ProviderCapability


ALL_CAPABILITIES = frozenset(ProviderCapability)


def sse(*units: Any, done: bool = True) -> bytes:
    """Frame units as an SSE body, ending with [DONE] unless told otherwise."""
    lines = [f"data: {json.dumps(u) if not isinstance(u, str) else u}\n\n" for u in units]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def openai_chunk(content: str = None, tool_calls: List[Dict[str, Any]] = None) -> Dict[str, Any]:
    delta: Dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "delta": delta}]}


def openai_completion(content: str = "", tool_calls: List[Dict[str, Any]] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-test",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


async def stream_body(chunks: List[bytes]):
    for chunk in chunks:
        yield chunk


def make_client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> ProviderClient:
    return ProviderClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), **kwargs)


@pytest.fixture
def providers() -> Dict[str, ProviderConfig]:
    """Provider settings with fake credentials."""
    return {
        "openai": ProviderConfig(
            name="openai", base_url="https://api.openai.test/v1",
            api_key="sk-test", credential="OPENAI_API_KEY",
        ),
        "anthropic": ProviderConfig(
            name="anthropic", base_url="https://api.anthropic.test/v1",
            api_key="sk-ant-test", credential="ANTHROPIC_API_KEY",
        ),
        "google": ProviderConfig(
            name="google", base_url="https://gemini.test/v1beta",
            api_key="g-test", credential="GOOGLE_API_KEY",
        ),
        "groq": ProviderConfig(
            name="groq", base_url="https://api.groq.test/openai/v1",
            api_key="", credential="GROQ_API_KEY",
        ),
    }


@pytest.fixture
def descriptors() -> List[ModelDescriptor]:
    return [
        ModelDescriptor(name="modelA", provider="openai", context_window=4096,
                        capabilities=ALL_CAPABILITIES, credential="OPENAI_API_KEY"),
        ModelDescriptor(name="gpt-4.1-nano", provider="openai", context_window=32768,
                        capabilities=ALL_CAPABILITIES, credential="OPENAI_API_KEY"),
        ModelDescriptor(name="claude-test", provider="anthropic", context_window=200000,
                        capabilities=frozenset({ProviderCapability.STREAMING,
                                                ProviderCapability.TOOL_CALLING}),
                        credential="ANTHROPIC_API_KEY"),
        ModelDescriptor(name="gemini-test", provider="google", context_window=1000000,
                        capabilities=ALL_CAPABILITIES, credential="GOOGLE_API_KEY"),
        ModelDescriptor(name="llama-test", provider="groq", context_window=8192,
                        credential="GROQ_API_KEY"),
    ]


@pytest.fixture
def registry(descriptors, providers) -> ModelRegistry:
    return ModelRegistry(descriptors, providers)


@pytest.fixture
def config(providers) -> GatewayConfig:
    return GatewayConfig(providers=providers)


@pytest.fixture
def budgeter() -> TokenBudgeter:
    """Budgeter that never needs a tokenizer download."""
    return TokenBudgeter(estimator=CharacterEstimator())
