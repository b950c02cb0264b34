"""
OpenAI chat completions adapter.

Also covers the OpenAI-compatible providers (Groq, Perplexity,
OpenRouter), which share the wire format and differ only in the
parameters they accept and the headers they expect.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from ..core.config import ProviderConfig
from ..core.interface import ProviderAdapter, TranslatedRequest, UnitDelta
from ..models.descriptor import ModelDescriptor
from ..models.events import ToolCallFragment
from ..models.request import ProviderRequest, ToolCall
from ..models.response import Completion, Usage

logger = logging.getLogger(__name__)

SAMPLING_FIELDS = ("temperature", "top_p", "frequency_penalty", "presence_penalty", "max_tokens")


class OpenAIAdapter(ProviderAdapter):
    """
    Adapter for the OpenAI ``/chat/completions`` API.
    """

    CHAT_PATH = "/chat/completions"

    @property
    def provider_id(self) -> str:
        return "openai"

    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.api_key}",
        }

    def translate(self, request: ProviderRequest, model: ModelDescriptor) -> TranslatedRequest:
        body: Dict[str, Any] = {
            "model": request.model,
            "messages": [m.model_dump() for m in request.messages],
            "stream": request.stream,
        }

        for name in SAMPLING_FIELDS:
            value = getattr(request, name)
            if value is not None:
                body[name] = value

        if request.stop:
            body["stop"] = request.stop

        if request.tools:
            body["tools"] = [
                {"type": "function", "function": tool.to_schema()}
                for tool in request.tools
            ]
            if request.tool_choice is not None:
                body["tool_choice"] = self._tool_choice(request.tool_choice)

        if request.response_format:
            body["response_format"] = request.response_format

        return TranslatedRequest(path=self.CHAT_PATH, body=body)

    def _tool_choice(self, choice: Any) -> Any:
        if isinstance(choice, dict) and "type" not in choice and "name" in choice:
            return {"type": "function", "function": {"name": choice["name"]}}
        return choice

    def parse_response(self, data: Dict[str, Any]) -> Completion:
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}

        tool_calls = [
            ToolCall(
                id=tc.get("id"),
                name=(tc.get("function") or {}).get("name", ""),
                arguments=(tc.get("function") or {}).get("arguments") or "{}",
            )
            for tc in message.get("tool_calls") or []
        ]

        usage_data = data.get("usage")
        usage = Usage(
            prompt_tokens=usage_data.get("prompt_tokens", 0),
            completion_tokens=usage_data.get("completion_tokens", 0),
            total_tokens=usage_data.get("total_tokens", 0),
        ) if usage_data else None

        return Completion(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason=choices[0].get("finish_reason"),
            usage=usage,
            raw=data,
        )

    def parse_unit(self, unit: Any) -> UnitDelta:
        if not isinstance(unit, dict):
            return UnitDelta()

        if unit.get("error"):
            return UnitDelta(error=_error_message(unit["error"]))

        choices = unit.get("choices") or []
        if not choices:
            return UnitDelta()
        delta = choices[0].get("delta") or {}

        fragments: List[ToolCallFragment] = []
        for tc in delta.get("tool_calls") or []:
            function = tc.get("function") or {}
            fragments.append(ToolCallFragment(
                index=tc.get("index", 0),
                call_id=tc.get("id"),
                name=function.get("name"),
                arguments=function.get("arguments") or "",
            ))

        return UnitDelta(content=delta.get("content") or None, tool_calls=fragments)


class GroqAdapter(OpenAIAdapter):
    """Groq's OpenAI-compatible endpoint, without tool or JSON mode support."""

    UNSUPPORTED_PARAMS = frozenset({"tools", "tool_choice", "response_format"})

    @property
    def provider_id(self) -> str:
        return "groq"


class PerplexityAdapter(OpenAIAdapter):
    """Perplexity's OpenAI-compatible endpoint, without tool or JSON mode support."""

    UNSUPPORTED_PARAMS = frozenset({"tools", "tool_choice", "response_format"})

    @property
    def provider_id(self) -> str:
        return "perplexity"


class OpenRouterAdapter(OpenAIAdapter):
    """OpenRouter, which asks callers to identify their application."""

    @property
    def provider_id(self) -> str:
        return "openrouter"

    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        headers = super().headers(config)
        headers["HTTP-Referer"] = config.extra.get("referer") or "http://localhost"
        headers["X-Title"] = config.extra.get("title") or "AI Service"
        return headers


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or json.dumps(error))
    return str(error)
