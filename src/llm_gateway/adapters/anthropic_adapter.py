"""
Anthropic Messages API adapter.
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


class AnthropicAdapter(ProviderAdapter):
    """
    Adapter for Anthropic's Claude models.

    The stream is a sequence of typed events; ``message_stop`` ends it.
    """

    ANTHROPIC_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 4096
    MAX_TEMPERATURE = 1.0

    UNSUPPORTED_PARAMS = frozenset({"frequency_penalty", "presence_penalty", "response_format"})
    SENTINEL = None

    @property
    def provider_id(self) -> str:
        return "anthropic"

    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": config.api_key or "",
            "anthropic-version": config.extra.get("version") or self.ANTHROPIC_VERSION,
        }

    def translate(self, request: ProviderRequest, model: ModelDescriptor) -> TranslatedRequest:
        warnings: List[str] = []

        body: Dict[str, Any] = {
            "model": request.model,
            "messages": [
                {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
                for m in request.conversation
            ],
            # Required by the Messages API
            "max_tokens": request.max_tokens or self.DEFAULT_MAX_TOKENS,
            "stream": request.stream,
        }

        if request.system:
            body["system"] = request.system

        if request.temperature is not None:
            temperature = request.temperature
            if temperature > self.MAX_TEMPERATURE:
                warnings.append(f"temperature {temperature} clamped to {self.MAX_TEMPERATURE} for anthropic")
                temperature = self.MAX_TEMPERATURE
            body["temperature"] = temperature

        if request.top_p is not None:
            body["top_p"] = request.top_p

        if request.stop:
            body["stop_sequences"] = request.stop

        if request.tools:
            body["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters,
                }
                for tool in request.tools
            ]
            if request.tool_choice is not None:
                choice = self._tool_choice(request.tool_choice)
                if choice is None:
                    warnings.append(f"tool_choice {request.tool_choice!r} not supported by anthropic, ignored")
                else:
                    body["tool_choice"] = choice

        return TranslatedRequest(path="/messages", body=body, warnings=warnings)

    def _tool_choice(self, choice: Any) -> Optional[Dict[str, Any]]:
        if choice == "auto":
            return {"type": "auto"}
        if choice == "required":
            return {"type": "any"}
        if choice == "none":
            return {"type": "none"}
        if isinstance(choice, dict):
            name = choice.get("name") or (choice.get("function") or {}).get("name")
            if name:
                return {"type": "tool", "name": name}
        return None

    def parse_response(self, data: Dict[str, Any]) -> Completion:
        text = []
        tool_calls = []
        for block in data.get("content") or []:
            if block.get("type") == "text":
                text.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.get("id"),
                    name=block.get("name", ""),
                    arguments=json.dumps(block.get("input") or {}),
                ))

        usage_data = data.get("usage")
        usage = None
        if usage_data:
            prompt_tokens = usage_data.get("input_tokens", 0)
            completion_tokens = usage_data.get("output_tokens", 0)
            usage = Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            )

        return Completion(
            content="".join(text),
            tool_calls=tool_calls,
            finish_reason=data.get("stop_reason"),
            usage=usage,
            raw=data,
        )

    def parse_unit(self, unit: Any) -> UnitDelta:
        if not isinstance(unit, dict):
            return UnitDelta()

        event_type = unit.get("type")

        if event_type == "content_block_delta":
            delta = unit.get("delta") or {}
            if delta.get("type") == "text_delta":
                return UnitDelta(content=delta.get("text") or None)
            if delta.get("type") == "input_json_delta":
                return UnitDelta(tool_calls=[ToolCallFragment(
                    index=unit.get("index", 0),
                    arguments=delta.get("partial_json", ""),
                )])

        elif event_type == "content_block_start":
            block = unit.get("content_block") or {}
            if block.get("type") == "tool_use":
                return UnitDelta(tool_calls=[ToolCallFragment(
                    index=unit.get("index", 0),
                    call_id=block.get("id"),
                    name=block.get("name"),
                )])

        elif event_type == "message_stop":
            return UnitDelta(finished=True)

        elif event_type == "error":
            error = unit.get("error") or {}
            return UnitDelta(error=str(error.get("message") or error))

        return UnitDelta()
