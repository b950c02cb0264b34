"""
Google Gemini adapter.

Uses the Generative Language API: ``models/{model}:generateContent`` for
plain calls and ``:streamGenerateContent?alt=sse`` for streams. The SSE
stream has no terminal sentinel; the turn completes when the body ends.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from ..core.config import ProviderConfig
from ..core.interface import ProviderAdapter, TranslatedRequest, UnitDelta
from ..models.descriptor import ModelDescriptor
from ..models.events import ToolCallFragment
from ..models.request import Message, ProviderRequest, ToolCall
from ..models.response import Completion, Usage

logger = logging.getLogger(__name__)

# Normalized role -> Gemini content role
ROLE_MAP = {
    "user": "user",
    "assistant": "model",
    "tool": "user",
}

# Normalized sampling field -> generationConfig key
GENERATION_FIELDS = {
    "temperature": "temperature",
    "top_p": "topP",
    "frequency_penalty": "frequencyPenalty",
    "presence_penalty": "presencePenalty",
    "max_tokens": "maxOutputTokens",
}

TOOL_MODES = {
    "auto": "AUTO",
    "none": "NONE",
    "required": "ANY",
}


class GoogleAdapter(ProviderAdapter):
    """
    Adapter for Google's Gemini models.
    """

    SENTINEL = None

    @property
    def provider_id(self) -> str:
        return "google"

    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": config.api_key or "",
        }

    def translate(self, request: ProviderRequest, model: ModelDescriptor) -> TranslatedRequest:
        if request.stream:
            path = f"/models/{request.model}:streamGenerateContent?alt=sse"
        else:
            path = f"/models/{request.model}:generateContent"

        body: Dict[str, Any] = {"contents": self._contents(request.conversation)}

        if request.system:
            body["systemInstruction"] = {"parts": [{"text": request.system}]}

        generation: Dict[str, Any] = {}
        for name, key in GENERATION_FIELDS.items():
            value = getattr(request, name)
            if value is not None:
                generation[key] = value
        if request.stop:
            generation["stopSequences"] = request.stop
        if request.response_format and request.response_format.get("type") == "json_object":
            generation["responseMimeType"] = "application/json"
        if generation:
            body["generationConfig"] = generation

        warnings: List[str] = []
        if request.tools:
            body["tools"] = [{
                "functionDeclarations": [tool.to_schema() for tool in request.tools],
            }]
            if request.tool_choice is not None:
                config = self._tool_config(request.tool_choice)
                if config is None:
                    warnings.append(f"tool_choice {request.tool_choice!r} not supported by google, ignored")
                else:
                    body["toolConfig"] = config

        return TranslatedRequest(path=path, body=body, warnings=warnings)

    def _contents(self, messages: List[Message]) -> List[Dict[str, Any]]:
        return [
            {"role": ROLE_MAP[m.role], "parts": [{"text": m.content}]}
            for m in messages
        ]

    def _tool_config(self, choice: Any) -> Optional[Dict[str, Any]]:
        if isinstance(choice, str):
            mode = TOOL_MODES.get(choice)
            return {"functionCallingConfig": {"mode": mode}} if mode else None
        if isinstance(choice, dict):
            name = choice.get("name") or (choice.get("function") or {}).get("name")
            if name:
                return {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": [name]}}
        return None

    def parse_response(self, data: Dict[str, Any]) -> Completion:
        candidates = data.get("candidates") or [{}]
        candidate = candidates[0]
        text, calls = self._parts(candidate)

        tool_calls = [
            ToolCall(name=call.get("name", ""), arguments=json.dumps(call.get("args") or {}))
            for call in calls
        ]

        usage_data = data.get("usageMetadata")
        usage = Usage(
            prompt_tokens=usage_data.get("promptTokenCount", 0),
            completion_tokens=usage_data.get("candidatesTokenCount", 0),
            total_tokens=usage_data.get("totalTokenCount", 0),
        ) if usage_data else None

        return Completion(
            content=text,
            tool_calls=tool_calls,
            finish_reason=candidate.get("finishReason"),
            usage=usage,
            raw=data,
        )

    def parse_unit(self, unit: Any) -> UnitDelta:
        if not isinstance(unit, dict):
            return UnitDelta()

        if unit.get("error"):
            error = unit["error"]
            message = error.get("message") if isinstance(error, dict) else error
            return UnitDelta(error=str(message))

        candidates = unit.get("candidates") or []
        if not candidates:
            return UnitDelta()

        text, calls = self._parts(candidates[0])
        # Gemini sends each function call whole, so every one is a new call
        fragments = [
            ToolCallFragment(name=call.get("name"), arguments=json.dumps(call.get("args") or {}))
            for call in calls
        ]
        return UnitDelta(content=text or None, tool_calls=fragments)

    def _parts(self, candidate: Dict[str, Any]):
        text = []
        calls = []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if "text" in part:
                text.append(part["text"])
            elif "functionCall" in part:
                calls.append(part["functionCall"])
        return "".join(text), calls
