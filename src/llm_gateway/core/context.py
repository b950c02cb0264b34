"""
Conversation context extraction.

After each turn a small model is asked which durable facts to remember.
Its answer is merged into a copy of the context; the caller's dict is
never modified and a failed extraction leaves the context as it was.
"""

import asyncio
import copy
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from opentelemetry import trace

from ..models.request import GatewayRequest, Message
from ..models.response import Completion
from .errors import ContextExtractionFailure

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EXTRACTION_PROMPT = (
    "Return a JSON object with information to remember from the conversation based on the user input.\n"
    "Only store information if the message contains something meaningful, not trivial responses.\n"
    "Try to maintain everything as a key-value, with just one level of values in the JSON.\n"
    "Avoid creating new keys if the information is already present in the context.\n"
    "If there is an addition to an existing key, append the new information to the existing value, "
    "maybe with commas.\n"
    "Use the last JSON context and append the new information.\n"
    "Set a key to null to forget it."
)

CompletionCall = Callable[[GatewayRequest], Awaitable[Completion]]


class ContextUpdater:
    """
    Extracts and merges conversation context with a secondary model call.
    """

    def __init__(
        self,
        complete: CompletionCall,
        model: str = "gpt-4.1-nano",
        timeout: float = 30.0,
        temperature: float = 0.2,
    ):
        """
        Initialize the updater.

        Args:
            complete: Runs one non-streaming completion
            model: Low-cost model used for extraction
            timeout: Deadline for the extraction call, in seconds
            temperature: Sampling temperature of the extraction call
        """
        self._complete = complete
        self.model = model
        self.timeout = timeout
        self.temperature = temperature

    async def extract(
        self,
        prompt: str,
        assistant_response: str,
        current_context: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Updated copy of the context. Never raises."""
        context, _ = await self.try_extract(prompt, assistant_response, current_context)
        return context

    async def try_extract(
        self,
        prompt: str,
        assistant_response: str,
        current_context: Optional[Dict[str, Any]],
    ) -> Tuple[Dict[str, Any], Optional[ContextExtractionFailure]]:
        """
        Like ``extract``, but also returns the failure, if any.

        Returns:
            Tuple of (context, failure). On failure the context is a
            deep copy of ``current_context``.
        """
        current = copy.deepcopy(current_context or {})

        request = GatewayRequest(
            model=self.model,
            system=EXTRACTION_PROMPT,
            prompt=prompt,
            history=[
                Message(role="assistant", content=json.dumps(current, default=str)),
                Message(role="assistant", content=assistant_response),
            ],
            response_format={"type": "json_object"},
            temperature=self.temperature,
            tools=[],
            persist=False,
        )

        with tracer.start_as_current_span("context.extract") as span:
            span.set_attribute("llm.model", self.model)
            try:
                completion = await asyncio.wait_for(self._complete(request), self.timeout)
                updates = _parse_updates(completion.content)
            except asyncio.TimeoutError:
                failure = ContextExtractionFailure(f"Context extraction timed out after {self.timeout}s")
            except Exception as e:
                failure = ContextExtractionFailure(f"Context extraction failed: {e}")
            else:
                span.set_attribute("context.updates", len(updates))
                logger.info(f"Extracted {len(updates)} context updates")
                return merge_context(current, updates), None

        logger.warning(failure.message)
        return current, failure


def _parse_updates(content: str) -> Dict[str, Any]:
    updates = json.loads(content or "{}")
    if not isinstance(updates, dict):
        raise ValueError(f"expected a JSON object, got {type(updates).__name__}")
    return updates


def merge_context(current: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge updates into a copy of ``current``.

    New keys are added. A string value for an existing string key extends
    it, unless one already contains the other. ``None`` removes the key.
    """
    merged = copy.deepcopy(current)
    for key, value in updates.items():
        if value is None:
            merged.pop(key, None)
            continue

        old = merged.get(key)
        if isinstance(old, str) and isinstance(value, str) and old:
            if value in old:
                continue
            if old in value:
                merged[key] = value
            else:
                merged[key] = f"{old}, {value}"
        else:
            merged[key] = value
    return merged
