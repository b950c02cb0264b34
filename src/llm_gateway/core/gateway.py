"""
Turn orchestration.

A turn runs as an ordered list of stages over one ``Turn`` record:

    resolve -> load history -> trim depth -> enrich system -> budget
    -> tool pre-pass -> primary call -> context update -> persist -> complete

Resolution, HTTP and transport failures end the turn. Tool failures are
recorded per call; budget, context and persistence problems become
warnings and the turn still completes.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from ..models.descriptor import ModelDescriptor, ProviderCapability
from ..models.events import Complete, ContentDelta, ErrorEvent, ToolEvent, WarningEvent
from ..models.request import GatewayRequest, Message, ProviderRequest, ToolCall
from ..models.response import ChatResult, Completion, ToolResult, Usage
from ..store import ConversationStore
from .budget import TokenBudgeter
from .client import ProviderClient
from .config import GatewayConfig, ProviderConfig, load_config
from .context import ContextUpdater
from .errors import BudgetExhausted, GatewayError
from .registry import AdapterRegistry, ModelRegistry, default_adapters
from .streaming import StreamNormalizer
from .tools import FEEDBACK_INSTRUCTION, ToolExecutionEngine, format_tool_feedback
from .translator import RequestTranslator

logger = logging.getLogger(__name__)

# Upper bound on max_tokens in JSON mode
JSON_MAX_TOKENS = 4096


@dataclass
class Turn:
    """State of one request as it moves through the stages."""
    request: GatewayRequest
    model: Optional[ModelDescriptor] = None
    provider: Optional[ProviderConfig] = None
    system: str = ""
    history: List[Message] = field(default_factory=list)
    prompt: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    tokens: int = 0
    max_tokens: Optional[int] = None
    tools_executed: bool = False
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_results: List[ToolResult] = field(default_factory=list)
    full_message: str = ""
    usage: Optional[Usage] = None
    warnings: List[WarningEvent] = field(default_factory=list)
    _flushed: int = 0

    def warn(self, message: str, code: Optional[str] = None) -> None:
        self.warnings.append(WarningEvent(message=message, code=code))

    def pending_warnings(self) -> List[WarningEvent]:
        pending = self.warnings[self._flushed:]
        self._flushed = len(self.warnings)
        return pending


class LLMGateway:
    """
    Provider-agnostic chat gateway.

    Example:
        async with LLMGateway(load_config()) as gateway:
            result = await gateway.send(GatewayRequest(model="gpt-4.1-nano", prompt="Hi"))
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        registry: Optional[ModelRegistry] = None,
        adapters: Optional[AdapterRegistry] = None,
        client: Optional[ProviderClient] = None,
        store: Optional[ConversationStore] = None,
        budgeter: Optional[TokenBudgeter] = None,
        tool_engine: Optional[ToolExecutionEngine] = None,
        context_updater: Optional[ContextUpdater] = None,
    ):
        self.config = config or load_config()
        self.registry = registry or ModelRegistry.from_config(self.config)
        self.adapters = adapters or default_adapters()
        self.translator = RequestTranslator(self.adapters)
        self.client = client or ProviderClient(
            request_timeout=self.config.request_timeout,
            stream_timeout=self.config.stream_timeout,
        )
        self.store = store
        self.budgeter = budgeter or TokenBudgeter(
            response_reserve=self.config.response_reserve,
            system_floor=self.config.system_floor,
            prompt_floor=self.config.prompt_floor,
        )
        self.tool_engine = tool_engine or ToolExecutionEngine(timeout=self.config.tool_timeout)
        self.context_updater = context_updater or ContextUpdater(
            self.complete,
            model=self.config.context_model,
            timeout=self.config.context_timeout,
        )

    async def __aenter__(self) -> "LLMGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def handle(self, request: GatewayRequest) -> Union[ChatResult, AsyncIterator[Any]]:
        """Run a turn, as a stream of events when ``request.stream`` is set."""
        if request.stream:
            return self.stream(request)
        return await self.send(request)

    async def send(self, request: GatewayRequest) -> ChatResult:
        """
        Run a turn and return the final result.

        Raises:
            GatewayError: On a fatal failure (resolution, HTTP, transport)
        """
        turn = Turn(request=request)
        async for _ in self._run(turn, streaming=False):
            pass

        return ChatResult(
            full_message=turn.full_message,
            tool_calls=turn.tool_calls,
            tool_results=turn.tool_results,
            context=turn.context,
            usage=turn.usage,
            model=turn.model.name,
            provider=turn.model.provider,
            warnings=[w.message for w in turn.warnings],
        )

    async def stream(self, request: GatewayRequest) -> AsyncIterator[Any]:
        """
        Run a turn as a stream of events.

        Ends with one ``Complete`` event, or with a single ``ErrorEvent``
        when the turn fails.
        """
        turn = Turn(request=request)
        try:
            async for event in self._run(turn, streaming=True):
                yield event
        except GatewayError as e:
            logger.error(f"Turn failed ({e.code}): {e.message}")
            yield ErrorEvent(error=e.message, code=e.code)

    async def complete(self, request: GatewayRequest) -> Completion:
        """
        One non-streaming call, without tools, context update or persistence.
        """
        turn = Turn(request=request)
        await self._prepare(turn)
        return await self._call(turn, self._provider_request(turn, stream=False))

    async def _run(self, turn: Turn, streaming: bool) -> AsyncIterator[Any]:
        request = turn.request

        await self._prepare(turn)
        for warning in turn.pending_warnings():
            yield warning

        if request.tools and request.execute_tools:
            async for event in self._tool_pass(turn):
                yield event

        if streaming and turn.model.supports(ProviderCapability.STREAMING):
            async for event in self._stream_call(turn):
                yield event
                if isinstance(event, ErrorEvent):
                    return
        else:
            completion = await self._call(turn, self._provider_request(turn, stream=False))
            turn.full_message = completion.content
            turn.tool_calls = completion.tool_calls
            turn.usage = completion.usage
            for warning in turn.pending_warnings():
                yield warning
            if streaming and turn.full_message:
                yield ContentDelta(content=turn.full_message)

        await self._update_context(turn)
        await self._persist(turn)
        for warning in turn.pending_warnings():
            yield warning

        logger.info(f"Turn complete: {turn.model.name}, {len(turn.full_message)} chars")
        yield Complete(
            full_message=turn.full_message,
            tool_results=turn.tool_results,
            context=turn.context,
        )

    async def _prepare(self, turn: Turn) -> None:
        """Resolve the model and build the budgeted system, history and prompt."""
        request = turn.request

        turn.model = self.registry.resolve(request.model)
        turn.provider = self.registry.provider_config(turn.model.provider)
        logger.info(f"Resolved {turn.model.name} -> {turn.model.provider}")

        history = list(request.history)
        context = request.context
        if not history and request.conversation_id and self.store is not None:
            stored = await self.store.get_history(request.conversation_id, limit=self.config.max_history_depth)
            history = stored.messages
            if context is None:
                context = stored.context
            logger.info(f"Loaded {len(history)} messages from history")

        depth = self.config.max_history_depth
        if len(history) > depth:
            history = history[-depth:] if depth > 0 else []

        turn.context = dict(context or {})
        system = _enrich_system(request.system, turn.context, request.ambient)

        adjusted = self.budgeter.adjust(system, history, request.prompt, turn.model.context_window)
        turn.system = adjusted.system
        turn.history = adjusted.history
        turn.prompt = adjusted.prompt
        turn.tokens = adjusted.tokens
        if adjusted.exhausted:
            target = turn.model.context_window - self.budgeter.response_reserve
            error = BudgetExhausted(adjusted.tokens, target)
            turn.warn(error.message, error.code)

        self._set_max_tokens(turn)

    def _set_max_tokens(self, turn: Turn) -> None:
        request = turn.request
        max_tokens = request.max_tokens or self.budgeter.completion_budget(
            turn.model.context_window, turn.tokens
        )
        if request.wants_json():
            max_tokens = min(max_tokens, JSON_MAX_TOKENS)
        turn.max_tokens = max_tokens

    async def _tool_pass(self, turn: Turn) -> AsyncIterator[Any]:
        """Ask the model for tool calls, run them, feed the results back."""
        adapter = self.adapters.get(turn.model.provider)
        if not turn.model.supports(ProviderCapability.TOOL_CALLING) or "tools" in adapter.UNSUPPORTED_PARAMS:
            turn.warn(f"Model {turn.model.name} does not support tools, tool calls skipped", "tools_unsupported")
            for warning in turn.pending_warnings():
                yield warning
            return

        logger.info("Checking for required tool calls")
        completion = await self._call(
            turn, self._provider_request(turn, stream=False, tools=True)
        )
        for warning in turn.pending_warnings():
            yield warning
        turn.tools_executed = True

        if not completion.tool_calls:
            logger.info("No tool calls requested")
            return

        ambient = {**turn.context, **turn.request.ambient}
        turn.tool_results = await self.tool_engine.execute(
            completion.tool_calls, turn.request.tools, ambient
        )
        for result in turn.tool_results:
            yield ToolEvent(result=result)

        turn.system = (
            f"{turn.system}\n\n{format_tool_feedback(turn.tool_results)}\n\n{FEEDBACK_INSTRUCTION}"
        ).strip()

    async def _stream_call(self, turn: Turn) -> AsyncIterator[Any]:
        adapter = self.adapters.get(turn.model.provider)
        translated = self.translator.build(
            turn.model.provider, self._provider_request(turn, stream=True), turn.model
        )
        for message in translated.warnings:
            yield WarningEvent(message=message, code="unsupported_parameter")

        chunks = await self.client.invoke(
            adapter.url(turn.provider, translated.path),
            translated.body,
            headers=adapter.headers(turn.provider),
            streaming=True,
            provider=turn.model.provider,
        )

        normalizer = StreamNormalizer(adapter, max_buffer=self.config.max_stream_buffer)
        events = normalizer.events(chunks)
        try:
            async for event in events:
                if isinstance(event, Complete):
                    break
                yield event
                if isinstance(event, ErrorEvent):
                    return
        finally:
            await events.aclose()
            await chunks.aclose()

        turn.full_message = normalizer.full_message
        turn.tool_calls = normalizer.tool_calls

    async def _call(self, turn: Turn, request: ProviderRequest) -> Completion:
        adapter = self.adapters.get(turn.model.provider)
        translated = self.translator.build(turn.model.provider, request, turn.model)
        for message in translated.warnings:
            turn.warn(message, "unsupported_parameter")

        data = await self.client.invoke(
            adapter.url(turn.provider, translated.path),
            translated.body,
            headers=adapter.headers(turn.provider),
            provider=turn.model.provider,
        )
        return adapter.parse_response(data)

    def _provider_request(self, turn: Turn, stream: bool, tools: bool = False) -> ProviderRequest:
        request = turn.request
        messages = []
        if turn.system:
            messages.append(Message(role="system", content=turn.system))
        messages.extend(turn.history)
        messages.append(Message(role="user", content=turn.prompt))

        # After a pre-pass the tools have run; otherwise they go to the model as-is
        send_tools = tools or (bool(request.tools) and not turn.tools_executed and not request.execute_tools)

        return ProviderRequest(
            model=turn.model.name,
            messages=messages,
            temperature=request.temperature,
            top_p=request.top_p,
            frequency_penalty=request.frequency_penalty,
            presence_penalty=request.presence_penalty,
            stop=request.stop_sequences(),
            max_tokens=turn.max_tokens,
            tools=list(request.tools) if send_tools else [],
            tool_choice=request.tool_choice if send_tools else None,
            response_format=request.response_format,
            stream=stream,
        )

    async def _update_context(self, turn: Turn) -> None:
        if not turn.full_message:
            return
        context, failure = await self.context_updater.try_extract(
            turn.request.prompt, turn.full_message, turn.context
        )
        turn.context = context
        if failure is not None:
            turn.warn(failure.message, failure.code)

    async def _persist(self, turn: Turn) -> None:
        request = turn.request
        if self.store is None or not request.conversation_id or not request.persist:
            return

        try:
            await self.store.append(request.conversation_id, Message(role="user", content=request.prompt))
            await self.store.append(
                request.conversation_id,
                Message(role="assistant", content=turn.full_message),
                {
                    "context": turn.context,
                    "tool_results": [r.to_wire() for r in turn.tool_results],
                    "model": turn.model.name,
                },
            )
        except Exception as e:
            logger.warning(f"Failed to persist conversation {request.conversation_id}: {e}")
            turn.warn(f"Conversation not saved: {e}", "persistence_failure")


def _enrich_system(system: str, context: Dict[str, Any], ambient: Dict[str, Any]) -> str:
    sections = [system] if system else []
    if context:
        sections.append(f"#Context:\n{json.dumps(context, default=str)}")
    if ambient.get("idProject"):
        sections.append(f"#Project ID: {ambient['idProject']}")
    if ambient.get("userId"):
        sections.append(f"#User ID: {ambient['userId']}")
    return "\n\n".join(sections)
