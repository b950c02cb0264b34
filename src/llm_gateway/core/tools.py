"""
Tool execution.

Every tool call of a turn is resolved, validated and executed on its own.
A failure is recorded on that call's result and never touches the
others; results come back in the order the calls were made.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from jsonschema import Draft7Validator, ValidationError
from jsonschema.exceptions import SchemaError, UnknownType
from opentelemetry import trace

from ..models.request import ToolCall
from ..models.response import ToolResult
from ..models.tools import ToolDefinition
from .errors import InvalidToolArguments, ToolError, ToolExecutionError, ToolNotFound

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

FEEDBACK_HEADER = "#Function calls:"
FEEDBACK_INSTRUCTION = "Answer the user based on the information from the function calls above."


class ToolRegistry:
    """
    Lookup table of tool definitions by name.
    """

    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            logger.warning(f"Tool {tool.name} registered twice, replacing")
        try:
            Draft7Validator.check_schema(tool.parameters)
        except SchemaError as e:
            # Kept so each call reports the broken schema on its own result
            logger.warning(f"Tool {tool.name} has an invalid parameter schema: {e.message}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition:
        """
        Raises:
            ToolNotFound: If no tool has this name
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(name)
        return tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def definitions(self) -> List[ToolDefinition]:
        return list(self._tools.values())


class ToolExecutionEngine:
    """
    Runs tool calls concurrently.
    """

    def __init__(self, timeout: float = 60.0):
        """
        Args:
            timeout: Per-tool deadline in seconds
        """
        self.timeout = timeout

    async def execute(
        self,
        tool_calls: List[ToolCall],
        tool_definitions: Union[ToolRegistry, Iterable[ToolDefinition]],
        ambient_context: Optional[Mapping[str, Any]] = None,
    ) -> List[ToolResult]:
        """
        Execute tool calls.

        Args:
            tool_calls: Calls emitted by the model
            tool_definitions: Tools available for this turn
            ambient_context: Values available to injection rules and handlers

        Returns:
            One result per call, in call order
        """
        if not tool_calls:
            return []

        registry = tool_definitions if isinstance(tool_definitions, ToolRegistry) \
            else ToolRegistry(tool_definitions)
        context = dict(ambient_context or {})

        logger.info(f"Executing {len(tool_calls)} tool calls")
        results = await asyncio.gather(*(
            self._run(call, registry, context) for call in tool_calls
        ))
        return list(results)

    async def _run(
        self,
        call: ToolCall,
        registry: ToolRegistry,
        context: Mapping[str, Any],
    ) -> ToolResult:
        arguments: Any = call.arguments

        with tracer.start_as_current_span("tool.execute") as span:
            span.set_attribute("tool.name", call.name)
            try:
                tool = registry.get(call.name)
                arguments = tool.inject(_parse_arguments(call), context)
                _validate(tool, arguments)
                result = await self._invoke(tool, arguments, context)

            except ToolError as e:
                error = e
            except Exception as e:
                logger.exception(f"Unexpected failure in tool call {call.name}")
                error = ToolExecutionError(str(e) or e.__class__.__name__, call.name)
            else:
                error = None

            if error is not None:
                logger.warning(f"Tool call {call.name} failed ({error.code}): {error.message}")
                span.set_attribute("tool.status", "error")
                return ToolResult(
                    name=call.name,
                    status="error",
                    error=error.message,
                    error_type=error.code,
                    arguments=arguments,
                    call_id=call.id,
                )

            span.set_attribute("tool.status", "success")
            return ToolResult(
                name=call.name,
                status="success",
                result=result,
                arguments=arguments,
                call_id=call.id,
            )

    async def _invoke(self, tool: ToolDefinition, arguments: Dict[str, Any], context: Mapping[str, Any]) -> Any:
        try:
            return await asyncio.wait_for(tool.execute(arguments, dict(context)), self.timeout)
        except asyncio.TimeoutError:
            raise ToolExecutionError(f"Tool {tool.name} timed out after {self.timeout}s", tool.name)
        except Exception as e:
            logger.exception(f"Tool {tool.name} raised")
            raise ToolExecutionError(str(e) or e.__class__.__name__, tool.name) from e


def _parse_arguments(call: ToolCall) -> Dict[str, Any]:
    raw = call.arguments.strip() if call.arguments else ""
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except ValueError as e:
        raise InvalidToolArguments(f"Arguments are not valid JSON: {e}", call.name)
    if not isinstance(arguments, dict):
        raise InvalidToolArguments("Arguments must be a JSON object", call.name)
    return arguments


def _validate(tool: ToolDefinition, arguments: Dict[str, Any]) -> None:
    try:
        Draft7Validator.check_schema(tool.parameters)
    except SchemaError as e:
        raise ToolExecutionError(f"Tool {tool.name} has an invalid parameter schema: {e.message}", tool.name)

    try:
        Draft7Validator(tool.parameters).validate(arguments)
    except UnknownType as e:
        raise ToolExecutionError(f"Tool {tool.name} has an invalid parameter schema: {e}", tool.name)
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        detail = f"{location}: {e.message}" if location else e.message
        raise InvalidToolArguments(f"Invalid arguments for {tool.name}: {detail}", tool.name)


def format_tool_feedback(results: List[ToolResult]) -> str:
    """
    Render tool results as a system prompt section.

    Each call becomes ``- name: <arguments> -> <result>``.
    """
    lines = []
    for result in results:
        outcome = result.result if result.ok else {"error": result.error}
        lines.append(
            f"- {result.name}: {json.dumps(result.arguments, default=str)} -> "
            f"{json.dumps(outcome, default=str)}"
        )
    return f"{FEEDBACK_HEADER}\n" + "\n".join(lines)
