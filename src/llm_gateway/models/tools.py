"""
Tool definitions: explicit capability records held in a lookup table.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class InjectionRule:
    """
    Fill an argument from the ambient context when the model left it out.

    Example: inject the active project id as ``projectId``::

        InjectionRule(argument="projectId", context_key="idProject")

    With ``override`` the context value always wins. ``also_set`` is merged
    into the arguments whenever the rule fires.
    """
    argument: str
    context_key: str
    override: bool = False
    also_set: Mapping[str, Any] = field(default_factory=dict)

    def apply(self, arguments: Dict[str, Any], context: Mapping[str, Any]) -> bool:
        value = context.get(self.context_key)
        if value is None:
            return False
        if not self.override and arguments.get(self.argument) not in (None, ""):
            return False
        arguments[self.argument] = value
        arguments.update(self.also_set)
        return True


def _default_parameters() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass(frozen=True)
class ToolDefinition:
    """
    A tool the model may call.

    ``handler`` receives ``(arguments, context)`` and may be a plain or an
    async callable. ``parameters`` is the JSON Schema the arguments must
    satisfy before the handler is invoked.
    """
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=_default_parameters)
    handler: Optional[Callable[..., Any]] = None
    injections: Tuple[InjectionRule, ...] = ()

    def to_schema(self) -> Dict[str, Any]:
        """Return the function declaration sent to the model."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def inject(self, arguments: Dict[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply the injection rules to a copy of ``arguments``."""
        injected = dict(arguments)
        for rule in self.injections:
            rule.apply(injected, context)
        return injected

    async def execute(self, arguments: Dict[str, Any], context: Mapping[str, Any]) -> Any:
        if self.handler is None:
            raise RuntimeError(f"Tool {self.name} has no executor")
        result = self.handler(arguments, context)
        if inspect.isawaitable(result):
            result = await result
        return result
