"""
Model descriptors for the static model table.
"""

from enum import Enum
from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field


class ProviderCapability(str, Enum):
    """Capabilities a model (and its provider) may support."""
    STREAMING = "streaming"
    TOOL_CALLING = "tool_calling"
    JSON_RESPONSE = "json_response"
    SYSTEM_MESSAGE = "system_message"
    VISION = "vision"


class ModelDescriptor(BaseModel):
    """
    Static description of a model.

    Loaded once at startup and never mutated.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    provider: str
    context_window: int = Field(default=4096, gt=0)
    capabilities: FrozenSet[ProviderCapability] = frozenset({ProviderCapability.STREAMING})
    credential: str = ""

    def supports(self, capability: ProviderCapability) -> bool:
        return capability in self.capabilities
