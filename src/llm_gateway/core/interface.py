"""
Provider adapter interface.

Defines the contract every vendor adapter implements. One adapter per
provider is selected from the registry by provider id; nothing else in
the gateway branches on the provider name.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from ..models.descriptor import ModelDescriptor
from ..models.events import ToolCallFragment
from ..models.request import ProviderRequest
from ..models.response import Completion
from .config import ProviderConfig


@dataclass
class TranslatedRequest:
    """A provider payload ready to send."""
    path: str
    body: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)


@dataclass
class UnitDelta:
    """What one parsed stream unit contributed."""
    content: Optional[str] = None
    tool_calls: List[ToolCallFragment] = field(default_factory=list)
    finished: bool = False
    error: Optional[str] = None


class ProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Adapters are stateless: translation and unit parsing are pure
    functions of their inputs, so one instance serves every call.
    """

    # Request parameters this provider cannot accept at all
    UNSUPPORTED_PARAMS: FrozenSet[str] = frozenset()

    # Terminal line of the event stream, None when the stream just ends
    SENTINEL: Optional[str] = "[DONE]"

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """
        Provider identifier (e.g. "openai", "google").

        Returns:
            Provider id used as the registry key
        """
        pass

    @abstractmethod
    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        """
        Build request headers, including the credential.

        Args:
            config: Provider settings

        Returns:
            HTTP headers
        """
        pass

    @abstractmethod
    def translate(self, request: ProviderRequest, model: ModelDescriptor) -> TranslatedRequest:
        """
        Map a normalized request into this provider's payload.

        Args:
            request: Normalized request, unsupported parameters already removed
            model: Descriptor of the target model

        Returns:
            Endpoint path, body and any translation warnings
        """
        pass

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> Completion:
        """
        Parse a non-streaming response body.

        Args:
            data: Decoded JSON body

        Returns:
            Normalized completion
        """
        pass

    @abstractmethod
    def parse_unit(self, unit: Any) -> UnitDelta:
        """
        Extract the incremental content of one decoded stream unit.

        Args:
            unit: One complete JSON value from the event stream

        Returns:
            Content delta, tool call fragments and end-of-stream marker
        """
        pass

    def url(self, config: ProviderConfig, path: str) -> str:
        return f"{config.base_url.rstrip('/')}{path}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_id!r})"
