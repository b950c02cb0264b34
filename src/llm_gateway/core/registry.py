"""
Static model table and provider adapter registry.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type

from ..models.descriptor import ModelDescriptor, ProviderCapability
from .config import GatewayConfig, ProviderConfig
from .errors import MissingCredential, ModelNotFound, ProviderNotSupported
from .interface import ProviderAdapter

logger = logging.getLogger(__name__)


# Feature names used by model tables -> capabilities
FEATURE_ALIASES = {
    "streaming": ProviderCapability.STREAMING,
    "function_calling": ProviderCapability.TOOL_CALLING,
    "tool_calling": ProviderCapability.TOOL_CALLING,
    "response_json_object": ProviderCapability.JSON_RESPONSE,
    "json_response": ProviderCapability.JSON_RESPONSE,
    "system_message": ProviderCapability.SYSTEM_MESSAGE,
    "image_content": ProviderCapability.VISION,
    "vision": ProviderCapability.VISION,
}

_CHAT = ["streaming", "system_message"]
_FULL = _CHAT + ["function_calling", "response_json_object", "image_content"]

DEFAULT_MODELS: List[Dict[str, Any]] = [
    # OpenAI
    {"name": "gpt-4.1-nano", "provider": "openai", "context_window": 32768, "features": _FULL},
    {"name": "gpt-4.1-mini", "provider": "openai", "context_window": 32768, "features": _FULL},
    {"name": "gpt-4.1", "provider": "openai", "context_window": 32768, "features": _FULL},
    {"name": "gpt-4o", "provider": "openai", "context_window": 16384, "features": _FULL},
    {"name": "gpt-4o-mini", "provider": "openai", "context_window": 16384, "features": _FULL},
    {"name": "chatgpt-4o-latest", "provider": "openai", "context_window": 16384,
     "features": _CHAT + ["image_content"]},
    # Groq
    {"name": "llama-3.1-8b-instant", "provider": "groq", "context_window": 131072, "features": _CHAT},
    {"name": "llama-3.1-70b-versatile", "provider": "groq", "context_window": 131072, "features": _CHAT},
    {"name": "mixtral-8x7b-32768", "provider": "groq", "context_window": 32768, "features": _CHAT},
    {"name": "gemma2-9b-it", "provider": "groq", "context_window": 8192, "features": _CHAT},
    # Perplexity
    {"name": "llama-3.1-sonar-small-128k-online", "provider": "perplexity",
     "context_window": 127072, "features": _CHAT},
    {"name": "llama-3.1-sonar-large-128k-online", "provider": "perplexity",
     "context_window": 127072, "features": _CHAT},
    # OpenRouter
    {"name": "neversleep/llama-3-lumimaid-70b", "provider": "openrouter",
     "context_window": 2048, "features": _CHAT},
    {"name": "openai/gpt-4o-mini", "provider": "openrouter", "context_window": 16384, "features": _FULL},
    # Google
    {"name": "gemini-1.5-pro", "provider": "google", "context_window": 2000000, "features": _FULL},
    {"name": "gemini-1.5-flash", "provider": "google", "context_window": 1000000, "features": _FULL},
    {"name": "gemini-pro", "provider": "google", "context_window": 30720, "features": _CHAT},
    # Anthropic
    {"name": "claude-3-5-sonnet-20240620", "provider": "anthropic", "context_window": 200000,
     "features": _CHAT + ["function_calling", "image_content"]},
    {"name": "claude-3-5-haiku-20241022", "provider": "anthropic", "context_window": 200000,
     "features": _CHAT + ["function_calling"]},
]


def _descriptor(data: Mapping[str, Any], providers: Mapping[str, ProviderConfig]) -> ModelDescriptor:
    capabilities = set()
    for feature in data.get("features", data.get("capabilities", [])):
        capability = FEATURE_ALIASES.get(feature)
        if capability is None:
            logger.warning(f"Unknown model feature {feature!r} for {data.get('name')}")
            continue
        capabilities.add(capability)

    provider = data["provider"]
    credential = data.get("credential")
    if not credential and provider in providers:
        credential = providers[provider].credential

    return ModelDescriptor(
        name=data["name"],
        provider=provider,
        context_window=data.get("context_window") or data.get("contextWindow") or 4096,
        capabilities=frozenset(capabilities),
        credential=credential or "",
    )


class ModelRegistry:
    """
    Read-only lookup of model name to descriptor.

    The table is built once and never mutated afterwards, so a single
    registry is safely shared by every concurrent conversation.
    """

    def __init__(
        self,
        descriptors: Iterable[ModelDescriptor],
        providers: Optional[Mapping[str, ProviderConfig]] = None,
    ):
        """
        Initialize the registry.

        Args:
            descriptors: Model descriptors making up the static table
            providers: Provider settings, used to check credentials
        """
        self._models: Mapping[str, ModelDescriptor] = MappingProxyType(
            {d.name: d for d in descriptors}
        )
        self._providers: Mapping[str, ProviderConfig] = MappingProxyType(dict(providers or {}))

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "ModelRegistry":
        """Build the registry from the configured table, or the defaults."""
        table = config.models or DEFAULT_MODELS
        descriptors = [_descriptor(entry, config.providers) for entry in table]
        logger.info(f"Loaded {len(descriptors)} model descriptors")
        return cls(descriptors, config.providers)

    def __contains__(self, name: str) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)

    def list_models(self) -> List[ModelDescriptor]:
        return list(self._models.values())

    def provider_config(self, provider: str) -> Optional[ProviderConfig]:
        return self._providers.get(provider)

    def resolve(self, name: str) -> ModelDescriptor:
        """
        Resolve a model name.

        Raises:
            ModelNotFound: If the name is not in the table
            MissingCredential: If the model's provider has no credential
        """
        descriptor = self._models.get(name)
        if descriptor is None:
            raise ModelNotFound(name)

        provider = self._providers.get(descriptor.provider)
        if provider is None or not provider.api_key:
            raise MissingCredential(descriptor.provider, descriptor.credential)

        return descriptor


class AdapterRegistry:
    """
    Registry of provider adapters keyed by provider id.
    """

    def __init__(self):
        self._adapters: Dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.provider_id] = adapter
        logger.debug(f"Registered provider adapter: {adapter.provider_id}")

    def register_class(self, adapter_class: Type[ProviderAdapter], **kwargs: Any) -> ProviderAdapter:
        adapter = adapter_class(**kwargs)
        self.register(adapter)
        return adapter

    def get(self, provider_id: str) -> ProviderAdapter:
        """
        Get the adapter for a provider.

        Raises:
            ProviderNotSupported: If no adapter is registered
        """
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            raise ProviderNotSupported(provider_id)
        return adapter

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._adapters

    def list_providers(self) -> List[str]:
        return sorted(self._adapters)


def default_adapters() -> AdapterRegistry:
    """Registry with every built-in adapter."""
    from ..adapters import AnthropicAdapter, GoogleAdapter, OpenAIAdapter
    from ..adapters import GroqAdapter, OpenRouterAdapter, PerplexityAdapter

    registry = AdapterRegistry()
    for adapter_class in (
        OpenAIAdapter,
        GroqAdapter,
        PerplexityAdapter,
        OpenRouterAdapter,
        GoogleAdapter,
        AnthropicAdapter,
    ):
        registry.register_class(adapter_class)
    return registry
