"""
Request translation.

Removes parameters the target cannot accept, then hands the request to
the provider's adapter for field mapping.
"""

import logging
from typing import Any, Dict, List, Tuple

from ..models.descriptor import ModelDescriptor, ProviderCapability
from ..models.request import ProviderRequest
from .interface import ProviderAdapter, TranslatedRequest
from .registry import AdapterRegistry

logger = logging.getLogger(__name__)

# Parameters that are dropped when the model lacks the capability
CAPABILITY_PARAMS = {
    "tools": ProviderCapability.TOOL_CALLING,
    "response_format": ProviderCapability.JSON_RESPONSE,
}

# Value meaning "not set" for each droppable parameter
UNSET = {
    "temperature": None,
    "top_p": None,
    "frequency_penalty": None,
    "presence_penalty": None,
    "stop": [],
    "max_tokens": None,
    "tools": [],
    "tool_choice": None,
    "response_format": None,
}


class RequestTranslator:
    """
    Builds provider payloads through the adapter registry.
    """

    def __init__(self, adapters: AdapterRegistry):
        self.adapters = adapters

    def build(
        self,
        provider_id: str,
        request: ProviderRequest,
        model: ModelDescriptor,
    ) -> TranslatedRequest:
        """
        Translate a normalized request for one provider.

        Args:
            provider_id: Provider the model is served by
            request: Normalized request
            model: Resolved model descriptor

        Returns:
            Path, body and the warnings for every dropped parameter

        Raises:
            ProviderNotSupported: If no adapter is registered for the provider
        """
        adapter = self.adapters.get(provider_id)
        request, warnings = self._drop_unsupported(adapter, request, model)

        translated = adapter.translate(request, model)
        translated.warnings = warnings + translated.warnings

        for warning in translated.warnings:
            logger.warning(f"{model.name}: {warning}")

        return translated

    def _drop_unsupported(
        self,
        adapter: ProviderAdapter,
        request: ProviderRequest,
        model: ModelDescriptor,
    ) -> Tuple[ProviderRequest, List[str]]:
        update: Dict[str, Any] = {}
        warnings: List[str] = []

        for param, unset in UNSET.items():
            value = getattr(request, param)
            if value == unset:
                continue
            # tool_choice only means something alongside tools
            if param == "tool_choice" and ("tools" in update or not request.tools):
                update[param] = unset
                continue

            if param in adapter.UNSUPPORTED_PARAMS:
                reason = f"not supported by provider {adapter.provider_id}"
            elif param in CAPABILITY_PARAMS and not model.supports(CAPABILITY_PARAMS[param]):
                reason = f"not supported by model {model.name}"
            else:
                continue

            update[param] = unset
            warnings.append(f"Parameter '{param}' {reason}, dropped")

        if update:
            request = request.model_copy(update=update)
        return request, warnings
