"""
Core gateway components.
"""

from .interface import ProviderAdapter, TranslatedRequest, UnitDelta
from .registry import AdapterRegistry, ModelRegistry, default_adapters
from .config import GatewayConfig, ProviderConfig, load_config
from .budget import Adjusted, CharacterEstimator, TiktokenEstimator, TokenBudgeter
from .translator import RequestTranslator
from .client import ProviderClient
from .streaming import StreamNormalizer, StreamState
from .tools import ToolExecutionEngine, ToolRegistry, format_tool_feedback
from .context import ContextUpdater, merge_context
from .gateway import LLMGateway, Turn
from .errors import (
    GatewayError,
    ModelNotFound,
    MissingCredential,
    ProviderNotSupported,
    ProviderHttpError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderTransportError,
    ProviderTimeoutError,
    ToolError,
    ToolNotFound,
    InvalidToolArguments,
    ToolExecutionError,
    BudgetExhausted,
    ContextExtractionFailure,
    StreamParseError,
)

__all__ = [
    "ProviderAdapter",
    "TranslatedRequest",
    "UnitDelta",
    "AdapterRegistry",
    "ModelRegistry",
    "default_adapters",
    "GatewayConfig",
    "ProviderConfig",
    "load_config",
    "Adjusted",
    "CharacterEstimator",
    "TiktokenEstimator",
    "TokenBudgeter",
    "RequestTranslator",
    "ProviderClient",
    "StreamNormalizer",
    "StreamState",
    "ToolExecutionEngine",
    "ToolRegistry",
    "format_tool_feedback",
    "ContextUpdater",
    "merge_context",
    "LLMGateway",
    "Turn",
    "GatewayError",
    "ModelNotFound",
    "MissingCredential",
    "ProviderNotSupported",
    "ProviderHttpError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "ProviderTransportError",
    "ProviderTimeoutError",
    "ToolError",
    "ToolNotFound",
    "InvalidToolArguments",
    "ToolExecutionError",
    "BudgetExhausted",
    "ContextExtractionFailure",
    "StreamParseError",
]
