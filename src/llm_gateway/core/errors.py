"""
Gateway error types.

Fatal errors (resolution, HTTP, transport) end a turn. Tool errors are
recorded per call, and soft errors (budget, context extraction, stream
parsing) are reported as warnings while the turn keeps going.
"""

from typing import Any, Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    code = "gateway_error"

    def __init__(self, message: str, provider: str = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class ModelNotFound(GatewayError):
    """Raised when a model name is absent from the registry."""

    code = "model_not_found"

    def __init__(self, model: str):
        super().__init__(f"Model info not found for: {model}")
        self.model = model


class MissingCredential(GatewayError):
    """Raised when the provider serving a model has no credential configured."""

    code = "missing_credential"

    def __init__(self, provider: str, credential: Optional[str] = None):
        detail = f" ({credential})" if credential else ""
        super().__init__(f"Auth token not found for provider: {provider}{detail}", provider)
        self.credential = credential


class ProviderNotSupported(GatewayError):
    """Raised when no adapter is registered for a provider id."""

    code = "provider_not_supported"

    def __init__(self, provider: str):
        super().__init__(f"Provider not supported: {provider}", provider)


class ProviderHttpError(GatewayError):
    """Raised when a provider answers with a non-2xx status."""

    code = "provider_http_error"

    def __init__(self, status_code: int, body: Any = None, provider: str = None):
        super().__init__(
            f"API Error ({status_code}): {_error_detail(body)}",
            provider,
        )
        self.status_code = status_code
        self.body = body


class ProviderAuthenticationError(ProviderHttpError):
    """Raised when the provider rejects the credential."""

    code = "provider_authentication_error"


class ProviderRateLimitError(ProviderHttpError):
    """Raised when the provider rate limit is exceeded."""

    code = "provider_rate_limited"

    def __init__(
        self,
        status_code: int,
        body: Any = None,
        provider: str = None,
        retry_after: float = None,
    ):
        super().__init__(status_code, body, provider)
        self.retry_after = retry_after


class ProviderTransportError(GatewayError):
    """Raised when the provider cannot be reached."""

    code = "provider_transport_error"


class ProviderTimeoutError(ProviderTransportError):
    """Raised when a provider call exceeds its deadline."""

    code = "provider_timeout"


class ToolError(GatewayError):
    """Base for per-call tool failures. Never fatal to a turn."""

    code = "tool_error"

    def __init__(self, message: str, tool: str):
        super().__init__(message)
        self.tool = tool


class ToolNotFound(ToolError):
    """The model asked for a tool that is not registered."""

    code = "ToolNotFound"

    def __init__(self, tool: str):
        super().__init__(f"Tool not found: {tool}", tool)


class InvalidToolArguments(ToolError):
    """The model emitted arguments that are not valid for the tool."""

    code = "InvalidToolArguments"


class ToolExecutionError(ToolError):
    """The tool executor raised or timed out."""

    code = "ToolExecutionError"


class BudgetExhausted(GatewayError):
    """Soft: the content still exceeds the token budget after trimming."""

    code = "budget_exhausted"

    def __init__(self, tokens: int, target: int):
        super().__init__(
            f"Content adjustment finished, but tokens ({tokens}) still exceed target ({target})"
        )
        self.tokens = tokens
        self.target = target


class ContextExtractionFailure(GatewayError):
    """Soft: the context update call failed; the previous context is kept."""

    code = "context_extraction_failure"


class StreamParseError(GatewayError):
    """Recoverable: a stream unit could not be parsed and was skipped."""

    code = "stream_parse_error"

    def __init__(self, message: str, unit: str = "", provider: str = None):
        super().__init__(message, provider)
        self.unit = unit


def _error_detail(body: Any) -> str:
    """Pull a readable message out of a provider error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    return str(body)
