"""
Configuration loading for the gateway.
"""

import os
import logging
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LLM_GATEWAY_CONFIG"


@dataclass
class ProviderConfig:
    """Connection settings for a single provider."""
    name: str
    base_url: str
    api_key: Optional[str] = None
    credential: str = ""
    timeout: float = 60.0
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    models: List[Dict[str, Any]] = field(default_factory=list)
    default_model: str = "gpt-4.1-nano"
    context_model: str = "gpt-4.1-nano"

    # Token budget
    response_reserve: int = 50
    max_history_depth: int = 20
    system_floor: int = 100
    prompt_floor: int = 100

    # Timeouts (seconds)
    request_timeout: float = 60.0
    stream_timeout: float = 300.0
    context_timeout: float = 30.0
    tool_timeout: float = 60.0

    max_stream_buffer: int = 1024 * 1024

    def provider(self, name: str) -> Optional[ProviderConfig]:
        return self.providers.get(name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        return _parse_config(data)


# Provider id -> (default base URL, credential environment variable)
DEFAULT_PROVIDERS = {
    "openai": ("https://api.openai.com/v1", "OPENAI_API_KEY"),
    "groq": ("https://api.groq.com/openai/v1", "GROQ_API_KEY"),
    "perplexity": ("https://api.perplexity.ai", "PERPLEXITY_API_KEY"),
    "openrouter": ("https://openrouter.ai/api/v1", "OPEN_ROUTER_KEY"),
    "google": ("https://generativelanguage.googleapis.com/v1beta", "GOOGLE_API_KEY"),
    "anthropic": ("https://api.anthropic.com/v1", "ANTHROPIC_API_KEY"),
}


def load_config(config_path: Optional[str] = None) -> GatewayConfig:
    """
    Load gateway configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses LLM_GATEWAY_CONFIG
            or the default locations.

    Returns:
        Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if config_path is None:
        # Try common locations
        paths = [
            Path("config/llm-gateway/gateway.yaml"),
            Path("/etc/llm-gateway/gateway.yaml"),
            Path.home() / ".config/llm-gateway/gateway.yaml",
        ]
        for p in paths:
            if p.exists():
                config_path = str(p)
                break

    if config_path is None or not Path(config_path).exists():
        logger.warning("No gateway config file found, using defaults")
        return _default_config()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return _parse_config(data)

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return _default_config()


def _expand_env(value: Any) -> Any:
    """Expand a ``${ENV_VAR}`` reference."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return os.environ.get(value[2:-1], "")
    return value


def _parse_config(data: Dict[str, Any]) -> GatewayConfig:
    """Parse configuration dictionary."""
    providers = _default_providers()

    for name, pdata in (data.get("providers") or {}).items():
        pdata = pdata or {}
        base_url, credential = DEFAULT_PROVIDERS.get(name, ("", ""))
        credential = pdata.get("credential", credential)
        api_key = _expand_env(pdata.get("api_key", f"${{{credential}}}" if credential else ""))

        providers[name] = ProviderConfig(
            name=name,
            base_url=pdata.get("base_url", base_url),
            api_key=api_key,
            credential=credential,
            timeout=pdata.get("timeout", 60.0),
            extra={k: _expand_env(v) for k, v in (pdata.get("extra") or {}).items()},
        )

    defaults = GatewayConfig()
    settings = {
        key: data[key]
        for key in (
            "response_reserve", "max_history_depth", "system_floor", "prompt_floor",
            "request_timeout", "stream_timeout", "context_timeout", "tool_timeout",
            "max_stream_buffer", "context_model",
        )
        if key in data
    }

    return GatewayConfig(
        providers=providers,
        models=data.get("models") or [],
        default_model=data.get("default_model") or os.environ.get("DEFAULT_AI_MODEL", defaults.default_model),
        **settings,
    )


def _default_providers() -> Dict[str, ProviderConfig]:
    providers = {}
    for name, (base_url, credential) in DEFAULT_PROVIDERS.items():
        providers[name] = ProviderConfig(
            name=name,
            base_url=base_url,
            api_key=os.environ.get(credential, ""),
            credential=credential,
        )

    openrouter = providers["openrouter"]
    openrouter.extra = {
        "referer": os.environ.get("OPEN_ROUTER_REFERER", "http://localhost"),
        "title": os.environ.get("OPEN_ROUTER_TITLE", "AI Service"),
    }
    return providers


def _default_config() -> GatewayConfig:
    """Return default configuration."""
    return GatewayConfig(
        providers=_default_providers(),
        default_model=os.environ.get("DEFAULT_AI_MODEL", "gpt-4.1-nano"),
    )
