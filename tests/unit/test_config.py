"""
Tests for configuration loading.
"""

import pytest

from llm_gateway.core.config import CONFIG_ENV_VAR, GatewayConfig, load_config
from llm_gateway.core.registry import ModelRegistry


CONFIG_YAML = """
context_model: gpt-4.1-mini
max_history_depth: 5
stream_timeout: 120
providers:
  openai:
    api_key: ${TEST_OPENAI_KEY}
  local:
    base_url: http://localhost:8000/v1
    credential: LOCAL_KEY
  openrouter:
    extra:
      referer: ${TEST_REFERER}
models:
  - name: local-llama
    provider: local
    context_window: 8192
"""


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep real config files and credentials out of the tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv("DEFAULT_AI_MODEL", raising=False)
    for credential in ("OPENAI_API_KEY", "GOOGLE_API_KEY", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(credential, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "gateway.yaml"
    path.write_text(CONFIG_YAML)
    return path


class TestLoadConfig:
    """Test loading configuration from YAML."""

    def test_load_file(self, config_file, monkeypatch):
        monkeypatch.setenv("TEST_OPENAI_KEY", "sk-from-env")
        monkeypatch.setenv("TEST_REFERER", "https://example.test")

        config = load_config(str(config_file))

        assert config.context_model == "gpt-4.1-mini"
        assert config.max_history_depth == 5
        assert config.stream_timeout == 120
        assert config.response_reserve == 50

        assert config.provider("openai").api_key == "sk-from-env"
        assert config.provider("openai").base_url == "https://api.openai.com/v1"
        assert config.provider("openrouter").extra == {"referer": "https://example.test"}

        local = config.provider("local")
        assert local.base_url == "http://localhost:8000/v1"
        assert local.credential == "LOCAL_KEY"
        assert local.api_key == ""

        # Providers missing from the file keep their defaults
        assert config.provider("anthropic").base_url == "https://api.anthropic.com/v1"

    def test_env_var_path(self, config_file, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(config_file))
        assert load_config().context_model == "gpt-4.1-mini"

    def test_default_location(self, tmp_path):
        path = tmp_path / "config" / "llm-gateway" / "gateway.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("max_history_depth: 7\n")

        assert load_config().max_history_depth == 7

    def test_missing_file_uses_defaults(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

        config = load_config("/nonexistent/gateway.yaml")

        assert config.max_history_depth == 20
        assert config.context_model == "gpt-4.1-nano"
        assert config.provider("openai").api_key == "sk-env"
        assert config.provider("google").api_key == ""
        assert sorted(config.providers) == [
            "anthropic", "google", "groq", "openai", "openrouter", "perplexity",
        ]

    def test_invalid_yaml_uses_defaults(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("providers: [unclosed\n")

        config = load_config(str(path))

        assert config.max_history_depth == 20
        assert "openai" in config.providers

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)).default_model == "gpt-4.1-nano"

    def test_default_model_from_env(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_AI_MODEL", "claude-3-5-haiku-latest")
        assert load_config().default_model == "claude-3-5-haiku-latest"


class TestRegistryFromConfig:
    """Test building the model registry from configuration."""

    def test_extra_models(self, config_file, monkeypatch):
        monkeypatch.setenv("LOCAL_KEY", "unused")
        config = load_config(str(config_file))

        registry = ModelRegistry.from_config(config)

        # A configured table replaces the built-in one
        assert [m.name for m in registry.list_models()] == ["local-llama"]
        assert registry.list_models()[0].credential == "LOCAL_KEY"

    def test_default_table(self):
        registry = ModelRegistry.from_config(load_config())
        assert "gpt-4.1-nano" in registry

    def test_from_dict(self):
        config = GatewayConfig.from_dict({"tool_timeout": 5, "providers": {"openai": {"api_key": "k"}}})
        assert config.tool_timeout == 5
        assert config.provider("openai").api_key == "k"
