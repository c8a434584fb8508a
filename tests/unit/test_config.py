"""Tests for config.py."""

import pytest

from ceo_swarm.config import DEFAULT_GATEWAY_URL, DEFAULT_MODEL, Config

_ENV_KEYS = (
    "GATEWAY_API_KEY",
    "GATEWAY_BASE_URL",
    "ANTHROPIC_API_KEY",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "MAX_TOKENS_UPPER_BOUND",
    "SWARM_API_URL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestConfig:
    def test_defaults_without_keys(self, clean_env):
        config = Config.from_env()
        assert config.llm_provider == "gateway"
        assert config.gateway_base_url == DEFAULT_GATEWAY_URL
        assert config.llm_model == DEFAULT_MODEL
        assert not config.validate()

    def test_gateway_key_selects_gateway(self, clean_env):
        clean_env.setenv("GATEWAY_API_KEY", "gw-key")
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-key")
        config = Config.from_env()
        assert config.llm_provider == "gateway"
        assert config.get_api_key() == "gw-key"
        assert config.validate()

    def test_anthropic_key_is_the_fallback(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-key")
        config = Config.from_env()
        assert config.llm_provider == "anthropic"
        assert config.get_api_key() == "sk-ant-key"

    def test_explicit_provider_wins(self, clean_env):
        clean_env.setenv("GATEWAY_API_KEY", "gw-key")
        clean_env.setenv("LLM_PROVIDER", "anthropic")
        config = Config.from_env()
        assert config.llm_provider == "anthropic"
        assert not config.validate()

    def test_numeric_overrides(self, clean_env):
        clean_env.setenv("MAX_TOKENS_UPPER_BOUND", "4096")
        assert Config.from_env().max_tokens_upper_bound == 4096

    def test_endpoint_urls(self, clean_env):
        clean_env.setenv("SWARM_API_URL", "http://swarm.test/")
        config = Config.from_env()
        assert config.run_url == "http://swarm.test/run"
        assert config.chat_url == "http://swarm.test/agent-chat"
