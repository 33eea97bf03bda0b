from __future__ import annotations

import pytest

from arcwire.config import (
    SETTING_API_KEY,
    SETTING_MAX_TOKENS,
    SETTING_MODEL,
    SETTING_PROVIDER,
    SETTING_STREAMING,
    Settings,
)
from arcwire.core.errors import ConfigurationError


def test_defaults_point_at_openrouter():
    settings = Settings()
    assert settings.provider == "openrouter"
    assert settings.api_key == ""
    assert settings.streaming is True
    assert settings.provider_def is not None
    assert settings.provider_def.default_model == "anthropic/claude-sonnet-4"


def test_from_mapping_reads_persisted_keys():
    settings = Settings.from_mapping(
        {
            SETTING_PROVIDER: "anthropic",
            SETTING_API_KEY: "  sk-ant  ",
            SETTING_MODEL: "claude-opus-4-20250514",
            SETTING_MAX_TOKENS: "2048",
            SETTING_STREAMING: "off",
        }
    )
    assert settings == Settings(
        provider="anthropic",
        api_key="sk-ant",
        model="claude-opus-4-20250514",
        max_tokens=2048,
        streaming=False,
    )


def test_from_mapping_treats_blank_values_as_unset():
    settings = Settings.from_mapping({SETTING_PROVIDER: " ", SETTING_MODEL: "", SETTING_API_KEY: None})
    assert settings == Settings()


@pytest.mark.parametrize(
    "values",
    [
        {SETTING_MAX_TOKENS: "lots"},
        {SETTING_MAX_TOKENS: "0"},
        {SETTING_STREAMING: "sometimes"},
    ],
)
def test_from_mapping_rejects_invalid_values(values):
    with pytest.raises(ConfigurationError):
        Settings.from_mapping(values)


def test_from_env_prefers_explicit_key():
    settings = Settings.from_env(
        {
            "ARCWIRE_PROVIDER": "openai",
            "ARCWIRE_API_KEY": "explicit",
            "OPENAI_API_KEY": "conventional",
            "ARCWIRE_STREAMING": "0",
        }
    )
    assert settings.provider == "openai"
    assert settings.api_key == "explicit"
    assert settings.streaming is False


def test_from_env_falls_back_to_provider_variable():
    settings = Settings.from_env({"ARCWIRE_PROVIDER": "kimi", "MOONSHOT_API_KEY": "moon"})
    assert settings.api_key == "moon"


def test_from_env_reads_process_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ARCWIRE_PROVIDER", "glm")
    monkeypatch.setenv("ZHIPUAI_API_KEY", "zk")
    monkeypatch.delenv("ARCWIRE_API_KEY", raising=False)
    monkeypatch.delenv("ARCWIRE_MODEL", raising=False)
    settings = Settings.from_env()
    assert settings.provider == "glm"
    assert settings.api_key == "zk"


def test_require_api_key():
    with pytest.raises(ConfigurationError, match="No API key configured"):
        Settings().require_api_key()
    assert Settings(api_key="k").require_api_key() == "k"


def test_cache_key_resolves_default_model():
    assert Settings(provider="openai", api_key="k").cache_key() == "openai:k:gpt-4.1"
    assert Settings(provider="openai", api_key="k", model="gpt-4o").cache_key() == "openai:k:gpt-4o"


def test_to_mapping_round_trips():
    settings = Settings(provider="minimax", api_key="mm", model="MiniMax-M2.1", max_tokens=512, streaming=False)
    assert Settings.from_mapping(settings.to_mapping()) == settings
    assert SETTING_MODEL not in Settings(api_key="k").to_mapping()
