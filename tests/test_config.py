"""Test suite for provider config resolution."""

import pytest

from botchat.config import DEFAULT_API_URL, parse_headers, resolve_provider_config
from botchat.domain.exceptions import ConfigError
from botchat.domain.models import Settings


def test_settings_key_wins_over_environment():
    config = resolve_provider_config(Settings(api_key="sk-settings"))
    assert config.api_key == "sk-settings"


def test_environment_key_is_fallback():
    config = resolve_provider_config(Settings())
    assert config.api_key == "sk-test"
    assert config.base_url == DEFAULT_API_URL


def test_no_key_anywhere(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    with pytest.raises(ConfigError):
        resolve_provider_config(Settings())


def test_base_url_precedence(monkeypatch):
    monkeypatch.setenv("OPENAI_API_URL", "http://localhost:11434/v1")
    assert resolve_provider_config(Settings()).base_url == "http://localhost:11434/v1"
    assert resolve_provider_config(Settings(api_url="https://proxy/v1")).base_url == "https://proxy/v1"


def test_headers_merge_with_settings_winning(monkeypatch):
    monkeypatch.setenv("OPENAI_API_HEADERS", '{"X-Org": "env", "X-Env-Only": "1"}')
    config = resolve_provider_config(Settings(custom_api_headers='{"X-Org": "settings"}'))
    assert config.headers == {"X-Org": "settings", "X-Env-Only": "1"}


def test_malformed_env_headers_are_ignored(monkeypatch):
    monkeypatch.setenv("OPENAI_API_HEADERS", "not-json")
    assert resolve_provider_config(Settings()).headers == {}


@pytest.mark.parametrize("raw", ["{broken", "[1, 2]", '{"X-Count": 3}'])
def test_malformed_settings_headers(raw):
    with pytest.raises(ConfigError):
        resolve_provider_config(Settings(custom_api_headers=raw))


def test_sampling_settings_are_carried():
    config = resolve_provider_config(
        Settings(token_limit=1000, temperature=1.1, top_k=0.25, use_streaming_api=False)
    )
    assert (config.token_limit, config.temperature, config.top_p, config.streaming) == (1000, 1.1, 0.25, False)


def test_parse_headers_accepts_empty_values():
    assert parse_headers(None) == {}
    assert parse_headers("") == {}
    assert parse_headers({"A": "b"}) == {"A": "b"}
