"""Tests for plugin config resolution."""

import pytest
from pydantic import ValidationError

from core.exceptions import ConfigurationError
from core.memory_adapter.config import (
    describe_config,
    extract_scoped_config,
    normalize_base_url,
    resolve_runtime_config,
)
from core.memory_adapter.schemas import MindState


def test_reads_nested_plugins_entries_config():
    config = resolve_runtime_config(
        {
            "plugins": {
                "entries": {
                    "datagran-memory": {
                        "config": {
                            "baseUrl": "https://api.datagran.com/",
                            "apiKey": "sk_live_123456",
                            "defaults": {"mindState": "auto", "maxTokens": 256, "temperature": 0.1},
                            "http": {"timeoutMs": 5000, "retries": 1},
                        }
                    }
                }
            }
        }
    )

    assert config.base_url == "https://api.datagran.com"
    assert config.defaults.max_tokens == 256
    assert config.defaults.temperature == 0.1
    assert config.http.timeout_ms == 5000
    assert config.http.retries == 1


def test_reads_plugin_config_block():
    config = resolve_runtime_config(
        {"pluginConfig": {"baseUrl": "https://api.datagran.com", "apiKey": "sk_live_123456"}, "other": 1}
    )
    assert config.api_key == "sk_live_123456"


def test_entries_lookup_uses_plugin_id():
    raw = {"plugins": {"entries": {"custom-id": {"config": {"baseUrl": "https://h", "apiKey": "k"}}}}}

    assert extract_scoped_config(raw, "custom-id") == {"baseUrl": "https://h", "apiKey": "k"}
    assert extract_scoped_config(raw, "datagran-memory") == raw


def test_applies_defaults():
    config = resolve_runtime_config({"baseUrl": "https://host", "apiKey": "k"})

    assert config.allow_http is False
    assert config.defaults.mind_state is MindState.AUTO
    assert config.defaults.max_tokens == 512
    assert config.defaults.temperature == 0.2
    assert config.http.timeout_ms == 30_000
    assert config.http.retries == 2


def test_accepts_snake_case_keys():
    config = resolve_runtime_config(
        {"base_url": "https://host", "api_key": "k", "http": {"timeout_ms": 2000}, "defaults": {"max_tokens": 9}}
    )
    assert config.http.timeout_ms == 2000
    assert config.defaults.max_tokens == 9


@pytest.mark.parametrize(
    ("raw_url", "expected"),
    [
        ("https://host/intelligence", "https://host"),
        ("https://host/intelligence/", "https://host"),
        ("https://host/", "https://host"),
        ("https://host", "https://host"),
        ("https://host/sub/", "https://host/sub"),
        ("https://host/sub///", "https://host/sub"),
        ("https://HOST:443/api/v2?x=1#frag", "https://host/api/v2"),
        ("https://host:8443/intelligence", "https://host:8443"),
    ],
)
def test_normalize_base_url(raw_url, expected):
    assert normalize_base_url(raw_url) == expected


def test_resolve_normalizes_landing_page_url():
    config = resolve_runtime_config({"baseUrl": "https://www.datagran.io/intelligence", "apiKey": "sk_live_abcdef"})
    assert config.base_url == "https://www.datagran.io"


def test_rejects_insecure_base_url():
    with pytest.raises(ConfigurationError) as exc_info:
        resolve_runtime_config({"baseUrl": "http://host", "apiKey": "k"})
    assert "Insecure baseUrl" in exc_info.value.message


def test_allow_http_opt_in():
    config = resolve_runtime_config({"baseUrl": "http://host", "apiKey": "k", "allowHttp": True})
    assert config.base_url == "http://host"


def test_reports_every_invalid_field():
    with pytest.raises(ConfigurationError) as exc_info:
        resolve_runtime_config({"baseUrl": "not a url", "http": {"retries": 9, "timeoutMs": 10}})

    detail = exc_info.value.detail
    assert "base_url" in detail
    assert "api_key" in detail
    assert "http.retries" in detail
    assert "http.timeout_ms" in detail


def test_non_mapping_config_is_rejected():
    with pytest.raises(ConfigurationError):
        resolve_runtime_config(None)


def test_resolved_config_is_immutable(runtime_config):
    with pytest.raises(ValidationError):
        runtime_config.api_key = "other"


def test_describe_config_masks_api_key(runtime_config):
    lines = describe_config(runtime_config)

    assert lines[0] == "Plugin: datagran-memory"
    assert "Base URL: https://api.datagran.com" in lines
    assert "API key: sk_li...123" in lines
    assert "sk_live_abc123" not in "\n".join(lines)
    assert lines[-1] == "HTTP: timeoutMs=5000, retries=2"


@pytest.mark.parametrize("flag", ["yes", "on", "true", 1, 0])
def test_allow_http_must_be_a_boolean(flag):
    with pytest.raises(ConfigurationError) as exc_info:
        resolve_runtime_config({"baseUrl": "http://host", "apiKey": "k", "allowHttp": flag})
    assert "allow_http" in exc_info.value.detail


@pytest.mark.parametrize(
    ("section", "key", "value", "path"),
    [
        ("defaults", "maxTokens", True, "defaults.max_tokens"),
        ("defaults", "maxTokens", "256", "defaults.max_tokens"),
        ("defaults", "temperature", False, "defaults.temperature"),
        ("defaults", "temperature", "0.3", "defaults.temperature"),
        ("http", "timeoutMs", "5000", "http.timeout_ms"),
        ("http", "timeoutMs", 5000.0, "http.timeout_ms"),
        ("http", "retries", True, "http.retries"),
    ],
)
def test_numeric_settings_are_not_coerced(section, key, value, path):
    with pytest.raises(ConfigurationError) as exc_info:
        resolve_runtime_config({"baseUrl": "https://host", "apiKey": "k", section: {key: value}})
    assert path in exc_info.value.detail
