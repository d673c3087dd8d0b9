"""Tests for the host settings loaded from the environment."""

import pytest

from core.config import Settings


def test_flat_env_builds_typed_plugin_entry(monkeypatch):
    for name in ("MEMORY_CONFIG_FILE", "MEMORY_PLUGIN_ID", "DATAGRAN_ALLOW_HTTP"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATAGRAN_BASE_URL", "https://api.datagran.com")
    monkeypatch.setenv("DATAGRAN_API_KEY", "sk_live_abc123")
    monkeypatch.setenv("DATAGRAN_TIMEOUT_MS", " 5000 ")
    monkeypatch.setenv("DATAGRAN_RETRIES", "0")

    config = Settings().host_config()["plugins"]["entries"]["datagran-memory"]["config"]

    assert config["http"] == {"timeoutMs": 5000, "retries": 0}
    assert config["allowHttp"] is False


def test_non_integer_env_value_fails_fast(monkeypatch):
    monkeypatch.setenv("DATAGRAN_RETRIES", "two")

    with pytest.raises(RuntimeError, match="DATAGRAN_RETRIES must be an integer"):
        Settings()
