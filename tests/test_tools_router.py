"""Tests for the HTTP surface of the plugin host."""

import httpx
import pytest
from fastapi.testclient import TestClient

from dependencies.providers import get_plugin_host
from main import app
from services.basic.memory_tools import register_memory_tools
from services.basic.plugin_host import PluginHost


@pytest.fixture
def client(raw_config, make_transport, sleep_recorder):
    transport = make_transport(
        lambda request: httpx.Response(200, json={"success": True, "mode": "short_term", "answer": "ok"})
    )
    host = PluginHost(config=raw_config)
    register_memory_tools(host, client_options={"transport": transport, "sleep": sleep_recorder})
    app.dependency_overrides[get_plugin_host] = lambda: host
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "tools": 3}


def test_lists_registered_tools(client):
    response = client.get("/tools")

    assert response.status_code == 200
    names = {tool["name"] for tool in response.json()}
    assert names == {"datagran_memory_connect", "datagran_memory_ingest", "datagran_memory_query"}


def test_executes_tool(client):
    response = client.post(
        "/tools/datagran_memory_query",
        json={"question": "Anything?", "endUserExternalId": "u1"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["content"][0]["text"] == "mode: short_term\n\nok"
    assert payload["structuredContent"]["answer"] == "ok"


def test_tool_failures_are_returned_not_raised(client):
    response = client.post("/tools/datagran_memory_query", json={"question": "Anything?"})

    assert response.status_code == 200
    assert response.json()["structuredContent"]["error"] == "validation_error"


def test_unknown_tool_is_404(client):
    response = client.post("/tools/nope", json={})

    assert response.status_code == 404
    assert response.json()["code"] == "TOOL_NOT_FOUND"


def test_status_command(client):
    response = client.get("/commands/dg-memory-status")

    assert response.status_code == 200
    assert response.json()["text"].startswith("Plugin: datagran-memory")


def test_lists_plugin_manifest(client):
    response = client.get("/plugins")

    assert response.status_code == 200
    [plugin] = response.json()
    assert plugin["id"] == "datagran-memory"
    assert plugin["name"] == "Datagran Memory"
    assert plugin["configSchema"]["required"] == ["baseUrl", "apiKey"]
    assert plugin["configSchema"]["properties"]["allowHttp"]["type"] == "boolean"
    assert plugin["uiHints"]["apiKey"]["sensitive"] is True
