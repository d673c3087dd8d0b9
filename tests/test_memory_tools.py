"""Tests for the memory tool adapters and status command."""

import httpx
import pytest

from services.basic.memory_tools import (
    CONNECT_TOOL,
    INGEST_TOOL,
    QUERY_TOOL,
    STATUS_COMMAND,
    build_query_answer_text,
    register_memory_tools,
)
from services.basic.plugin_host import CommandContext, PluginHost

CONNECTION_ID = "11111111-1111-4111-8111-111111111111"


@pytest.fixture
def host(raw_config):
    return PluginHost(config={"plugins": {"entries": {"datagran-memory": {"config": raw_config}}}})


def _register(host, transport, sleep):
    return register_memory_tools(host, client_options={"transport": transport, "sleep": sleep})


def test_registers_tools_and_status_command(host, make_transport, sleep_recorder):
    _register(host, make_transport(lambda request: httpx.Response(200)), sleep_recorder)

    assert sorted(host.tools) == sorted([CONNECT_TOOL, INGEST_TOOL, QUERY_TOOL])
    assert all(tool.optional for tool in host.tools.values())
    assert STATUS_COMMAND in host.commands


@pytest.mark.asyncio
async def test_connect_tool_formats_connection(host, make_transport, sleep_recorder):
    transport = make_transport(
        lambda request: httpx.Response(200, json={"connection_id": "conn_1", "end_user_id": "user_1", "created": True})
    )
    _register(host, transport, sleep_recorder)

    result = await host.call_tool(CONNECT_TOOL, {"endUserExternalId": "external_1"})

    assert result.text.splitlines()[:3] == ["connection_id: conn_1", "end_user_id: user_1", "created: true"]
    assert result.text.endswith("Memory connection upserted.")
    assert result.structured_content["connection_id"] == "conn_1"


@pytest.mark.asyncio
async def test_ingest_tool_auto_connects(host, make_transport, sleep_recorder):
    def handler(request):
        if request.url.path == "/api/connections/memory":
            return httpx.Response(200, json={"connection_id": "conn_9"})
        return httpx.Response(200, json={"success": True, "stored_as": "short_term", "trace_id": "t1"})

    transport = make_transport(handler)
    _register(host, transport, sleep_recorder)

    result = await host.call_tool(
        INGEST_TOOL, {"endUserExternalId": "u1", "email": "dev@datagran.com", "name": "N", "text": "x" * 120}
    )

    connect_body, compile_body = transport.bodies()
    assert connect_body == {"end_user": {"external_id": "u1", "email": "dev@datagran.com"}}
    assert compile_body["connection_id"] == "conn_9"
    assert compile_body["type"] == "raw_text"
    assert "stored_as: short_term" in result.text
    assert "auto_connected: true" in result.text
    assert result.structured_content["auto_connected"] is True
    assert result.structured_content["connection_id"] == "conn_9"


@pytest.mark.asyncio
async def test_ingest_tool_skips_connect_with_connection_id(host, make_transport, sleep_recorder):
    transport = make_transport(lambda request: httpx.Response(200, json={"stored_as": "long_term"}))
    _register(host, transport, sleep_recorder)

    result = await host.call_tool(INGEST_TOOL, {"connectionId": CONNECTION_ID, "name": "N", "text": "x" * 120})

    assert [request.url.path for request in transport.requests] == ["/api/context/compile"]
    assert result.structured_content["auto_connected"] is False
    assert "trace_id: (none)" in result.text


@pytest.mark.asyncio
async def test_query_tool_fills_config_defaults(host, make_transport, sleep_recorder):
    transport = make_transport(
        lambda request: httpx.Response(200, json={"mode": "short_term", "answer": "Paris", "suggested_action": "none"})
    )
    _register(host, transport, sleep_recorder)

    result = await host.call_tool(QUERY_TOOL, {"question": "Capital?", "endUserExternalId": "u1", "maxTokens": 64})

    body = transport.bodies()[0]
    assert body["mind_state"] == "auto"
    assert body["max_tokens"] == 64
    assert body["temperature"] == 0.2
    assert result.text == "mode: short_term\n\nParis\n\nsuggested_action: none"


@pytest.mark.asyncio
async def test_validation_failure_becomes_structured_result(host, make_transport, sleep_recorder):
    transport = make_transport(lambda request: httpx.Response(200))
    _register(host, transport, sleep_recorder)

    result = await host.call_tool(QUERY_TOOL, {"question": "q"})

    assert result.text.startswith("Invalid input:")
    assert result.structured_content["success"] is False
    assert result.structured_content["error"] == "validation_error"
    assert transport.requests == []


@pytest.mark.asyncio
async def test_api_error_becomes_structured_result(host, make_transport, sleep_recorder):
    transport = make_transport(lambda request: httpx.Response(404, json={"error": "No brain found"}))
    _register(host, transport, sleep_recorder)

    result = await host.call_tool(QUERY_TOOL, {"question": "q", "endUserExternalId": "u1"})

    assert result.text == "Datagran API error (404): No brain found"
    assert result.structured_content == {
        "success": False,
        "status": 404,
        "error": "No brain found",
        "body": {"error": "No brain found"},
    }


@pytest.mark.asyncio
async def test_config_error_becomes_structured_result(make_transport, sleep_recorder):
    host = PluginHost(config={"baseUrl": "http://insecure", "apiKey": "k"})
    _register(host, make_transport(lambda request: httpx.Response(200)), sleep_recorder)

    result = await host.call_tool(CONNECT_TOOL, {"endUserExternalId": "u1"})

    assert result.text.startswith("Configuration error: Insecure baseUrl")
    assert result.structured_content["error"] == "configuration_error"


@pytest.mark.asyncio
async def test_transport_failure_becomes_structured_result(host, make_transport, sleep_recorder):
    def handler(request):
        raise httpx.ConnectError("refused")

    _register(host, make_transport(handler), sleep_recorder)

    result = await host.call_tool(CONNECT_TOOL, {"endUserExternalId": "u1"})

    assert result.text.startswith("Datagran request failed:")
    assert result.structured_content["success"] is False
    assert result.structured_content["retryable"] is True


def test_status_command_masks_api_key(host, make_transport, sleep_recorder):
    _register(host, make_transport(lambda request: httpx.Response(200)), sleep_recorder)

    text = host.run_command(STATUS_COMMAND).text

    assert "Base URL: https://api.datagran.com" in text
    assert "API key: sk_li...123" in text
    assert "Defaults: mindState=auto, maxTokens=512, temperature=0.2" in text


def test_status_command_prefers_context_config(host, make_transport, sleep_recorder):
    _register(host, make_transport(lambda request: httpx.Response(200)), sleep_recorder)

    result = host.run_command(STATUS_COMMAND, CommandContext(config={"baseUrl": "ftp://x", "apiKey": "k"}))

    assert result.text.startswith("Config error:")


def test_query_text_reports_raw_memory_without_answer():
    text = build_query_answer_text({"mode": "long_term", "short_term": {"raw_text": "abcde"}})
    assert text == "mode: long_term\n\nNo synthesized answer returned. short_term.raw_text length=5."


def test_query_text_reports_error_when_unsuccessful():
    text = build_query_answer_text({"success": False, "error": "inference not configured"})
    assert text == "mode: unknown\n\nerror: inference not configured"


def test_query_text_tolerates_non_object_payload():
    assert build_query_answer_text("raw text body") == "mode: unknown"


def test_registers_plugin_manifest(host, make_transport, sleep_recorder):
    _register(host, make_transport(lambda request: httpx.Response(200)), sleep_recorder)

    manifest = host.plugins["datagran-memory"]
    assert manifest.name == "Datagran Memory"
    assert set(manifest.config_schema["properties"]) == {"baseUrl", "apiKey", "allowHttp", "defaults", "http"}
    assert "http.retries" in manifest.ui_hints
