"""
Datagran memory tools.

Adapts host tool calls onto the memory adapter: parse params, resolve the
plugin config, call the remote API and format a readable answer. Failures
never escape a tool; they come back as a `{success: false}` result.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from core.exceptions import ConfigurationError, InputValidationError, MemoryApiError, TransportError
from core.logger import get_logger
from core.memory_adapter import connector
from core.memory_adapter.config import (
    DEFAULT_PLUGIN_ID,
    PLUGIN_CONFIG_JSON_SCHEMA,
    PLUGIN_UI_HINTS,
    describe_config,
    resolve_runtime_config,
)
from core.memory_adapter.normalizer import as_boolean, as_record, as_string
from core.memory_adapter.schemas import (
    CONNECT_TOOL_PARAMETERS,
    INGEST_TOOL_PARAMETERS,
    QUERY_TOOL_PARAMETERS,
    ConnectRequest,
    parse_connect_input,
    parse_ingest_input,
    parse_query_input,
)

from .plugin_host import (
    CommandContext,
    CommandDefinition,
    CommandResult,
    PluginHost,
    PluginManifest,
    ToolDefinition,
    ToolResult,
    ToolTextContent,
)

logger = get_logger(__name__)

CONNECT_TOOL = "datagran_memory_connect"
INGEST_TOOL = "datagran_memory_ingest"
QUERY_TOOL = "datagran_memory_query"
STATUS_COMMAND = "dg-memory-status"
PLUGIN_NAME = "Datagran Memory"

CONNECT_DESCRIPTION = """Create or reuse a Datagran memory connection for an end user.

Call this ONCE per user before ingesting or querying memory. If the user already has a connection, this returns the existing one (idempotent).

You only need endUserExternalId (your unique identifier for the user). The returned connection_id is used by the other datagran_memory tools.

Typical workflow:
1. datagran_memory_connect (once per user)
2. datagran_memory_ingest (store data)
3. datagran_memory_query (ask questions)"""

INGEST_DESCRIPTION = """Store relevant new information into a user's Datagran memory so it can be queried in future conversations.

Only use this when the data is genuinely useful long-term: reports, key metrics, documents, decisions, new facts the user shared. Do NOT store trivial messages, duplicates, data already in memory, or temporary results.

If you provide endUserExternalId instead of connectionId, the plugin auto-creates a memory connection first.

Large documents are routed to long-term storage and small ones go into short-term memory automatically.

After ingesting, call datagran_memory_query to ask questions about the stored content."""

QUERY_DESCRIPTION = """ALWAYS TRY THIS FIRST before fetching new data or asking the user for information they may have provided before.

This queries a user's Datagran brain, a unified memory holding all previously stored data for that user. It searches recent memory (short-term) and historical archives (long-term) automatically.

Workflow:
1. Call datagran_memory_query FIRST with the user's question
2. If an answer exists, use it
3. If "no brain found", the user has no stored data yet. Use datagran_memory_ingest first, then query again.

Use mindState="auto" (default) to let Datagran pick the retrieval strategy."""


def text_result(text: str, structured: Optional[Dict[str, Any]] = None) -> ToolResult:
    return ToolResult(content=[ToolTextContent(text=text)], structured_content=structured)


def _structured(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, Mapping):
        return dict(payload)
    return {"raw": payload}


def error_result(error: Exception) -> ToolResult:
    """Turn any failure into a readable, structured tool result."""

    if isinstance(error, InputValidationError):
        return text_result(
            f"Invalid input: {error.detail}",
            {"success": False, "error": "validation_error", "details": error.detail},
        )

    if isinstance(error, MemoryApiError):
        return text_result(
            f"Datagran API error ({error.status}): {error.message}",
            {"success": False, "status": error.status, "error": error.message, "body": error.body},
        )

    if isinstance(error, ConfigurationError):
        return text_result(
            f"Configuration error: {error.message}",
            {"success": False, "error": "configuration_error", "details": error.message},
        )

    if isinstance(error, TransportError):
        return text_result(
            f"Datagran request failed: {error.message}",
            {"success": False, "error": error.message, "retryable": True},
        )

    message = str(error) or error.__class__.__name__
    return text_result(f"Unexpected error: {message}", {"success": False, "error": message})


def build_query_answer_text(payload: Any) -> str:
    record = as_record(payload)
    answer = as_string(record.get("answer"))
    suggested_action = as_string(record.get("suggested_action"))

    lines = [f"mode: {as_string(record.get('mode')) or 'unknown'}"]

    if answer:
        lines.extend(["", answer])
    else:
        raw_text = as_string(as_record(record.get("short_term")).get("raw_text"))
        if raw_text:
            lines.extend(["", f"No synthesized answer returned. short_term.raw_text length={len(raw_text)}."])

    if suggested_action:
        lines.extend(["", f"suggested_action: {suggested_action}"])

    if as_boolean(record.get("success")) is False and not answer:
        error_message = as_string(record.get("error"))
        if error_message:
            lines.extend(["", f"error: {error_message}"])

    return "\n".join(lines)


class MemoryTools:
    """Tool executors bound to a host; config is resolved fresh per call."""

    def __init__(
        self,
        host: PluginHost,
        plugin_id: str = DEFAULT_PLUGIN_ID,
        client_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.host = host
        self.plugin_id = plugin_id
        self.client_options = client_options or {}

    def _config(self):
        return resolve_runtime_config(self.host.config, self.plugin_id)

    async def connect(self, params: Any) -> ToolResult:
        try:
            request = parse_connect_input(params)
            result = await connector.connect(request, self._config(), **self.client_options)
        except Exception as exc:
            return self._failure(CONNECT_TOOL, exc)

        record = as_record(result)
        created = as_boolean(record.get("created"))
        text = "\n".join(
            [
                f"connection_id: {as_string(record.get('connection_id')) or '(missing)'}",
                f"end_user_id: {as_string(record.get('end_user_id')) or '(missing)'}",
                f"created: {'unknown' if created is None else str(created).lower()}",
                "",
                as_string(record.get("message")) or "Memory connection upserted.",
            ]
        )
        return text_result(text, _structured(result))

    async def ingest(self, params: Any) -> ToolResult:
        try:
            request = parse_ingest_input(params)
            config = self._config()

            connection_id = request.connection_id
            auto_connected = False
            if not connection_id and request.end_user_external_id:
                connection = await connector.connect(
                    ConnectRequest(end_user_external_id=request.end_user_external_id, email=request.email),
                    config,
                    **self.client_options,
                )
                connection_id = as_string(as_record(connection).get("connection_id"))
                auto_connected = connection_id is not None
                if auto_connected:
                    request = request.model_copy(update={"connection_id": connection_id})

            result = await connector.ingest(request, config, **self.client_options)
        except Exception as exc:
            return self._failure(INGEST_TOOL, exc)

        record = as_record(result)
        text = "\n".join(
            [
                f"stored_as: {as_string(record.get('stored_as')) or 'unknown'}",
                f"trace_id: {as_string(record.get('trace_id')) or '(none)'}",
                f"connection_id: {connection_id or '(none)'}",
                f"auto_connected: {str(auto_connected).lower()}",
                "",
                as_string(record.get("message")) or "Ingest request accepted.",
            ]
        )
        structured = _structured(result)
        structured.update({"connection_id": connection_id, "auto_connected": auto_connected})
        return text_result(text, structured)

    async def query(self, params: Any) -> ToolResult:
        try:
            request = parse_query_input(params)
            config = self._config()
            defaults = config.defaults
            request = request.model_copy(
                update={
                    "mind_state": request.mind_state or defaults.mind_state,
                    "max_tokens": request.max_tokens if request.max_tokens is not None else defaults.max_tokens,
                    "temperature": request.temperature if request.temperature is not None else defaults.temperature,
                }
            )
            result = await connector.query(request, config, **self.client_options)
        except Exception as exc:
            return self._failure(QUERY_TOOL, exc)

        return text_result(build_query_answer_text(result), _structured(result))

    def status(self, context: CommandContext) -> CommandResult:
        try:
            config = resolve_runtime_config(
                context.config if context.config is not None else self.host.config,
                self.plugin_id,
            )
        except ConfigurationError as exc:
            return CommandResult(text=f"Config error: {exc.message}")
        return CommandResult(text="\n".join(describe_config(config, self.plugin_id)))

    def _failure(self, tool: str, exc: Exception) -> ToolResult:
        if isinstance(exc, (InputValidationError, ConfigurationError, MemoryApiError, TransportError)):
            logger.warning("Tool call failed", tool=tool, error=str(exc))
        else:
            logger.exception("Tool call raised unexpectedly", tool=tool)
        return error_result(exc)


def register_memory_tools(
    host: PluginHost,
    plugin_id: str = DEFAULT_PLUGIN_ID,
    client_options: Optional[Dict[str, Any]] = None,
) -> MemoryTools:
    """Register the plugin manifest, the three memory tools and the status command on `host`."""

    host.register_plugin(PluginManifest(plugin_id, PLUGIN_NAME, PLUGIN_CONFIG_JSON_SCHEMA, PLUGIN_UI_HINTS))
    tools = MemoryTools(host, plugin_id, client_options)
    host.register_tool(
        ToolDefinition(CONNECT_TOOL, CONNECT_DESCRIPTION, CONNECT_TOOL_PARAMETERS, tools.connect, optional=True)
    )
    host.register_tool(
        ToolDefinition(INGEST_TOOL, INGEST_DESCRIPTION, INGEST_TOOL_PARAMETERS, tools.ingest, optional=True)
    )
    host.register_tool(
        ToolDefinition(QUERY_TOOL, QUERY_DESCRIPTION, QUERY_TOOL_PARAMETERS, tools.query, optional=True)
    )
    host.register_command(
        CommandDefinition(STATUS_COMMAND, "Show Datagran memory plugin config status.", tools.status)
    )
    logger.info("Registered Datagran memory tools", plugin_id=plugin_id)
    return tools
