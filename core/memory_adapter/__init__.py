"""
Memory adapter entry points.

Resolves the plugin configuration, validates tool inputs and talks to the
Datagran memory API (connect, ingest, query).
"""

from .config import (
    DEFAULT_PLUGIN_ID,
    RuntimeConfig,
    describe_config,
    normalize_base_url,
    resolve_runtime_config,
)
from .connector import MemoryClient, RetryPolicy, connect, ingest, query
from .schemas import (
    ConnectRequest,
    IngestRequest,
    MindState,
    QueryRequest,
    SourceType,
    parse_connect_input,
    parse_ingest_input,
    parse_query_input,
)

__all__ = [
    "DEFAULT_PLUGIN_ID",
    "RuntimeConfig",
    "describe_config",
    "normalize_base_url",
    "resolve_runtime_config",
    "MemoryClient",
    "RetryPolicy",
    "connect",
    "ingest",
    "query",
    "ConnectRequest",
    "IngestRequest",
    "QueryRequest",
    "MindState",
    "SourceType",
    "parse_connect_input",
    "parse_ingest_input",
    "parse_query_input",
]
