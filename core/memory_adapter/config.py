"""
Runtime configuration for the Datagran memory plugin.

The host hands the plugin a loosely-structured config object; the plugin's
own block may sit at the top level, under `pluginConfig`, or under
`plugins.entries.<plugin_id>.config`. `resolve_runtime_config` finds it,
validates it and normalizes the base URL. The result is immutable and is
rebuilt for every tool invocation.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, StrictBool, StrictInt, ValidationError, field_validator

from core.exceptions import ConfigurationError

from .normalizer import as_record, mask_api_key, read_nested
from .schemas import MindState, Number, apply_aliases, pydantic_errors

DEFAULT_PLUGIN_ID = "datagran-memory"

_DEFAULT_PORTS = {"http": 80, "https": 443}
_LANDING_PATHS = {"", "/intelligence"}

CONFIG_ALIASES: Dict[str, tuple[str, ...]] = {
    "base_url": ("baseUrl", "base_url"),
    "api_key": ("apiKey", "api_key"),
    "allow_http": ("allowHttp", "allow_http"),
    "defaults": ("defaults",),
    "http": ("http",),
}

DEFAULTS_ALIASES: Dict[str, tuple[str, ...]] = {
    "mind_state": ("mindState", "mind_state"),
    "max_tokens": ("maxTokens", "max_tokens"),
    "temperature": ("temperature",),
}

HTTP_ALIASES: Dict[str, tuple[str, ...]] = {
    "timeout_ms": ("timeoutMs", "timeout_ms"),
    "retries": ("retries",),
}


class DefaultsConfig(BaseModel):
    """Query defaults applied when the caller leaves a field out."""

    mind_state: MindState = MindState.AUTO
    max_tokens: StrictInt = Field(default=512, ge=1, le=4096)
    temperature: Number = Field(default=0.2, ge=0.0, le=2.0)

    model_config = {"frozen": True}


class HttpPolicy(BaseModel):
    timeout_ms: StrictInt = Field(default=30_000, ge=1000, le=120_000)
    retries: StrictInt = Field(default=2, ge=0, le=5)

    model_config = {"frozen": True}


class RuntimeConfig(BaseModel):
    """Validated plugin configuration."""

    base_url: str
    api_key: str = Field(min_length=1, repr=False)
    allow_http: StrictBool = False
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    http: HttpPolicy = Field(default_factory=HttpPolicy)

    model_config = {"frozen": True}

    @field_validator("base_url")
    @classmethod
    def ensure_absolute_url(cls, value: str) -> str:
        parts = urlsplit(value.strip())
        if not parts.scheme or not parts.hostname:
            raise ValueError("baseUrl must be an absolute URL")
        try:
            parts.port
        except ValueError as exc:
            raise ValueError("baseUrl has an invalid port") from exc
        return value.strip()


# ---------------------------------------------------------------------------
# Locating the plugin's block inside the host config
# ---------------------------------------------------------------------------

ConfigStrategy = Callable[[Dict[str, Any], str], Optional[Dict[str, Any]]]


def _looks_like_config(record: Mapping[str, Any]) -> bool:
    return any(isinstance(record.get(key), str) for key in ("baseUrl", "apiKey", "base_url", "api_key"))


def _from_root(root: Dict[str, Any], plugin_id: str) -> Optional[Dict[str, Any]]:
    return root if _looks_like_config(root) else None


def _from_plugin_config(root: Dict[str, Any], plugin_id: str) -> Optional[Dict[str, Any]]:
    scoped = as_record(root.get("pluginConfig"))
    return scoped if _looks_like_config(scoped) else None


def _from_plugin_entries(root: Dict[str, Any], plugin_id: str) -> Optional[Dict[str, Any]]:
    scoped = read_nested(root, "plugins", "entries", plugin_id, "config")
    return scoped or None


def _fallback(root: Dict[str, Any], plugin_id: str) -> Optional[Dict[str, Any]]:
    return root


CONFIG_STRATEGIES: Tuple[ConfigStrategy, ...] = (
    _from_root,
    _from_plugin_config,
    _from_plugin_entries,
    _fallback,
)


def extract_scoped_config(raw_config: Any, plugin_id: str = DEFAULT_PLUGIN_ID) -> Dict[str, Any]:
    """Return the first plausible config block found by `CONFIG_STRATEGIES`."""

    root = as_record(raw_config)
    for strategy in CONFIG_STRATEGIES:
        scoped = strategy(root, plugin_id)
        if scoped is not None:
            return scoped
    return root


# ---------------------------------------------------------------------------
# Base URL handling
# ---------------------------------------------------------------------------

def _origin(raw_url: str) -> tuple[str, str, str]:
    parts = urlsplit(raw_url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"
    return scheme, f"{scheme}://{host}", parts.path


def normalize_base_url(raw_url: str) -> str:
    """
    Reduce a pasted URL to the API base.

    Users often paste the product landing page (`https://host/intelligence`);
    the API lives on the bare origin. Any other path is kept as a prefix.
    Query strings, fragments and trailing slashes are dropped.
    """

    _, origin, path = _origin(raw_url)
    path = path.rstrip("/")
    if path in _LANDING_PATHS:
        return origin
    return f"{origin}{path}"


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def _fold_config(scoped: Mapping[str, Any]) -> tuple[dict[str, Any], list[tuple[str, str]]]:
    data, errors = apply_aliases(scoped, CONFIG_ALIASES)
    for section, aliases in (("defaults", DEFAULTS_ALIASES), ("http", HTTP_ALIASES)):
        if isinstance(data.get(section), Mapping):
            folded, section_errors = apply_aliases(data[section], aliases)
            data[section] = folded
            errors.extend((f"{section}.{path}", msg) for path, msg in section_errors)
    return data, errors


def resolve_runtime_config(raw_config: Any, plugin_id: str = DEFAULT_PLUGIN_ID) -> RuntimeConfig:
    """Locate, validate and normalize the plugin config; raise `ConfigurationError` on failure."""

    scoped = extract_scoped_config(raw_config, plugin_id)
    data, errors = _fold_config(scoped)
    try:
        parsed = RuntimeConfig.model_validate(data)
    except ValidationError as exc:
        errors.extend(pydantic_errors(exc))
        parsed = None

    if errors or parsed is None:
        details = "; ".join(f"{path}: {msg}" for path, msg in errors)
        raise ConfigurationError(message=f"Invalid plugin config: {details}", detail=details)

    scheme, _, _ = _origin(parsed.base_url)
    base_url = normalize_base_url(parsed.base_url)
    if scheme != "https" and not parsed.allow_http:
        raise ConfigurationError(
            message="Insecure baseUrl blocked. Use HTTPS or set allowHttp=true for local development.",
            detail=base_url,
        )

    return parsed.model_copy(update={"base_url": base_url})


def describe_config(config: RuntimeConfig, plugin_id: str = DEFAULT_PLUGIN_ID) -> list[str]:
    """Status lines for the status command; the API key is masked."""

    defaults = config.defaults
    return [
        f"Plugin: {plugin_id}",
        f"Base URL: {config.base_url}",
        f"API key: {mask_api_key(config.api_key)}",
        (
            f"Defaults: mindState={defaults.mind_state.value}, "
            f"maxTokens={defaults.max_tokens}, temperature={defaults.temperature}"
        ),
        f"HTTP: timeoutMs={config.http.timeout_ms}, retries={config.http.retries}",
    ]


# ---------------------------------------------------------------------------
# Declarations handed to the host (settings UI, config validation)
# ---------------------------------------------------------------------------

PLUGIN_CONFIG_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["baseUrl", "apiKey"],
    "properties": {
        "baseUrl": {
            "type": "string",
            "format": "uri",
            "description": "Datagran API base URL (for example https://www.datagran.io).",
        },
        "apiKey": {
            "type": "string",
            "minLength": 1,
            "description": "Datagran partner API key (sk_live_...).",
        },
        "allowHttp": {
            "type": "boolean",
            "default": False,
            "description": "Allow non-HTTPS baseUrl (use only for local development).",
        },
        "defaults": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "mindState": {"type": "string", "enum": [item.value for item in MindState], "default": "auto"},
                "maxTokens": {"type": "integer", "minimum": 1, "maximum": 4096, "default": 512},
                "temperature": {"type": "number", "minimum": 0, "maximum": 2, "default": 0.2},
            },
        },
        "http": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "timeoutMs": {"type": "integer", "minimum": 1000, "maximum": 120_000, "default": 30_000},
                "retries": {"type": "integer", "minimum": 0, "maximum": 5, "default": 2},
            },
        },
    },
}

PLUGIN_UI_HINTS: Dict[str, Any] = {
    "baseUrl": {"label": "Datagran Base URL", "placeholder": "https://www.datagran.io"},
    "apiKey": {"label": "Datagran API Key", "placeholder": "sk_live_...", "sensitive": True},
    "allowHttp": {"label": "Allow HTTP (local only)"},
    "defaults.mindState": {"label": "Default Mind State"},
    "defaults.maxTokens": {"label": "Default Max Tokens"},
    "defaults.temperature": {"label": "Default Temperature"},
    "http.timeoutMs": {"label": "HTTP Timeout (ms)"},
    "http.retries": {"label": "HTTP Retries"},
}
