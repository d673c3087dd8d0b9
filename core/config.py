"""
Core configuration for the memory plugin host.

Environment variables:
- APP_NAME / APP_VERSION / LOG_LEVEL
- MEMORY_PLUGIN_ID (default "datagran-memory")
- MEMORY_CONFIG_FILE: JSON host config; the plugin block is located inside it
- DATAGRAN_BASE_URL / DATAGRAN_API_KEY / DATAGRAN_ALLOW_HTTP
- DATAGRAN_TIMEOUT_MS / DATAGRAN_RETRIES

The DATAGRAN_* values are only used when MEMORY_CONFIG_FILE is not set. They
are parsed here (integers for the HTTP policy); range checks happen in
core.memory_adapter.config.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Auto-load .env if present
load_dotenv(dotenv_path=".env", override=False)


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


class Settings:
    """Generic settings loader."""

    def __init__(self) -> None:
        # App
        self.APP_NAME: str = os.getenv("APP_NAME", "Datagran-Memory-Host")
        self.APP_VERSION: str = os.getenv("APP_VERSION", "0.1.0")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

        # Plugin
        self.MEMORY_PLUGIN_ID: str = os.getenv("MEMORY_PLUGIN_ID", "datagran-memory")
        self.MEMORY_CONFIG_FILE: Optional[str] = os.getenv("MEMORY_CONFIG_FILE")

        # Datagran (flat env form)
        self.DATAGRAN_BASE_URL: Optional[str] = os.getenv("DATAGRAN_BASE_URL")
        self.DATAGRAN_API_KEY: Optional[str] = os.getenv("DATAGRAN_API_KEY")
        self.DATAGRAN_ALLOW_HTTP: bool = os.getenv("DATAGRAN_ALLOW_HTTP", "false").lower() in {"1", "true", "yes", "on"}
        self.DATAGRAN_TIMEOUT_MS: Optional[int] = _env_int("DATAGRAN_TIMEOUT_MS")
        self.DATAGRAN_RETRIES: Optional[int] = _env_int("DATAGRAN_RETRIES")

    def host_config(self) -> Dict[str, Any]:
        """Build the loosely-structured host config the plugin resolves its own block from."""

        if self.MEMORY_CONFIG_FILE:
            return self._load_config_file(Path(self.MEMORY_CONFIG_FILE))

        plugin_config: Dict[str, Any] = {"allowHttp": self.DATAGRAN_ALLOW_HTTP}
        if self.DATAGRAN_BASE_URL:
            plugin_config["baseUrl"] = self.DATAGRAN_BASE_URL
        if self.DATAGRAN_API_KEY:
            plugin_config["apiKey"] = self.DATAGRAN_API_KEY

        http: Dict[str, Any] = {}
        if self.DATAGRAN_TIMEOUT_MS is not None:
            http["timeoutMs"] = self.DATAGRAN_TIMEOUT_MS
        if self.DATAGRAN_RETRIES is not None:
            http["retries"] = self.DATAGRAN_RETRIES
        if http:
            plugin_config["http"] = http

        return {"plugins": {"entries": {self.MEMORY_PLUGIN_ID: {"config": plugin_config}}}}

    @staticmethod
    def _load_config_file(path: Path) -> Dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise RuntimeError(f"Cannot read MEMORY_CONFIG_FILE {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise RuntimeError(f"MEMORY_CONFIG_FILE {path} must contain a JSON object.")
        return data


settings = Settings()
