"""Dependency providers for the memory plugin host."""

from typing import Annotated, Optional

from fastapi import Depends

from core.config import settings
from core.logger import get_logger
from services.basic.memory_tools import register_memory_tools
from services.basic.plugin_host import PluginHost

logger = get_logger(__name__)


def get_config():
    """Return global settings instance."""

    return settings


_plugin_host: Optional[PluginHost] = None


def init_plugin_host(config=None) -> PluginHost:
    """Build the shared plugin host and register the memory tools (idempotent)."""

    global _plugin_host
    if _plugin_host is not None:
        return _plugin_host

    if config is None:
        config = get_config()
    host = PluginHost(config=config.host_config())
    register_memory_tools(host, plugin_id=config.MEMORY_PLUGIN_ID)
    _plugin_host = host
    logger.info("Plugin host initialized", tools=sorted(host.tools), commands=sorted(host.commands))
    return _plugin_host


def get_plugin_host() -> PluginHost:
    """Provide the singleton PluginHost for all requests."""

    return init_plugin_host()


def reset_plugin_host() -> None:
    """Shutdown hook; the next access rebuilds the host from settings."""

    global _plugin_host
    _plugin_host = None


PluginHostDep = Annotated[PluginHost, Depends(get_plugin_host)]
