"""Router exposing the registered plugin tools and commands."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body
from pydantic import BaseModel, Field

from dependencies.providers import PluginHostDep
from services.basic.plugin_host import CommandContext, CommandResult


router = APIRouter(tags=["tools"])


class ToolInfo(BaseModel):
    name: str
    description: str
    parameters: Dict[str, Any]
    optional: bool


class PluginInfo(BaseModel):
    id: str
    name: str
    config_schema: Dict[str, Any] = Field(serialization_alias="configSchema")
    ui_hints: Dict[str, Any] = Field(serialization_alias="uiHints")


@router.get(
    "/tools",
    response_model=List[ToolInfo],
    summary="List registered tools",
)
async def list_tools(host: PluginHostDep) -> List[ToolInfo]:
    return [
        ToolInfo(
            name=tool.name,
            description=tool.description,
            parameters=tool.parameters,
            optional=tool.optional,
        )
        for tool in host.tools.values()
    ]


@router.post(
    "/tools/{name}",
    summary="Execute a tool",
    description="Body is the tool's parameter object. Tool failures come back as a 200 result with success=false.",
)
async def execute_tool(
    name: str,
    host: PluginHostDep,
    params: Any = Body(default=None),
) -> Dict[str, Any]:
    result = await host.call_tool(name, params)
    return result.model_dump(by_alias=True, exclude_none=True)


@router.get(
    "/commands/{name}",
    response_model=CommandResult,
    summary="Run a command",
)
async def run_command(
    name: str,
    host: PluginHostDep,
    args: Optional[str] = None,
) -> CommandResult:
    return host.run_command(name, CommandContext(args=args))


@router.get(
    "/plugins",
    response_model=List[PluginInfo],
    response_model_by_alias=True,
    summary="List registered plugins with their config schema and UI hints",
)
async def list_plugins(host: PluginHostDep) -> List[PluginInfo]:
    return [
        PluginInfo(
            id=plugin.id,
            name=plugin.name,
            config_schema=plugin.config_schema,
            ui_hints=plugin.ui_hints,
        )
        for plugin in host.plugins.values()
    ]
