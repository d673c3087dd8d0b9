"""Tool/command registry the memory plugin registers itself into."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from core.exceptions import ToolNotFoundError
from core.logger import get_logger

logger = get_logger(__name__)


class ToolTextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """What a tool hands back: readable text plus an optional structured payload."""

    content: List[ToolTextContent]
    structured_content: Optional[Dict[str, Any]] = Field(default=None, serialization_alias="structuredContent")

    @property
    def text(self) -> str:
        return "\n".join(part.text for part in self.content)


class CommandContext(BaseModel):
    args: Optional[str] = None
    config: Optional[Any] = None


class CommandResult(BaseModel):
    text: str


ToolExecutor = Callable[[Any], Awaitable[ToolResult]]
CommandHandler = Callable[[CommandContext], CommandResult]


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, Any]
    execute: ToolExecutor
    optional: bool = False


@dataclass
class CommandDefinition:
    name: str
    description: str
    handler: CommandHandler


@dataclass
class PluginManifest:
    """Identity and settings declarations a plugin publishes to the host."""

    id: str
    name: str
    config_schema: Dict[str, Any]
    ui_hints: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PluginHost:
    """
    Minimal host: keeps the raw host config and the registered tools/commands.

    `config` is read by tools at call time, so replacing it takes effect on the
    next invocation without re-registering anything.
    """

    config: Any = None
    tools: Dict[str, ToolDefinition] = field(default_factory=dict)
    commands: Dict[str, CommandDefinition] = field(default_factory=dict)
    plugins: Dict[str, PluginManifest] = field(default_factory=dict)

    def register_plugin(self, manifest: PluginManifest) -> None:
        self.plugins[manifest.id] = manifest

    def register_tool(self, definition: ToolDefinition) -> None:
        """Register a tool; re-registering a name replaces the old definition."""
        self.tools[definition.name] = definition

    def register_command(self, definition: CommandDefinition) -> None:
        self.commands[definition.name] = definition

    def get_tool(self, name: str) -> ToolDefinition:
        tool = self.tools.get(name)
        if tool is None:
            raise ToolNotFoundError(message=f"Unknown tool: {name}")
        return tool

    def get_command(self, name: str) -> CommandDefinition:
        command = self.commands.get(name)
        if command is None:
            raise ToolNotFoundError(message=f"Unknown command: {name}")
        return command

    async def call_tool(self, name: str, params: Any) -> ToolResult:
        tool = self.get_tool(name)
        logger.info("Executing tool", tool=name)
        return await tool.execute(params)

    def run_command(self, name: str, context: Optional[CommandContext] = None) -> CommandResult:
        command = self.get_command(name)
        return command.handler(context or CommandContext())
