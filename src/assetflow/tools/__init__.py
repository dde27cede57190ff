"""External tool definitions and detection."""

from collections.abc import Mapping

from assetflow.tools.babel import BABEL
from assetflow.tools.base import Tool
from assetflow.tools.critical import CRITICAL
from assetflow.tools.notify import NOTIFY_SEND, OSASCRIPT
from assetflow.tools.postcss import AUTOPREFIXER

__all__ = [
    "AUTOPREFIXER",
    "BABEL",
    "BUILD_TOOLS",
    "CRITICAL",
    "NOTIFY_SEND",
    "OSASCRIPT",
    "TOOLS",
    "Tool",
    "get_available_tools",
    "get_tool_by_name",
    "resolve_tool",
]

# Tools invoked by pipeline stages
BUILD_TOOLS: tuple[Tool, ...] = (
    AUTOPREFIXER,
    BABEL,
    CRITICAL,
)

TOOLS: tuple[Tool, ...] = (*BUILD_TOOLS, NOTIFY_SEND, OSASCRIPT)


def get_available_tools() -> list[Tool]:
    """Return list of tools that are currently installed."""
    return [tool for tool in TOOLS if tool.is_installed()]


def get_tool_by_name(name: str) -> Tool | None:
    """Find tool by name (case-insensitive) or cli_command."""
    name_lower = name.lower()
    for tool in TOOLS:
        if tool.name.lower() == name_lower or tool.cli_command == name:
            return tool
    return None


def resolve_tool(tool: Tool, overrides: Mapping[str, tuple[str, ...]]) -> Tool:
    """Apply a configured command override (``tools.<name>``) to a tool."""
    argv = overrides.get(tool.name)
    return tool.with_command(argv) if argv else tool
