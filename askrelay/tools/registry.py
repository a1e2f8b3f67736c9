"""
Tool Registry - Single source of truth for tool definitions.

Maps each logical tool name to the HTTP endpoint that serves it and the
one-line description shown to the model. Populated once at import time
from configuration.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ToolDefinition:
    """Metadata for a tool - defined once, used everywhere."""

    name: str
    endpoint: str
    description: str


class ToolRegistry:
    """
    Central registry for all tools.

    Filled once while the process starts (see ``tools.remote``) and only read
    afterwards; request handling never registers or removes tools.
    """

    _tools: dict[str, ToolDefinition] = {}

    @classmethod
    def register(cls, name: str, endpoint: str, description: str) -> None:
        """Register a tool with its endpoint and description. Startup only."""
        cls._tools[name] = ToolDefinition(
            name=name,
            endpoint=endpoint,
            description=description,
        )

    @classmethod
    def get(cls, name: str) -> Optional[ToolDefinition]:
        """Get a tool by name."""
        return cls._tools.get(name)

    @classmethod
    def all_tools(cls) -> dict[str, ToolDefinition]:
        """Get a copy of all registered tools."""
        return cls._tools.copy()

    @classmethod
    def get_tools_summary(cls) -> str:
        """Get formatted summary of all tools for prompts."""
        lines = []
        for name, tool in cls._tools.items():
            lines.append(f"- {name}: {tool.description}")
        return "\n".join(lines)

    @classmethod
    def clear(cls) -> None:
        """Clear all registered tools (mainly for testing)."""
        cls._tools.clear()
