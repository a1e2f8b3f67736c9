"""
AskRelay Tools Package

Available tools (served over HTTP by separate services):
- weather.get_weather: Current weather for a city
- math.calculate: Mathematical expression evaluation
"""

from .registry import ToolDefinition, ToolRegistry
from .remote import MATH_TOOL, WEATHER_TOOL, register_remote_tools
from .invoker import ToolResult, invoke_tool

__all__ = [
    "ToolDefinition",
    "ToolRegistry",
    "MATH_TOOL",
    "WEATHER_TOOL",
    "register_remote_tools",
    "ToolResult",
    "invoke_tool",
]
