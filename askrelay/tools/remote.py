"""
HTTP tools served by the weather and math services.

Registers both tools with the registry on import, with endpoints taken
from the ``WEATHER_URL`` and ``MATH_URL`` settings.
"""

from typing import Optional

from ..config import ToolConfig, config
from .registry import ToolRegistry

WEATHER_TOOL = "weather.get_weather"
MATH_TOOL = "math.calculate"


def register_remote_tools(tool_config: Optional[ToolConfig] = None) -> None:
    """Register the weather and math tools against their configured endpoints."""
    tool_config = tool_config or config.tools

    ToolRegistry.register(
        name=WEATHER_TOOL,
        endpoint=tool_config.weather_endpoint,
        description="Get weather for a city. Args: { city: string }",
    )
    ToolRegistry.register(
        name=MATH_TOOL,
        endpoint=tool_config.math_endpoint,
        description="Evaluate a math expression. Args: { expression: string }",
    )


register_remote_tools()
