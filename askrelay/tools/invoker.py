"""
Tool Invoker

Performs one request/response exchange with a tool endpoint. Every failure
(transport error, non-success status, undecodable body) comes back as a
failed ToolResult; nothing is raised past this module.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from ..config import config

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """Outcome of a single tool invocation."""

    tool: str
    success: bool
    payload: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None


def invoke_tool(
    tool: str,
    endpoint: str,
    args: dict,
    timeout: Optional[float] = None,
) -> ToolResult:
    """
    Call a tool endpoint with ``{"args": args}`` as the JSON body.

    Args:
        tool: Logical tool name (used for the result and logging)
        endpoint: URL of the tool's call endpoint
        args: Argument mapping forwarded to the tool
        timeout: Seconds to wait; defaults to ``TOOL_TIMEOUT`` (None = wait forever)

    Returns:
        ToolResult carrying the JSON payload, or the failure description
    """
    if timeout is None:
        timeout = config.tools.timeout

    try:
        response = requests.post(endpoint, json={"args": args}, timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.warning(f"Tool {tool} unreachable at {endpoint}: {e}")
        return ToolResult(tool=tool, success=False, error=str(e))

    if not response.ok:
        error = f"Tool call failed ({response.status_code}): {response.text}"
        logger.warning(f"Tool {tool} returned {response.status_code}")
        return ToolResult(
            tool=tool,
            success=False,
            error=error,
            status_code=response.status_code,
        )

    try:
        payload = response.json()
    except ValueError as e:
        return ToolResult(
            tool=tool,
            success=False,
            error=f"Tool returned invalid JSON: {e}",
            status_code=response.status_code,
        )

    return ToolResult(
        tool=tool,
        success=True,
        payload=payload,
        status_code=response.status_code,
    )
