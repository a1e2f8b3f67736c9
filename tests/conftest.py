"""
Pytest configuration and fixtures for AskRelay tests.
"""

import json
from typing import Any, Optional

import pytest

from askrelay.tools.invoker import ToolResult
from askrelay.tools.registry import ToolRegistry
from askrelay.tools.remote import register_remote_tools


class ScriptedLLM:
    """Stand-in for LLMClient that replays canned replies.

    Each entry is either reply text or an Exception, which is reported as a
    failed inference call. Once the script runs out the last entry repeats.
    """

    model = "test-model"

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.calls: list[list[dict]] = []

    def call_orchestrator(self, messages: list[dict]) -> dict:
        self.calls.append(messages)
        index = min(len(self.calls), len(self.replies)) - 1
        reply = self.replies[index]
        if isinstance(reply, Exception):
            return {"success": False, "response": None, "error": str(reply), "usage": None}
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return {"success": True, "response": reply, "error": None, "usage": None}

    def close(self) -> None:
        pass


class RecordingInvoker:
    """Invoker that records calls and answers from a per-tool table."""

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.responses = responses or {}
        self.calls: list[tuple[str, str, dict]] = []

    def __call__(self, tool: str, endpoint: str, args: dict) -> ToolResult:
        self.calls.append((tool, endpoint, args))
        response = self.responses.get(tool, {"ok": True})
        if isinstance(response, Exception):
            return ToolResult(tool=tool, success=False, error=str(response))
        return ToolResult(tool=tool, success=True, payload=response, status_code=200)


class RecordingSink:
    """Event sink keeping every emitted event."""

    def __init__(self):
        self.events: list[dict] = []

    def emit(self, event: dict) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event["type"] for event in self.events]


@pytest.fixture(autouse=True)
def default_tools():
    """Give every test the standard weather and math tools."""
    ToolRegistry.clear()
    register_remote_tools()
    yield
    ToolRegistry.clear()
    register_remote_tools()


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def invoker():
    return RecordingInvoker()


@pytest.fixture
def make_invoker():
    """Factory for RecordingInvoker instances with canned responses."""
    return RecordingInvoker


@pytest.fixture
def sink():
    return RecordingSink()
