"""
Request-scoped tracing context using the Langfuse SDK v3.

One TracingContext is created per ask request. It opens a root span for the
request and hands out child observations (spans for tool dispatches,
generations for inference calls) that are explicitly linked to the root
through a ``TraceContext``. Everything is a no-op when tracing is disabled.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

from langfuse.types import TraceContext

from .client import get_tracing_client

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return round((time.time() - started) * 1000, 2)


class Observation:
    """Outcome the loop records on a span or generation before it closes."""

    def __init__(self, name: str, as_type: str = "span"):
        self.name = name
        self.as_type = as_type
        self._output: Optional[Any] = None
        self._usage: Optional[dict] = None
        self._status = "success"

    def set_output(self, output: Any) -> None:
        self._output = output

    def set_status(self, status: str) -> None:
        self._status = status

    def set_usage(
        self,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
        total_tokens: Optional[int] = None,
    ) -> None:
        """Record token usage (generations only)."""
        usage = {
            "promptTokens": prompt_tokens,
            "completionTokens": completion_tokens,
            "totalTokens": total_tokens,
        }
        self._usage = {key: value for key, value in usage.items() if value is not None}

    def update_fields(self, started: float) -> dict[str, Any]:
        """Keyword arguments for the SDK observation's final ``update()``."""
        update: dict[str, Any] = {
            "metadata": {"status": self._status, "duration_ms": _elapsed_ms(started)}
        }
        if self._output is not None:
            update["output"] = self._output
        if self._usage:
            update["usage"] = self._usage
        return update


@dataclass
class TracingContext:
    """Tracing state for a single ask request."""

    execution_id: str
    _enabled: bool = field(default=False, repr=False)
    _context_manager: Any = field(default=None, repr=False)
    _root_span: Any = field(default=None, repr=False)
    _start_time: float = field(default_factory=time.time, repr=False)

    def __post_init__(self):
        client = get_tracing_client()
        self._enabled = client is not None and client.enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_trace(
        self,
        name: str = "ask",
        query: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Open the root span for this request."""
        if not self._enabled:
            return
        client = get_tracing_client()
        if not client or not client.client:
            return

        try:
            self._context_manager = client.client.start_as_current_observation(
                as_type="span",
                name=name,
                input={"query": query} if query else None,
                metadata={"execution_id": self.execution_id, **(metadata or {})},
            )
            self._root_span = self._context_manager.__enter__()
            self._start_time = time.time()
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to start trace: {e}")
            self._root_span = None

    def end_trace(
        self,
        output: Optional[str] = None,
        status: str = "success",
        metadata: Optional[dict] = None,
    ) -> None:
        """Close the root span and flush."""
        if not self._enabled or not self._root_span:
            return

        try:
            self._root_span.update(
                output=output,
                metadata={
                    "status": status,
                    "duration_ms": _elapsed_ms(self._start_time),
                    **(metadata or {}),
                },
            )
            self._context_manager.__exit__(None, None, None)
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to end trace: {e}")

        client = get_tracing_client()
        if client:
            client.flush()

    def _child_trace_context(self) -> Optional[TraceContext]:
        trace_id = getattr(self._root_span, "trace_id", None)
        span_id = getattr(self._root_span, "id", None)
        if not trace_id or not span_id:
            return None
        return TraceContext(trace_id=trace_id, parent_span_id=span_id)

    @contextmanager
    def _observe(
        self, as_type: str, name: str, **fields: Any
    ) -> Generator[Observation, None, None]:
        """Open a child observation, yield its recorder, then update and close it."""
        observation = Observation(name=name, as_type=as_type)
        client = get_tracing_client()
        if not self._enabled or not client or not client.client:
            yield observation
            return

        started = time.time()
        try:
            manager = client.client.start_as_current_observation(
                trace_context=self._child_trace_context(),
                as_type=as_type,
                name=name,
                **fields,
            )
            handle = manager.__enter__()
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to start {as_type} '{name}': {e}")
            yield observation
            return

        try:
            yield observation
        finally:
            try:
                handle.update(**observation.update_fields(started))
                manager.__exit__(None, None, None)
            except Exception as e:
                logger.warning(f"[{self.execution_id}] Failed to end {as_type} '{name}': {e}")

    def span(
        self,
        name: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ):
        """Record a span (e.g. a tool dispatch) under the root span."""
        return self._observe("span", name, input=input, metadata=metadata)

    def generation(
        self,
        name: str,
        model: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ):
        """Record an LLM generation under the root span."""
        return self._observe("generation", name, input=input, metadata=metadata, model=model)
