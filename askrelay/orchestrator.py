"""
AskRelay Orchestration Service

Request-handling entry point: validates the question, runs a fresh
ConversationLoop for it and returns the final (or degraded) answer.
Nothing is shared between calls except the read-only tool registry and the
event sink.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from .config import config
from .errors import InvalidQuestionError
from .events import EventSink, NullSink
from .llm_call import LLMClient
from .orchestration.loop import ConversationLoop, Invoker, OrchestrationStep
from .tools.invoker import invoke_tool
from .tracing import TracingContext

logger = logging.getLogger(__name__)


@dataclass
class AskResult:
    """Outcome of one ask operation."""

    result: str
    execution_id: str
    iterations: int = 0
    degraded: bool = False
    tools_used: list[str] = field(default_factory=list)
    steps: list[OrchestrationStep] = field(default_factory=list)


class OrchestrationService:
    """Answers questions by running one orchestration loop per call."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        event_sink: Optional[EventSink] = None,
        invoker: Invoker = invoke_tool,
        max_loops: Optional[int] = None,
    ):
        """
        Initialize the service.

        Args:
            llm_client: Client for the inference service (created lazily if omitted)
            event_sink: Receiver for broadcast events (discarded if omitted)
            invoker: Callable used to reach tool endpoints
            max_loops: Loop bound (defaults to the MAX_LOOPS setting)
        """
        self._llm_client = llm_client
        self.event_sink = event_sink if event_sink is not None else NullSink()
        self.invoker = invoker
        self.max_loops = max_loops if max_loops is not None else config.inference.max_loops

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = LLMClient()
        return self._llm_client

    def ask(self, question: Optional[str], execution_id: Optional[str] = None) -> AskResult:
        """
        Answer a question.

        Raises:
            InvalidQuestionError: The question is missing or blank.
            InferenceError: The inference call failed.
        """
        if not question or not question.strip():
            raise InvalidQuestionError("question required")

        execution_id = execution_id or f"exec-{uuid.uuid4().hex[:8]}"
        logger.info(f"[{execution_id}] Q: {question[:100]}")

        tracing_context = TracingContext(execution_id=execution_id)
        tracing_context.start_trace(name="ask", query=question)

        loop = ConversationLoop(
            llm_client=self.llm_client,
            max_loops=self.max_loops,
            invoker=self.invoker,
            event_sink=self.event_sink,
            execution_id=execution_id,
            tracing_context=tracing_context,
        )
        try:
            outcome = loop.run(question)
        except Exception as e:
            tracing_context.end_trace(output=str(e), status="error")
            raise

        tracing_context.end_trace(
            output=outcome.answer,
            status="degraded" if outcome.degraded else "success",
            metadata={"iterations": outcome.iterations, "tools": outcome.tools_used},
        )
        return AskResult(
            result=outcome.answer,
            execution_id=execution_id,
            iterations=outcome.iterations,
            degraded=outcome.degraded,
            tools_used=outcome.tools_used,
            steps=outcome.steps,
        )


def run_query(question: str, llm_client: Optional[LLMClient] = None) -> str:
    """Convenience wrapper: answer one question and return the text."""
    return OrchestrationService(llm_client=llm_client).ask(question).result
