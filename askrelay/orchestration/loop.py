"""
Conversation state machine driving the tool-orchestration loop.

Each request owns one ConversationLoop. The conversation starts as
[system instructions, user question] and only ever grows. Per iteration the
loop asks the model, parses its reply into actions, dispatches tool calls
and folds their results (or failures) back into the conversation, until an
answer arrives or the loop bound is reached.

States::

    AWAITING_MODEL --reply--> PARSING --no JSON--> AWAITING_MODEL
    PARSING --actions--> DISPATCHING --tool call--> AWAITING_TOOLS --> DISPATCHING
    DISPATCHING --non-empty answer--> DONE
    DISPATCHING --otherwise--> AWAITING_MODEL
    AWAITING_MODEL --bound reached--> DONE (degraded answer)
    AWAITING_MODEL --inference failure--> FAILED

Within a batch the first answer wins: later actions in the same reply are
never dispatched, but tool calls placed before the answer still run.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..errors import InferenceError
from ..events import EventSink, NullSink
from ..llm_call import LLMClient
from ..tools.invoker import ToolResult, invoke_tool
from ..tools.registry import ToolDefinition, ToolRegistry
from ..tracing import TracingContext
from .parser import Action, Answer, ToolCall, parse_reply

logger = logging.getLogger(__name__)

# Maximum number of inference calls per request.
MAX_LOOPS = 8

DEGRADED_ANSWER = "Unable to complete request."

CORRECTIVE_MESSAGE = "Invalid response. Please output valid JSON only."

SYSTEM_PROMPT_TEMPLATE = """You are an AI orchestrator. You MUST respond ONLY in JSON.
Available tools:
{tools}

Rules:
- To call a tool: {{"action":"call","tool":"weather.get_weather","args":{{"city":"Dubai"}}}}
- You MAY return multiple tool calls at once in a JSON array.
- After tool calls, ALWAYS provide one final answer:
  {{"action":"answer","result":"<final text>"}}
- NEVER output plain text outside JSON."""

Invoker = Callable[[str, str, dict], ToolResult]


def build_system_prompt(tools_summary: Optional[str] = None) -> str:
    """Render the system instructions listing every callable tool."""
    if tools_summary is None:
        tools_summary = ToolRegistry.get_tools_summary()
    return SYSTEM_PROMPT_TEMPLATE.format(tools=tools_summary)


def to_json(value: Any) -> str:
    """Compact JSON encoding used for everything folded into the conversation."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class LoopState(Enum):
    """States of the conversation state machine."""

    AWAITING_MODEL = "awaiting_model"
    PARSING = "parsing"
    DISPATCHING = "dispatching"
    AWAITING_TOOLS = "awaiting_tools"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.DONE, LoopState.FAILED)


@dataclass
class LoopContext:
    """Mutable per-request state. Never shared between requests."""

    conversation: list[dict]
    iteration: int = 0
    state: LoopState = LoopState.AWAITING_MODEL
    final_result: Optional[str] = None
    degraded: bool = False
    error: Optional[str] = None
    reply: Optional[str] = None
    pending: list[Action] = field(default_factory=list)


@dataclass
class BatchOutcome:
    """What processing one reply's action list produced."""

    answered: bool = False
    answer: Optional[str] = None
    results: list[ToolResult] = field(default_factory=list)
    messages: list[dict] = field(default_factory=list)

    @property
    def dispatched(self) -> bool:
        return bool(self.results)


@dataclass
class OrchestrationStep:
    """Record of a single loop iteration."""

    step_number: int
    reply: Optional[str] = None
    actions: list[dict] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    corrective: bool = False
    is_final: bool = False
    final_answer: Optional[str] = None


@dataclass
class OrchestrationResult:
    """Result from a complete orchestration run."""

    answer: str
    iterations: int
    degraded: bool = False
    steps: list[OrchestrationStep] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)


class ConversationLoop:
    """
    Drives repeated model calls for one question.

    Collaborators are injected so the state machine can be exercised without
    any network: ``llm_client`` only needs ``call_orchestrator(messages)``,
    ``invoker`` is called as ``invoker(tool, endpoint, args)`` and
    ``event_sink`` only needs ``emit(event)``.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        max_loops: int = MAX_LOOPS,
        invoker: Invoker = invoke_tool,
        event_sink: Optional[EventSink] = None,
        execution_id: Optional[str] = None,
        tracing_context: Optional[TracingContext] = None,
    ):
        self.llm_client = llm_client
        self.max_loops = max_loops
        self.invoker = invoker
        self.event_sink = event_sink if event_sink is not None else NullSink()
        self.execution_id = execution_id or f"exec-{uuid.uuid4().hex[:8]}"
        self.tracing_context = tracing_context or TracingContext(
            execution_id=self.execution_id
        )
        self.context: Optional[LoopContext] = None
        self.steps: list[OrchestrationStep] = []

    @property
    def _prefix(self) -> str:
        return f"[{self.execution_id}] "

    def start(self, question: str) -> LoopContext:
        """Seed a fresh conversation for the question."""
        self.steps = []
        self.context = LoopContext(
            conversation=[
                {"role": "system", "content": build_system_prompt()},
                {"role": "user", "content": question},
            ]
        )
        return self.context

    def run(self, question: str) -> OrchestrationResult:
        """
        Run the loop to completion.

        Args:
            question: The user's question.

        Returns:
            OrchestrationResult with the answer, or the degraded fallback
            when the loop bound is reached.

        Raises:
            InferenceError: The inference call failed.
        """
        context = self.start(question)
        while not context.state.is_terminal:
            self.advance()

        self._log_trace_summary()
        if context.state is LoopState.FAILED:
            raise InferenceError(context.error or "inference call failed")

        return OrchestrationResult(
            answer=context.final_result or DEGRADED_ANSWER,
            iterations=context.iteration,
            degraded=context.degraded,
            steps=list(self.steps),
            tools_used=self._unique_tools_used(),
        )

    def advance(self) -> LoopState:
        """Perform one state transition and return the new state."""
        if self.context is None:
            raise RuntimeError("start() must be called before advance()")

        handlers = {
            LoopState.AWAITING_MODEL: self._await_model,
            LoopState.PARSING: self._parse,
            LoopState.DISPATCHING: self._dispatch,
        }
        handler = handlers.get(self.context.state)
        if handler is None:
            raise RuntimeError(f"Cannot advance from state {self.context.state.value}")
        handler(self.context)
        return self.context.state

    def _await_model(self, context: LoopContext) -> None:
        if context.iteration >= self.max_loops:
            logger.warning(
                "%sMax loops (%d) reached without an answer", self._prefix, self.max_loops
            )
            context.final_result = DEGRADED_ANSWER
            context.degraded = True
            context.state = LoopState.DONE
            self._emit({"type": "degraded", "iterations": context.iteration})
            return

        context.iteration += 1
        step = OrchestrationStep(step_number=context.iteration)
        self.steps.append(step)

        reply = self._call_llm(context.conversation, context.iteration)
        if reply.get("success"):
            context.reply = reply.get("response") or ""
            step.reply = context.reply
            logger.debug("%sLLM raw: %s", self._prefix, context.reply)
            context.state = LoopState.PARSING
            return

        context.error = reply.get("error") or "unknown inference error"
        context.state = LoopState.FAILED
        logger.error(
            "%sInference failed at iteration %d: %s",
            self._prefix,
            context.iteration,
            context.error,
        )
        self._emit({"type": "inference_error", "error": context.error})

    def _parse(self, context: LoopContext) -> None:
        parsed = parse_reply(context.reply or "")
        step = self.steps[-1]
        step.actions = [action.to_dict() for action in parsed.actions]

        if parsed.is_empty:
            logger.info("%sNo JSON in reply, asking model to correct itself", self._prefix)
            context.conversation.append({"role": "user", "content": CORRECTIVE_MESSAGE})
            step.corrective = True
            context.state = LoopState.AWAITING_MODEL
            return

        context.pending = parsed.actions
        context.state = LoopState.DISPATCHING

    def _dispatch(self, context: LoopContext) -> None:
        outcome = self.process_batch(context.pending)
        context.pending = []
        context.conversation.extend(outcome.messages)

        step = self.steps[-1]
        step.tool_results = list(outcome.results)

        if outcome.answered:
            context.final_result = outcome.answer

        if context.final_result:
            step.is_final = True
            step.final_answer = context.final_result
            context.state = LoopState.DONE
            self._emit(
                {
                    "type": "answer",
                    "result": context.final_result,
                    "iterations": context.iteration,
                }
            )
            return

        context.state = LoopState.AWAITING_MODEL

    def process_batch(self, actions: list[Action]) -> BatchOutcome:
        """
        Process one reply's actions in order.

        The first Answer stops the batch. Tool calls before it are dispatched,
        tool calls naming unregistered tools are skipped. Every dispatched call
        adds an assistant echo plus its result or failure; if anything was
        dispatched and no answer came, a closing instruction asks for the
        final answer.
        """
        outcome = BatchOutcome()
        collected: dict[str, Any] = {}

        for action in actions:
            if isinstance(action, Answer):
                outcome.answered = True
                outcome.answer = action.result
                break

            tool = ToolRegistry.get(action.tool)
            if tool is None:
                logger.debug("%sIgnoring unknown tool '%s'", self._prefix, action.tool)
                continue

            result = self._dispatch_tool(tool, action)
            outcome.results.append(result)
            outcome.messages.append(
                {"role": "assistant", "content": to_json(action.to_dict())}
            )
            if result.success:
                collected[tool.name] = result.payload
                outcome.messages.append(
                    {
                        "role": "user",
                        "content": f"Tool {tool.name} result: {to_json(result.payload)}",
                    }
                )
            else:
                collected[tool.name] = {"error": result.error}
                outcome.messages.append(
                    {
                        "role": "user",
                        "content": (
                            f"Tool {tool.name} failed: {result.error}. "
                            "Try answering anyway."
                        ),
                    }
                )

        if outcome.dispatched and not outcome.answered:
            outcome.messages.append(
                {
                    "role": "user",
                    "content": (
                        f"You now have results: {to_json(collected)}. "
                        'Please respond with {"action":"answer","result":"..."} only.'
                    ),
                }
            )
        return outcome

    def _call_llm(self, messages: list[dict], iteration: int) -> dict:
        """Call the inference service inside a tracing generation."""
        with self.tracing_context.generation(
            name=f"orchestrator_step_{iteration}",
            model=getattr(self.llm_client, "model", "unknown"),
            input=messages,
        ) as generation:
            logger.debug("%sIteration %d: calling LLM", self._prefix, iteration)
            # Pass a copy: the conversation keeps growing after this call
            reply = self.llm_client.call_orchestrator(list(messages))
            if reply.get("success"):
                generation.set_output((reply.get("response") or "")[:2000])
                usage = reply.get("usage")
                if usage is not None:
                    generation.set_usage(
                        prompt_tokens=getattr(usage, "prompt_tokens", None),
                        completion_tokens=getattr(usage, "completion_tokens", None),
                        total_tokens=getattr(usage, "total_tokens", None),
                    )
            else:
                generation.set_status("error")
            return reply

    def _dispatch_tool(self, tool: ToolDefinition, call: ToolCall) -> ToolResult:
        """Invoke one tool sequentially and broadcast the outcome."""
        state_before = self.context.state if self.context else None
        if self.context:
            self.context.state = LoopState.AWAITING_TOOLS

        with self.tracing_context.span(name=f"tool:{tool.name}", input=call.args) as span:
            logger.info("%sDispatching %s %s", self._prefix, tool.name, to_json(call.args))
            result = self.invoker(tool.name, tool.endpoint, call.args)
            if result.success:
                span.set_output({"payload": result.payload})
            else:
                span.set_status("error")
                span.set_output({"error": result.error})

        if self.context and state_before is not None:
            self.context.state = state_before

        if result.success:
            logger.info("%sTool %s -> %s", self._prefix, tool.name, to_json(result.payload)[:200])
            self._emit(
                {
                    "type": "tool_result",
                    "tool": tool.name,
                    "args": call.args,
                    "payload": result.payload,
                }
            )
        else:
            logger.warning("%sTool %s failed: %s", self._prefix, tool.name, result.error)
            self._emit({"type": "tool_error", "tool": tool.name, "error": result.error})
        return result

    def _emit(self, event: dict) -> None:
        """Broadcast an event; observers never influence the loop."""
        event = {**event, "execution_id": self.execution_id}
        try:
            self.event_sink.emit(event)
        except Exception as e:
            logger.warning("%sEvent broadcast failed: %s", self._prefix, e)

    def _unique_tools_used(self) -> list[str]:
        seen: list[str] = []
        for step in self.steps:
            for result in step.tool_results:
                if result.tool not in seen:
                    seen.append(result.tool)
        return seen

    def _log_trace_summary(self) -> None:
        """Log a compact trace summary."""
        for step in self.steps:
            if step.is_final:
                logger.info("%sStep %d [FINAL]: answer", self._prefix, step.step_number)
            elif step.corrective:
                logger.info("%sStep %d: unparseable reply", self._prefix, step.step_number)
            else:
                tools = ", ".join(result.tool for result in step.tool_results) or "-"
                logger.info("%sStep %d: %s", self._prefix, step.step_number, tools)

    def get_trace(self) -> list[dict]:
        """
        Get a trace of all loop iterations.

        Returns:
            List of step dictionaries.
        """
        return [
            {
                "step": s.step_number,
                "reply": s.reply,
                "actions": s.actions,
                "tool_results": [
                    {
                        "tool": r.tool,
                        "success": r.success,
                        "payload": r.payload,
                        "error": r.error,
                    }
                    for r in s.tool_results
                ],
                "corrective": s.corrective,
                "is_final": s.is_final,
                "final_answer": s.final_answer,
            }
            for s in self.steps
        ]
