"""
Tool-orchestration core.

A conversation state machine that repeatedly asks the model what to do,
a lenient parser that turns its replies into actions, and the dispatch
logic folding tool results back into the conversation.
"""

from .parser import Action, Answer, ParsedReply, ToolCall, parse_reply
from .loop import (
    CORRECTIVE_MESSAGE,
    DEGRADED_ANSWER,
    MAX_LOOPS,
    BatchOutcome,
    ConversationLoop,
    LoopContext,
    LoopState,
    OrchestrationResult,
    OrchestrationStep,
)

__all__ = [
    "Action",
    "Answer",
    "ParsedReply",
    "ToolCall",
    "parse_reply",
    "CORRECTIVE_MESSAGE",
    "DEGRADED_ANSWER",
    "MAX_LOOPS",
    "BatchOutcome",
    "ConversationLoop",
    "LoopContext",
    "LoopState",
    "OrchestrationResult",
    "OrchestrationStep",
]
