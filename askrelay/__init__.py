"""
AskRelay - tool-orchestrating question answering

This package provides:
- LLM client for the orchestrating model
- A registry and HTTP invoker for the weather and math tools
- The conversation loop that lets the model call tools and answer
- FastAPI services for the orchestrator and both tools
- Interactive CLI client
"""

from .orchestrator import AskResult, OrchestrationService, run_query
from .llm_call import LLMClient

__all__ = [
    "AskResult",
    "OrchestrationService",
    "LLMClient",
    "run_query",
]

__version__ = "0.1.0"
