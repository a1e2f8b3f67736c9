"""
LLM Call Interface for AskRelay

Wraps the OpenAI SDK pointed at any OpenAI-compatible chat completion
endpoint (Groq by default). The inference service is treated as an opaque
function from a conversation to text.
"""

import logging
from typing import Optional

from openai import OpenAI

from .config import config

logger = logging.getLogger(__name__)


class LLMClient:
    """Chat completion client for the orchestrating model."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url or config.inference.base_url
        self.model = model or config.inference.model
        self.temperature = (
            temperature if temperature is not None else config.inference.temperature
        )
        self.timeout = timeout if timeout is not None else config.inference.timeout
        self.client = OpenAI(
            base_url=self.base_url,
            api_key=api_key or config.inference.api_key,
            timeout=self.timeout,
            max_retries=0,  # inference failures are fatal, never retried
        )

    def call_orchestrator(self, messages: list[dict]) -> dict:
        """Send the full conversation and return the model's reply.

        Args:
            messages: Ordered chat messages (``role`` / ``content`` dicts)

        Returns:
            Dict with ``success``, ``response`` (stripped text) and ``error``.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=self.temperature,
            )
            content = response.choices[0].message.content or ""
            return {
                "success": True,
                "response": content.strip(),
                "error": None,
                "usage": response.usage,
            }
        except Exception as e:
            logger.error(f"Orchestrator call failed: {e}")
            return {
                "success": False,
                "response": None,
                "error": str(e),
                "usage": None,
            }

    def close(self) -> None:
        """Close the underlying OpenAI client."""
        try:
            self.client.close()
        except Exception as e:
            logger.debug("Error closing OpenAI client: %s", e)
