"""
Pydantic schemas for the AskRelay HTTP API.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    """Request body for ``POST /api/ask``.

    ``question`` is optional at the schema level so that a missing question
    is reported as ``{"error": "question required"}`` rather than a
    validation error list.
    """

    question: Optional[str] = Field(
        default=None, description="Natural-language question to answer"
    )

    model_config = {
        "json_schema_extra": {
            "example": {"question": "What is the weather in Dubai and what is 2+2?"}
        }
    }


class AskResponse(BaseModel):
    """Response body for ``POST /api/ask``."""

    result: str = Field(..., description="Final answer text")


class ErrorResponse(BaseModel):
    """Error body for failed ask requests."""

    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    """Response body for ``GET /healthz``."""

    status: Literal["ok"] = "ok"
    version: str
    model: str
    tools: list[str] = Field(default_factory=list)
    tracing: bool = False
