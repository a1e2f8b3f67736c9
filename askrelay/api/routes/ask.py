"""
Ask endpoint.

``POST /api/ask`` runs the orchestration loop for one question. Each request
gets its own LLM client and conversation; FastAPI runs this sync handler in
its threadpool, so concurrent requests never share loop state.
"""

import logging
import uuid

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ...errors import InferenceError, InvalidQuestionError
from ...events import broadcaster
from ...llm_call import LLMClient
from ...orchestrator import OrchestrationService
from ..schemas import AskRequest, AskResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/api/ask",
    response_model=AskResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing question"},
        500: {"model": ErrorResponse, "description": "Inference failure"},
    },
    summary="Ask a question",
    description=(
        "Answer a natural-language question. The model may call the weather "
        "and math tools before producing its final answer."
    ),
)
def ask(request: AskRequest) -> AskResponse | JSONResponse:
    """Process one question through the orchestration loop."""
    if not request.question or not request.question.strip():
        logger.warning("Rejected ask request without a question")
        return JSONResponse(status_code=400, content={"error": "question required"})

    execution_id = f"exec-{uuid.uuid4().hex[:8]}"
    llm_client = LLMClient()
    service = OrchestrationService(llm_client=llm_client, event_sink=broadcaster)

    try:
        outcome = service.ask(request.question, execution_id=execution_id)
    except InvalidQuestionError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except InferenceError as e:
        logger.error(f"[{execution_id}] LLM failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "LLM failed", "details": str(e)},
        )
    finally:
        llm_client.close()

    logger.info(
        f"[{execution_id}] Answered in {outcome.iterations} iteration(s)"
        + (" (degraded)" if outcome.degraded else "")
    )
    return AskResponse(result=outcome.result)
