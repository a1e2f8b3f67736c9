"""
Math tool service.

Serves ``math.calculate`` over the tool invocation contract:
``POST /call/calculate`` with ``{"args": {"expression": "2+2"}}`` answers
``{"expression": "2+2", "result": 4}``.

Usage:
    askrelay-math
    uvicorn askrelay.servers.math_server:app --port 3002
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import config
from ..events import EventBroadcaster
from ..logging_config import configure_logging
from ..api.sse import create_sse_router
from .math_solver import ExpressionError, evaluate

logger = logging.getLogger(__name__)


class ToolCallRequest(BaseModel):
    """Body of a tool invocation."""

    args: dict = Field(default_factory=dict)


def calculate(expression: Optional[str], events: EventBroadcaster) -> JSONResponse:
    """Evaluate one expression and broadcast the outcome."""
    if not expression:
        return JSONResponse(status_code=400, content={"error": "expression required"})

    try:
        result = evaluate(str(expression))
    except ExpressionError as e:
        message = str(e)
        logger.error(f"Math evaluation error: {message}")
        events.emit({"type": "math_error", "error": message})
        return JSONResponse(status_code=500, content={"error": message})

    out = {"expression": expression, "result": result}
    events.emit({"type": "math_result", "payload": out})
    return JSONResponse(content=out)


def create_app(events: Optional[EventBroadcaster] = None) -> FastAPI:
    """Create the math service application."""
    if events is None:
        events = EventBroadcaster()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        events.close()

    app = FastAPI(title="AskRelay Math Tool", version="0.1.0", lifespan=lifespan)
    app.state.events = events

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/call/calculate", summary="Evaluate a math expression")
    def call_calculate(request: ToolCallRequest) -> JSONResponse:
        return calculate(request.args.get("expression"), events)

    @app.get("/healthz", summary="Health check")
    def healthz() -> dict:
        return {"status": "ok"}

    app.include_router(create_sse_router(events), tags=["Events"])

    return app


app = create_app()


def run_server():
    """Run the math service with uvicorn."""
    import uvicorn

    configure_logging()
    logger.info(f"Math server listening on {config.math.port}")
    uvicorn.run(app, host=config.server.host, port=config.math.port)


if __name__ == "__main__":
    run_server()
