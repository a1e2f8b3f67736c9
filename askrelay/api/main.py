"""
FastAPI application for the AskRelay orchestrator.

Usage:
    # Development server with auto-reload
    uvicorn askrelay.api.main:app --reload --host 0.0.0.0 --port 3000

    # Production server
    askrelay-server

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn askrelay.api.main:app --reload --port 3000
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import config
from ..errors import ConfigurationError
from ..events import broadcaster
from ..logging_config import configure_logging
from ..tools.registry import ToolRegistry
from ..tracing import init_tracing_client, shutdown_tracing
from .routes import ask, health
from .sse import create_sse_router

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # Missing inference credentials are fatal
    config.validate()

    logger.info("Starting AskRelay orchestrator")
    logger.info("=" * 60)
    logger.info("INFERENCE")
    logger.info(f"  Base URL: {config.inference.base_url}")
    logger.info(f"  Model: {config.inference.model}")
    logger.info(f"  Temperature: {config.inference.temperature}")
    logger.info(f"  Max Loops: {config.inference.max_loops}")

    logger.info("-" * 60)
    logger.info("REGISTERED TOOLS")
    for name, tool in ToolRegistry.all_tools().items():
        logger.info(f"  - {name}: {tool.endpoint}")

    logger.info("-" * 60)
    logger.info("LANGFUSE OBSERVABILITY")
    tracing_client = init_tracing_client(config.langfuse)
    if tracing_client.enabled:
        logger.info("  Status: ENABLED")
    else:
        logger.info("  Status: DISABLED")
        if tracing_client.error:
            logger.info(f"  Reason: {tracing_client.error}")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down AskRelay orchestrator")
    broadcaster.close()
    shutdown_tracing()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="AskRelay API",
        description=(
            "Answers questions by letting a language model call weather and "
            "math tools before it replies."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(ask.router, tags=["Ask"])
    app.include_router(create_sse_router(broadcaster), tags=["Events"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors before returning 400 response."""
        logger.warning(
            f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
        )
        body = await request.body()
        logger.debug(f"Request body: {body.decode('utf-8', errors='replace')[:1000]}")
        return JSONResponse(
            status_code=400,
            content={"detail": exc.errors()},
        )

    return app


# Create the application instance
app = create_app()


def run_server():
    """
    Run the server using uvicorn.

    This is the entry point for running the server programmatically.
    """
    import uvicorn

    try:
        config.validate()
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    uvicorn.run(
        "askrelay.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        workers=1 if config.server.reload else config.server.workers,
    )


if __name__ == "__main__":
    run_server()
