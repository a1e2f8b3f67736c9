"""Health check endpoints."""

from fastapi import APIRouter

from ... import __version__
from ...config import config
from ...tools.registry import ToolRegistry
from ...tracing import get_tracing_client
from ..schemas import HealthResponse

router = APIRouter()


@router.get(
    "/healthz",
    response_model=HealthResponse,
    summary="Health check",
    description="Report liveness, the configured model and registered tools.",
)
def health_check() -> HealthResponse:
    """Return health status of the API server."""
    tracing_client = get_tracing_client()
    return HealthResponse(
        status="ok",
        version=__version__,
        model=config.inference.model,
        tools=sorted(ToolRegistry.all_tools()),
        tracing=bool(tracing_client and tracing_client.enabled),
    )
