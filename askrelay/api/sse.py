"""Server-Sent Events endpoint shared by every AskRelay service."""

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from ..events import EventBroadcaster, stream_events


def event_stream_response(broadcaster: EventBroadcaster) -> StreamingResponse:
    """Subscribe a new observer and stream its events from the event loop."""
    subscription = broadcaster.subscribe()
    return StreamingResponse(
        stream_events(broadcaster, subscription),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


def create_sse_router(broadcaster: EventBroadcaster) -> APIRouter:
    """Build a router exposing ``GET /sse`` for the given broadcaster."""
    router = APIRouter()

    @router.get(
        "/sse",
        summary="Event feed",
        description="Stream broadcast events as Server-Sent Events.",
    )
    async def sse() -> StreamingResponse:
        return event_stream_response(broadcaster)

    return router
