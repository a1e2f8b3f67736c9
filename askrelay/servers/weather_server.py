"""
Weather tool service.

Serves ``weather.get_weather`` over the tool invocation contract:
``POST /call/get_weather`` with ``{"args": {"city": "Dubai"}}`` answers with
a weather payload, possibly served from the Redis cache.

Usage:
    askrelay-weather
    uvicorn askrelay.servers.weather_server:app --port 3001
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..api.sse import create_sse_router
from ..config import config
from ..events import EventBroadcaster
from ..logging_config import configure_logging
from .weather_cache import WeatherCache, connect_cache
from .weather_provider import lookup_weather

logger = logging.getLogger(__name__)

Lookup = Callable[[str], dict[str, Any]]


class ToolCallRequest(BaseModel):
    """Body of a tool invocation."""

    args: dict = Field(default_factory=dict)


def get_weather(
    city: Optional[str],
    cache: WeatherCache,
    events: EventBroadcaster,
    lookup: Lookup,
) -> JSONResponse:
    """Serve one weather request, from cache when possible."""
    if not city:
        return JSONResponse(status_code=400, content={"error": "city required"})
    city = str(city)

    cached = cache.get(city)
    if cached is not None:
        events.emit({"type": "weather_cache", "city": city, "payload": cached})
        return JSONResponse(content=cached)

    hits = cache.record_hit(city)
    try:
        payload = lookup(city)
    except Exception as e:
        logger.error(f"Weather error for '{city}': {e}")
        events.emit({"type": "weather_error", "city": city, "error": str(e)})
        return JSONResponse(status_code=500, content={"error": str(e)})

    cache.store_if_popular(city, payload, hits)
    events.emit({"type": "weather_fetched", "city": city, "payload": payload})
    return JSONResponse(content=payload)


def create_app(
    cache: Optional[WeatherCache] = None,
    events: Optional[EventBroadcaster] = None,
    lookup: Optional[Lookup] = None,
) -> FastAPI:
    """
    Create the weather service application.

    Args:
        cache: Cache to use; when omitted one is connected at startup from
            the Redis settings.
        events: Broadcaster for the service's event feed.
        lookup: Weather source; defaults to mock data or OpenWeatherMap
            depending on ``WEATHER_API_KEY``.
    """
    if events is None:
        events = EventBroadcaster()
    if lookup is None:
        def lookup(city: str) -> dict[str, Any]:
            return lookup_weather(city, config.weather.api_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if cache is None:
            app.state.cache = connect_cache(config.redis, config.weather)
        if not config.weather.api_key:
            logger.info("Weather: no WEATHER_API_KEY, serving mock data")
        yield
        events.close()
        app.state.cache.close()

    app = FastAPI(title="AskRelay Weather Tool", version="0.1.0", lifespan=lifespan)
    app.state.cache = cache if cache is not None else WeatherCache(None)
    app.state.events = events

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/call/get_weather", summary="Get weather for a city")
    def call_get_weather(request: Request, body: ToolCallRequest) -> JSONResponse:
        return get_weather(body.args.get("city"), request.app.state.cache, events, lookup)

    @app.get("/healthz", summary="Health check")
    def healthz(request: Request) -> dict:
        return {"status": "ok", "redis": request.app.state.cache.connected}

    app.include_router(create_sse_router(events), tags=["Events"])

    return app


app = create_app()


def run_server():
    """Run the weather service with uvicorn."""
    import uvicorn

    configure_logging()
    logger.info(f"Weather server listening on {config.weather.port}")
    uvicorn.run(app, host=config.server.host, port=config.weather.port)


if __name__ == "__main__":
    run_server()
