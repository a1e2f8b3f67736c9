"""
Weather data sources.

Without an API key the service answers with random mock observations;
with one it geocodes the city and reads current conditions from
OpenWeatherMap. Both return the same payload shape.
"""

import logging
import random
from datetime import datetime, timezone
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

GEOCODING_URL = "http://api.openweathermap.org/geo/1.0/direct"
CURRENT_WEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"

MOCK_CONDITIONS = ["sunny", "cloudy", "rainy", "windy"]


class WeatherLookupError(Exception):
    """The weather source could not produce a payload for the city."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def mock_weather(city: str, rng: Optional[random.Random] = None) -> dict[str, Any]:
    """Random but plausible conditions for a city."""
    rng = rng or random.Random()
    return {
        "city": city,
        "temperature": round(rng.random() * 30 + 5),
        "condition": rng.choice(MOCK_CONDITIONS),
        "humidity": round(rng.random() * 100),
        "windSpeed": round(rng.random() * 10),
        "fetchedAt": _now(),
        "source": "mock",
    }


def fetch_openweathermap(
    city: str,
    api_key: str,
    timeout: Optional[float] = 10,
) -> dict[str, Any]:
    """
    Current conditions for a city from OpenWeatherMap.

    Raises:
        WeatherLookupError: Geocoding or weather lookup failed.
    """
    try:
        geo_response = requests.get(
            GEOCODING_URL,
            params={"q": city, "limit": 1, "appid": api_key},
            timeout=timeout,
        )
        if not geo_response.ok:
            raise WeatherLookupError(f"geocoding failed: {geo_response.status_code}")
        places = geo_response.json()
        if not places:
            raise WeatherLookupError("city not found")
        lat, lon = places[0]["lat"], places[0]["lon"]

        weather_response = requests.get(
            CURRENT_WEATHER_URL,
            params={"lat": lat, "lon": lon, "units": "metric", "appid": api_key},
            timeout=timeout,
        )
        if not weather_response.ok:
            raise WeatherLookupError(
                f"weather fetch failed: {weather_response.status_code}"
            )
        data = weather_response.json()
    except requests.exceptions.RequestException as e:
        raise WeatherLookupError(str(e)) from e

    main = data.get("main") or {}
    conditions = data.get("weather") or [{}]
    return {
        "city": city,
        "lat": lat,
        "lon": lon,
        "temperature": main.get("temp"),
        "condition": conditions[0].get("description"),
        "humidity": main.get("humidity"),
        "windSpeed": (data.get("wind") or {}).get("speed"),
        "fetchedAt": _now(),
        "source": "openweathermap",
    }


def lookup_weather(city: str, api_key: str = "") -> dict[str, Any]:
    """Fetch a payload from the configured source."""
    if not api_key:
        return mock_weather(city)
    return fetch_openweathermap(city, api_key)
