"""
Redis-backed weather cache with hit counting.

A city's payload is only cached once it has been requested often enough
(``WEATHER_HIT_THRESHOLD`` times within ``WEATHER_HIT_TTL`` seconds). Every
Redis failure degrades to uncached behaviour; callers never see one.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis import Redis
from redis.exceptions import RedisError

from ..config import RedisConfig, WeatherServiceConfig

logger = logging.getLogger(__name__)


def cache_key(city: str) -> str:
    """Namespaced cache key for a city (case-insensitive)."""
    return f"weather:{city.lower()}"


class WeatherCache:
    """
    JSON cache and hit counter over an optional Redis client.

    Args:
        redis_client: A connected Redis client, or None to run without cache.
        cache_ttl: Seconds a cached payload stays valid.
        hit_threshold: Hits required before a payload is cached.
        hit_ttl: Seconds a hit counter lives after the first hit.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        *,
        cache_ttl: int = 300,
        hit_threshold: int = 3,
        hit_ttl: int = 3600,
    ) -> None:
        self._redis = redis_client
        self.cache_ttl = cache_ttl
        self.hit_threshold = hit_threshold
        self.hit_ttl = hit_ttl

    @property
    def connected(self) -> bool:
        return self._redis is not None

    def get(self, city: str) -> Optional[dict[str, Any]]:
        """Return the cached payload for a city, if any."""
        if self._redis is None:
            return None
        try:
            raw = self._redis.get(cache_key(city))
        except RedisError as e:
            logger.warning(f"Cache read failed: {e}")
            return None
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None

    def record_hit(self, city: str) -> int:
        """Count a request for a city. Returns 1 when no cache is available."""
        if self._redis is None:
            return 1
        key = f"{cache_key(city)}:hits"
        try:
            hits = int(self._redis.incr(key))
            if hits == 1:
                self._redis.expire(key, self.hit_ttl)
            return hits
        except RedisError as e:
            logger.warning(f"Hit counter error: {e}")
            return 1

    def store_if_popular(self, city: str, payload: dict[str, Any], hits: int) -> bool:
        """Cache a payload once its city reached the hit threshold."""
        if self._redis is None or hits < self.hit_threshold:
            return False
        try:
            self._redis.setex(cache_key(city), self.cache_ttl, json.dumps(payload))
            return True
        except RedisError as e:
            logger.warning(f"Cache write failed: {e}")
            return False

    def close(self) -> None:
        if self._redis is not None:
            self._redis.close()
            self._redis = None


def connect_cache(
    redis_config: RedisConfig,
    weather_config: WeatherServiceConfig,
) -> WeatherCache:
    """
    Connect to Redis when configured.

    An unset host or an unreachable server yields a cache-less WeatherCache.
    """
    options = {
        "cache_ttl": weather_config.cache_ttl,
        "hit_threshold": weather_config.hit_threshold,
        "hit_ttl": weather_config.hit_ttl,
    }
    if not redis_config.enabled:
        logger.info("Weather: no REDIS_HOST configured, continuing without cache")
        return WeatherCache(None, **options)

    client = Redis(
        host=redis_config.host,
        port=redis_config.port,
        username=redis_config.username or None,
        password=redis_config.password or None,
        decode_responses=True,
    )
    try:
        client.ping()
    except RedisError as e:
        logger.warning(f"Weather: Redis not available ({e}), continuing without cache")
        client.close()
        return WeatherCache(None, **options)

    logger.info("Weather: connected to Redis")
    return WeatherCache(client, **options)
