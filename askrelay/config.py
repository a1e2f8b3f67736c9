"""
Configuration management for AskRelay.

Loads all configuration from environment variables with sensible defaults
for local development. Values are read once, at import time.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


def _optional_timeout(value: str) -> Optional[float]:
    """Convert a timeout setting to seconds; 0 or empty means no timeout."""
    seconds = float(value or "0")
    return seconds if seconds > 0 else None


@dataclass
class InferenceConfig:
    """Configuration for the inference service driving the loop."""
    api_key: str = os.getenv("OPENAI_API_KEY", "")
    base_url: str = os.getenv("INFERENCE_BASE_URL", "https://api.groq.com/openai/v1")
    model: str = os.getenv("LLM_MODEL", "openai/gpt-oss-120b")
    temperature: float = float(os.getenv("LLM_TEMPERATURE", "0"))
    max_loops: int = int(os.getenv("MAX_LOOPS", "8"))
    timeout: Optional[float] = _optional_timeout(os.getenv("INFERENCE_TIMEOUT", "0"))


@dataclass
class ToolConfig:
    """Configuration for tool service endpoints."""
    weather_url: str = os.getenv("WEATHER_URL", "http://localhost:3001")
    math_url: str = os.getenv("MATH_URL", "http://localhost:3002")
    timeout: Optional[float] = _optional_timeout(os.getenv("TOOL_TIMEOUT", "0"))

    @property
    def weather_endpoint(self) -> str:
        return f"{self.weather_url.rstrip('/')}/call/get_weather"

    @property
    def math_endpoint(self) -> str:
        return f"{self.math_url.rstrip('/')}/call/calculate"


@dataclass
class ServerConfig:
    """Configuration for the orchestrator FastAPI server."""
    host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    port: int = int(os.getenv("ORCHESTRATOR_PORT", "3000"))
    workers: int = int(os.getenv("SERVER_WORKERS", "1"))
    reload: bool = os.getenv("SERVER_RELOAD", "false").lower() == "true"


@dataclass
class RedisConfig:
    """Connection parameters for the optional weather cache.

    The cache is only used when a host is configured.
    """
    host: str = os.getenv("REDIS_HOST", "")
    port: int = int(os.getenv("REDIS_PORT", "6379"))
    username: str = os.getenv("REDIS_USERNAME", "")
    password: str = os.getenv("REDIS_PASSWORD", "")

    @property
    def enabled(self) -> bool:
        return bool(self.host)


@dataclass
class WeatherServiceConfig:
    """Configuration for the weather tool service."""
    port: int = int(os.getenv("WEATHER_PORT", "3001"))
    api_key: str = os.getenv("WEATHER_API_KEY", "")
    cache_ttl: int = int(os.getenv("WEATHER_CACHE_TTL", "300"))
    hit_threshold: int = int(os.getenv("WEATHER_HIT_THRESHOLD", "3"))
    hit_ttl: int = int(os.getenv("WEATHER_HIT_TTL", "3600"))


@dataclass
class MathServiceConfig:
    """Configuration for the math tool service."""
    port: int = int(os.getenv("MATH_PORT", "3002"))


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = os.getenv("LANGFUSE_PUBLIC_KEY", "")
    secret_key: str = os.getenv("LANGFUSE_SECRET_KEY", "")
    host: str = os.getenv("LANGFUSE_HOST", "")
    debug: bool = os.getenv("LANGFUSE_DEBUG", "false").lower() == "true"

    @property
    def enabled(self) -> bool:
        """Auto-enable when both keys are configured."""
        return bool(self.public_key and self.secret_key)


@dataclass
class Config:
    """Main configuration container."""
    inference: InferenceConfig
    tools: ToolConfig
    server: ServerConfig
    redis: RedisConfig
    weather: WeatherServiceConfig
    math: MathServiceConfig
    langfuse: LangfuseConfig
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def validate(self) -> None:
        """Fail fast on missing required settings."""
        if not self.inference.api_key:
            raise ConfigurationError("OPENAI_API_KEY missing in env")


def get_config() -> Config:
    """Get the application configuration."""
    return Config(
        inference=InferenceConfig(),
        tools=ToolConfig(),
        server=ServerConfig(),
        redis=RedisConfig(),
        weather=WeatherServiceConfig(),
        math=MathServiceConfig(),
        langfuse=LangfuseConfig(),
    )


# Global config instance
config = get_config()
