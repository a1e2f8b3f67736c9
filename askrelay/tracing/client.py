"""
Process-wide Langfuse client.

Built once at orchestrator startup from ``LANGFUSE_*`` settings. When the
keys are absent or the host rejects them the client stays disabled and
every tracing call in the request path becomes a no-op.
"""

import logging
from typing import Optional

from langfuse import Langfuse

from ..config import LangfuseConfig, config

logger = logging.getLogger(__name__)


class TracingClient:
    """
    Owns the Langfuse SDK client and whether tracing is usable.

    Args:
        settings: Langfuse keys, host and debug flag.
    """

    def __init__(self, settings: LangfuseConfig):
        self.settings = settings
        self._client: Optional[Langfuse] = None
        self._enabled = False
        self._error: Optional[str] = None

        if not settings.enabled:
            self._error = "LANGFUSE_PUBLIC_KEY / LANGFUSE_SECRET_KEY not set"
            logger.debug(f"Tracing off: {self._error}")
            return

        if settings.host and not settings.host.startswith(("http://", "https://")):
            logger.warning(f"LANGFUSE_HOST '{settings.host}' has no http(s) scheme")

        options = {
            "public_key": settings.public_key,
            "secret_key": settings.secret_key,
            "debug": settings.debug,
        }
        if settings.host:
            options["host"] = settings.host

        try:
            self._client = Langfuse(**options)
        except Exception as e:
            self._disable(f"Langfuse client could not be created: {e}")
            return

        if self._authenticated():
            self._enabled = True
            logger.info(f"Tracing to Langfuse at {settings.host or 'the default host'}")

    def _authenticated(self) -> bool:
        """Run a single auth_check() so misconfiguration shows up at startup."""
        try:
            ok = self._client.auth_check()
        except Exception as e:
            self._disable(f"Langfuse unreachable: {e}")
            return False
        if not ok:
            self._disable("Langfuse auth_check rejected the configured keys")
            return False
        return True

    def _disable(self, reason: str) -> None:
        self._error = reason
        self._client = None
        logger.warning(f"Tracing off: {reason}")

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def error(self) -> Optional[str]:
        """Why tracing is off, or None."""
        return self._error

    @property
    def client(self) -> Optional[Langfuse]:
        return self._client

    def flush(self) -> None:
        """Send buffered observations."""
        if not self._enabled:
            return
        try:
            self._client.flush()
        except Exception as e:
            logger.warning(f"Langfuse flush failed: {e}")

    def shutdown(self) -> None:
        """Flush and stop the SDK's background exporter."""
        if not self._enabled:
            return
        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning(f"Langfuse shutdown failed: {e}")
        self._enabled = False


_tracing_client: Optional[TracingClient] = None


def init_tracing_client(settings: Optional[LangfuseConfig] = None) -> TracingClient:
    """Create the process-wide client (from ``config.langfuse`` by default)."""
    global _tracing_client
    _tracing_client = TracingClient(settings or config.langfuse)
    return _tracing_client


def get_tracing_client() -> Optional[TracingClient]:
    return _tracing_client


def shutdown_tracing() -> None:
    """Shut down and forget the process-wide client."""
    global _tracing_client
    if _tracing_client is not None:
        _tracing_client.shutdown()
    _tracing_client = None
