"""
Fire-and-forget event broadcasting.

Services publish small structured events (``{"type": ..., ...}``) for tool
results, cache hits and errors. Any number of passive observers may
subscribe, typically through the ``/sse`` endpoint. Publishing never blocks
and never fails: a slow or broken observer only loses its own events.

Events are emitted from worker threads (sync request handlers) while SSE
readers wait on the event loop, so an idle observer holds no thread.
"""

import asyncio
import json
import logging
import queue
import threading
from typing import Any, AsyncIterator, Optional, Protocol

logger = logging.getLogger(__name__)

# Events buffered per observer before new ones are dropped for it.
DEFAULT_QUEUE_SIZE = 100

# Seconds between keep-alive comments on an idle SSE stream.
KEEPALIVE_INTERVAL = 15.0

_CLOSED = object()


class EventSink(Protocol):
    """Anything that can receive an event. The loop only depends on this."""

    def emit(self, event: dict[str, Any]) -> None: ...


class NullSink:
    """Event sink that discards everything."""

    def emit(self, event: dict[str, Any]) -> None:
        return None


class Subscription:
    """A single observer's bounded event queue."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.closed = False
        # Bound by the first async reader; producers wake it thread-safely
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = asyncio.Event()

    def offer(self, event: dict[str, Any]) -> bool:
        """Queue an event without blocking. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            return False
        self._wake()
        return True

    def _wake(self) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._ready.set)
        except RuntimeError:
            # Reader's loop already closed
            logger.debug("Observer loop closed, not waking reader")

    async def next_event(self, timeout: Optional[float] = None) -> Optional[dict[str, Any]]:
        """
        Await the next event without occupying a thread.

        Returns:
            The event, or None when the timeout elapsed or the subscription
            was closed.
        """
        self._loop = asyncio.get_running_loop()
        while not self.closed:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                self._ready.clear()
                if not self._queue.empty():
                    continue
                try:
                    await asyncio.wait_for(self._ready.wait(), timeout)
                except asyncio.TimeoutError:
                    return None
                continue
            if item is _CLOSED:
                self.closed = True
                return None
            return item
        return None

    def get(self, timeout: Optional[float] = None) -> Optional[dict[str, Any]]:
        """
        Block until the next event, for readers on a plain thread.

        Returns:
            The event, or None when the timeout elapsed or the subscription
            was closed.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self.closed = True
            return None
        return item

    def close(self) -> None:
        """Stop the reader once it has drained the events already queued."""
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            # No room for the marker: stop without draining
            self.closed = True
        self._wake()


class EventBroadcaster:
    """Process-wide observer set with lock-guarded add, remove and snapshot."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = queue_size
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        subscription = Subscription(maxsize=self._queue_size)
        with self._lock:
            self._subscribers.add(subscription)
        logger.debug("Observer subscribed (%d total)", len(self))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)
        logger.debug("Observer unsubscribed (%d total)", len(self))

    def emit(self, event: dict[str, Any]) -> None:
        """Deliver an event to every current observer without blocking."""
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            if not subscription.offer(event):
                logger.warning(
                    "Observer queue full, dropping '%s' event", event.get("type")
                )

    def close(self) -> None:
        """Detach and wake every observer. Used on shutdown."""
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for subscription in subscribers:
            subscription.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


def format_sse(event: dict[str, Any]) -> str:
    """Frame an event as a Server-Sent Events ``data:`` message."""
    return f"data: {json.dumps(event)}\n\n"


async def stream_events(
    broadcaster: EventBroadcaster,
    subscription: Subscription,
    keepalive: float = KEEPALIVE_INTERVAL,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one observer until its subscription is closed.

    Runs on the event loop, not the threadpool. The subscription is removed
    from the broadcaster when the generator finishes or is cancelled by the
    server after a client disconnect.
    """
    try:
        yield "\n"
        while not subscription.closed:
            event = await subscription.next_event(timeout=keepalive)
            if event is not None:
                yield format_sse(event)
            elif not subscription.closed:
                yield ": keep-alive\n\n"
    finally:
        broadcaster.unsubscribe(subscription)


# Orchestrator-wide broadcaster shared by all in-flight requests
broadcaster = EventBroadcaster()
