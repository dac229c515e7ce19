from __future__ import annotations

import logging
import threading
from typing import Any, Callable

log = logging.getLogger(__name__)


class EventBus:
    """Lightweight publish/subscribe bus for sampling progress events.

    Thread-safe: handlers may be added from any thread while the sampling
    worker emits.  Handlers run on the emitting thread, outside the bus
    lock.  A failing handler is logged and does not stop the others, so a
    broken subscriber cannot take the sampling worker down with it.

    Events emitted by :class:`~audiowaveformlib.scheduler.SamplingScheduler`:
    ``job.submitted``, ``job.start``, ``job.complete``, ``job.skipped``.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Callable[..., Any]) -> None:
        """Register a handler for an event type."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: Callable[..., Any]) -> None:
        """Remove a handler."""
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event_type: str, **data: Any) -> None:
        """Fire all handlers for an event type."""
        with self._lock:
            handlers = list(self._handlers.get(event_type, []))
        for handler in handlers:
            try:
                handler(**data)
            except Exception:
                log.exception("Handler for %r failed", event_type)
