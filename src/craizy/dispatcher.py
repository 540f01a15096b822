"""In-process publish/subscribe for lifecycle events.

Handlers run sequentially, in registration order, inside the publisher's own
task; ``publish`` returns once every handler has returned.  A handler that
raises is logged and skipped: the dispatcher delivers, it does not aggregate
errors, so publishers never see handler failures.

The handler table may be touched from more than one thread (wiring at
startup, publishing from another thread), so it is guarded
by a lock.  The lock is only held to copy the handler list, never while a
handler runs.
"""

from __future__ import annotations

import logging
import threading
from typing import Awaitable, Callable

from craizy.events import EVENT_CLASSES, AgentEvent, EventType

EventHandler = Callable[[AgentEvent], Awaitable[None]]


class EventDispatcher:
    """Synchronous, ordered fan-out of agent events to async handlers."""

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger(__name__)
        self._handlers: dict[EventType, list[EventHandler]] = {t: [] for t in EVENT_CLASSES}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Register ``handler`` for ``event_type``.

        Raises ``ValueError`` for a tag outside the closed event set.
        """
        key = EventType(event_type)
        with self._lock:
            self._handlers[key].append(handler)
        self._logger.debug("Subscribed %s to %s", getattr(handler, "__qualname__", handler), key.value)

    async def publish(self, event: AgentEvent) -> None:
        """Deliver ``event`` to each subscriber of its type, one after another."""
        with self._lock:
            handlers = list(self._handlers[event.event_type])

        if not handlers:
            self._logger.debug("No handlers for %s", event.event_type.value)
            return

        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                self._logger.exception("Handler error for %s", event.event_type.value)

    def handler_count(self, event_type: EventType | str) -> int:
        key = EventType(event_type)
        with self._lock:
            return len(self._handlers[key])
