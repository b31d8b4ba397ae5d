"""
Observer channel used for status and donation notifications.
"""

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventChannel:
    """Fan-out of a single event type to registered handlers."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: list[Handler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler) -> Handler:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Handler):
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

    def emit(self, payload: Any):
        """Deliver payload to every handler. A failing handler does not stop delivery."""
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(payload)
            except Exception as e:
                logger.error("%s handler %r failed: %s", self.name, handler, e, exc_info=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
