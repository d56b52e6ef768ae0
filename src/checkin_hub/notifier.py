"""
"Visitor updated" notifications.

One `VisitorUpdateNotifier` is created per application and handed to whoever
needs it. Subscribers get a handle back and use it to unsubscribe.
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Subscription:
    id: int


# PUBLIC_INTERFACE
class VisitorUpdateNotifier:
    """Thread-safe publish/subscribe registry for visitor updates."""

    def __init__(self) -> None:
        self._listeners: Dict[int, Listener] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Subscription:
        with self._lock:
            handle = Subscription(next(self._ids))
            self._listeners[handle.id] = listener
        return handle

    def unsubscribe(self, handle: Subscription) -> bool:
        with self._lock:
            return self._listeners.pop(handle.id, None) is not None

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def notify(self) -> None:
        """Calls every current listener. A failing listener does not stop the others."""
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Visitor update listener %r failed", listener)
