"""
Event dispatcher — observer interface between the engine and its listeners.

Emission is fire-and-forget: an event with no listeners is a no-op, and a
listener that raises is logged and skipped so the remaining listeners still
run and the emitting operation is unaffected.
"""
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

EVENT_CREATED = "subscription_created"
EVENT_UPDATED = "subscription_updated"
EVENT_DELETED = "subscription_deleted"
EVENT_PAUSED = "subscription_paused"
EVENT_RESUMED = "subscription_resumed"
EVENT_CANCELLED = "subscription_cancelled"
EVENT_BILLED = "subscription_billed"

EVENT_TYPES = [
    EVENT_CREATED,
    EVENT_UPDATED,
    EVENT_DELETED,
    EVENT_PAUSED,
    EVENT_RESUMED,
    EVENT_CANCELLED,
    EVENT_BILLED,
]

# listener(event_type, payload)
Listener = Callable[[str, Dict[str, Any]], None]


class EventDispatcher:

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._catch_all: List[Listener] = []

    def subscribe(self, event_type: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for one event type.

        Returns:
            Callable that removes the listener again
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {event_type}")
        self._listeners[event_type].append(listener)
        return lambda: self.unsubscribe(event_type, listener)

    def subscribe_all(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for every event type."""
        self._catch_all.append(listener)
        return lambda: self._remove(self._catch_all, listener)

    def unsubscribe(self, event_type: str, listener: Listener) -> None:
        self._remove(self._listeners.get(event_type, []), listener)

    def once(self, event_type: str, listener: Listener) -> Callable[[], None]:
        """Register a listener that is removed after its first call."""
        def _wrapper(name, payload):
            self.unsubscribe(event_type, _wrapper)
            listener(name, payload)

        return self.subscribe(event_type, _wrapper)

    def clear(self, event_type: str | None = None) -> None:
        if event_type is None:
            self._listeners.clear()
            self._catch_all.clear()
        else:
            self._listeners.pop(event_type, None)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, [])) + len(self._catch_all)

    def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners.get(event_type, [])) + list(self._catch_all):
            try:
                listener(event_type, payload)
            except Exception:
                logger.exception("Listener failed for event %s", event_type)

    @staticmethod
    def _remove(listeners: List[Listener], listener: Listener) -> None:
        if listener in listeners:
            listeners.remove(listener)
