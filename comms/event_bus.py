"""EventBus - thread-safe pub/sub fanning out committed state changes.

Publishers are the EntityStore (``state_changed`` after every commit), the
coordinators (``unit_dispatched``, ``alert_raised``, ``message_composed``,
...) and the SimulationFeed (``telemetry``).  The WebSocket bridge in
``app.routers.ws`` is the main subscriber.

Subscriber queues are bounded.  When a queue is full the oldest event is
dropped so a slow consumer always sees the most recent changes.
"""

from __future__ import annotations

import queue
import threading


def matches(event_type: str, prefixes: str | tuple[str, ...] | None) -> bool:
    """True when *prefixes* is empty or *event_type* starts with one of them."""
    if not prefixes:
        return True
    return event_type.startswith(prefixes)


class EventBus:
    """Simple thread-safe pub/sub for pushing events to subscribers."""

    def __init__(self, maxsize: int = 100) -> None:
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._subscribers: list[tuple[queue.Queue, str | tuple[str, ...] | None]] = []

    def subscribe(self, _filter: str | tuple[str, ...] | None = None) -> queue.Queue:
        """Subscribe to events.  Returns a Queue receiving ``{"type", "data"}`` dicts.

        With ``_filter`` set (one prefix or a tuple of them), only events
        whose type starts with a matching prefix are delivered.
        """
        q: queue.Queue = queue.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.append((q, _filter))
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers = [(s, f) for s, f in self._subscribers if s is not q]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            for q, prefix in self._subscribers:
                if not matches(event_type, prefix):
                    continue
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass
                    try:
                        q.put_nowait(msg)
                    except queue.Full:
                        pass
