"""
Request Tracker: Event Buffer
==============================

What:  In-memory accumulator for the events of one unit of work (one request).
How:   Events are grouped by name; each name maps to the list of parameter
       sets recorded under it, in call order.
Who:   Created per request by RequestTrackingMiddleware; filled by the
       middleware and by route handlers; drained by Dispatcher.persist().

A buffer is owned by exactly one request and is never shared, so it needs no
locking. It never performs I/O.

Usage:
    buffer = EventBuffer()
    buffer.add_event("request", {"path": "/a"}).add_event("request", {"path": "/b"})
    buffer.drain()   # {"request": [{"path": "/a"}, {"path": "/b"}]}
"""

from typing import Any, Mapping, Optional

from tracker.schemas.events import EventBatch


class EventBuffer:
    """Per-request event accumulator with fluent `add_event`."""

    def __init__(self) -> None:
        self._events: EventBatch = {}

    def add_event(
        self, name: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> "EventBuffer":
        """
        Record one occurrence of `name`.

        Args:
            name:       Event collection name, e.g. "request".
            parameters: Arbitrary JSON-compatible data. Not validated.
                        A shallow copy is stored, so the caller may keep
                        mutating its own dict.

        Returns:
            The buffer itself, for chaining.
        """
        self._events.setdefault(name, []).append(dict(parameters or {}))
        return self

    def is_empty(self) -> bool:
        return not self._events

    def count(self, name: str) -> int:
        """Number of occurrences recorded under `name`."""
        return len(self._events.get(name, ()))

    def drain(self) -> EventBatch:
        """
        Hand over everything recorded so far and start empty again.

        The returned dict is no longer referenced by the buffer.
        """
        batch, self._events = self._events, {}
        return batch

    def __len__(self) -> int:
        return sum(len(occurrences) for occurrences in self._events.values())

    def __repr__(self) -> str:
        names = ", ".join(f"{name}={len(items)}" for name, items in self._events.items())
        return f"EventBuffer({names})"
