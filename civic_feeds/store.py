"""Event store interface.

The pipeline never persists anything itself; the service hands collected
events to an EventStore.
"""

from typing import Protocol

from .models.event import Event


class EventStore(Protocol):
    def create(self, event: Event) -> Event:
        ...

    def exists(self, source_id: str) -> bool:
        """Whether any event from this source has been stored."""
        ...

    def contains(self, event: Event) -> bool:
        """Whether an equivalent event (same fingerprint) is already stored."""
        ...


class InMemoryEventStore:
    """Process-local store, keyed by event fingerprint."""

    def __init__(self):
        self._events: dict[str, Event] = {}

    def create(self, event: Event) -> Event:
        return self._events.setdefault(event.fingerprint, event)

    def exists(self, source_id: str) -> bool:
        return any(e.source_id == source_id for e in self._events.values())

    def contains(self, event: Event) -> bool:
        return event.fingerprint in self._events

    def all(self) -> list[Event]:
        return sorted(self._events.values(), key=lambda e: e.start_date)

    def __len__(self) -> int:
        return len(self._events)
