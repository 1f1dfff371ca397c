"""In-run deduplication for collection runs.

Only removes duplicates within a single collection run (the same event
published by two feeds of one source, or repeated inside one feed).
Cross-run deduplication is the event store's concern.
"""

from typing import Callable, TypeVar, Generic
from dataclasses import dataclass
import logging

from ..models.event import Event

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class DedupeStats:
    """Statistics from deduplication."""
    total_input: int
    unique_output: int
    duplicates_removed: int

    @property
    def duplicate_ratio(self) -> float:
        if self.total_input == 0:
            return 0.0
        return self.duplicates_removed / self.total_input


class InRunDeduplicator(Generic[T]):
    """
    Keeps the first item per fingerprint within one run.

    Args:
        get_fingerprint: (item) -> str
    """

    def __init__(self, get_fingerprint: Callable[[T], str]):
        self.get_fingerprint = get_fingerprint
        self._stats = DedupeStats(0, 0, 0)

    def dedupe(self, items: list[T]) -> list[T]:
        """Remove duplicates, preserving input order."""
        seen: set[str] = set()
        unique: list[T] = []
        duplicates = 0

        for item in items:
            fingerprint = self.get_fingerprint(item)
            if fingerprint in seen:
                duplicates += 1
                logger.debug(f"Duplicate found: {fingerprint[:8]}...")
                continue
            seen.add(fingerprint)
            unique.append(item)

        self._stats = DedupeStats(
            total_input=len(items),
            unique_output=len(unique),
            duplicates_removed=duplicates,
        )

        if duplicates > 0:
            logger.info(f"In-run dedupe: {duplicates} duplicates removed from {len(items)} events")

        return unique

    @property
    def stats(self) -> DedupeStats:
        """Statistics from the last dedupe() call."""
        return self._stats


def create_event_deduplicator() -> InRunDeduplicator[Event]:
    """Deduplicator keyed on Event.fingerprint (source, title, start)."""
    return InRunDeduplicator[Event](lambda event: event.fingerprint)
