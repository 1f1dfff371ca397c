"""Source registry and feed-type prioritization.

The registry is an explicit object handed to the orchestrator and the
service; there is no module-level source list. Every mutation happens
under one asyncio.Lock, so a prioritization sweep never interleaves with
add/toggle/remove.

Sources sharing (city, state, organization type) form a cluster. Once a
cluster has been tested, at most one of its sources is active: the one
with the best working feed type (ical > webcal > rss > json > html).
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Optional, Protocol

from ..errors import RunCancelled
from ..lib.run_context import RunContext
from ..models.source import CalendarSource, FeedType

logger = logging.getLogger(__name__)


class FeedTester(Protocol):
    async def test_feed_working(self, source: CalendarSource, ctx: Optional[RunContext] = None) -> bool:
        ...


class SourceRegistry:
    """In-process store of CalendarSources with prioritization."""

    def __init__(self, tester: Optional[FeedTester] = None):
        self.tester = tester
        self._sources: "OrderedDict[str, CalendarSource]" = OrderedDict()
        self._lock = asyncio.Lock()

    # ── Queries ────────────────────────────────────────────────────

    def get(self, source_id: str) -> Optional[CalendarSource]:
        return self._sources.get(source_id)

    def all(self) -> list[CalendarSource]:
        return list(self._sources.values())

    def active(self) -> list[CalendarSource]:
        return [s for s in self._sources.values() if s.is_active]

    def by_state(self, state: str) -> list[CalendarSource]:
        state = state.strip().upper()
        return [s for s in self._sources.values() if s.state.upper() == state]

    def by_type(self, feed_type: str) -> list[CalendarSource]:
        feed_type = FeedType(feed_type)
        return [s for s in self._sources.values() if FeedType(s.feed_type) == feed_type]

    def find_by_feed_url(self, feed_url: str) -> Optional[CalendarSource]:
        key = feed_url.strip().lower()
        for source in self._sources.values():
            if source.feed_url and source.feed_url.strip().lower() == key:
                return source
        return None

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._sources

    def feed_priorities(self) -> list[dict]:
        """Sources grouped by owning domain, best feed type first."""
        groups: dict[str, list[CalendarSource]] = {}
        for source in self._sources.values():
            groups.setdefault(source.domain or "unknown", []).append(source)

        result = []
        for domain, sources in groups.items():
            ranked = sorted(sources, key=lambda s: s.priority, reverse=True)
            result.append({
                "domain": domain,
                "feeds": [
                    {
                        "id": s.id,
                        "name": s.name,
                        "feed_type": FeedType(s.feed_type).value,
                        "priority": s.priority,
                        "is_active": s.is_active,
                    }
                    for s in ranked
                ],
            })
        return result

    # ── Mutations ──────────────────────────────────────────────────

    async def add(self, source: CalendarSource, ctx: Optional[RunContext] = None) -> bool:
        """Register a source. Returns False for an id or feed URL already present.

        A source joining a cluster that already has an active member starts
        inactive and is then prioritized against it.
        """
        async with self._lock:
            if source.id in self._sources or (source.feed_url and self.find_by_feed_url(source.feed_url)):
                logger.info(f"Source already registered: {source.id} ({source.feed_url})")
                return False

            siblings = self._active_siblings(source)
            if siblings:
                source.is_active = False
            self._sources[source.id] = source
            logger.info(f"Added source {source.name} ({source.location_label}, "
                        f"{FeedType(source.feed_type).value}) active={source.is_active}")

            if siblings:
                await self._prioritize_locked(source, ctx)
            return True

    def add_seed(self, source: CalendarSource) -> bool:
        """Register a static source without prioritization (startup seeding only)."""
        if source.id in self._sources or (source.feed_url and self.find_by_feed_url(source.feed_url)):
            return False
        self._sources[source.id] = source
        return True

    async def toggle(self, source_id: str) -> Optional[bool]:
        """Flip a source's active flag. Returns the new flag, or None if unknown."""
        async with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return None
            source.is_active = not source.is_active
            logger.info(f"Toggled {source_id}: active={source.is_active}")
            return source.is_active

    async def remove(self, source_id: str) -> bool:
        async with self._lock:
            removed = self._sources.pop(source_id, None)
        if removed is None:
            return False
        logger.info(f"Removed source {removed.name}")
        return True

    async def mark_synced(self, source_ids: list[str], when: Optional[datetime] = None):
        when = when or datetime.now(timezone.utc)
        async with self._lock:
            for source_id in source_ids:
                source = self._sources.get(source_id)
                if source is not None:
                    source.last_sync = when

    # ── Prioritization ─────────────────────────────────────────────

    async def prioritize(self, source: CalendarSource, ctx: Optional[RunContext] = None) -> bool:
        """Settle `source` against its active cluster siblings. Returns its final active flag."""
        async with self._lock:
            return await self._prioritize_locked(self._sources.get(source.id, source), ctx)

    async def _prioritize_locked(self, source: CalendarSource, ctx: Optional[RunContext]) -> bool:
        active = self._active_siblings(source)
        if not active:
            return source.is_active

        best = max(active, key=lambda s: s.priority)
        if source.priority <= best.priority:
            source.is_active = False
            logger.info(f"Keeping {source.name} ({FeedType(source.feed_type).value}) inactive, "
                        f"{best.id} ({FeedType(best.feed_type).value}) already active")
            return False

        if not await self._test(source, ctx):
            source.is_active = False
            logger.info(f"{source.id} failed its live test, leaving it inactive")
            return False

        source.is_active = True
        for sibling in active:
            if sibling.priority < source.priority:
                sibling.is_active = False
                logger.info(f"Disabled {sibling.id} ({FeedType(sibling.feed_type).value}) "
                            f"in favor of {source.id} ({FeedType(source.feed_type).value})")
        return True

    async def reprioritize_all(self, ctx: Optional[RunContext] = None) -> dict[str, Optional[str]]:
        """Per owning domain, keep only the best working feed active.

        Returns {domain: id of the active source}; None where no feed of a
        multi-source domain passed its live test (that group is left untouched).
        """
        async with self._lock:
            groups: dict[str, list[CalendarSource]] = {}
            for source in self._sources.values():
                if source.domain:
                    groups.setdefault(source.domain, []).append(source)

            outcome: dict[str, Optional[str]] = {}
            for domain, sources in groups.items():
                if len(sources) <= 1:
                    continue
                logger.info(f"Reprioritizing {len(sources)} feeds for {domain}")

                results = await asyncio.gather(
                    *(self._test(s, ctx) for s in sources), return_exceptions=True
                )
                working = []
                for source, result in zip(sources, results):
                    if isinstance(result, (RunCancelled, asyncio.CancelledError)):
                        raise result
                    if result is True:
                        working.append(source)

                if not working:
                    logger.info(f"No working feeds for {domain}")
                    outcome[domain] = None
                    continue

                # max() keeps the first registered source on ties
                winner = max(working, key=lambda s: s.priority)
                for source in sources:
                    was_active = source.is_active
                    source.is_active = source.id == winner.id
                    if was_active != source.is_active:
                        logger.info(f"{'Enabled' if source.is_active else 'Disabled'} "
                                    f"{source.name} ({FeedType(source.feed_type).value})")
                outcome[domain] = winner.id
            return outcome

    async def _test(self, source: CalendarSource, ctx: Optional[RunContext]) -> bool:
        if self.tester is None:
            return False
        return await self.tester.test_feed_working(source, ctx)

    def _active_siblings(self, source: CalendarSource) -> list[CalendarSource]:
        return [
            s for s in self._sources.values()
            if s.id != source.id and s.is_active and s.cluster_key == source.cluster_key
        ]
