"""Request surface for the discovery and collection pipeline.

CalendarFeedService is the only object a client (HTTP route, CLI,
scheduler) needs. It owns the shared HTTP fetcher and wires the pipeline
components together.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from .config import Settings, get_settings
from .crawlers.feed_parser import FeedParser
from .crawlers.heuristic_extractor import HeuristicExtractor
from .crawlers.http_client import HttpFetcher
from .discovery.city_lookup import CityLookup, CsvCityLookup
from .discovery.domain_candidates import DomainCandidateGenerator
from .discovery.feed_validator import FeedValidator
from .discovery.location_discoverer import LocationFeedDiscoverer
from .discovery.path_discoverer import FeedPathDiscoverer
from .discovery.website_validator import WebsiteValidator
from .ingestion.normalizer import EventNormalizer
from .ingestion.orchestrator import CollectionOrchestrator
from .lib.run_context import RunContext
from .models.event import Event
from .models.source import CalendarSource, DiscoveredFeed
from .registry.seeds import seed_registry
from .registry.source_registry import SourceRegistry
from .store import EventStore, InMemoryEventStore

logger = logging.getLogger(__name__)


@dataclass
class StoreResult:
    """Outcome of collect_and_store."""
    collected: int
    stored: int
    skipped: int


class CalendarFeedService:
    """Facade over discovery, registry and collection."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[HttpFetcher] = None,
        registry: Optional[SourceRegistry] = None,
        store: Optional[EventStore] = None,
        city_lookup: Optional[CityLookup] = None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or HttpFetcher(self.settings)
        self.feed_validator = FeedValidator(self.fetcher, self.settings)
        self.registry = registry if registry is not None else SourceRegistry(tester=self.feed_validator)
        if self.registry.tester is None:
            self.registry.tester = self.feed_validator
        self.store = store if store is not None else InMemoryEventStore()

        normalizer = EventNormalizer(self.settings)
        self.discoverer = LocationFeedDiscoverer(
            generator=DomainCandidateGenerator(),
            website_validator=WebsiteValidator(self.fetcher, self.settings),
            path_discoverer=FeedPathDiscoverer(self.fetcher, self.feed_validator, self.settings),
            feed_validator=self.feed_validator,
            city_lookup=city_lookup,
            settings=self.settings,
        )
        self.orchestrator = CollectionOrchestrator(
            registry=self.registry,
            fetcher=self.fetcher,
            feed_parser=FeedParser(self.settings, normalizer),
            html_extractor=HeuristicExtractor(self.settings, normalizer),
            settings=self.settings,
        )

    # ── Discovery ──────────────────────────────────────────────────

    async def discover_feeds_for_location(
        self, city: str, state: str, ctx: Optional[RunContext] = None
    ) -> list[DiscoveredFeed]:
        return await self.discoverer.discover_feeds_for_location(city, state, ctx)

    async def discover_feeds_for_regions(
        self, labels: list[str], ctx: Optional[RunContext] = None
    ) -> list[DiscoveredFeed]:
        return await self.discoverer.discover_feeds_for_regions(labels, ctx)

    async def accept_discovered_feed(
        self, feed: DiscoveredFeed, ctx: Optional[RunContext] = None
    ) -> bool:
        """Promote a discovered candidate into the registry. False if already registered."""
        return await self.registry.add(feed.source, ctx)

    # ── Collection ─────────────────────────────────────────────────

    async def collect_from_all_sources(self, ctx: Optional[RunContext] = None) -> list[Event]:
        return await self.orchestrator.collect_from_all_sources(ctx)

    async def collect_from_source(
        self, source: CalendarSource, ctx: Optional[RunContext] = None
    ) -> list[Event]:
        return await self.orchestrator.collect_from_source(source, ctx)

    async def collect_and_store(
        self,
        source: Optional[CalendarSource] = None,
        ctx: Optional[RunContext] = None,
    ) -> StoreResult:
        """Collect (from one source or all active ones) and write new events to the store."""
        if source is None:
            events = await self.collect_from_all_sources(ctx)
        else:
            events = await self.collect_from_source(source, ctx)

        stored = 0
        for event in events:
            if self.store.contains(event):
                continue
            self.store.create(event)
            stored += 1
        logger.info(f"Stored {stored} of {len(events)} collected events")
        return StoreResult(collected=len(events), stored=stored, skipped=len(events) - stored)

    # ── Registry ───────────────────────────────────────────────────

    async def toggle_source(self, source_id: str) -> Optional[bool]:
        return await self.registry.toggle(source_id)

    async def reprioritize_all_feeds(self, ctx: Optional[RunContext] = None) -> dict[str, Optional[str]]:
        return await self.registry.reprioritize_all(ctx)

    def feed_priorities(self) -> list[dict]:
        return self.registry.feed_priorities()

    async def close(self):
        await self.fetcher.close()


def build_service(settings: Optional[Settings] = None) -> CalendarFeedService:
    """Service wired from settings: optional city lookup CSV and seed sources."""
    settings = settings or get_settings()
    city_lookup = CsvCityLookup(settings.city_lookup_path) if settings.city_lookup_path else None
    service = CalendarFeedService(settings=settings, city_lookup=city_lookup)
    if settings.seed_sources_path:
        seed_registry(service.registry, settings.seed_sources_path)
    return service


@lru_cache()
def get_service() -> CalendarFeedService:
    """Process-wide service used by the HTTP routes."""
    return build_service()
