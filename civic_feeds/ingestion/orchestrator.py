"""Collection orchestrator.

Fetches every active source in fixed-size concurrent batches with a delay
between batches. One source failing never affects the rest of its batch;
a failed iCal source gets exactly one retry through the HTML extractor.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..config import Settings, get_settings
from ..crawlers.content_type_detector import declared_feed_extension, looks_like_html
from ..crawlers.feed_parser import FeedParser
from ..crawlers.heuristic_extractor import HeuristicExtractor
from ..crawlers.http_client import HttpFetcher
from ..errors import FeedParseError, RunCancelled
from ..lib.json_logger import StructuredLoggerAdapter, source_logger
from ..lib.run_context import RunContext
from ..models.event import Event
from ..models.source import CalendarSource, FeedType
from ..registry.source_registry import SourceRegistry
from .in_run_dedupe import create_event_deduplicator

logger = logging.getLogger(__name__)


class CollectionOrchestrator:
    """Batches active sources and turns their feeds into Events."""

    def __init__(
        self,
        registry: SourceRegistry,
        fetcher: HttpFetcher,
        feed_parser: Optional[FeedParser] = None,
        html_extractor: Optional[HeuristicExtractor] = None,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        self.feed_parser = feed_parser or FeedParser(self.settings)
        self.html_extractor = html_extractor or HeuristicExtractor(self.settings, self.feed_parser.normalizer)

    async def collect_from_all_sources(self, ctx: Optional[RunContext] = None) -> list[Event]:
        """Collect from every active source.

        Batches run sequentially; sources within a batch run concurrently.
        Registry sync timestamps are written once, after the last batch.
        """
        ctx = ctx or RunContext()
        run_id = uuid.uuid4().hex[:12]
        sources = self.registry.active()
        batch_size = max(1, self.settings.collection_batch_size)
        start = time.time()
        logger.info(
            f"Collecting from {len(sources)} active sources",
            extra={"run_id": run_id, "stage": "collection"},
        )

        events: list[Event] = []
        synced: list[str] = []
        for i in range(0, len(sources), batch_size):
            if i:
                await ctx.sleep(self.settings.collection_batch_delay_seconds)
            batch = sources[i:i + batch_size]
            results = await asyncio.gather(
                *(self.collect_from_source(source, ctx, run_id) for source in batch),
                return_exceptions=True,
            )
            for source, result in zip(batch, results):
                if isinstance(result, (RunCancelled, asyncio.CancelledError)):
                    raise result
                if isinstance(result, Exception):
                    logger.warning(
                        f"Failed to collect from {source.name}: {result}",
                        extra={"run_id": run_id, "source_id": source.id, "status": "error"},
                    )
                    continue
                events.extend(result)
                synced.append(source.id)

        await self.registry.mark_synced(synced)
        unique = create_event_deduplicator().dedupe(events)
        logger.info(
            f"Collected {len(unique)} events from {len(sources)} sources",
            extra={
                "run_id": run_id,
                "stage": "collection",
                "events": len(unique),
                "duration_ms": int((time.time() - start) * 1000),
            },
        )
        return unique

    async def collect_from_source(
        self,
        source: CalendarSource,
        ctx: Optional[RunContext] = None,
        run_id: Optional[str] = None,
    ) -> list[Event]:
        """Events from one source; [] on any network or parse failure."""
        ctx = ctx or RunContext()
        feed_type = FeedType(source.feed_type)
        log = source_logger(run_id or uuid.uuid4().hex[:12], source.id, feed_type.value)
        url = source.feed_url or source.website_url
        if not url:
            log.warning(f"{source.name} has neither a feed nor a website URL")
            return []

        start = time.time()
        body: Optional[str] = None
        try:
            if feed_type == FeedType.HTML:
                events = await self._collect_html(source, url, ctx)
            else:
                body = await self._fetch(url, self.settings.feed_timeout, ctx)
                events = self.feed_parser.parse(feed_type, body, source)
        except (httpx.HTTPError, FeedParseError) as e:
            log.warning(f"Failed to collect from {source.name}: {e}", extra={"status": "error"})
            if not self._should_fallback(source, url):
                return []
            events = await self._html_fallback(source, body, ctx, log)

        log.info(
            f"Collected {len(events)} events from {source.name}",
            extra={"status": "ok", "events": len(events),
                   "duration_ms": int((time.time() - start) * 1000)},
        )
        return events

    @staticmethod
    def _should_fallback(source: CalendarSource, url: str) -> bool:
        if FeedType(source.feed_type) in (FeedType.ICAL, FeedType.WEBCAL):
            return True
        return declared_feed_extension(url) in (".ics", ".ical")

    async def _html_fallback(
        self,
        source: CalendarSource,
        body: Optional[str],
        ctx: RunContext,
        log: StructuredLoggerAdapter,
    ) -> list[Event]:
        """Single retry through the HTML extractor (reusing an HTML body if we got one)."""
        log.info(f"Retrying {source.name} through the HTML extractor", extra={"stage": "html_fallback"})
        try:
            if body and looks_like_html(body):
                return self.html_extractor.extract(body, source, url=source.feed_url)
            target = source.website_url or source.feed_url
            return await self._collect_html(source, target, ctx)
        except httpx.HTTPError as e:
            log.warning(f"HTML fallback failed for {source.name}: {e}", extra={"status": "error"})
            return []

    async def _collect_html(self, source: CalendarSource, url: str, ctx: RunContext) -> list[Event]:
        html = await self._fetch(url, self.settings.html_timeout, ctx)
        return self.html_extractor.extract(html, source, datetime.now(timezone.utc), url)

    async def _fetch(self, url: str, timeout: float, ctx: RunContext) -> str:
        result = await self.fetcher.get(url, timeout, ctx)
        if not result.ok:
            raise httpx.HTTPStatusError(
                f"HTTP {result.status_code} for {url}",
                request=httpx.Request("GET", result.final_url),
                response=httpx.Response(result.status_code),
            )
        return result.text
