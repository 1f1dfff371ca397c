"""Tests for CollectionOrchestrator batching, fallback and cancellation."""

import asyncio

import pytest

from civic_feeds.config import Settings
from civic_feeds.errors import RunCancelled
from civic_feeds.ingestion.in_run_dedupe import create_event_deduplicator
from civic_feeds.ingestion.orchestrator import CollectionOrchestrator
from civic_feeds.lib.run_context import RunContext
from civic_feeds.models.source import FeedType, OrganizationType
from civic_feeds.registry.source_registry import SourceRegistry


def event_page(when) -> str:
    return f"""<html><body><main>
      <div class="event-item">
        <h3>City Council Meeting</h3>
        <span class="date">{when:%B} {when.day}, {when.year} 7:00 PM</span>
        <p class="description">Regular meeting of the Springfield City Council at City Hall.</p>
      </div>
    </main></body></html>"""


@pytest.fixture
def registry():
    return SourceRegistry()


@pytest.fixture
def orchestrator(registry, fetcher, settings):
    return CollectionOrchestrator(registry, fetcher, settings=settings)


class TestCollectFromSource:
    """Single-source collection."""

    @pytest.mark.asyncio
    async def test_ical(self, orchestrator, web, make_source, ics_body, future):
        web.add("https://springfield.gov/calendar.ics",
                ics_body([{"summary": "Budget Hearing", "start": future(4)}]),
                content_type="text/calendar")
        events = await orchestrator.collect_from_source(make_source())
        assert [e.title for e in events] == ["Budget Hearing"]

    @pytest.mark.asyncio
    async def test_ical_serving_html_falls_back(self, orchestrator, web, make_source, future):
        web.add("https://springfield.gov/calendar.ics", event_page(future(10)))
        events = await orchestrator.collect_from_source(make_source())
        assert [e.title for e in events] == ["City Council Meeting"]
        assert web.requested_paths("springfield.gov") == ["/calendar.ics"]

    @pytest.mark.asyncio
    async def test_missing_ical_falls_back_to_website(self, orchestrator, web, make_source, future):
        web.add("https://springfield.gov/", event_page(future(10)))
        events = await orchestrator.collect_from_source(make_source())
        assert [e.title for e in events] == ["City Council Meeting"]
        assert web.requested_paths("springfield.gov") == ["/calendar.ics", "/"]

    @pytest.mark.asyncio
    async def test_valid_ical_without_upcoming_events_has_no_fallback(
        self, orchestrator, web, make_source, ics_body, future
    ):
        web.add("https://springfield.gov/", event_page(future(10)))
        web.add("https://springfield.gov/calendar.ics",
                ics_body([{"summary": "Budget Hearing", "start": future(-3)}]),
                content_type="text/calendar")
        assert await orchestrator.collect_from_source(make_source()) == []
        assert web.requested_paths("springfield.gov") == ["/calendar.ics"]

    @pytest.mark.asyncio
    async def test_fallback_failure_returns_empty(self, orchestrator, make_source):
        assert await orchestrator.collect_from_source(make_source()) == []

    @pytest.mark.asyncio
    async def test_rss_failure_has_no_fallback(self, orchestrator, web, make_source, future):
        web.add("https://springfield.gov/", event_page(future(10)))
        source = make_source(feed_type=FeedType.RSS, feed_url="https://springfield.gov/events.rss")
        assert await orchestrator.collect_from_source(source) == []
        assert web.requested_paths("springfield.gov") == ["/events.rss"]

    @pytest.mark.asyncio
    async def test_html_source(self, orchestrator, web, make_source, future):
        web.add("https://springfield.gov/calendar", event_page(future(3)))
        source = make_source(feed_type=FeedType.HTML, feed_url="https://springfield.gov/calendar")
        events = await orchestrator.collect_from_source(source)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_source_without_urls(self, orchestrator, make_source):
        assert await orchestrator.collect_from_source(make_source(feed_url=None, website_url=None)) == []


class TestCollectFromAllSources:
    """Batch collection across the registry."""

    @pytest.mark.asyncio
    async def test_collects_active_sources_and_marks_synced(
        self, orchestrator, registry, web, make_source, ics_body, rss_body, future
    ):
        web.add("https://springfield.gov/calendar.ics",
                ics_body([{"summary": "City Council Meeting", "start": future(3)}]),
                content_type="text/calendar")
        web.add("https://springfieldlibrary.org/events.rss",
                rss_body([{"title": "Story Time", "published": future(5)}]),
                content_type="application/rss+xml")
        city = make_source()
        library = make_source(id="library", feed_type=FeedType.RSS,
                              feed_url="https://springfieldlibrary.org/events.rss",
                              organization_type=OrganizationType.LIBRARY)
        inactive = make_source(id="parks", feed_url="https://springfieldparks.org/parks.ics",
                               organization_type=OrganizationType.PARKS, is_active=False)
        for source in (city, library, inactive):
            registry.add_seed(source)

        events = await orchestrator.collect_from_all_sources()

        assert sorted(e.title for e in events) == ["City Council Meeting", "Story Time"]
        assert city.last_sync is not None
        assert library.last_sync is not None
        assert inactive.last_sync is None
        assert "springfieldparks.org" not in {r.url.host for r in web.requests}

    @pytest.mark.asyncio
    async def test_failing_source_does_not_affect_batch(
        self, orchestrator, registry, web, make_source, ics_body, future, monkeypatch
    ):
        body = ics_body([{"summary": "Open House", "start": future(2)}])
        web.add("https://springfield.gov/calendar.ics", body, content_type="text/calendar")
        web.add("https://springfield.gov/broken.ics", body, content_type="text/calendar")
        good = make_source()
        broken = make_source(id="broken", feed_url="https://springfield.gov/broken.ics")
        registry.add_seed(good)
        registry.add_seed(broken)

        original = orchestrator.feed_parser.parse

        def parse(feed_type, text, source, now=None):
            if source.id == "broken":
                raise RuntimeError("boom")
            return original(feed_type, text, source, now)

        monkeypatch.setattr(orchestrator.feed_parser, "parse", parse)

        events = await orchestrator.collect_from_all_sources()

        assert [e.source_id for e in events] == ["springfield-city"]
        assert good.last_sync is not None
        assert broken.last_sync is None

    @pytest.mark.asyncio
    async def test_batches_run_sequentially(self, registry, fetcher, make_source, monkeypatch):
        settings = Settings(_env_file=None, collection_batch_size=2, collection_batch_delay_seconds=0)
        orchestrator = CollectionOrchestrator(registry, fetcher, settings=settings)
        for i in range(5):
            registry.add_seed(make_source(id=f"s{i}", feed_url=f"https://springfield.gov/{i}.ics"))

        in_flight = 0
        peak = 0
        order = []

        async def fake_collect(source, ctx=None, run_id=None):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            order.append(source.id)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return []

        monkeypatch.setattr(orchestrator, "collect_from_source", fake_collect)
        await orchestrator.collect_from_all_sources()

        assert peak == 2
        assert order == ["s0", "s1", "s2", "s3", "s4"]
        assert all(registry.get(f"s{i}").last_sync is not None for i in range(5))

    @pytest.mark.asyncio
    async def test_duplicates_removed(self, orchestrator, registry, web, make_source, ics_body, future):
        start = future(6)
        web.add("https://springfield.gov/calendar.ics",
                ics_body([{"summary": "Town Hall", "start": start}, {"summary": "Town Hall", "start": start}]),
                content_type="text/calendar")
        registry.add_seed(make_source())
        events = await orchestrator.collect_from_all_sources()
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_cancelled_run_raises(self, orchestrator, registry, make_source):
        registry.add_seed(make_source())
        ctx = RunContext()
        ctx.cancel()
        with pytest.raises(RunCancelled):
            await orchestrator.collect_from_all_sources(ctx)

    @pytest.mark.asyncio
    async def test_cancel_between_batches(self, registry, fetcher, make_source, monkeypatch):
        settings = Settings(_env_file=None, collection_batch_size=1, collection_batch_delay_seconds=30)
        orchestrator = CollectionOrchestrator(registry, fetcher, settings=settings)
        registry.add_seed(make_source(id="first", feed_url="https://springfield.gov/1.ics"))
        registry.add_seed(make_source(id="second", feed_url="https://springfield.gov/2.ics"))
        ctx = RunContext()
        seen = []

        async def fake_collect(source, ctx_=None, run_id=None):
            seen.append(source.id)
            ctx.cancel("stopped by operator")
            return []

        monkeypatch.setattr(orchestrator, "collect_from_source", fake_collect)
        with pytest.raises(RunCancelled):
            await orchestrator.collect_from_all_sources(ctx)
        assert seen == ["first"]


class TestInRunDedupe:
    def test_stats(self, make_source, settings):
        from civic_feeds.ingestion.normalizer import EventNormalizer

        normalizer = EventNormalizer(settings)
        source = make_source()
        first = normalizer.build(source, title="Town Hall", start="2099-01-05 18:00")
        again = normalizer.build(source, title="town hall ", start="2099-01-05 18:00")
        other = normalizer.build(source, title="Town Hall", start="2099-01-12 18:00")

        deduper = create_event_deduplicator()
        assert deduper.dedupe([first, again, other]) == [first, other]
        assert deduper.stats.duplicates_removed == 1
        assert deduper.stats.duplicate_ratio == pytest.approx(1 / 3)
