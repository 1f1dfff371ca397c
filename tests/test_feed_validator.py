"""Tests for FeedValidator classification and confidence scoring."""

import asyncio

import httpx
import pytest

from civic_feeds.crawlers.http_client import HttpFetcher
from civic_feeds.discovery.feed_validator import (
    FeedValidator,
    OrgContext,
    feed_priority_score,
    is_gov_url,
)
from civic_feeds.errors import RunCancelled
from civic_feeds.lib.run_context import RunContext
from civic_feeds.models.locality import Locality
from civic_feeds.models.source import FeedType, OrganizationType


@pytest.fixture
def validator(fetcher, settings):
    return FeedValidator(fetcher, settings)


@pytest.fixture
def context():
    return OrgContext(Locality("Springfield", "IL"), OrganizationType.CITY, "https://springfield.gov")


@pytest.fixture
def council_ics(ics_body, future):
    return ics_body([
        {"summary": "City Council Meeting", "start": future(10), "description": "Regular council meeting"},
    ])


class TestConfidence:
    """Confidence scoring by format and domain."""

    @pytest.mark.asyncio
    async def test_ical_with_keywords_scores_high(self, validator, web, context, council_ics, homepage):
        web.add("https://springfield.org/", homepage)
        web.add("https://springfield.org/calendar.ics", council_ics, content_type="text/calendar")
        feed = await validator.validate("https://springfield.org/calendar.ics", context)
        assert feed is not None
        assert feed.feed_type == FeedType.ICAL
        assert feed.confidence >= 0.85

    @pytest.mark.asyncio
    async def test_gov_domain_adds_boost_capped_at_one(self, validator, web, context, council_ics, homepage):
        web.add("https://springfield.org/", homepage)
        web.add("https://springfield.org/calendar.ics", council_ics, content_type="text/calendar")
        web.add("https://springfield.gov/", homepage)
        web.add("https://springfield.gov/calendar.ics", council_ics, content_type="text/calendar")

        plain = await validator.validate("https://springfield.org/calendar.ics", context)
        gov = await validator.validate("https://springfield.gov/calendar.ics", context)
        assert gov.confidence == pytest.approx(min(plain.confidence + 0.2, 1.0))
        assert gov.confidence == 1.0

    @pytest.mark.asyncio
    async def test_gov_boost_is_exactly_point_two_below_cap(self, validator, web, context, homepage):
        body = '{"events": [{"title": "Budget hearing", "start_date": "2099-01-05T18:00:00"}]}'
        web.add("https://springfield.org/", homepage)
        web.add("https://springfield.org/events.json", body, content_type="application/json")
        web.add("https://springfield.gov/", homepage)
        web.add("https://springfield.gov/events.json", body, content_type="application/json")

        plain = await validator.validate("https://springfield.org/events.json", context)
        gov = await validator.validate("https://springfield.gov/events.json", context)
        assert plain.confidence == pytest.approx(0.75)
        assert gov.confidence == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_rss_feed(self, validator, web, context, rss_body, future, homepage):
        web.add("https://springfield.org/", homepage)
        web.add(
            "https://springfield.org/events/feed",
            rss_body([{"title": "Farmers Market", "published": future(3)}]),
            content_type="application/rss+xml",
        )
        feed = await validator.validate("https://springfield.org/events/feed", context)
        assert feed.feed_type == FeedType.RSS
        assert 0.75 <= feed.confidence <= 0.85

    @pytest.mark.asyncio
    async def test_webcal_url_is_typed_webcal(self, validator, web, context, council_ics, homepage):
        web.add("https://springfield.org/", homepage)
        web.add("https://springfield.org/calendar.ics", council_ics, content_type="text/calendar")
        feed = await validator.validate("webcal://springfield.org/calendar.ics", context)
        assert feed.feed_type == FeedType.WEBCAL
        assert feed.feed_url == "webcal://springfield.org/calendar.ics"


class TestRejections:
    """Candidates that must not produce a DiscoveredFeed."""

    @pytest.mark.asyncio
    async def test_client_side_api_is_rejected_without_request(self, validator, web, context):
        assert await validator.validate("https://springfield.gov/api/v1/events?section_ids=3", context) is None
        assert web.requests == []

    @pytest.mark.asyncio
    async def test_feed_extension_serving_html_is_rejected(self, validator, web, context, homepage):
        web.add("https://springfield.org/", homepage)
        web.add("https://springfield.org/calendar.ics", homepage)
        assert await validator.validate("https://springfield.org/calendar.ics", context) is None

    @pytest.mark.asyncio
    async def test_unreachable_domain_is_rejected(self, validator, context):
        assert await validator.validate("https://gone.example.gov/calendar.ics", context) is None

    @pytest.mark.asyncio
    async def test_missing_path_is_rejected(self, validator, web, context, homepage):
        web.add("https://springfield.org/", homepage)
        assert await validator.validate("https://springfield.org/events.rss", context) is None

    @pytest.mark.asyncio
    async def test_html_calendar_page_below_threshold(self, validator, web, context, homepage):
        """HTML scores 0.5, under the 0.6 threshold for calendar URLs."""
        web.add("https://springfield.org/", homepage)
        web.add("https://springfield.org/calendar", homepage)
        assert await validator.validate("https://springfield.org/calendar", context) is None

    @pytest.mark.asyncio
    async def test_html_calendar_page_on_gov_passes(self, validator, web, context, homepage):
        web.add("https://springfield.gov/", homepage)
        web.add("https://springfield.gov/calendar", homepage)
        feed = await validator.validate("https://springfield.gov/calendar", context)
        assert feed.feed_type == FeedType.HTML
        assert feed.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_origin_checked_once_per_host(self, validator, web, context, council_ics, homepage):
        web.add("https://springfield.org/", homepage)
        web.add("https://springfield.org/calendar.ics", council_ics, content_type="text/calendar")
        ctx = RunContext()
        await validator.validate("https://springfield.org/calendar.ics", context, ctx)
        await validator.validate("https://springfield.org/events.ics", context, ctx)
        assert web.requested_paths("springfield.org").count("/") == 1

    @pytest.mark.asyncio
    async def test_origin_checks_not_shared_between_runs(self, validator, web, homepage):
        web.add("https://springfield.org/", homepage)
        assert await validator.domain_is_live("https://springfield.org/calendar.ics", RunContext())
        assert await validator.domain_is_live("https://springfield.org/calendar.ics", RunContext())
        assert web.requested_paths("springfield.org").count("/") == 2


class TestConcurrentRuns:
    """Two discovery runs sharing one validator."""

    @pytest.mark.asyncio
    async def test_cancelling_one_run_leaves_the_other_alone(self, settings, homepage):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return httpx.Response(200, text=homepage, headers={"content-type": "text/html"})

        fetcher = HttpFetcher(settings, transport=httpx.MockTransport(handler))
        validator = FeedValidator(fetcher, settings)
        ctx_a, ctx_b = RunContext(), RunContext()

        run_a = asyncio.ensure_future(validator.domain_is_live("https://springfield.org/calendar.ics", ctx_a))
        run_b = asyncio.ensure_future(validator.domain_is_live("https://springfield.org/events.ics", ctx_b))
        for _ in range(5):
            await asyncio.sleep(0)
        ctx_a.cancel()
        release.set()

        with pytest.raises(RunCancelled):
            await run_a
        assert await run_b is True
        await fetcher.close()


class TestMintedSource:
    """The CalendarSource wrapped by a DiscoveredFeed."""

    @pytest.mark.asyncio
    async def test_source_fields(self, validator, web, context, council_ics, homepage):
        web.add("https://springfield.gov/", homepage)
        web.add("https://springfield.gov/calendar.ics", council_ics, content_type="text/calendar")
        feed = await validator.validate("https://springfield.gov/calendar.ics", context)
        source = feed.source
        assert source.id.startswith("discovered-springfield-il-city-")
        assert source.name == "Springfield City Government"
        assert (source.city, source.state) == ("Springfield", "IL")
        assert source.website_url == "https://springfield.gov"
        assert source.is_active is True


class TestLiveFeedTest:
    """test_feed_working() used by the registry."""

    @pytest.mark.asyncio
    async def test_working_ical(self, validator, web, council_ics, make_source):
        web.add("https://springfield.gov/calendar.ics", council_ics, content_type="text/calendar")
        assert await validator.test_feed_working(make_source()) is True

    @pytest.mark.asyncio
    async def test_ical_source_serving_html_fails(self, validator, web, homepage, make_source):
        web.add("https://springfield.gov/calendar.ics", homepage)
        assert await validator.test_feed_working(make_source()) is False

    @pytest.mark.asyncio
    async def test_html_source(self, validator, web, homepage, make_source):
        web.add("https://springfield.gov/calendar", homepage)
        source = make_source(feed_type=FeedType.HTML, feed_url="https://springfield.gov/calendar")
        assert await validator.test_feed_working(source) is True

    @pytest.mark.asyncio
    async def test_unreachable_feed_fails(self, validator, make_source):
        assert await validator.test_feed_working(make_source()) is False


class TestUrlHelpers:
    def test_is_gov_url(self):
        assert is_gov_url("https://www.springfield.il.gov/calendar")
        assert is_gov_url("webcal://springfield.gov/cal.ics")
        assert not is_gov_url("https://springfield.gov.example.com/")

    def test_priority_prefers_comprehensive_feeds(self):
        links = [
            "https://springfield.gov/RSSFeed.aspx?ModID=58&CID=Parks-24",
            "https://springfield.gov/iCalendarFeed.aspx?CID=All-calendar.ics",
            "https://springfield.gov/news",
        ]
        ranked = sorted(links, key=feed_priority_score, reverse=True)
        assert ranked[0].endswith("CID=All-calendar.ics")
        assert ranked[-1].endswith("/news")
