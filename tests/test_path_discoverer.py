"""Tests for feed path discovery on an organization website."""

import pytest

from civic_feeds.config import Settings
from civic_feeds.discovery.feed_validator import FeedValidator, OrgContext
from civic_feeds.discovery.path_discoverer import (
    FeedPathDiscoverer,
    STATIC_FEED_PATHS,
    is_subscription_page,
    parameter_variants,
)
from civic_feeds.models.locality import Locality
from civic_feeds.models.source import FeedType, OrganizationType


BASE = "https://springfield.gov"


def make_discoverer(fetcher, settings):
    return FeedPathDiscoverer(fetcher, FeedValidator(fetcher, settings), settings)


@pytest.fixture
def discoverer(fetcher, settings):
    return make_discoverer(fetcher, settings)


@pytest.fixture
def context():
    return OrgContext(Locality("Springfield", "IL"), OrganizationType.CITY, BASE)


@pytest.fixture
def council_ics(ics_body, future):
    return ics_body([{"summary": "City Council Meeting", "start": future(7)}])


def page(body: str) -> str:
    return f"<html><head><title>Springfield</title></head><body>{body}</body></html>"


class TestCandidateUrls:
    """Ordering, filtering and capping of candidate URLs."""

    def test_static_paths_capped(self, discoverer, homepage):
        candidates = discoverer.candidate_urls(BASE, homepage)
        assert len(candidates) == 20
        assert candidates[0] == BASE + STATIC_FEED_PATHS[0]

    def test_scraped_links_come_first(self, discoverer):
        html = page('<a href="/news/events-feed.xml">Events feed</a><a href="/about">About us</a>')
        candidates = discoverer.candidate_urls(BASE, html)
        assert candidates[0] == BASE + "/news/events-feed.xml"
        assert BASE + "/about" not in candidates

    def test_offsite_links_dropped(self, discoverer):
        html = page('<a href="https://facebook.com/springfield/events">Events on Facebook</a>')
        candidates = discoverer.candidate_urls(BASE, html)
        assert not any("facebook.com" in url for url in candidates)

    def test_department_feeds_under_calendar_path(self, fetcher):
        settings = Settings(_env_file=None, max_paths_per_domain=500)
        discoverer = make_discoverer(fetcher, settings)
        html = page('<a href="/calendar">Calendar</a>')
        candidates = discoverer.candidate_urls(BASE, html)
        assert BASE + "/calendar/city-council.ics" in candidates
        assert BASE + "/calendar/parks/rss" in candidates
        assert candidates.index(BASE + "/calendar/city-council.ics") > candidates.index(BASE + "/calendar.ics")

    def test_department_feeds_within_default_cap(self, discoverer, settings):
        html = page('<a href="/calendar">Calendar</a>')
        candidates = discoverer.candidate_urls(BASE, html)
        assert len(candidates) == settings.max_paths_per_domain
        assert BASE + "/calendar/city-council.rss" in candidates
        assert BASE + "/calendar.ics" in candidates
        assert BASE + "/events.ics" in candidates

    def test_no_department_feeds_without_calendar(self, fetcher, homepage):
        settings = Settings(_env_file=None, max_paths_per_domain=500)
        discoverer = make_discoverer(fetcher, settings)
        candidates = discoverer.candidate_urls(BASE, homepage)
        assert not any("/city-council" in url for url in candidates)

    def test_duplicates_removed(self, discoverer):
        html = page('<a href="/calendar.ics">iCal</a><a href="/calendar.ics/">iCal again</a>')
        candidates = discoverer.candidate_urls(BASE, html)
        assert len([u for u in candidates if u.rstrip("/").lower() == BASE + "/calendar.ics"]) == 1


class TestHomepageScraping:
    """Links hidden in attributes, scripts and widgets."""

    def test_link_alternate(self, discoverer):
        html = ('<html><head><link rel="alternate" type="application/rss+xml" href="/news/rss"></head>'
                '<body></body></html>')
        assert BASE + "/news/rss" in discoverer.scrape_homepage(html, BASE).urls

    def test_data_attribute_and_onclick(self, discoverer):
        html = page(
            '<button data-feed="/export/cal.ics">Add</button>'
            "<span onclick=\"window.open('/calendar/download.ics')\">Download</span>"
        )
        urls = discoverer.scrape_homepage(html, BASE).urls
        assert BASE + "/export/cal.ics" in urls
        assert BASE + "/calendar/download.ics" in urls

    def test_script_variables(self, discoverer):
        html = page(
            '<script>var feedUrl = "/feeds/city.ics";'
            'var other = decodeURIComponent("%2Fcalendar%2Fall.ics");</script>'
        )
        urls = discoverer.scrape_homepage(html, BASE).urls
        assert BASE + "/feeds/city.ics" in urls
        assert BASE + "/calendar/all.ics" in urls

    def test_google_calendar_widget(self, discoverer):
        html = page(
            '<iframe src="https://calendar.google.com/calendar/embed?'
            'src=springfieldil%40gmail.com&amp;ctz=America%2FChicago"></iframe>'
        )
        urls = discoverer.scrape_homepage(html, BASE).urls
        assert urls[0] == "https://calendar.google.com/calendar/ical/springfieldil%40gmail.com/public/basic.ics"

    def test_trumba_widget(self, discoverer):
        html = page('<script>$Trumba.addSpud({ webName: "springfield-il", spudType: "main" });</script>')
        assert discoverer.widget_feeds(html, BASE) == [
            "https://www.trumba.com/calendars/springfield-il.ics",
            "https://www.trumba.com/calendars/springfield-il.rss",
        ]

    def test_civicplus_module(self, discoverer):
        html = page('<a href="/Calendar.aspx?EID=12&amp;ModID=63">Council</a>')
        feeds = discoverer.widget_feeds(html, BASE)
        assert BASE + "/RSSFeed.aspx?ModID=63&CID=All-calendar.xml" in feeds

    def test_calendar_path_prefers_shortest(self, discoverer):
        html = page('<a href="/government/calendar/council">Council</a><a href="/calendar">Calendar</a>')
        assert discoverer.scrape_homepage(html, BASE).calendar_path == "/calendar"


class TestSubscriptionPages:
    def test_is_subscription_page(self):
        assert is_subscription_page("https://springfield.gov/iCalendar.aspx")
        assert is_subscription_page("https://springfield.gov/calendar/subscribe")
        assert not is_subscription_page("https://springfield.gov/iCalendarFeed.aspx?CID=All-calendar.ics")
        assert not is_subscription_page("https://springfield.gov/subscribe/calendar.ics")
        assert not is_subscription_page("https://springfield.gov/news")

    def test_parameter_variants_for_civicplus(self):
        variants = parameter_variants("https://springfield.gov/iCalendar.aspx")
        assert variants[0] == "https://springfield.gov/iCalendarFeed.aspx?CID=All-calendar.ics"
        assert "https://springfield.gov/iCalendar.aspx?format=ics" in variants


class TestDiscover:
    """discover() end to end against the fake web."""

    @pytest.mark.asyncio
    async def test_finds_static_ics(self, discoverer, web, context, homepage, council_ics):
        web.add(BASE + "/", homepage)
        web.add(BASE + "/calendar.ics", council_ics, content_type="text/calendar")

        feeds = await discoverer.discover(BASE + "/", context)

        assert [f.feed_url for f in feeds] == [BASE + "/calendar.ics"]
        assert feeds[0].feed_type == FeedType.ICAL

    @pytest.mark.asyncio
    async def test_follows_subscription_page_links(self, discoverer, web, context, council_ics):
        homepage = page('<a href="/calendar/subscribe">Subscribe to our calendar</a>')
        web.add(BASE + "/", homepage)
        web.add(BASE + "/calendar/subscribe", page(
            '<a href="/iCalendarFeed.aspx?CID=All-calendar.ics">All calendars</a>'
            '<a href="/RSSFeed.aspx?ModID=58&amp;CID=Parks-24">Parks</a>'
        ))
        web.add(BASE + "/iCalendarFeed.aspx?CID=All-calendar.ics", council_ics, content_type="text/calendar")

        feeds = await discoverer.discover(BASE + "/", context, homepage_html=homepage)

        urls = [f.feed_url for f in feeds]
        assert BASE + "/iCalendarFeed.aspx?CID=All-calendar.ics" in urls
        assert BASE + "/calendar/subscribe" not in urls
        assert "/calendar/subscribe" in web.requested_paths("springfield.gov")

    @pytest.mark.asyncio
    async def test_subscription_page_falls_back_to_variants(self, discoverer, web, context, council_ics):
        homepage = page('<a href="/calendar/subscribe">Subscribe</a>')
        web.add(BASE + "/", homepage)
        web.add(BASE + "/calendar/subscribe", page("<p>Use the buttons below to subscribe.</p>"))
        web.add(BASE + "/calendar/subscribe?format=ics", council_ics, content_type="text/calendar")

        feeds = await discoverer.discover(BASE + "/", context, homepage_html=homepage)

        assert BASE + "/calendar/subscribe?format=ics" in [f.feed_url for f in feeds]

    @pytest.mark.asyncio
    async def test_results_sorted_by_confidence(self, discoverer, web, context, homepage, council_ics, rss_body, future):
        web.add(BASE + "/", homepage)
        web.add(BASE + "/events.rss", rss_body([{"title": "Parade", "published": future(2)}]),
                content_type="application/rss+xml")
        web.add(BASE + "/calendar.ics", council_ics, content_type="text/calendar")
        web.add("https://springfield.gov/events.xml", rss_body([{"title": "Fair", "published": future(9)}]),
                content_type="text/xml")

        feeds = await discoverer.discover(BASE + "/", context, homepage_html=homepage)

        confidences = [f.confidence for f in feeds]
        assert confidences == sorted(confidences, reverse=True)
        assert feeds[0].feed_type == FeedType.ICAL
        assert len(feeds) == 3

    @pytest.mark.asyncio
    async def test_unreachable_site_yields_nothing(self, discoverer, context):
        assert await discoverer.discover("https://nowhere.gov/", context) == []
