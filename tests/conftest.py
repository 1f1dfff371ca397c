"""Shared fixtures: settings, a fake web behind httpx.MockTransport, feed builders."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Optional
from urllib.parse import urlparse
import json

import httpx
import pytest

from civic_feeds.config import Settings
from civic_feeds.crawlers.http_client import HttpFetcher
from civic_feeds.models.source import CalendarSource, FeedType, OrganizationType


class FakeWeb:
    """
    Route table served through httpx.MockTransport.

    Unknown hosts fail like a DNS miss (httpx.ConnectError); unknown paths on
    a known host answer 404.
    """

    def __init__(self):
        self.routes: dict[tuple, tuple] = {}
        self.hosts: set[str] = set()
        self.requests: list[httpx.Request] = []

    @staticmethod
    def _key(host: str, path: str, query: str) -> tuple:
        return (host.lower(), path or "/", query)

    def add(
        self,
        url: str,
        body: str = "",
        status: int = 200,
        content_type: str = "text/html; charset=utf-8",
        headers: Optional[dict] = None,
    ) -> "FakeWeb":
        parsed = urlparse(url)
        self.hosts.add(parsed.hostname)
        self.routes[self._key(parsed.hostname, parsed.path, parsed.query)] = (
            status, body, content_type, headers or {},
        )
        return self

    def redirect(self, url: str, location: str, status: int = 301) -> "FakeWeb":
        return self.add(url, "", status=status, headers={"location": location})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host not in self.hosts:
            raise httpx.ConnectError(f"Name or service not known: {host}", request=request)
        key = self._key(host, request.url.path, request.url.query.decode())
        status, body, content_type, headers = self.routes.get(key, (404, "Not Found", "text/plain", {}))
        return httpx.Response(status, text=body, headers={"content-type": content_type, **headers})

    def requested_paths(self, host: str) -> list[str]:
        return [r.url.path for r in self.requests if r.url.host == host]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def settings():
    """Settings without .env, politeness delays switched off."""
    return Settings(
        _env_file=None,
        collection_batch_delay_seconds=0,
        region_delay_seconds=0,
    )


@pytest.fixture
def web():
    return FakeWeb()


@pytest.fixture
def fetcher(settings, web):
    return HttpFetcher(settings, transport=web.transport)


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_source():
    def _make(
        id: str = "springfield-city",
        feed_type: FeedType = FeedType.ICAL,
        feed_url: Optional[str] = "https://springfield.gov/calendar.ics",
        website_url: Optional[str] = "https://springfield.gov",
        city: str = "Springfield",
        state: str = "IL",
        organization_type: OrganizationType = OrganizationType.CITY,
        is_active: bool = True,
        name: str = "Springfield City Government",
    ) -> CalendarSource:
        return CalendarSource(
            id=id,
            name=name,
            city=city,
            state=state,
            organization_type=organization_type,
            feed_type=feed_type,
            feed_url=feed_url,
            website_url=website_url,
            is_active=is_active,
        )
    return _make


def _ics_stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


@pytest.fixture
def ics_body():
    """Build an iCalendar body from dicts with summary/start (+ optional end, description, location)."""
    def _build(events: list[dict]) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Springfield//City Calendar//EN"]
        for i, event in enumerate(events):
            lines += ["BEGIN:VEVENT", f"UID:event-{i}@springfield.gov", f"DTSTAMP:{_ics_stamp(event['start'])}"]
            lines.append(f"DTSTART:{_ics_stamp(event['start'])}")
            if event.get("end"):
                lines.append(f"DTEND:{_ics_stamp(event['end'])}")
            if event.get("summary"):
                lines.append(f"SUMMARY:{event['summary']}")
            if event.get("description"):
                lines.append(f"DESCRIPTION:{event['description']}")
            if event.get("location"):
                lines.append(f"LOCATION:{event['location']}")
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"
    return _build


@pytest.fixture
def rss_body():
    """Build an RSS 2.0 body from dicts with title/published (+ optional description)."""
    def _build(items: list[dict]) -> str:
        parts = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            "<title>Springfield Events</title>",
            "<link>https://springfield.gov/events</link>",
            "<description>Upcoming city events</description>",
        ]
        for i, item in enumerate(items):
            parts.append("<item>")
            parts.append(f"<title>{item['title']}</title>")
            parts.append(f"<link>https://springfield.gov/events/{i}</link>")
            if item.get("description"):
                parts.append(f"<description>{item['description']}</description>")
            parts.append(f"<pubDate>{format_datetime(item['published'])}</pubDate>")
            parts.append("</item>")
        parts.append("</channel></rss>")
        return "\n".join(parts)
    return _build


@pytest.fixture
def json_body():
    def _build(payload) -> str:
        return json.dumps(payload, default=str)
    return _build


@pytest.fixture
def future(now):
    """future(days, hour=19) → aware datetime `days` from now at a fixed UTC hour."""
    def _at(days: int, hour: int = 19) -> datetime:
        return (now + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)
    return _at


HOMEPAGE = """<!DOCTYPE html>
<html><head><title>City of Springfield, Illinois</title></head>
<body>
<h1>Welcome to the City of Springfield</h1>
<p>Find city services, pay your water bill, and read the latest news from City Hall.
Springfield is the capital of Illinois and home to 114,000 residents.</p>
</body></html>
"""


@pytest.fixture
def homepage():
    return HOMEPAGE
