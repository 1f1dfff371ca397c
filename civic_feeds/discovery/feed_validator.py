"""Feed validation and classification for discovery candidates.

Fetches a candidate URL, decides which feed format it serves from headers
and body signatures, and scores how likely it is a genuine calendar feed.
Anything below the confidence threshold is dropped silently.
"""

import asyncio
import hashlib
import logging
import re
import weakref
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..config import Settings, get_settings
from ..crawlers.content_type_detector import (
    body_matches_feed_type,
    declared_feed_extension,
    detect_feed_type,
    has_calendar_keywords,
    has_ical_markers,
    has_json_events,
    has_rss_markers,
    looks_like_html,
)
from ..crawlers.http_client import FetchResult, HttpFetcher, normalize_feed_url
from ..lib.run_context import RunContext
from ..models.locality import Locality
from ..models.source import (
    ORGANIZATION_NAMES,
    CalendarSource,
    DiscoveredFeed,
    FeedType,
    OrganizationType,
)

logger = logging.getLogger(__name__)

# Endpoints that only work with a browser session
CLIENT_SIDE_API_MARKERS = ("/api/v", "/cms/", "section_ids=")

# URLs worth a GET (they are expected to return the feed body itself)
DOWNLOAD_HINTS = (
    "download", "export", "subscribe", ".ics", ".ical", ".rss", ".xml", ".json",
    "feed", "ical", "rss", "format=", "webcal", "cid=", "=all",
)

CALENDAR_URL_HINTS = ("calendar", "events")


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def is_gov_url(url: str) -> bool:
    host = (urlparse(normalize_feed_url(url)).hostname or "").lower()
    return host.endswith(".gov")


# (pattern, points): URL-only hints that a feed covers the whole calendar
PRIORITY_PATTERNS = [
    (re.compile(r"all-calendar", re.I), 10),
    (re.compile(r"cid=all", re.I), 10),
    (re.compile(r"all-events", re.I), 8),
    (re.compile(r"(?:main|master)-?calendar", re.I), 6),
    (re.compile(r"\.ics(?:$|\?)", re.I), 5),
    (re.compile(r"icalendar(?:feed)?\.aspx", re.I), 5),
    (re.compile(r"\.rss(?:$|\?)|rssfeed", re.I), 4),
    (re.compile(r"\.xml(?:$|\?)", re.I), 3),
    (re.compile(r"calendar", re.I), 2),
    (re.compile(r"events", re.I), 2),
    (re.compile(r"\?.+"), 3),
]


def feed_priority_score(url: str) -> int:
    """Rank feed links found on one page; comprehensive feeds first."""
    return sum(points for pattern, points in PRIORITY_PATTERNS if pattern.search(url))


@dataclass(frozen=True)
class OrgContext:
    """Which organization a candidate URL is being validated for."""
    locality: Locality
    organization_type: OrganizationType
    website_url: Optional[str] = None

    @property
    def source_name(self) -> str:
        return f"{self.locality.city} {ORGANIZATION_NAMES[OrganizationType(self.organization_type)]}"


class FeedValidator:
    """Validate a single candidate URL and turn it into a DiscoveredFeed."""

    def __init__(self, fetcher: HttpFetcher, settings: Optional[Settings] = None):
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        # Origin checks are shared by candidates of one run only
        self._domain_checks: "weakref.WeakKeyDictionary[RunContext, dict[str, asyncio.Task]]" = (
            weakref.WeakKeyDictionary()
        )

    async def validate(
        self,
        url: str,
        context: OrgContext,
        ctx: Optional[RunContext] = None,
    ) -> Optional[DiscoveredFeed]:
        """Return a DiscoveredFeed for a working feed URL, or None."""
        if self.is_client_side_api(url):
            logger.debug(f"Skipping client-side API endpoint: {url}")
            return None

        fetch_url = normalize_feed_url(url)
        if not await self.domain_is_live(fetch_url, ctx):
            logger.debug(f"Owning domain not reachable for {url}")
            return None

        result = await self._probe(fetch_url, ctx)
        if result is None or not result.ok:
            return None

        if self.is_extension_mismatch(fetch_url, result):
            logger.info(f"Format mismatch, feed extension but HTML body: {url}")
            return None

        feed_type = detect_feed_type(result.content_type, result.text, result.final_url)
        confidence = self.score(feed_type, result, fetch_url)
        threshold = self.min_confidence(fetch_url)
        if confidence < threshold:
            logger.debug(f"Low confidence {confidence:.2f} < {threshold:.2f} for {url}")
            return None

        if url.lower().startswith("webcal://") and feed_type == FeedType.ICAL:
            feed_type = FeedType.WEBCAL

        logger.info(
            f"Validated {feed_type.value} feed {url} (confidence {confidence:.2f})",
            extra={"feed_url": url, "feed_type": feed_type.value, "confidence": confidence},
        )
        return DiscoveredFeed(source=self.mint_source(url, feed_type, context), confidence=confidence)

    # ── Steps ──────────────────────────────────────────────────────

    @staticmethod
    def is_client_side_api(url: str) -> bool:
        lowered = url.lower()
        return any(marker in lowered for marker in CLIENT_SIDE_API_MARKERS)

    @staticmethod
    def wants_body(url: str) -> bool:
        lowered = url.lower()
        return any(hint in lowered for hint in DOWNLOAD_HINTS)

    async def domain_is_live(self, url: str, ctx: Optional[RunContext] = None) -> bool:
        """Cheap origin check, shared by every candidate on the same host within one run."""
        origin = origin_of(url)
        if ctx is None:
            return await self._check_origin(origin, None)
        checks = self._domain_checks.setdefault(ctx, {})
        check = checks.get(origin)
        if check is None:
            check = asyncio.ensure_future(self._check_origin(origin, ctx))
            checks[origin] = check
        return await check

    async def _check_origin(self, origin: str, ctx: Optional[RunContext]) -> bool:
        try:
            result = await self.fetcher.get(origin + "/", self.settings.domain_check_timeout, ctx)
        except httpx.HTTPError as e:
            logger.debug(f"Domain check failed for {origin}: {type(e).__name__}")
            return False
        return result.ok

    async def _probe(self, url: str, ctx: Optional[RunContext]) -> Optional[FetchResult]:
        timeout = self.settings.probe_timeout
        try:
            if self.wants_body(url):
                return await self.fetcher.get(url, timeout, ctx)
            result = await self.fetcher.head(url, timeout, ctx)
            if result.status_code in (405, 501):
                # Some CMSs refuse HEAD outright
                return await self.fetcher.get(url, timeout, ctx)
            return result
        except httpx.HTTPError as e:
            logger.debug(f"Probe failed for {url}: {type(e).__name__}")
            return None

    @staticmethod
    def is_extension_mismatch(url: str, result: FetchResult) -> bool:
        """URL promises a feed file but the server answers with an HTML page."""
        if declared_feed_extension(url) not in (".ics", ".ical", ".rss", ".xml", ".atom"):
            return False
        body = result.text or ""
        is_html = "text/html" in result.content_type or looks_like_html(body)
        return is_html and not has_ical_markers(body) and not has_rss_markers(body)

    def score(self, feed_type: FeedType, result: FetchResult, url: str) -> float:
        body = result.text or ""
        keywords = has_calendar_keywords(body)
        confidence = self.settings.base_confidence

        if feed_type == FeedType.ICAL:
            if "BEGIN:VCALENDAR" in body:
                confidence = 0.95 if keywords else 0.85
            else:
                confidence = 0.9
        elif feed_type == FeedType.RSS:
            if has_rss_markers(body):
                confidence = 0.85 if keywords else 0.75
            else:
                confidence = 0.8
        elif feed_type == FeedType.JSON:
            confidence = 0.75 if has_json_events(body) else 0.7
        elif any(hint in url.lower() for hint in CALENDAR_URL_HINTS):
            confidence = 0.5

        if is_gov_url(url):
            confidence += self.settings.gov_confidence_boost
        return round(min(1.0, confidence), 4)

    def min_confidence(self, url: str) -> float:
        if any(hint in url.lower() for hint in CALENDAR_URL_HINTS):
            return self.settings.calendar_url_min_confidence
        return self.settings.default_min_confidence

    @staticmethod
    def mint_source(url: str, feed_type: FeedType, context: OrgContext) -> CalendarSource:
        locality = context.locality
        org_type = OrganizationType(context.organization_type)
        city_part = re.sub(r"[^a-z0-9]+", "-", locality.city.lower()).strip("-")
        digest = hashlib.sha1(url.encode()).hexdigest()[:10]
        return CalendarSource(
            id=f"discovered-{city_part}-{locality.state.lower()}-{org_type.value}-{digest}",
            name=context.source_name,
            city=locality.city,
            state=locality.state,
            organization_type=org_type,
            feed_type=feed_type,
            feed_url=url,
            website_url=context.website_url or origin_of(normalize_feed_url(url)),
            is_active=True,
        )

    # ── Live test (used by the registry) ───────────────────────────

    async def test_feed_working(self, source: CalendarSource, ctx: Optional[RunContext] = None) -> bool:
        """GET the source and check its body still matches its declared type."""
        url = source.feed_url or source.website_url
        if not url:
            return False
        try:
            result = await self.fetcher.get(url, self.settings.live_test_timeout, ctx)
        except httpx.HTTPError as e:
            logger.info(f"Live test failed for {source.id}: {type(e).__name__}")
            return False
        working = result.ok and body_matches_feed_type(source.feed_type, result.text)
        logger.info(f"Live test {source.id} ({FeedType(source.feed_type).value}): "
                    f"{'working' if working else 'not working'}")
        return working
