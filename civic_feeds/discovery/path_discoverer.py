"""Feed path discovery on a validated organization website.

Candidate feed URLs come from these places, in this order:

- links, data attributes, onclick handlers and scripts on the homepage,
  including embedded third-party calendar widgets
- a static list of common calendar/feed paths (CMS conventions included),
  alternated with department feeds under a detected calendar path

At most `max_paths_per_domain` candidates are probed. Subscription pages
("subscribe", iCalendar.aspx, ...) are followed one hop: their feed links
are validated instead of the page itself, with query-parameter variants as
a last resort.
"""

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from itertools import zip_longest
from typing import Optional
from urllib.parse import unquote, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ..config import Settings, get_settings
from ..crawlers.content_type_detector import declared_feed_extension
from ..crawlers.http_client import HttpFetcher
from ..errors import RunCancelled
from ..lib.run_context import RunContext
from ..models.source import DiscoveredFeed
from .feed_validator import FeedValidator, OrgContext, feed_priority_score, origin_of

logger = logging.getLogger(__name__)


# Ordered by how often they turn out to be real feeds
STATIC_FEED_PATHS = [
    "/calendar.ics",
    "/events.ics",
    "/calendar/feed",
    "/events/feed",
    "/calendar.rss",
    "/events.rss",
    "/calendar/ical",
    "/events/ical",
    "/calendar/rss",
    "/events/rss",
    "/calendar.xml",
    "/events.xml",
    "/iCalendar.aspx",
    "/RSSFeed.aspx?ModID=58&CID=All-calendar.xml",
    "/events/?ical=1",
    "/events/list/?ical=1",
    "/?feed=calendar",
    "/feed/?post_type=event",
    "/calendar/events.ics",
    "/calendar/all.ics",
    "/feeds/calendar",
    "/feeds/events",
    "/feed/calendar",
    "/calendar/export",
    "/events/export",
    "/calendar/download",
    "/calendar/subscribe",
    "/events/subscribe",
    "/calendar?format=ics",
    "/events?format=ics",
    "/calendar?format=rss",
    "/calendar.json",
    "/events.json",
    "/calendar/calendar.ics",
    "/modules/calendar/calendar.ics",
    "/calendar/ics",
    "/ics/calendar.ics",
    "/rss/calendar",
    "/rss/events",
    "/rss.aspx",
    "/rss.xml",
    "/feed",
    "/feed.xml",
    "/events/feed.xml",
    "/calendar/feed.xml",
    "/calendar/all/feed",
    "/index.php/calendar.ics",
    "/site/calendar.ics",
    "/community-calendar.ics",
    "/community-calendar/feed",
    "/city-calendar.ics",
    "/calendar/city-calendar.ics",
    "/Calendar.aspx",
    "/calendar",
    "/events",
    "/community-calendar",
    "/calendar-of-events",
    "/upcoming-events",
]

DEPARTMENTS = [
    "all", "main-calendar", "city-calendar", "city-council", "planning",
    "building", "fire", "police", "public-works", "parks", "library",
    "utilities", "administration", "mayor", "clerk",
]

DEPARTMENT_SUFFIXES = (".rss", ".ics", "/rss", "/ical")

FEED_LINK_KEYWORDS = (
    "calendar", "event", "ical", ".ics", "rss", ".xml", "feed", "subscribe",
    "export", "download", "webcal",
)

SUBSCRIPTION_PAGE_MARKERS = ("subscribe", "icalendar.aspx", "rss.aspx", "calendar.aspx", "/subscription", "notifyme")

# Known feed endpoints that contain subscription-page markers themselves
FEED_ENDPOINT_MARKERS = ("icalendarfeed.aspx", "rssfeed.aspx")

QUERY_VARIANTS = ("?format=ics", "?CID=all", "?calendar=all", "?type=all", "?export=ics", "?format=rss")

_RE_FEED_ENDPOINT = re.compile(
    r"\.(?:ics|ical|rss|xml)(?:$|[?#])|icalendarfeed\.aspx|rssfeed\.aspx"
    r"|/(?:feed|ical|rss)/?(?:$|\?)|format=(?:ics|ical|rss)|^webcal:",
    re.IGNORECASE,
)

_RE_SCRIPT_FEED_FILE = re.compile(
    r"[\"']((?:https?:|webcal:)?/?/?[^\"'\s<>()]*?\.(?:ics|rss|xml)(?:\?[^\"'\s<>]*)?)[\"']",
    re.IGNORECASE,
)
_RE_SCRIPT_FEED_VAR = re.compile(
    r"(?:feedUrl|calendarUrl|icalUrl|icsUrl|rssUrl|eventsUrl|calendarFeed|feed_url|calendar_url)"
    r"\s*[:=]\s*[\"']([^\"']+)[\"']",
    re.IGNORECASE,
)
_RE_ONCLICK_URL = re.compile(
    r"(?:window\.open|location\.href\s*=|location\.assign|downloadFile|subscribe\w*)\s*\(?\s*[\"']([^\"']+)[\"']",
    re.IGNORECASE,
)
_RE_ATOB = re.compile(r"atob\(\s*[\"']([A-Za-z0-9+/=]{8,})[\"']\s*\)")
_RE_DECODE_URI = re.compile(r"decodeURI(?:Component)?\(\s*[\"']([^\"']+)[\"']\s*\)")

# Script references that point at APIs rather than feed files
_SCRIPT_URL_EXCLUDES = ("/api/", "/v2/", "/v4/", ".min.", "sitemap")


@dataclass(frozen=True)
class CalendarWidget:
    """A hosted calendar service recognizable from its embed configuration."""
    name: str
    pattern: re.Pattern
    feed_templates: tuple[str, ...]


CALENDAR_WIDGETS = [
    CalendarWidget(
        name="google_calendar",
        pattern=re.compile(
            r"calendar\.google\.com/calendar/(?:u/\d/)?embed\?[^\"'\s>]*?src=(?P<calendar_id>[^&\"'\s>]+)",
            re.IGNORECASE,
        ),
        feed_templates=("https://calendar.google.com/calendar/ical/{calendar_id}/public/basic.ics",),
    ),
    CalendarWidget(
        name="trumba",
        pattern=re.compile(
            r"\$Trumba\.addSpud\(\s*\{[^}]*?webName\s*:\s*[\"'](?P<web_name>[\w.\-]+)[\"']",
            re.IGNORECASE,
        ),
        feed_templates=(
            "https://www.trumba.com/calendars/{web_name}.ics",
            "https://www.trumba.com/calendars/{web_name}.rss",
        ),
    ),
    # CivicPlus: the subscribe button opens iCalendar.aspx, which lists the real feeds
    CalendarWidget(
        name="civicplus",
        pattern=re.compile(
            r"(?:Calendar|iCalendar|RSSFeed)\.aspx\?[^\"'\s>]*?ModID=(?P<module_id>\d+)",
            re.IGNORECASE,
        ),
        feed_templates=(
            "{origin}/iCalendar.aspx",
            "{origin}/RSSFeed.aspx?ModID={module_id}&CID=All-calendar.xml",
        ),
    ),
]

WIDGET_HOSTS = ("calendar.google.com", "www.trumba.com", "trumba.com")


@dataclass
class HomepageLinks:
    """Feed candidates scraped from a homepage."""
    urls: list[str]
    calendar_path: Optional[str] = None


def is_subscription_page(url: str) -> bool:
    """Human-facing 'subscribe' page rather than a feed file."""
    lowered = url.lower()
    if declared_feed_extension(url) is not None:
        return False
    if any(marker in lowered for marker in FEED_ENDPOINT_MARKERS):
        return False
    return any(marker in lowered for marker in SUBSCRIPTION_PAGE_MARKERS)


def parameter_variants(url: str) -> list[str]:
    """Query-string guesses for a subscription page that exposed no links."""
    base = url.split("?", 1)[0]
    variants = [base + query for query in QUERY_VARIANTS]
    lowered = base.lower()
    if lowered.endswith("icalendar.aspx"):
        prefix = base[:-len("iCalendar.aspx")]
        variants.insert(0, prefix + "iCalendarFeed.aspx?CID=All-calendar.ics")
    elif lowered.endswith("rss.aspx"):
        prefix = base[:-len("rss.aspx")]
        variants.insert(0, prefix + "RSSFeed.aspx?ModID=58&CID=All-calendar.xml")
    return variants


class FeedPathDiscoverer:
    """Find and validate feed URLs on one organization website."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        validator: FeedValidator,
        settings: Optional[Settings] = None,
    ):
        self.fetcher = fetcher
        self.validator = validator
        self.settings = settings or get_settings()

    async def discover(
        self,
        base_url: str,
        context: OrgContext,
        homepage_html: Optional[str] = None,
        ctx: Optional[RunContext] = None,
    ) -> list[DiscoveredFeed]:
        """Every validated feed on the site, highest confidence first."""
        if homepage_html is None:
            homepage_html = await self._fetch_homepage(base_url, ctx)

        candidates = self.candidate_urls(base_url, homepage_html)
        logger.info(f"Probing {len(candidates)} candidate feed URLs on {base_url}")

        feeds = await self._validate_all(candidates, context, ctx, follow_subscriptions=True)
        return self._dedupe(feeds)

    def candidate_urls(self, base_url: str, homepage_html: str) -> list[str]:
        origin = origin_of(base_url)
        scraped = self.scrape_homepage(homepage_html, base_url) if homepage_html else HomepageLinks([])

        ordered = list(scraped.urls)
        static = [origin + path for path in STATIC_FEED_PATHS]
        if scraped.calendar_path:
            departments = [
                f"{origin}{scraped.calendar_path}/{department}{suffix}"
                for suffix in DEPARTMENT_SUFFIXES
                for department in DEPARTMENTS
            ]
            # Alternate so department feeds get a share of the per-domain cap
            ordered.extend(url for pair in zip_longest(static, departments) for url in pair if url)
        else:
            ordered.extend(static)

        seen = set()
        unique = []
        for url in ordered:
            key = url.rstrip("/").lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(url)
        return unique[:self.settings.max_paths_per_domain]

    # ── Homepage scraping ──────────────────────────────────────────

    def scrape_homepage(self, html: str, base_url: str) -> HomepageLinks:
        soup = BeautifulSoup(html, "lxml")
        refs: list[str] = []

        for anchor in soup.find_all("a", href=True):
            label = " ".join([anchor.get_text(" "), anchor.get("title", ""), anchor.get("aria-label", "")])
            if self._has_feed_keyword(anchor["href"]) or self._has_feed_keyword(label):
                refs.append(anchor["href"])

        for link in soup.find_all("link", href=True):
            rel = " ".join(link.get("rel", [])).lower()
            link_type = (link.get("type") or "").lower()
            if "alternate" in rel and any(t in link_type for t in ("rss", "atom", "calendar")):
                refs.append(link["href"])

        for element in soup.select("[data-url], [data-href], [data-feed], [data-ical]"):
            for attr in ("data-url", "data-href", "data-feed", "data-ical"):
                value = element.get(attr)
                if value and self._has_feed_keyword(value):
                    refs.append(value)

        for element in soup.select("[onclick]"):
            refs.extend(_RE_ONCLICK_URL.findall(element["onclick"]))

        for form in soup.find_all("form", action=True):
            if self._has_feed_keyword(form["action"]):
                refs.append(form["action"])

        for hidden in soup.select("input[type='hidden'][value]"):
            if _RE_FEED_ENDPOINT.search(hidden["value"]):
                refs.append(hidden["value"])

        for script in soup.find_all("script"):
            refs.extend(self._script_refs(script.get_text()))

        urls = self._resolve(refs, base_url)
        urls = self.widget_feeds(html, base_url) + urls
        return HomepageLinks(urls=urls, calendar_path=self._calendar_path(urls, base_url, soup))

    def widget_feeds(self, html: str, base_url: str) -> list[str]:
        """Feed URLs implied by embedded calendar widgets."""
        origin = origin_of(base_url)
        urls = []
        for widget in CALENDAR_WIDGETS:
            for match in widget.pattern.finditer(html or ""):
                values = {"origin": origin, **match.groupdict()}
                for template in widget.feed_templates:
                    url = template.format(**values)
                    if url not in urls:
                        logger.debug(f"Widget {widget.name} on {base_url}: {url}")
                        urls.append(url)
        return urls

    @staticmethod
    def _script_refs(code: str) -> list[str]:
        refs = []
        for ref in _RE_SCRIPT_FEED_FILE.findall(code):
            if not any(excluded in ref.lower() for excluded in _SCRIPT_URL_EXCLUDES):
                refs.append(ref)
        refs.extend(_RE_SCRIPT_FEED_VAR.findall(code))
        for encoded in _RE_ATOB.findall(code):
            try:
                decoded = base64.b64decode(encoded).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                continue
            if _RE_FEED_ENDPOINT.search(decoded):
                refs.append(decoded)
        for encoded in _RE_DECODE_URI.findall(code):
            decoded = unquote(encoded)
            if _RE_FEED_ENDPOINT.search(decoded):
                refs.append(decoded)
        return refs

    @staticmethod
    def _has_feed_keyword(text: str) -> bool:
        lowered = (text or "").lower()
        return any(keyword in lowered for keyword in FEED_LINK_KEYWORDS)

    def _resolve(self, refs: list[str], base_url: str) -> list[str]:
        """Absolute, same-site (or known widget host) URLs without fragments."""
        base_host = (urlparse(base_url).hostname or "").lower()
        site = base_host[4:] if base_host.startswith("www.") else base_host
        urls = []
        for ref in refs:
            ref = ref.strip()
            if not ref or ref.startswith(("#", "javascript:", "mailto:", "tel:")):
                continue
            absolute = urljoin(base_url, ref).split("#", 1)[0]
            parsed = urlparse(absolute)
            if parsed.scheme not in ("http", "https", "webcal"):
                continue
            host = (parsed.hostname or "").lower()
            if not (host == site or host.endswith("." + site) or host in WIDGET_HOSTS):
                continue
            if absolute not in urls:
                urls.append(absolute)
        return urls

    @staticmethod
    def _calendar_path(urls: list[str], base_url: str, soup: BeautifulSoup) -> Optional[str]:
        """Shortest same-site path containing 'calendar', else /calendar if the page mentions one."""
        base_host = (urlparse(base_url).hostname or "").lower()
        paths = []
        for url in urls:
            parsed = urlparse(url)
            if (parsed.hostname or "").lower() != base_host or "calendar" not in parsed.path.lower():
                continue
            path = re.sub(r"\.[a-z]{2,5}$", "", parsed.path.rstrip("/"), flags=re.IGNORECASE)
            if path:
                paths.append(path)
        if paths:
            return min(paths, key=len)
        if "calendar" in soup.get_text(" ").lower():
            return "/calendar"
        return None

    # ── Subscription pages ─────────────────────────────────────────

    async def follow_subscription_page(
        self,
        url: str,
        context: OrgContext,
        ctx: Optional[RunContext] = None,
    ) -> list[DiscoveredFeed]:
        """Validate the feeds a subscribe page links to (one hop only)."""
        links: list[str] = []
        try:
            page = await self.fetcher.get(url, self.settings.subscription_page_timeout, ctx)
            if page.ok:
                links = self.extract_feed_links(page.text, page.final_url)
        except httpx.HTTPError as e:
            logger.debug(f"Subscription page {url} unreachable: {type(e).__name__}")

        if links:
            links.sort(key=feed_priority_score, reverse=True)
            links = links[:self.settings.max_subscription_links]
            logger.info(f"Subscription page {url}: {len(links)} feed links")
            feeds = await self._validate_all(links, context, ctx, follow_subscriptions=False)
            if feeds:
                return feeds

        return await self._validate_all(parameter_variants(url), context, ctx, follow_subscriptions=False)

    def extract_feed_links(self, html: str, page_url: str) -> list[str]:
        """Anchor, data-attribute and script URLs matching feed conventions."""
        soup = BeautifulSoup(html or "", "lxml")
        refs = [a["href"] for a in soup.find_all("a", href=True)]
        for element in soup.select("[data-url], [data-href]"):
            refs.append(element.get("data-url") or element.get("data-href"))
        for element in soup.select("[onclick]"):
            refs.extend(_RE_ONCLICK_URL.findall(element["onclick"]))
        for script in soup.find_all("script"):
            refs.extend(self._script_refs(script.get_text()))

        candidates = [ref for ref in refs if ref and _RE_FEED_ENDPOINT.search(ref.strip())]
        return self._resolve(candidates, page_url)

    # ── Validation fan-out ─────────────────────────────────────────

    async def _validate_all(
        self,
        urls: list[str],
        context: OrgContext,
        ctx: Optional[RunContext],
        follow_subscriptions: bool,
    ) -> list[DiscoveredFeed]:
        semaphore = asyncio.Semaphore(self.settings.collection_batch_size)

        async def check_one(url: str) -> list[DiscoveredFeed]:
            async with semaphore:
                if follow_subscriptions and is_subscription_page(url):
                    return await self.follow_subscription_page(url, context, ctx)
                feed = await self.validator.validate(url, context, ctx)
                return [feed] if feed else []

        results = await asyncio.gather(*(check_one(url) for url in urls), return_exceptions=True)

        feeds = []
        for url, result in zip(urls, results):
            if isinstance(result, (RunCancelled, asyncio.CancelledError)):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Candidate {url} failed: {result}")
                continue
            feeds.extend(result)
        return feeds

    async def _fetch_homepage(self, base_url: str, ctx: Optional[RunContext]) -> str:
        try:
            result = await self.fetcher.get(base_url, self.settings.homepage_timeout, ctx)
        except httpx.HTTPError as e:
            logger.debug(f"Homepage {base_url} unreachable: {type(e).__name__}")
            return ""
        if not result.ok or len(result.text) < self.settings.min_website_bytes:
            return ""
        return result.text

    @staticmethod
    def _dedupe(feeds: list[DiscoveredFeed]) -> list[DiscoveredFeed]:
        best: dict[str, DiscoveredFeed] = {}
        for feed in feeds:
            key = (feed.feed_url or "").lower()
            if key not in best or feed.confidence > best[key].confidence:
                best[key] = feed
        return sorted(best.values(), key=lambda f: f.confidence, reverse=True)
