"""
Detects what kind of feed a URL returns (iCal, RSS/Atom, JSON or HTML).

Used by the feed validator to classify discovery candidates and by the
registry's live test to confirm a source still serves its declared format.
"""

import json
import re
from typing import Optional
from urllib.parse import urlparse

from ..models.source import FeedType

SNIPPET_SIZE = 8192  # first 8 KB enough to detect format

FEED_EXTENSIONS = (".ics", ".ical", ".rss", ".xml", ".atom", ".json")

EVENT_ARRAY_KEYS = ("events", "items", "data")

CALENDAR_KEYWORDS = ("vevent", "dtstart", "summary:", "meeting", "council", "calendar", "event")

_RE_RSS_ROOT = re.compile(r"<(?:rss|feed|rdf:rdf)[\s>]", re.IGNORECASE)
_RE_RSS_ITEM = re.compile(r"<(?:item|entry)[\s>]", re.IGNORECASE)


def find_event_array(payload) -> Optional[list]:
    """Event list inside a JSON payload: events|items|data key, or the payload itself."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in EVENT_ARRAY_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
            if isinstance(value, dict):
                nested = find_event_array(value)
                if nested is not None:
                    return nested
    return None


def looks_like_html(body: str) -> bool:
    head = (body or "")[:2000].lower()
    return "<!doctype html" in head or "<html" in head or "<body" in head


def has_ical_markers(body: str) -> bool:
    return "BEGIN:VCALENDAR" in (body or "") or "BEGIN:VEVENT" in (body or "")


def has_rss_markers(body: str) -> bool:
    snippet = (body or "")[:SNIPPET_SIZE]
    if _RE_RSS_ROOT.search(snippet):
        return True
    return not looks_like_html(snippet) and bool(_RE_RSS_ITEM.search(snippet))


def has_json_events(body: str) -> bool:
    stripped = (body or "").lstrip()
    if not stripped.startswith(("{", "[")):
        return False
    try:
        payload = json.loads(body)
    except ValueError:
        return False
    return find_event_array(payload) is not None


def has_calendar_keywords(body: str) -> bool:
    lowered = (body or "")[:SNIPPET_SIZE * 4].lower()
    return any(keyword in lowered for keyword in CALENDAR_KEYWORDS)


def declared_feed_extension(url: str) -> Optional[str]:
    """'.ics' for '/calendar.ics?x=1', None when the path has no feed extension."""
    path = urlparse(url).path.lower()
    for ext in FEED_EXTENSIONS:
        if path.endswith(ext):
            return ext
    return None


def detect_feed_type(
    content_type_header: Optional[str],
    body: str,
    url: str = "",
) -> FeedType:
    """
    Classify a response from its Content-Type header and body signature.

    URL hints are only consulted when there is no body (HEAD probes).
    """
    header = (content_type_header or "").lower()
    body = body or ""

    if "text/calendar" in header or "application/ics" in header:
        return FeedType.ICAL
    if has_ical_markers(body[:SNIPPET_SIZE * 4]):
        return FeedType.ICAL
    if "rss+xml" in header or "atom+xml" in header:
        return FeedType.RSS
    if has_rss_markers(body):
        return FeedType.RSS
    if "json" in header or has_json_events(body):
        return FeedType.JSON

    if not body.strip():
        path = urlparse(url).path.lower()
        ext = declared_feed_extension(url)
        if ext in (".ics", ".ical"):
            return FeedType.ICAL
        if ext in (".rss", ".xml", ".atom") or "rss" in path or "xml" in header:
            return FeedType.RSS
        if ext == ".json":
            return FeedType.JSON

    return FeedType.HTML


def body_matches_feed_type(feed_type: FeedType, body: str) -> bool:
    """Live-test content check: does the body still look like its declared format?"""
    feed_type = FeedType(feed_type)
    if feed_type in (FeedType.ICAL, FeedType.WEBCAL):
        return has_ical_markers(body)
    if feed_type == FeedType.RSS:
        return has_rss_markers(body)
    if feed_type == FeedType.JSON:
        return has_json_events(body)
    return len(body or "") > 100 and "<" in body
