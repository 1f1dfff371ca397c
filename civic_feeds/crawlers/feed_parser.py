"""Feed parsers for iCalendar, webcal, RSS/Atom and JSON event feeds.

All parsers are pure: they take the body text of an already fetched feed
and return normalized, future-only Event records, capped per feed.
Malformed bodies raise FeedParseError.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import json
import logging

import feedparser
from icalendar import Calendar

from ..config import Settings, get_settings
from ..errors import FeedParseError
from ..ingestion.normalizer import EventNormalizer
from ..models.event import Event
from ..models.source import CalendarSource, FeedType
from .content_type_detector import find_event_array, has_ical_markers

logger = logging.getLogger(__name__)

UNTITLED_EVENT = "Untitled Event"

# Field synonyms probed on JSON event items, most common first
JSON_TITLE_KEYS = ("title", "name", "summary", "event_name")
JSON_DESCRIPTION_KEYS = ("description", "summary", "details", "body", "content")
JSON_START_KEYS = ("start_date", "startDate", "start", "date", "start_time", "startTime", "dtstart", "datetime")
JSON_END_KEYS = ("end_date", "endDate", "end", "end_time", "endTime", "dtend")
JSON_LOCATION_KEYS = ("location", "venue", "address", "place", "location_name")
JSON_IMAGE_KEYS = ("image_url", "imageUrl", "image", "photo_url", "thumbnail")
JSON_ATTENDEE_KEYS = ("attendees", "attendee_count", "rsvp_count", "going")


def _first(item: dict, keys: tuple) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


class FeedParser:
    """Parser for structured event feeds."""

    def __init__(self, settings: Optional[Settings] = None, normalizer: Optional[EventNormalizer] = None):
        self.settings = settings or get_settings()
        self.normalizer = normalizer or EventNormalizer(self.settings)

    @property
    def max_events(self) -> int:
        return self.settings.max_events_per_feed

    def parse(
        self,
        feed_type: FeedType,
        body: str,
        source: CalendarSource,
        now: Optional[datetime] = None,
    ) -> list[Event]:
        """Dispatch on feed type. HTML is not handled here."""
        feed_type = FeedType(feed_type)
        if feed_type in (FeedType.ICAL, FeedType.WEBCAL):
            return self.parse_ical(body, source, now)
        if feed_type == FeedType.RSS:
            return self.parse_rss(body, source, now)
        if feed_type == FeedType.JSON:
            return self.parse_json(body, source, now)
        raise ValueError(f"FeedParser cannot parse {feed_type.value} feeds")

    # ── iCalendar ──────────────────────────────────────────────────

    def parse_ical(self, body: str, source: CalendarSource, now: Optional[datetime] = None) -> list[Event]:
        """
        Parse VEVENTs with both SUMMARY and DTSTART that start after `now`.

        DESCRIPTION/LOCATION default to filler text and "City, ST".
        """
        now = now or datetime.now(timezone.utc)
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        if not has_ical_markers(body or ""):
            raise FeedParseError("ical", "body has no BEGIN:VCALENDAR or BEGIN:VEVENT")

        # icalendar chokes on empty or invalid lines ("Content line could not be parsed into parts: ''")
        raw = body.replace("\r\n", "\n").replace("\r", "\n")
        lines = [
            line for line in raw.splitlines()
            if line.strip() and (":" in line or line.startswith((" ", "\t")))
        ]
        try:
            cal = Calendar.from_ical("\r\n".join(lines))
        except ValueError as e:
            raise FeedParseError("ical", f"unparseable calendar: {e}") from e

        events: list[Event] = []
        duration = timedelta(minutes=self.settings.ical_default_duration_minutes)
        for component in cal.walk("VEVENT"):
            try:
                event = self._parse_ical_event(component, source, now, duration)
            except Exception as e:
                logger.warning(f"Error parsing ICS event for {source.id}: {e}")
                continue
            if event:
                events.append(event)
                if len(events) >= self.max_events:
                    break

        logger.debug(f"iCal feed {source.id}: {len(events)} upcoming events")
        return events

    def _parse_ical_event(self, component, source, now, duration) -> Optional[Event]:
        summary = str(component.get("SUMMARY", "")).strip()
        dtstart = component.get("DTSTART")
        if not summary or dtstart is None:
            return None

        start = self.normalizer.normalize_datetime(dtstart.dt)
        if start is None or start <= now:
            return None

        dtend = component.get("DTEND")
        return self.normalizer.build(
            source,
            title=summary,
            start=start,
            end=dtend.dt if dtend is not None else None,
            description=str(component.get("DESCRIPTION", "")),
            location=str(component.get("LOCATION", "")),
            default_duration=duration,
        )

    # ── RSS / Atom ─────────────────────────────────────────────────

    def parse_rss(self, body: str, source: CalendarSource, now: Optional[datetime] = None) -> list[Event]:
        """
        Parse RSS <item> or Atom <entry> elements.

        The publish date is the event start; events last two hours.
        """
        now = now or datetime.now(timezone.utc)
        feed = feedparser.parse(body or "")
        if not feed.entries:
            if feed.get("bozo"):
                raise FeedParseError("rss", f"malformed feed: {feed.get('bozo_exception')}")
            return []

        events: list[Event] = []
        for entry in feed.entries:
            try:
                event = self._parse_rss_entry(entry, source, now)
            except Exception as e:
                logger.warning(f"Error parsing RSS entry for {source.id}: {e}")
                continue
            if event:
                events.append(event)
                if len(events) >= self.max_events:
                    break

        logger.debug(f"RSS feed {source.id}: {len(events)} upcoming events")
        return events

    def _parse_rss_entry(self, entry, source, now) -> Optional[Event]:
        start = (
            entry.get("published_parsed")
            or entry.get("updated_parsed")
            or entry.get("published")
            or entry.get("updated")
        )
        start_dt = self.normalizer.normalize_datetime(start)
        if start_dt is None or start_dt <= now:
            return None

        description = entry.get("description") or entry.get("summary")
        if not description and entry.get("content"):
            description = entry.content[0].get("value")

        return self.normalizer.build(
            source,
            title=entry.get("title") or UNTITLED_EVENT,
            start=start_dt,
            description=description,
            image_url=self._rss_image(entry),
            default_duration=timedelta(minutes=self.settings.default_duration_minutes),
        )

    @staticmethod
    def _rss_image(entry) -> Optional[str]:
        for media in entry.get("media_content", []) or []:
            if media.get("url"):
                return media["url"]
        for enclosure in entry.get("enclosures", []) or []:
            if str(enclosure.get("type", "")).startswith("image/") and enclosure.get("href"):
                return enclosure["href"]
        return None

    # ── JSON ───────────────────────────────────────────────────────

    def parse_json(self, body: str, source: CalendarSource, now: Optional[datetime] = None) -> list[Event]:
        """Parse the array under events|items|data (or a top-level array)."""
        now = now or datetime.now(timezone.utc)
        try:
            payload = json.loads(body or "")
        except ValueError as e:
            raise FeedParseError("json", f"invalid JSON: {e}") from e

        items = find_event_array(payload)
        if items is None:
            raise FeedParseError("json", "no events/items/data array")

        events: list[Event] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                event = self._parse_json_item(item, source, now)
            except Exception as e:
                logger.warning(f"Error parsing JSON item for {source.id}: {e}")
                continue
            if event:
                events.append(event)
                if len(events) >= self.max_events:
                    break

        logger.debug(f"JSON feed {source.id}: {len(events)} upcoming events")
        return events

    def _parse_json_item(self, item: dict, source, now) -> Optional[Event]:
        start = self.normalizer.normalize_datetime(_first(item, JSON_START_KEYS))
        if start is None or start <= now:
            return None

        description = _first(item, JSON_DESCRIPTION_KEYS)
        location = _first(item, JSON_LOCATION_KEYS)
        if isinstance(location, dict):
            location = location.get("name") or location.get("address")

        image = _first(item, JSON_IMAGE_KEYS)
        if isinstance(image, dict):
            image = image.get("url")

        return self.normalizer.build(
            source,
            title=_first(item, JSON_TITLE_KEYS) or UNTITLED_EVENT,
            start=start,
            end=_first(item, JSON_END_KEYS),
            description=description,
            location=location,
            image_url=image if isinstance(image, str) else None,
            attendees=_first(item, JSON_ATTENDEE_KEYS) or 0,
            is_free=self._json_is_free(item, description),
        )

    @staticmethod
    def _json_is_free(item: dict, description) -> bool:
        if isinstance(item.get("is_free"), bool):
            return item["is_free"]
        if isinstance(item.get("isFree"), bool):
            return item["isFree"]
        price = item.get("price", item.get("cost"))
        if isinstance(price, (int, float)):
            return price == 0
        if isinstance(price, str) and price.strip().lower() in ("0", "free", "$0", "0.00"):
            return True
        return "free" in str(description or "").lower()
