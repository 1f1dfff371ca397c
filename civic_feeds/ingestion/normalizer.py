"""Normalization of raw feed fields into Event records."""

from datetime import date, datetime, time, timedelta
from typing import Any, Optional
import html
import re
import time as time_module

import pytz
from dateutil import parser as date_parser

from ..config import Settings, get_settings
from ..models.event import Event, format_time_of_day
from ..models.source import CalendarSource
from ..rules.categories import categorize_event


DEFAULT_DESCRIPTION = "Event details available on website"
MAX_DESCRIPTION_CHARS = 300
MAX_TITLE_CHARS = 200

_RE_TAGS = re.compile(r'<[^>]+>')


def clean_text(text: Optional[str], limit: Optional[int] = MAX_DESCRIPTION_CHARS) -> str:
    """Strip tags, decode entities, collapse whitespace and cap length."""
    if not text:
        return ""
    text = _RE_TAGS.sub(' ', str(text))
    text = html.unescape(text)
    text = ' '.join(text.split())
    if limit and len(text) > limit:
        text = text[:limit - 3].rstrip() + "..."
    return text


class EventNormalizer:
    """Build immutable Event records for one source from loosely typed fields."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tz = pytz.timezone(self.settings.timezone)

    def build(
        self,
        source: CalendarSource,
        title: Any,
        start: Any,
        end: Any = None,
        description: Any = None,
        location: Any = None,
        image_url: Optional[str] = None,
        attendees: Any = 0,
        is_free: Optional[bool] = None,
        default_duration: Optional[timedelta] = None,
    ) -> Optional[Event]:
        """
        Normalize one item. Returns None when title or start are missing.

        Missing end (or an end not after start) becomes start + default_duration.
        Missing description/location fall back to filler text and "City, ST".
        """
        title = self.normalize_title(title)
        start_dt = self.normalize_datetime(start)
        if not title or start_dt is None:
            return None

        duration = default_duration or timedelta(minutes=self.settings.default_duration_minutes)
        end_dt = self.normalize_datetime(end)
        if end_dt is None or end_dt <= start_dt:
            end_dt = start_dt + duration

        full_description = clean_text(description, limit=None)
        if is_free is None:
            is_free = "free" in full_description.lower()

        description_text = clean_text(full_description) or DEFAULT_DESCRIPTION
        location_text = clean_text(location, limit=MAX_TITLE_CHARS) or source.location_label

        try:
            attendee_count = max(0, int(attendees or 0))
        except (TypeError, ValueError):
            attendee_count = 0

        return Event(
            title=title,
            description=description_text,
            category=categorize_event(title, full_description),
            location=location_text,
            organizer=source.name,
            start_date=start_dt,
            end_date=end_dt,
            start_time=format_time_of_day(start_dt.astimezone(self.tz)),
            end_time=format_time_of_day(end_dt.astimezone(self.tz)),
            source_id=source.id,
            attendees=attendee_count,
            image_url=image_url or None,
            is_free=bool(is_free),
        )

    def normalize_title(self, title: Any) -> str:
        """Clean and normalize title."""
        return clean_text(title, limit=MAX_TITLE_CHARS)

    def normalize_datetime(self, value: Any) -> Optional[datetime]:
        """datetime / date / struct_time / string → timezone-aware datetime."""
        if value is None or value == "":
            return None

        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, date):
            dt = datetime.combine(value, time.min)
        elif isinstance(value, time_module.struct_time):
            # feedparser normalizes to UTC
            return datetime(*value[:6], tzinfo=pytz.UTC)
        elif isinstance(value, (int, float)):
            # Epoch seconds, or milliseconds from JavaScript-ish APIs
            seconds = value / 1000 if value > 10_000_000_000 else value
            return datetime.fromtimestamp(seconds, tz=pytz.UTC)
        elif isinstance(value, str):
            try:
                dt = date_parser.parse(value)
            except (ValueError, OverflowError):
                return None
        else:
            return None

        if dt.tzinfo is None:
            dt = self.tz.localize(dt)
        return dt
