"""Date and time extraction from free text on US municipal web pages.

Handles:
- "March 3, 2026" / "Tue, Mar 3" / "3rd March 2026"
- "03/03/2026", "3/3/26", "3/3"
- ISO "2026-03-03" (optionally with a time)
- relative terms: today, tonight, tomorrow, this weekend, next week
- times next to a date: "7 PM", "6:30 - 8:00 PM", "19:00", "noon"

Dates without a year roll forward to next year once they have passed.
Dates without a time default to noon local time.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


@dataclass
class DateMatch:
    """One date found in text."""
    start: datetime
    end: Optional[datetime]
    text: str
    span: tuple[int, int]
    has_time: bool


class DateExtractor:
    """Find dates in text relative to a fixed 'now'."""

    _MONTHS: dict[str, int] = {
        'january': 1, 'february': 2, 'march': 3, 'april': 4,
        'may': 5, 'june': 6, 'july': 7, 'august': 8,
        'september': 9, 'october': 10, 'november': 11, 'december': 12,
        'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'jun': 6, 'jul': 7,
        'aug': 8, 'sep': 9, 'sept': 9, 'oct': 10, 'nov': 11, 'dec': 12,
    }

    DEFAULT_TIME = time(12, 0)

    # ── Date patterns ──────────────────────────────────────────────

    MONTH_PATTERN = (
        r'(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?'
        r'|sept(?:ember)?|sep|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)'
    )
    WEEKDAY_PATTERN = (
        r'(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday'
        r'|mon|tues?|wed|thu(?:rs?)?|fri|sat|sun)\.?'
    )

    # "Tuesday, March 3, 2026" / "Mar. 3rd" / "March 3"
    _RE_MONTH_DAY = re.compile(
        r'\b(?:' + WEEKDAY_PATTERN + r',?\s+)?'
        r'(?P<month>' + MONTH_PATTERN + r')\.?\s+(?P<day>\d{1,2})(?:st|nd|rd|th)?\b'
        r'(?:,?\s+(?P<year>\d{4})\b)?',
        re.IGNORECASE,
    )

    # "3 March 2026" / "3rd of March, 2026"
    _RE_DAY_MONTH = re.compile(
        r'\b(?:' + WEEKDAY_PATTERN + r',?\s+)?'
        r'(?P<day>\d{1,2})(?:st|nd|rd|th)?\s+(?:of\s+)?(?P<month>' + MONTH_PATTERN + r')\.?,?\s+(?P<year>\d{4})\b',
        re.IGNORECASE,
    )

    # "03/03/2026" / "3/3/26" / "3/3"
    _RE_NUMERIC = re.compile(
        r'\b(?:' + WEEKDAY_PATTERN + r',?\s+)?'
        r'(?P<month>\d{1,2})/(?P<day>\d{1,2})(?:/(?P<year>\d{4}|\d{2}))?\b(?!/)',
        re.IGNORECASE,
    )

    # "2026-03-03" / "2026-03-03T19:00"
    _RE_ISO = re.compile(
        r'\b(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})'
        r'(?:[T ](?P<hour>\d{2}):(?P<minute>\d{2}))?',
    )

    _RE_RELATIVE = re.compile(
        r'\b(?P<term>today|tonight|tomorrow|this weekend|next week)\b',
        re.IGNORECASE,
    )

    # ── Time patterns ──────────────────────────────────────────────

    _TIME = r'(?:\d{1,2}(?::\d{2})?\s*(?:a\.?m\.?|p\.?m\.?)(?![a-z])|\d{1,2}:\d{2}|noon)'

    _RE_TIME_RANGE = re.compile(
        r'(?P<start>' + _TIME + r')\s*(?:-|–|—|to|until)\s*(?P<end>' + _TIME + r')',
        re.IGNORECASE,
    )

    _RE_TIME = re.compile(_TIME, re.IGNORECASE)

    _RE_TIME_PARTS = re.compile(
        r'(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<ampm>a\.?m\.?|p\.?m\.?)?',
        re.IGNORECASE,
    )

    TIME_LOOKAHEAD = 60

    def __init__(self, now: datetime, tz=pytz.UTC, horizon_days: int = 730):
        self.now = now
        self.tz = tz
        self.local_now = now.astimezone(tz)
        self.horizon = now + timedelta(days=horizon_days)

    # ── Public API ─────────────────────────────────────────────────

    def find_all(self, text: str) -> list[DateMatch]:
        """All non-overlapping dates in `text`, in reading order."""
        if not text:
            return []
        matches: list[DateMatch] = []
        taken: list[tuple[int, int]] = []

        for pattern, builder in (
            (self._RE_ISO, self._from_iso),
            (self._RE_MONTH_DAY, self._from_named_month),
            (self._RE_DAY_MONTH, self._from_named_month),
            (self._RE_NUMERIC, self._from_numeric),
            (self._RE_RELATIVE, self._from_relative),
        ):
            for m in pattern.finditer(text):
                if any(m.start() < end and start < m.end() for start, end in taken):
                    continue
                match = builder(m, text)
                if match is None:
                    continue
                taken.append(match.span)
                matches.append(match)

        matches.sort(key=lambda dm: dm.span[0])
        return matches

    def first_upcoming(self, text: str) -> Optional[DateMatch]:
        """First date in `text` that is in the future and inside the horizon."""
        for match in self.find_all(text):
            if self.in_window(match.start):
                return match
        return None

    def in_window(self, value: datetime) -> bool:
        return self.now < value <= self.horizon

    def parse_value(self, value: str) -> Optional[datetime]:
        """Parse a machine-ish attribute value (datetime="…", data-date="…")."""
        value = (value or "").strip()
        if not value:
            return None
        if re.match(r'^\d{4}-\d{2}-\d{2}', value):
            try:
                parsed = date_parser.isoparse(value)
            except ValueError:
                parsed = None
            if parsed is not None:
                if len(value) == 10:
                    parsed = datetime.combine(parsed.date(), self.DEFAULT_TIME)
                return self._aware(parsed)
        found = self.find_all(value)
        return found[0].start if found else None

    def strip_dates(self, text: str) -> str:
        """Remove date and time fragments (for title cleanup)."""
        result = text or ""
        for match in sorted(self.find_all(result), key=lambda dm: dm.span[0], reverse=True):
            start, end = match.span
            result = result[:start] + " " + result[end:]
        result = self._RE_TIME_RANGE.sub(" ", result)
        result = self._RE_TIME.sub(" ", result)
        result = re.sub(r'\s*[@|•·]\s*', ' ', result)
        result = re.sub(r'^[\s,:;\-–—]+|[\s,:;\-–—]+$', '', result)
        return " ".join(result.split())

    # ── Builders ───────────────────────────────────────────────────

    def _from_iso(self, m: re.Match, text: str) -> Optional[DateMatch]:
        day = self._safe_date(int(m.group('year')), int(m.group('month')), int(m.group('day')))
        if day is None:
            return None
        if m.group('hour'):
            hour, minute = int(m.group('hour')), int(m.group('minute'))
            if hour > 23 or minute > 59:
                return None
            start = self._localize(day, time(hour, minute))
            return DateMatch(start, None, m.group(0), m.span(), True)
        return self._with_time(day, m, text)

    def _from_named_month(self, m: re.Match, text: str) -> Optional[DateMatch]:
        month = self._MONTHS.get(m.group('month').lower().rstrip('.'))
        if month is None:
            return None
        day = self._resolve(month, int(m.group('day')), m.group('year'))
        if day is None:
            return None
        return self._with_time(day, m, text)

    def _from_numeric(self, m: re.Match, text: str) -> Optional[DateMatch]:
        month, day_of_month = int(m.group('month')), int(m.group('day'))
        if not (1 <= month <= 12 and 1 <= day_of_month <= 31):
            return None
        day = self._resolve(month, day_of_month, m.group('year'))
        if day is None:
            return None
        return self._with_time(day, m, text)

    def _from_relative(self, m: re.Match, text: str) -> Optional[DateMatch]:
        term = m.group('term').lower()
        today = self.local_now.date()
        if term in ('today', 'tonight'):
            day = today
        elif term == 'tomorrow':
            day = today + timedelta(days=1)
        elif term == 'this weekend':
            day = today + timedelta(days=(5 - today.weekday()) % 7) if today.weekday() != 6 else today
        else:
            day = today + timedelta(days=7)

        match = self._with_time(day, m, text)
        if term == 'tonight' and not match.has_time:
            match.start = self._localize(day, time(19, 0))
        return match

    # ── Helpers ────────────────────────────────────────────────────

    def _with_time(self, day: date, m: re.Match, text: str) -> DateMatch:
        """Attach the first time found right after the date, if any."""
        tail_start = m.end()
        tail = text[tail_start:tail_start + self.TIME_LOOKAHEAD]
        start_time, end_time, time_span = self._find_time(tail)

        if start_time is None:
            return DateMatch(self._localize(day, self.DEFAULT_TIME), None, m.group(0), m.span(), False)

        start = self._localize(day, start_time)
        end = self._localize(day, end_time) if end_time else None
        if end is not None and end <= start:
            end = None
        span = (m.start(), tail_start + time_span[1])
        return DateMatch(start, end, text[span[0]:span[1]], span, True)

    def _find_time(self, segment: str) -> tuple[Optional[time], Optional[time], tuple[int, int]]:
        # Only look at the start of the segment, before the next sentence
        cut = re.search(r'[.;\n]\s+[A-Z]', segment)
        if cut:
            segment = segment[:cut.start() + 1]

        rng = self._RE_TIME_RANGE.search(segment)
        if rng:
            end = self._parse_time(rng.group('end'))
            start = self._parse_time(rng.group('start'), pm_hint=self._is_pm(rng.group('end')))
            if start is not None:
                return start, end, rng.span()

        single = self._RE_TIME.search(segment)
        if single:
            parsed = self._parse_time(single.group(0))
            if parsed is not None:
                return parsed, None, single.span()
        return None, None, (0, 0)

    @staticmethod
    def _is_pm(value: str) -> bool:
        return 'p' in value.lower() and 'noon' not in value.lower()

    def _parse_time(self, value: str, pm_hint: bool = False) -> Optional[time]:
        value = value.strip().lower()
        if value == 'noon':
            return time(12, 0)
        parts = self._RE_TIME_PARTS.match(value)
        if not parts:
            return None
        hour = int(parts.group('hour'))
        minute = int(parts.group('minute') or 0)
        ampm = (parts.group('ampm') or '').replace('.', '')
        if ampm:
            if not 1 <= hour <= 12:
                return None
            hour = hour % 12 + (12 if ampm.startswith('p') else 0)
        elif pm_hint and 1 <= hour < 12:
            hour += 12
        if hour > 23 or minute > 59:
            return None
        return time(hour, minute)

    def _resolve(self, month: int, day: int, year: Optional[str]) -> Optional[date]:
        if year:
            full_year = int(year)
            if full_year < 100:
                full_year += 2000
            return self._safe_date(full_year, month, day)

        today = self.local_now.date()
        candidate = self._safe_date(today.year, month, day)
        if candidate is not None and candidate < today:
            candidate = self._safe_date(today.year + 1, month, day)
        return candidate

    @staticmethod
    def _safe_date(year: int, month: int, day: int) -> Optional[date]:
        try:
            return date(year, month, day)
        except ValueError:
            return None

    def _localize(self, day: date, at: time) -> datetime:
        return self.tz.localize(datetime.combine(day, at))

    def _aware(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return self.tz.localize(value)
        return value
