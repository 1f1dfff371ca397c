"""Heuristic event extraction for arbitrary municipal HTML pages.

No two government sites mark up their calendars alike, so extraction is an
ordered list of strategies. Each strategy takes the parsed page and returns
events; the first non-empty result wins:

1. structured_selectors: event-ish CSS selectors, specific to broad
2. text_patterns: densest event-keyword region split into chunks
3. recurring_schedules: known meeting cadences when the page has no dates
4. aggressive_dates: any element whose own text carries a date
5. full_page_patterns: regex over the whole page text

Titles and surrounding text go through EventSignalFilter before anything
is emitted, and dates must be upcoming and inside the horizon.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import cached_property
from typing import Callable, Optional

from bs4 import BeautifulSoup, Tag

from ..config import Settings, get_settings
from ..ingestion.normalizer import EventNormalizer, clean_text
from ..models.event import Event
from ..models.source import CalendarSource
from ..rules.event_signals import EventSignalFilter
from ..rules.recurrence import DEFAULT_MEETING_SCHEDULES, MeetingSchedule
from .date_extractor import DateExtractor, DateMatch

logger = logging.getLogger(__name__)


@dataclass
class PageDocument:
    """A parsed page plus everything strategies need to interpret it."""
    soup: BeautifulSoup
    source: CalendarSource
    now: datetime
    dates: DateExtractor
    url: Optional[str] = None
    seen: set = field(default_factory=set)

    @cached_property
    def text(self) -> str:
        lines = (" ".join(line.split()) for line in self.soup.get_text("\n").split("\n"))
        return "\n".join(line for line in lines if line)


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    run: Callable[[PageDocument], list[Event]]


class HeuristicExtractor:
    """Extract upcoming events from HTML when no structured feed exists."""

    # Tags never holding event content
    _STRIP_TAGS = ["script", "style", "noscript", "template", "svg", "iframe", "nav", "header", "footer"]

    # Specific → broad
    STRUCTURED_SELECTORS = [
        ".event-item",
        ".calendar-event",
        ".event",
        ".events-list li",
        ".upcoming-events li",
        ".calendar-day .event",
        "[class*='event']",
        "[id*='event']",
        "td[title*='event' i]",
        "[aria-label*='event' i]",
        "article",
        "h2, h3, h4",
        "td",
        "li",
    ]

    TITLE_SELECTORS = [
        ".event-title", ".title", ".event-name", "h1", "h2", "h3", "h4", "h5",
        "a", "strong", "b",
    ]

    DATE_SELECTORS = [
        ".date", ".event-date", ".event-time", ".time", "time", "[class*='date']", "[class*='time']",
    ]

    DESCRIPTION_SELECTORS = [
        ".description", ".event-description", ".summary", ".details", "p",
    ]

    DATE_ATTRIBUTES = ("datetime", "data-date", "data-start", "data-start-date", "data-event-date", "content")

    CONTENT_REGION_SELECTORS = (
        "main, article, section, [role='main'], #content, .content, #main, .main, div"
    )

    MAX_ELEMENTS_PER_SELECTOR = 200
    MAX_BLOCK_CHARS = 1000
    MIN_CHUNK_CHARS = 12
    MAX_CHUNK_CHARS = 300
    MAX_TITLE_CHARS = 120

    # ── Full-page patterns ─────────────────────────────────────────

    _DATE_FRAGMENT = (
        r'(?:' + DateExtractor.WEEKDAY_PATTERN + r',?\s+)?'
        r'(?:' + DateExtractor.MONTH_PATTERN + r'\.?\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s+\d{4})?'
        r'|\d{1,2}/\d{1,2}(?:/\d{2,4})?)'
        r'(?:,?\s*(?:at\s+)?\d{1,2}(?::\d{2})?\s*(?:a\.?m\.?|p\.?m\.?))?'
    )

    _RE_DATE_FIRST = re.compile(
        r'(?P<date>' + _DATE_FRAGMENT + r')\s*[-–—:|]\s*(?P<title>[A-Z][^\n|.]{3,100})',
        re.IGNORECASE,
    )

    _RE_WEEKDAY_FIRST = re.compile(
        r'(?P<date>\b' + DateExtractor.WEEKDAY_PATTERN + r'[^\n]{0,30}?'
        r'(?:' + DateExtractor.MONTH_PATTERN + r'\.?\s+\d{1,2}|\d{1,2}/\d{1,2}))'
        r'[^\n]{0,20}?\b(?P<title>[A-Z][^\n.|]{8,80})',
        re.IGNORECASE,
    )

    _RE_JOIN_US = re.compile(
        r'join us (?:for|at) (?:the |our |a |an )?(?P<title>[^\n.]{4,80}?)\s+'
        r'(?:on|this|next)\s+(?P<date>[^\n.]{3,40})',
        re.IGNORECASE,
    )

    _RE_SENTENCE_SPLIT = re.compile(r'(?<=[.!?])\s+(?=[A-Z])')

    def __init__(
        self,
        settings: Optional[Settings] = None,
        normalizer: Optional[EventNormalizer] = None,
        signals: Optional[EventSignalFilter] = None,
        schedules: tuple[MeetingSchedule, ...] = DEFAULT_MEETING_SCHEDULES,
        strategies: Optional[list[ExtractionStrategy]] = None,
    ):
        self.settings = settings or get_settings()
        self.normalizer = normalizer or EventNormalizer(self.settings)
        self.signals = signals or EventSignalFilter()
        self.schedules = schedules
        self.strategies = strategies if strategies is not None else self.default_strategies()

    def default_strategies(self) -> list[ExtractionStrategy]:
        return [
            ExtractionStrategy("structured_selectors", self.scan_structured_selectors),
            ExtractionStrategy("text_patterns", self.scan_text_patterns),
            ExtractionStrategy("recurring_schedules", self.scan_recurring_schedules),
            ExtractionStrategy("aggressive_dates", self.scan_aggressive_dates),
            ExtractionStrategy("full_page_patterns", self.scan_full_page_patterns),
        ]

    def extract(
        self,
        html: str,
        source: CalendarSource,
        now: Optional[datetime] = None,
        url: Optional[str] = None,
    ) -> list[Event]:
        """Run strategies in order; return the first non-empty result."""
        doc = self.load(html, source, now, url)
        for strategy in self.strategies:
            doc.seen.clear()
            events = strategy.run(doc)
            if events:
                logger.info(f"HTML extraction for {source.id}: {len(events)} events via {strategy.name}")
                return events[:self.settings.max_html_events]
        logger.info(f"HTML extraction for {source.id}: no events found")
        return []

    def load(
        self,
        html: str,
        source: CalendarSource,
        now: Optional[datetime] = None,
        url: Optional[str] = None,
    ) -> PageDocument:
        now = now or datetime.now(timezone.utc)
        soup = BeautifulSoup(html or "", "lxml")
        for tag in soup(self._STRIP_TAGS):
            tag.decompose()
        dates = DateExtractor(now, self.normalizer.tz, self.settings.event_horizon_days)
        return PageDocument(soup=soup, source=source, now=now, dates=dates, url=url)

    # ── Strategy 1: structured selectors ───────────────────────────

    def scan_structured_selectors(self, doc: PageDocument) -> list[Event]:
        for selector in self.STRUCTURED_SELECTORS:
            events = []
            for element in doc.soup.select(selector)[:self.MAX_ELEMENTS_PER_SELECTOR]:
                event = self._event_from_element(doc, element)
                if event:
                    events.append(event)
            if events:
                logger.debug(f"Selector '{selector}' matched {len(events)} events")
                return events
        return []

    def _event_from_element(self, doc: PageDocument, element: Tag) -> Optional[Event]:
        text = self._text(element)
        if not self.MIN_CHUNK_CHARS <= len(text) <= self.MAX_BLOCK_CHARS:
            return None

        title = self._element_title(doc, element)
        if not title:
            return None

        sibling_text = self._sibling_text(element)
        start, end = self._element_date(doc, element, text, sibling_text)
        if start is None:
            return None

        description = self._element_description(element, title) or sibling_text
        if not self.signals.is_valid_content(f"{title} {text} {sibling_text}"):
            return None

        return self._emit(doc, title, start, end, description)

    def _element_title(self, doc: PageDocument, element: Tag) -> Optional[str]:
        candidates = []
        if element.name in ("h1", "h2", "h3", "h4", "h5", "a", "strong"):
            candidates.append(self._text(element))
        for selector in self.TITLE_SELECTORS:
            found = element.select_one(selector)
            if found is not None:
                candidates.append(self._text(found))
        candidates.extend(self._lines(element)[:3])

        for candidate in candidates:
            title = self._clean_title(doc, candidate)
            if self.signals.is_valid_title(title):
                return title
        return None

    def _element_date(
        self,
        doc: PageDocument,
        element: Tag,
        text: str,
        sibling_text: str,
    ) -> tuple[Optional[datetime], Optional[datetime]]:
        # 1. machine-readable attributes
        nodes = [element] + element.select(
            "[datetime], [data-date], [data-start], [data-start-date], [data-event-date], [itemprop='startDate']"
        )
        for node in nodes:
            for attr in self.DATE_ATTRIBUTES:
                value = node.get(attr)
                if isinstance(value, str):
                    parsed = doc.dates.parse_value(value)
                    if parsed and doc.dates.in_window(parsed):
                        return parsed, None

        # 2. nested date-like children
        date_texts = [self._text(found) for selector in self.DATE_SELECTORS for found in element.select(selector)]
        if date_texts:
            match = doc.dates.first_upcoming(" ".join(date_texts))
            if match:
                return match.start, match.end

        # 3. patterns in the element's own text, then the next sibling's
        for candidate in (text, sibling_text):
            match = doc.dates.first_upcoming(candidate)
            if match:
                return match.start, match.end
        return None, None

    def _element_description(self, element: Tag, title: str) -> str:
        for selector in self.DESCRIPTION_SELECTORS:
            for found in element.select(selector):
                text = self._text(found)
                if text and text != title and len(text) > 20:
                    return text
        return ""

    def _sibling_text(self, element: Tag) -> str:
        sibling = element.find_next_sibling()
        if sibling is None:
            return ""
        text = self._text(sibling)
        return text if len(text) <= self.MAX_BLOCK_CHARS else ""

    # ── Strategy 2: text patterns in the densest region ────────────

    def scan_text_patterns(self, doc: PageDocument) -> list[Event]:
        region = self._densest_region(doc)
        if region is None:
            return []

        events = []
        for chunk in self._chunks(self._lines(region)):
            if not self.MIN_CHUNK_CHARS <= len(chunk) <= self.MAX_CHUNK_CHARS:
                continue
            match = doc.dates.first_upcoming(chunk)
            if match is None or not self.signals.is_valid_content(chunk):
                continue
            title = self._title_from_chunk(doc, chunk, match)
            if title:
                event = self._emit(doc, title, match.start, match.end, chunk)
                if event:
                    events.append(event)
        return events

    def _densest_region(self, doc: PageDocument) -> Optional[Tag]:
        best, best_density = None, 0.0
        for region in doc.soup.select(self.CONTENT_REGION_SELECTORS):
            text = self._text(region)
            if len(text) < 100:
                continue
            hits = self.signals.count_event_nouns(text)
            if hits < 2:
                continue
            density = hits * 1000 / max(len(text), 500)
            if density > best_density:
                best, best_density = region, density
        return best

    def _chunks(self, lines: list[str]) -> list[str]:
        """Sentence-sized chunks; a dateless line is also tried joined with the next one."""
        chunks = []
        for index, line in enumerate(lines):
            sentences = self._RE_SENTENCE_SPLIT.split(line)
            chunks.extend(sentences)
            if index + 1 < len(lines) and len(line) < self.MAX_TITLE_CHARS:
                chunks.append(f"{line} - {lines[index + 1]}")
        return chunks

    # ── Strategy 3: recurring meeting schedules ────────────────────

    def scan_recurring_schedules(self, doc: PageDocument) -> list[Event]:
        """Known meeting cadences, used only when the page carries no upcoming date."""
        if doc.dates.first_upcoming(doc.text):
            return []

        events = []
        for schedule in self.schedules:
            if not schedule.matches(doc.text):
                continue
            for start in schedule.next_occurrences(doc.now, self.normalizer.tz):
                event = self._emit(
                    doc, schedule.name, start, start + schedule.duration, schedule.description, validate=False,
                )
                if event:
                    events.append(event)
        return events

    # ── Strategy 4: aggressive date scan ───────────────────────────

    def scan_aggressive_dates(self, doc: PageDocument) -> list[Event]:
        root = doc.soup.body or doc.soup
        events = []
        for element in root.find_all(True):
            own_text = " ".join(
                " ".join(s.split()) for s in element.find_all(string=True, recursive=False) if s.strip()
            )
            if len(own_text) < 6:
                continue
            match = doc.dates.first_upcoming(own_text)
            if match is None:
                continue

            sentence = self._sentence_around(own_text, match)
            title = self._title_from_chunk(doc, sentence, match)
            if not title:
                full_text = self._text(element)
                if len(full_text) <= self.MAX_BLOCK_CHARS:
                    title = self._clean_title(doc, full_text)
            if title and self.signals.is_valid_title(title):
                event = self._emit(doc, title, match.start, match.end, sentence)
                if event:
                    events.append(event)
        return events

    def _sentence_around(self, text: str, match: DateMatch) -> str:
        start, end = match.span
        left = max(text.rfind(". ", 0, start), text.rfind("! ", 0, start))
        right_candidates = [i for i in (text.find(". ", end), text.find("! ", end)) if i != -1]
        right = min(right_candidates) + 1 if right_candidates else len(text)
        return text[left + 2 if left != -1 else 0:right].strip()

    # ── Strategy 5: full-page patterns ─────────────────────────────

    def scan_full_page_patterns(self, doc: PageDocument) -> list[Event]:
        events = []
        for pattern in (self._RE_DATE_FIRST, self._RE_WEEKDAY_FIRST, self._RE_JOIN_US):
            for m in pattern.finditer(doc.text):
                match = doc.dates.first_upcoming(m.group("date"))
                if match is None:
                    continue
                title = self._clean_title(doc, m.group("title"))
                if not self.signals.is_valid_title(title):
                    continue
                event = self._emit(doc, title, match.start, match.end, m.group(0))
                if event:
                    events.append(event)
        return events

    # ── Helpers ────────────────────────────────────────────────────

    def _emit(
        self,
        doc: PageDocument,
        title: str,
        start: datetime,
        end: Optional[datetime],
        description: str,
        validate: bool = True,
    ) -> Optional[Event]:
        if validate and not self.signals.is_valid_title(title):
            return None
        if not doc.dates.in_window(start):
            return None
        key = (title.lower(), start)
        if key in doc.seen:
            return None
        doc.seen.add(key)
        return self.normalizer.build(
            doc.source,
            title=title,
            start=start,
            end=end,
            description=description,
            default_duration=timedelta(minutes=self.settings.default_duration_minutes),
        )

    def _title_from_chunk(self, doc: PageDocument, chunk: str, match: DateMatch) -> Optional[str]:
        """Text before the date if it reads like a title, else the text after it."""
        offset = chunk.find(match.text)
        before, after = (chunk[:offset], chunk[offset + len(match.text):]) if offset >= 0 else (chunk, "")
        for candidate in (before, after, chunk):
            title = self._clean_title(doc, candidate)
            if self.signals.is_valid_title(title):
                return title
        return None

    def _clean_title(self, doc: PageDocument, text: str) -> str:
        title = doc.dates.strip_dates(clean_text(text, limit=None))
        title = re.split(r'(?<=[a-z)])[.!?]\s', title)[0]
        title = title.strip(" -–—:|,;")
        if len(title) > self.MAX_TITLE_CHARS:
            title = title[:self.MAX_TITLE_CHARS].rsplit(" ", 1)[0]
        return title

    @staticmethod
    def _text(element: Tag) -> str:
        return " ".join(element.get_text(" ").split())

    @staticmethod
    def _lines(element: Tag) -> list[str]:
        lines = (" ".join(line.split()) for line in element.get_text("\n").split("\n"))
        return [line for line in lines if line]
