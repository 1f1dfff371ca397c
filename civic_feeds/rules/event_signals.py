"""Validity predicates for text mined out of arbitrary HTML.

Two named predicates decide whether scraped text is an event:

- is_administrative_phrase: navigation, legal and service boilerplate that
  government sites repeat on every page (deny-list).
- has_event_signal: an event noun next to a date/time/weekday token, or an
  explicit scheduling phrase (require-list).

Both are backed by plain data tables so rules can be extended per site
without touching the extractor's control flow.
"""

from dataclasses import dataclass, field
import re


@dataclass
class SignalResult:
    """Why a piece of text was accepted or rejected."""
    is_event: bool
    reason: str
    matched: list[str] = field(default_factory=list)


class EventSignalFilter:
    """Keyword-table based event/non-event filter."""

    # Substrings that mark boilerplate, never an event
    ADMINISTRATIVE_PHRASES = [
        "privacy policy", "terms of use", "terms of service", "cookie policy",
        "accessibility statement", "site map", "sitemap",
        "skip to content", "skip to main content", "skip navigation",
        "staff directory", "employee directory", "contact us", "contact information",
        "all rights reserved", "copyright", "powered by",
        "sign in", "log in", "login", "create an account", "my account",
        "pay your bill", "pay utility bill", "online payments", "pay online",
        "job openings", "employment opportunities", "careers",
        "agenda center", "agendas & minutes", "agendas and minutes", "archive center",
        "notify me", "news flash", "document center", "frequently asked questions",
        "report a concern", "request tracker", "translate", "select language",
        "view all", "read more", "back to top", "return to top",
        "how do i", "quick links", "department directory",
    ]

    # Whole-title navigation labels (exact match after normalization)
    NAVIGATION_LABELS = {
        "home", "search", "menu", "calendar", "events", "news", "government",
        "departments", "residents", "business", "visitors", "services",
        "about", "about us", "contact", "more", "next", "previous", "prev",
        "upcoming events", "event calendar", "calendar of events", "all events",
        "today", "month", "week", "day", "list", "subscribe",
    }

    EVENT_NOUNS = [
        "meeting", "council", "commission", "board", "hearing", "committee",
        "ceremony", "festival", "fest", "concert", "parade", "fair", "market",
        "farmers market", "workshop", "class", "celebration", "performance",
        "exhibit", "exhibition", "tournament", "storytime", "story time",
        "fundraiser", "gala", "open house", "town hall", "session", "camp",
        "show", "tour", "race", "5k", "walk", "cleanup", "clean-up", "training",
        "seminar", "lecture", "screening", "movie night", "reception",
        "luncheon", "breakfast", "dinner", "mixer", "ribbon cutting",
        "graduation", "recital", "game", "program", "forum", "meetup",
        "conference", "expo", "rally", "vigil", "service", "memorial",
        "auction", "sale", "drive", "clinic", "party", "picnic", "social",
    ]

    SCHEDULE_PHRASES = [
        "upcoming", "scheduled", "register", "registration", "rsvp",
        "join us", "save the date", "tickets", "admission",
    ]

    _RE_DATE_TOKEN = re.compile(
        r"\b(?:"
        r"jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
        r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?"
        r"|mon(?:day)?|tue(?:s(?:day)?)?|wed(?:nesday)?|thu(?:r(?:s(?:day)?)?)?|fri(?:day)?"
        r"|sat(?:urday)?|sun(?:day)?"
        r"|today|tonight|tomorrow|this weekend|next week|noon"
        r")\b"
        r"|\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b"
        r"|\b\d{4}-\d{2}-\d{2}\b"
        r"|\b\d{1,2}(?::\d{2})?\s*(?:a\.?m\.?|p\.?m\.?)(?![a-z])",
        re.IGNORECASE,
    )

    def __init__(self):
        self._noun_patterns = [
            (noun, re.compile(rf"\b{re.escape(noun)}s?\b", re.IGNORECASE))
            for noun in self.EVENT_NOUNS
        ]

    @staticmethod
    def _normalize(text: str) -> str:
        return " ".join((text or "").lower().split())

    def is_administrative_phrase(self, text: str) -> bool:
        """True for navigation, legal or service boilerplate."""
        normalized = self._normalize(text)
        if not normalized:
            return True
        if normalized.strip(" :|-»›") in self.NAVIGATION_LABELS:
            return True
        return any(phrase in normalized for phrase in self.ADMINISTRATIVE_PHRASES)

    def has_date_token(self, text: str) -> bool:
        return bool(self._RE_DATE_TOKEN.search(text or ""))

    def event_nouns_in(self, text: str) -> list[str]:
        return [noun for noun, pattern in self._noun_patterns if pattern.search(text or "")]

    def count_event_nouns(self, text: str) -> int:
        """Total event-noun occurrences (used to find the densest content region)."""
        return sum(len(pattern.findall(text or "")) for _, pattern in self._noun_patterns)

    def has_event_signal(self, text: str) -> bool:
        return self.check(text).is_event

    def check(self, text: str) -> SignalResult:
        """Explain the has_event_signal decision."""
        normalized = self._normalize(text)
        phrases = [p for p in self.SCHEDULE_PHRASES if p in normalized]
        if phrases:
            return SignalResult(True, "schedule phrase", phrases)

        nouns = self.event_nouns_in(normalized)
        if not nouns:
            return SignalResult(False, "no event noun")
        if not self.has_date_token(normalized):
            return SignalResult(False, "event noun without date, time or weekday", nouns)
        return SignalResult(True, "event noun with date token", nouns)

    def is_valid_title(self, title: str) -> bool:
        """Plausible event title: not boilerplate, not just a date, sensible length."""
        cleaned = " ".join((title or "").split())
        if not 4 <= len(cleaned) <= 200:
            return False
        if self.is_administrative_phrase(cleaned):
            return False
        letters = sum(1 for c in cleaned if c.isalpha())
        return letters >= 3 and letters / len(cleaned) >= 0.4

    def is_valid_content(self, text: str) -> bool:
        """Surrounding text must carry an event signal and not be a boilerplate block."""
        return self.has_event_signal(text) and not self.is_administrative_phrase(text[:200])


DEFAULT_FILTER = EventSignalFilter()


def is_administrative_phrase(text: str) -> bool:
    return DEFAULT_FILTER.is_administrative_phrase(text)


def has_event_signal(text: str) -> bool:
    return DEFAULT_FILTER.has_event_signal(text)
