"""Locality (city + state) model and name normalization."""

from dataclasses import dataclass
import re

from ..errors import InvalidLocalityError


STATE_ABBREVIATIONS = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}

_VALID_ABBREVIATIONS = set(STATE_ABBREVIATIONS.values())

_RE_NON_ALNUM = re.compile(r"[^a-z0-9]")
_RE_CITY_CHARS = re.compile(r"^[A-Za-z][A-Za-z0-9 .'\-]*$")


def normalize_state(state: str) -> str:
    """'Illinois' / 'il' / ' IL ' → 'IL'. Raises InvalidLocalityError otherwise."""
    value = (state or "").strip()
    if not value:
        raise InvalidLocalityError("state is required")
    if value.upper() in _VALID_ABBREVIATIONS:
        return value.upper()
    abbreviation = STATE_ABBREVIATIONS.get(value.lower())
    if abbreviation is None:
        raise InvalidLocalityError(f"unknown state: {state!r}")
    return abbreviation


def city_slug(city: str) -> str:
    """'San Jacinto' → 'sanjacinto'"""
    return _RE_NON_ALNUM.sub("", city.lower())


@dataclass(frozen=True)
class Locality:
    """A US municipality identified by city name and two-letter state code."""
    city: str
    state: str

    @classmethod
    def parse(cls, city: str, state: str) -> "Locality":
        """Validate and normalize raw user input."""
        name = " ".join((city or "").split())
        if not name:
            raise InvalidLocalityError("city is required")
        if len(name) > 80 or not _RE_CITY_CHARS.match(name):
            raise InvalidLocalityError(f"invalid city name: {city!r}")
        return cls(city=name, state=normalize_state(state))

    @classmethod
    def from_label(cls, label: str) -> "Locality":
        """Parse 'Springfield, IL' style labels."""
        city, sep, state = (label or "").rpartition(",")
        if not sep:
            raise InvalidLocalityError(f"expected 'City, ST': {label!r}")
        return cls.parse(city, state)

    @property
    def slug(self) -> str:
        return city_slug(self.city)

    @property
    def initials(self) -> str:
        """Initials for multi-word cities ('San Jacinto' → 'sj'), else ''."""
        words = [w for w in re.split(r"[\s\-]+", self.city.lower()) if w]
        if len(words) < 2:
            return ""
        return "".join(_RE_NON_ALNUM.sub("", w)[:1] for w in words)

    @property
    def label(self) -> str:
        return f"{self.city}, {self.state}"

    def __str__(self) -> str:
        return self.label
