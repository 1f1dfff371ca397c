"""Normalized event record produced by every parser."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
import hashlib


class EventCategory(str, Enum):
    MUSIC = "Music & Concerts"
    SPORTS = "Sports & Recreation"
    COMMUNITY = "Community & Social"
    EDUCATION = "Education & Learning"
    ARTS = "Arts & Culture"
    FOOD = "Food & Dining"
    HOLIDAY = "Holiday"
    BUSINESS = "Business & Networking"
    HEALTH = "Health & Wellness"
    FAMILY = "Family & Kids"


def format_time_of_day(value: datetime) -> str:
    """datetime(…, 19, 5) → '7:05 PM'"""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


@dataclass(frozen=True)
class Event:
    """One future event. Immutable once a parser has produced it."""
    title: str
    description: str
    category: EventCategory
    location: str
    organizer: str
    start_date: datetime
    end_date: datetime
    start_time: str
    end_time: str
    source_id: str
    attendees: int = 0
    image_url: Optional[str] = None
    is_free: bool = False

    def __post_init__(self):
        if not self.start_date < self.end_date:
            raise ValueError(f"event must end after it starts: {self.title!r}")

    @property
    def fingerprint(self) -> str:
        """Stable key for in-run deduplication."""
        key = f"{self.source_id}|{self.title.lower().strip()}|{self.start_date.isoformat()}"
        return hashlib.sha256(key.encode()).hexdigest()[:32]

    def to_record(self) -> dict:
        """Store representation (camelCase, free flag as 'true'/'false')."""
        return {
            "title": self.title,
            "description": self.description,
            "category": EventCategory(self.category).value,
            "location": self.location,
            "organizer": self.organizer,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "attendees": self.attendees,
            "imageUrl": self.image_url,
            "isFree": "true" if self.is_free else "false",
            "source": self.source_id,
        }
