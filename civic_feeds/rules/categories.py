"""Keyword-based category assignment for normalized events."""

import re

from ..models.event import EventCategory


# First matching row wins, so more specific categories come first.
CATEGORY_KEYWORDS = [
    (EventCategory.HOLIDAY, [
        "holiday", "christmas", "thanksgiving", "halloween", "easter",
        "fourth of july", "4th of july", "independence day", "memorial day",
        "veterans day", "new year", "hanukkah", "kwanzaa", "tree lighting",
    ]),
    (EventCategory.FAMILY, [
        "kids", "children", "family", "storytime", "story time", "toddler",
        "teen", "youth", "baby", "preschool",
    ]),
    (EventCategory.MUSIC, [
        "concert", "music", "band", "symphony", "orchestra", "choir", "jazz",
        "live music", "recital", "dj",
    ]),
    (EventCategory.SPORTS, [
        "sports", "game", "tournament", "race", "5k", "marathon", "run", "golf",
        "soccer", "baseball", "basketball", "football", "softball", "swim",
        "pickleball", "tennis", "hike", "recreation",
    ]),
    (EventCategory.ARTS, [
        "art", "arts", "gallery", "exhibit", "exhibition", "museum", "theater",
        "theatre", "film", "movie", "dance", "poetry", "craft",
    ]),
    (EventCategory.FOOD, [
        "food", "dining", "farmers market", "tasting", "wine", "beer", "brewery",
        "cook", "bbq", "barbecue", "chili", "pancake", "luncheon", "dinner",
    ]),
    (EventCategory.EDUCATION, [
        "class", "workshop", "seminar", "lecture", "training", "course", "school",
        "library", "education", "learn", "webinar", "book club", "tutorial",
    ]),
    (EventCategory.BUSINESS, [
        "business", "networking", "chamber", "ribbon cutting", "entrepreneur",
        "mixer", "expo", "job fair", "career",
    ]),
    (EventCategory.HEALTH, [
        "health", "wellness", "yoga", "fitness", "blood drive", "vaccine",
        "clinic", "meditation", "mental health", "flu shot",
    ]),
    (EventCategory.COMMUNITY, [
        "community", "council", "commission", "meeting", "town hall", "volunteer",
        "cleanup", "parade", "festival", "fair", "social", "neighborhood",
    ]),
]

_COMPILED = [
    (category, [re.compile(rf"\b{re.escape(k)}\b", re.IGNORECASE) for k in keywords])
    for category, keywords in CATEGORY_KEYWORDS
]


def categorize_event(title: str, description: str = "") -> EventCategory:
    """Map free text onto the closed category list (default: Community & Social)."""
    text = f"{title or ''} {description or ''}"
    for category, patterns in _COMPILED:
        if any(p.search(text) for p in patterns):
            return category
    return EventCategory.COMMUNITY
