"""Data models for the civic feeds worker."""

from .event import Event, EventCategory, format_time_of_day
from .locality import Locality, city_slug, normalize_state
from .source import (
    CalendarSource,
    DiscoveredFeed,
    FeedType,
    OrganizationType,
    FEED_TYPE_PRIORITY,
    ORGANIZATION_NAMES,
    feed_type_priority,
    host_of,
)

__all__ = [
    'Event',
    'EventCategory',
    'format_time_of_day',
    'Locality',
    'city_slug',
    'normalize_state',
    'CalendarSource',
    'DiscoveredFeed',
    'FeedType',
    'OrganizationType',
    'FEED_TYPE_PRIORITY',
    'ORGANIZATION_NAMES',
    'feed_type_priority',
    'host_of',
]
