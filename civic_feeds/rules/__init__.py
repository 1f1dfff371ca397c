# Rules

from .event_signals import EventSignalFilter, SignalResult, is_administrative_phrase, has_event_signal
from .categories import categorize_event
from .recurrence import (
    NthWeekdayOfMonth,
    EveryWeekdayInMonth,
    MeetingSchedule,
    DEFAULT_MEETING_SCHEDULES,
    nth_weekday_of_month,
)

__all__ = [
    'EventSignalFilter',
    'SignalResult',
    'is_administrative_phrase',
    'has_event_signal',
    'categorize_event',
    'NthWeekdayOfMonth',
    'EveryWeekdayInMonth',
    'MeetingSchedule',
    'DEFAULT_MEETING_SCHEDULES',
    'nth_weekday_of_month',
]
