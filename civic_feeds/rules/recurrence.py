"""Recurrence rules for organizations with fixed meeting cadences.

Council and commission pages often say "meets the first and third Tuesday
of each month" without listing dates. These rules compute the dates
independently of page content.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
import calendar

import pytz


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> Optional[date]:
    """
    Date of the n-th `weekday` (Monday=0) in a month.

    n=-1 selects the last one. Returns None when the month has no n-th
    occurrence (e.g. a 5th Tuesday).
    """
    days_in_month = calendar.monthrange(year, month)[1]
    if n == -1:
        last = date(year, month, days_in_month)
        return last - timedelta(days=(last.weekday() - weekday) % 7)
    if n < 1:
        raise ValueError(f"n must be >= 1 or -1, got {n}")
    first = date(year, month, 1)
    day = 1 + (weekday - first.weekday()) % 7 + (n - 1) * 7
    if day > days_in_month:
        return None
    return date(year, month, day)


def weekdays_in_month(year: int, month: int, weekday: int) -> list[date]:
    first = nth_weekday_of_month(year, month, weekday, 1)
    days_in_month = calendar.monthrange(year, month)[1]
    return [date(year, month, d) for d in range(first.day, days_in_month + 1, 7)]


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


@dataclass(frozen=True)
class NthWeekdayOfMonth:
    """'3rd Tuesday of every month'"""
    weekday: int
    n: int

    def dates_in_month(self, year: int, month: int) -> list[date]:
        found = nth_weekday_of_month(year, month, self.weekday, self.n)
        return [found] if found else []


@dataclass(frozen=True)
class EveryWeekdayInMonth:
    """'Every Wednesday in August'"""
    weekday: int
    month: int

    def dates_in_month(self, year: int, month: int) -> list[date]:
        if month != self.month:
            return []
        return weekdays_in_month(year, month, self.weekday)


@dataclass(frozen=True)
class MeetingSchedule:
    """A named recurring meeting and the rules that produce its dates."""
    name: str
    rules: tuple
    keywords: tuple = ()
    start: time = time(19, 0)
    duration: timedelta = timedelta(hours=2, minutes=30)
    horizon_months: int = 3
    max_occurrences: int = 6
    description: str = ""

    def matches(self, text: str) -> bool:
        lowered = (text or "").lower()
        return any(keyword in lowered for keyword in self.keywords)

    def next_occurrences(self, now: datetime, tz=pytz.UTC) -> list[datetime]:
        """Upcoming start times (timezone-aware, strictly after `now`)."""
        local_now = now.astimezone(tz)
        starts = set()
        for offset in range(self.horizon_months):
            year, month = _shift_month(local_now.year, local_now.month, offset)
            for rule in self.rules:
                for day in rule.dates_in_month(year, month):
                    start = tz.localize(datetime.combine(day, self.start))
                    if start > now:
                        starts.add(start)
        return sorted(starts)[:self.max_occurrences]


DEFAULT_MEETING_SCHEDULES = (
    MeetingSchedule(
        name="City Council Meeting",
        rules=(NthWeekdayOfMonth(calendar.TUESDAY, 1), NthWeekdayOfMonth(calendar.TUESDAY, 3)),
        keywords=("city council",),
        description="Regular City Council meeting. Agendas are posted before each meeting.",
    ),
    MeetingSchedule(
        name="Planning Commission Meeting",
        rules=(NthWeekdayOfMonth(calendar.TUESDAY, 4),),
        keywords=("planning commission",),
        description="Regular Planning Commission meeting.",
    ),
)
