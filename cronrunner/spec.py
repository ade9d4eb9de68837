"""Crontab-style schedules stored as bit sets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Mapping, Optional

STAR_BIT = 1 << 63


@dataclass(frozen=True)
class Bounds:
    """Range of acceptable values for a field, with optional names."""

    low: int
    high: int
    names: Optional[Mapping[str, int]] = field(default=None)


SECONDS = Bounds(0, 59)
MINUTES = Bounds(0, 59)
HOURS = Bounds(0, 23)
DOM = Bounds(1, 31)
MONTHS = Bounds(
    1,
    12,
    {
        "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
        "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    },
)
DOW = Bounds(0, 6, {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6})


def _add(t: datetime, delta: timedelta) -> datetime:
    """Add elapsed time, independent of wall-clock shifts."""
    if t.tzinfo is None:
        return t + delta
    return (t.astimezone(timezone.utc) + delta).astimezone(t.tzinfo)


def _offset_at(loc: tzinfo, utc_naive: datetime) -> Optional[timedelta]:
    return utc_naive.replace(tzinfo=timezone.utc).astimezone(loc).utcoffset()


def _wall(loc: Optional[tzinfo], year: int, month: int, day: int,
          hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    """Build a time from possibly out-of-range wall-clock fields."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    naive = datetime(year, month, 1) + timedelta(
        days=day - 1, hours=hour, minutes=minute, seconds=second
    )
    if loc is None:
        return naive
    offset = _offset_at(loc, naive) or timedelta(0)
    utc = naive - offset
    actual = _offset_at(loc, utc) or timedelta(0)
    if actual != offset:
        utc = naive - actual
    return utc.replace(tzinfo=timezone.utc).astimezone(loc)


def _add_date(t: datetime, months: int = 0, days: int = 0) -> datetime:
    return _wall(t.tzinfo, t.year, t.month + months, t.day + days,
                 t.hour, t.minute, t.second)


def _weekday(t: datetime) -> int:
    return (t.weekday() + 1) % 7


@dataclass(frozen=True)
class SpecSchedule:
    """Duty cycle to the second, from a crontab specification.

    A location of None means the schedule runs in the zone of the given time.
    """

    second: int
    minute: int
    hour: int
    dom: int
    month: int
    dow: int
    location: Optional[tzinfo] = None

    def next(self, t: datetime) -> Optional[datetime]:
        """Return the next activation after t, or None if none within five years."""
        orig = t.tzinfo
        if self.location is not None:
            t = t.astimezone(self.location)
        loc = t.tzinfo

        t = _add(t, timedelta(seconds=1, microseconds=-t.microsecond))
        added = False
        year_limit = t.year + 5

        while True:
            if t.year > year_limit:
                return None

            wrapped = False
            while not (1 << t.month) & self.month:
                if not added:
                    added = True
                    t = _wall(loc, t.year, t.month, 1)
                t = _add_date(t, months=1)
                if t.month == 1:
                    wrapped = True
                    break
            if wrapped:
                continue

            while not day_matches(self, t):
                if not added:
                    added = True
                    t = _wall(loc, t.year, t.month, t.day)
                t = _add_date(t, days=1)
                # Midnight may not exist on DST days; pull back to it.
                if t.hour != 0:
                    if t.hour > 12:
                        t = _add(t, timedelta(hours=24 - t.hour))
                    else:
                        t = _add(t, timedelta(hours=-t.hour))
                if t.day == 1:
                    wrapped = True
                    break
            if wrapped:
                continue

            while not (1 << t.hour) & self.hour:
                if not added:
                    added = True
                    t = _wall(loc, t.year, t.month, t.day, t.hour)
                t = _add(t, timedelta(hours=1))
                if t.hour == 0:
                    wrapped = True
                    break
            if wrapped:
                continue

            while not (1 << t.minute) & self.minute:
                if not added:
                    added = True
                    t = t.replace(second=0, microsecond=0)
                t = _add(t, timedelta(minutes=1))
                if t.minute == 0:
                    wrapped = True
                    break
            if wrapped:
                continue

            while not (1 << t.second) & self.second:
                if not added:
                    added = True
                    t = t.replace(microsecond=0)
                t = _add(t, timedelta(seconds=1))
                if t.second == 0:
                    wrapped = True
                    break
            if wrapped:
                continue

            if orig is None:
                if t.tzinfo is not None:
                    return t.astimezone().replace(tzinfo=None)
                return t
            return t.astimezone(orig)


def day_matches(schedule: SpecSchedule, t: datetime) -> bool:
    """Whether t satisfies the schedule's day-of-month and day-of-week."""
    dom_match = bool((1 << t.day) & schedule.dom)
    dow_match = bool((1 << _weekday(t)) & schedule.dow)
    if schedule.dom & STAR_BIT or schedule.dow & STAR_BIT:
        return dom_match and dow_match
    return dom_match or dow_match