"""Fixed-interval schedules such as "every 5 minutes"."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

_ONE_SECOND = timedelta(seconds=1)


@dataclass(frozen=True)
class ConstantDelaySchedule:
    """A recurring duty cycle of whole seconds."""

    delay: timedelta

    def next(self, t: datetime) -> datetime:
        """Return the next activation, landing on a whole second."""
        step = self.delay - timedelta(microseconds=t.microsecond)
        if t.tzinfo is None:
            return t + step
        return (t.astimezone(timezone.utc) + step).astimezone(t.tzinfo)


def every(duration: timedelta) -> ConstantDelaySchedule:
    """Schedule activating once every duration.

    Durations under a second become one second; fractions of a second are dropped.
    """
    if duration < _ONE_SECOND:
        duration = _ONE_SECOND
    return ConstantDelaySchedule(timedelta(days=duration.days, seconds=duration.seconds))