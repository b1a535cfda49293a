"""
Recurring series

A series is a pure function of (start, pattern, end date): iterating it
lazily yields the occurrence start-times, and iterating again yields the same
values. Nothing is committed here.

When a timezone is given, steps are taken on the local wall clock so a weekly
08:00 lesson stays at 08:00 across daylight-saving changes; occurrences are
yielded back as naive UTC.
"""

from datetime import datetime, timezone
from itertools import islice
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from .business_hours import to_utc_naive
from .enums import RecurringPattern

PATTERN_STEPS = {
    RecurringPattern.WEEKLY: relativedelta(weeks=1),
    RecurringPattern.BI_WEEKLY: relativedelta(weeks=2),
    RecurringPattern.MONTHLY: relativedelta(months=1),
}


def _as_local(value: datetime, tz) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


class RecurringSeries:
    """Occurrences of a base appointment up to and including the end date's calendar day"""

    def __init__(
        self,
        start: datetime,
        pattern: RecurringPattern,
        end_date: Optional[datetime] = None,
        tz=None,
    ):
        self.start = start
        self.pattern = RecurringPattern(pattern)
        self.end_date = end_date
        self.tz = tz

    def __iter__(self) -> Iterator[datetime]:
        step = PATTERN_STEPS.get(self.pattern)
        if step is None or self.end_date is None:
            yield self.start
            return

        if self.tz is None:
            base = self.start
            last_day = self.end_date.date()
        else:
            base = _as_local(self.start, self.tz)
            last_day = _as_local(self.end_date, self.tz).date()

        index = 0
        while True:
            # Offsets are taken from the base date so monthly series don't drift (31st -> 28th -> 28th)
            occurrence = base + step * index
            if occurrence.date() > last_day:
                return
            yield occurrence if self.tz is None else to_utc_naive(occurrence)
            index += 1

    def count(self, limit: Optional[int] = None) -> int:
        """Number of occurrences; stops counting at limit + 1 so oversized series stay cheap"""
        if limit is None:
            return sum(1 for _ in self)
        return sum(1 for _ in islice(self, limit + 1))

    def __repr__(self) -> str:
        return f"RecurringSeries({self.start.isoformat()}, {self.pattern.value}, {self.end_date})"
