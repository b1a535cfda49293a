"""
Slot Generation

Produces candidate appointment start-times for a calendar date, stepping
through that weekday's business-hour window at a fixed granularity.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional

from .business_hours import BusinessHoursTable

SLOT_INTERVAL_MINUTES = 30


@dataclass(frozen=True)
class TimeSlot:
    """Candidate interval offered to a participant. Never persisted."""

    start: datetime
    end: datetime
    available: bool = True
    reason: Optional[str] = None
    conflicting_appointment_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "available": self.available,
            "reason": self.reason,
            "conflictingAppointmentId": self.conflicting_appointment_id,
        }


def _align_up(value: datetime, interval_minutes: int) -> datetime:
    """Round a datetime up to the next multiple of interval_minutes past midnight"""
    value = value.replace(second=0, microsecond=0)
    minutes_into_day = value.hour * 60 + value.minute
    remainder = minutes_into_day % interval_minutes
    if remainder:
        value += timedelta(minutes=interval_minutes - remainder)
    return value


def iter_slot_starts(
    target_date: date,
    business_hours: BusinessHoursTable,
    interval_minutes: int = SLOT_INTERVAL_MINUTES,
) -> Iterator[datetime]:
    """
    Yield slot start-times (tz-aware, business timezone) for target_date.

    Starts are aligned to interval_minutes and satisfy open <= start < close.
    A closed day yields nothing.
    """
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")

    bounds = business_hours.bounds_for(target_date)
    if bounds is None:
        return

    open_at, close_at = bounds
    current = _align_up(open_at, interval_minutes)
    while current < close_at:
        yield current
        current += timedelta(minutes=interval_minutes)


def generate_slot_starts(
    target_date: date,
    business_hours: BusinessHoursTable,
    interval_minutes: int = SLOT_INTERVAL_MINUTES,
) -> List[datetime]:
    return list(iter_slot_starts(target_date, business_hours, interval_minutes))
