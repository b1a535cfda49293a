"""Booked intervals and overlap arithmetic shared by availability and conflict checks."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Sequence

from .business_hours import to_utc_naive
from .enums import COMMITTED_STATUSES, AppointmentStatus

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480


@dataclass(frozen=True)
class BookedInterval:
    """Occupied [start, end) of an existing appointment, naive UTC"""

    appointment_id: str
    start: datetime
    end: datetime
    status: AppointmentStatus

    @classmethod
    def from_appointment(cls, appointment) -> "BookedInterval":
        start = to_utc_naive(appointment.date_time)
        return cls(
            appointment_id=appointment.id,
            start=start,
            end=start + timedelta(minutes=appointment.duration),
            status=AppointmentStatus(appointment.status),
        )

    @property
    def is_committed(self) -> bool:
        return self.status in COMMITTED_STATUSES


# (participant_ids, window_start, window_end) -> appointments occupying that window
ExistingLookup = Callable[[Sequence[str], datetime, datetime], Iterable[BookedInterval]]


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval intersection: touching intervals do not overlap"""
    return start_a < end_b and start_b < end_a


def first_overlap(start: datetime, end: datetime, booked: Iterable[BookedInterval]):
    """Earliest committed interval intersecting [start, end), or None"""
    start = to_utc_naive(start)
    end = to_utc_naive(end)
    hits = [b for b in booked if b.is_committed and overlaps(start, end, b.start, b.end)]
    if not hits:
        return None
    return min(hits, key=lambda b: (b.start, b.appointment_id))
