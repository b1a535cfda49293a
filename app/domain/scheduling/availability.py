"""
Availability Service

Marks each candidate slot of a day as available or not for a pair of
participants. Advisory only: the booking itself is re-validated by the
conflict detector at commit time.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .business_hours import BusinessHoursTable, parse_holiday, to_utc_naive
from .exceptions import ValidationError
from .intervals import ExistingLookup, first_overlap
from .slots import SLOT_INTERVAL_MINUTES, TimeSlot, generate_slot_starts

logger = logging.getLogger(__name__)

OCCUPIED = "Occupied"
OUTSIDE_BUSINESS_HOURS = "Outside business hours"
IN_THE_PAST = "In the past"
HOLIDAY = "Holiday"


class AvailabilityChecker:
    """Intersects generated slots with the participants' committed appointments"""

    def __init__(
        self,
        business_hours: BusinessHoursTable,
        existing_lookup: ExistingLookup,
        interval_minutes: int = SLOT_INTERVAL_MINUTES,
        holidays: Iterable = (),
    ):
        self.business_hours = business_hours
        self.existing_lookup = existing_lookup
        self.interval_minutes = interval_minutes
        self.holidays = {parse_holiday(h) for h in holidays}

    def check(
        self,
        target_date: date,
        duration: int,
        participant_ids: Sequence[str],
        now: Optional[datetime] = None,
    ) -> List[TimeSlot]:
        """
        Args:
            target_date: local calendar date to offer slots for
            duration: requested length in minutes
            participant_ids: both participants; a slot is occupied if either is busy
            now: naive UTC instant; slots starting earlier are marked unavailable

        Returns:
            list[TimeSlot] in slot order
        """
        if duration is None or duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes")
        if not participant_ids:
            raise ValidationError("At least one participant is required")

        starts = generate_slot_starts(target_date, self.business_hours, self.interval_minutes)
        if not starts:
            return []

        length = timedelta(minutes=duration)
        window_start = to_utc_naive(starts[0])
        window_end = to_utc_naive(starts[-1]) + length
        booked = [
            b
            for b in self.existing_lookup(participant_ids, window_start, window_end)
            if b.is_committed
        ]

        slots = []
        for start in starts:
            end = start + length
            hit = first_overlap(start, end, booked)
            if hit is not None:
                slot = TimeSlot(start, end, False, OCCUPIED, hit.appointment_id)
            elif self.business_hours.to_local(start).date() in self.holidays:
                slot = TimeSlot(start, end, False, HOLIDAY)
            elif not self.business_hours.contains(start, end):
                slot = TimeSlot(start, end, False, OUTSIDE_BUSINESS_HOURS)
            elif now is not None and to_utc_naive(start) < now:
                slot = TimeSlot(start, end, False, IN_THE_PAST)
            else:
                slot = TimeSlot(start, end)
            slots.append(slot)

        logger.debug(
            f"Availability for {target_date} ({duration} min): "
            f"{sum(1 for s in slots if s.available)}/{len(slots)} slots free"
        )
        return slots
