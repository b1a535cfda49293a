"""
Conflict Detection

Validates a proposed appointment (or every occurrence of a recurring series)
against business hours, holidays, advance notice, recurrence limits and the
participants' committed appointments. The result is an ordered list of typed
conflicts; any conflict with severity ``error`` blocks the booking.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .business_hours import BusinessHoursTable, parse_holiday, to_utc_naive
from .enums import ConflictSeverity, ConflictType, RecurringPattern
from .exceptions import ValidationError
from .intervals import ExistingLookup, first_overlap
from .recurrence import RecurringSeries

logger = logging.getLogger(__name__)

DEFAULT_MIN_ADVANCE_NOTICE_HOURS = 2
DEFAULT_MAX_OCCURRENCES = 52


@dataclass(frozen=True)
class Conflict:
    type: ConflictType
    severity: ConflictSeverity
    message: str
    conflicting_appointment_id: Optional[str] = None
    occurrence: Optional[datetime] = None

    @property
    def is_blocking(self) -> bool:
        return self.severity == ConflictSeverity.ERROR

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "conflictingAppointmentId": self.conflicting_appointment_id,
            "occurrence": self.occurrence.isoformat() if self.occurrence else None,
        }


def has_blocking(conflicts: Iterable[Conflict]) -> bool:
    return any(c.is_blocking for c in conflicts)


class ConflictDetector:
    """Rule set for a proposed booking. Reads existing appointments through an injected lookup."""

    def __init__(
        self,
        business_hours: BusinessHoursTable,
        existing_lookup: ExistingLookup,
        min_notice_hours: float = DEFAULT_MIN_ADVANCE_NOTICE_HOURS,
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
        holidays: Iterable = (),
    ):
        self.business_hours = business_hours
        self.existing_lookup = existing_lookup
        self.min_notice = timedelta(hours=min_notice_hours)
        self.max_occurrences = max_occurrences
        self.holidays = {parse_holiday(h) for h in holidays}

    def occurrences(
        self,
        date_time: datetime,
        is_recurring: bool = False,
        recurring_pattern: Optional[RecurringPattern] = None,
        recurring_end_date: Optional[datetime] = None,
    ) -> RecurringSeries:
        if not is_recurring:
            return RecurringSeries(date_time, RecurringPattern.NONE)
        return RecurringSeries(
            date_time,
            recurring_pattern or RecurringPattern.NONE,
            recurring_end_date,
            tz=self.business_hours.tz,
        )

    def detect(
        self,
        date_time: datetime,
        duration: int,
        participant_ids: Sequence[str],
        now: datetime,
        is_recurring: bool = False,
        recurring_pattern: Optional[RecurringPattern] = None,
        recurring_end_date: Optional[datetime] = None,
        exclude_ids: Iterable[str] = (),
    ) -> List[Conflict]:
        """
        Evaluate every rule for the booking.

        Args:
            date_time: start of the (first) occurrence, naive UTC or tz-aware
            duration: minutes
            participant_ids: teacher and student of the conversation
            now: naive UTC instant the booking is made at
            exclude_ids: appointment ids to ignore for overlap (e.g. the one being edited)

        Returns:
            list[Conflict] - pattern problems first, then per occurrence in date order
        """
        if duration is None or duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes")

        date_time = to_utc_naive(date_time)
        conflicts: List[Conflict] = []

        if is_recurring:
            pattern_conflict = self._check_pattern(date_time, recurring_pattern, recurring_end_date)
            if pattern_conflict is not None:
                # An invalid series cannot be expanded meaningfully
                logger.info(f"🔁 Recurring pattern rejected: {pattern_conflict.message}")
                return [pattern_conflict]

        series = self.occurrences(date_time, is_recurring, recurring_pattern, recurring_end_date)
        starts = [to_utc_naive(s) for s in series]
        length = timedelta(minutes=duration)

        excluded = set(exclude_ids)
        booked = [
            b
            for b in self.existing_lookup(participant_ids, starts[0], starts[-1] + length)
            if b.is_committed and b.appointment_id not in excluded
        ]

        notice = self._check_notice(starts[0], now)
        if notice is not None:
            conflicts.append(notice)

        tag_occurrence = len(starts) > 1
        for start in starts:
            end = start + length
            occurrence = start if tag_occurrence else None

            local_day = self.business_hours.to_local(start).date()
            if local_day in self.holidays:
                conflicts.append(
                    Conflict(
                        ConflictType.HOLIDAY,
                        ConflictSeverity.ERROR,
                        f"{local_day.isoformat()} is a holiday",
                        occurrence=occurrence,
                    )
                )

            if not self.business_hours.contains(start, end):
                conflicts.append(
                    Conflict(
                        ConflictType.BUSINESS_HOURS,
                        ConflictSeverity.ERROR,
                        self.business_hours.describe(local_day),
                        occurrence=occurrence,
                    )
                )

            hit = first_overlap(start, end, booked)
            if hit is not None:
                conflicts.append(
                    Conflict(
                        ConflictType.OVERLAP,
                        ConflictSeverity.ERROR,
                        f"Overlaps an existing appointment at {hit.start.isoformat()}",
                        conflicting_appointment_id=hit.appointment_id,
                        occurrence=occurrence,
                    )
                )

        if conflicts:
            logger.debug(
                f"Conflicts for {date_time.isoformat()} x{len(starts)}: "
                f"{[c.type.value for c in conflicts]}"
            )
        return conflicts

    def _check_notice(self, start: datetime, now: datetime) -> Optional[Conflict]:
        if start - to_utc_naive(now) >= self.min_notice:
            return None
        hours = self.min_notice.total_seconds() / 3600
        return Conflict(
            ConflictType.BUFFER_VIOLATION,
            ConflictSeverity.WARNING,
            f"Appointment starts in less than {hours:g} hours",
        )

    def _check_pattern(
        self,
        date_time: datetime,
        pattern: Optional[RecurringPattern],
        end_date: Optional[datetime],
    ) -> Optional[Conflict]:
        if pattern is None or RecurringPattern(pattern) == RecurringPattern.NONE:
            message = "Recurring appointments need a weekly, bi_weekly or monthly pattern"
        elif end_date is None:
            message = "Recurring appointments need an end date"
        elif to_utc_naive(end_date) <= date_time:
            message = "Recurring end date must be after the first appointment"
        else:
            series = RecurringSeries(date_time, pattern, end_date, tz=self.business_hours.tz)
            count = series.count(self.max_occurrences)
            if count <= self.max_occurrences:
                return None
            message = f"Recurring series cannot exceed {self.max_occurrences} occurrences"

        return Conflict(ConflictType.RECURRING_PATTERN, ConflictSeverity.ERROR, message)
