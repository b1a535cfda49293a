from datetime import date, datetime, timedelta

import pytest

from app.domain.scheduling.availability import (
    HOLIDAY,
    IN_THE_PAST,
    OCCUPIED,
    OUTSIDE_BUSINESS_HOURS,
    AvailabilityChecker,
)
from app.domain.scheduling.enums import AppointmentStatus
from app.domain.scheduling.exceptions import ValidationError
from app.domain.scheduling.intervals import BookedInterval
from app.domain.scheduling.slots import generate_slot_starts

MONDAY = date(2030, 1, 7)
PARTICIPANTS = ["teacher-1", "student-1"]


def booked(appointment_id, start, minutes=60, status=AppointmentStatus.CONFIRMED):
    return BookedInterval(appointment_id, start, start + timedelta(minutes=minutes), status)


def fixed_lookup(*intervals):
    calls = []

    def lookup(participant_ids, window_start, window_end):
        calls.append((tuple(participant_ids), window_start, window_end))
        return list(intervals)

    lookup.calls = calls
    return lookup


def slot_at(slots, hour, minute=0):
    return next(s for s in slots if (s.start.hour, s.start.minute) == (hour, minute))


def test_free_day_is_fully_available_until_closing(business_hours):
    checker = AvailabilityChecker(business_hours, fixed_lookup())
    slots = checker.check(MONDAY, 30, PARTICIPANTS)

    assert len(slots) == 26
    assert all(s.available for s in slots)


def test_output_order_matches_generator(business_hours):
    checker = AvailabilityChecker(business_hours, fixed_lookup())
    slots = checker.check(MONDAY, 60, PARTICIPANTS)

    assert [s.start for s in slots] == generate_slot_starts(MONDAY, business_hours)


def test_slots_overlapping_committed_appointment_are_occupied(business_hours):
    existing = booked("a1", datetime(2030, 1, 7, 14, 0))
    checker = AvailabilityChecker(business_hours, fixed_lookup(existing))
    slots = checker.check(MONDAY, 60, PARTICIPANTS)

    for hour, minute in [(13, 30), (14, 0), (14, 30)]:
        slot = slot_at(slots, hour, minute)
        assert not slot.available
        assert slot.reason == OCCUPIED
        assert slot.conflicting_appointment_id == "a1"

    # Touching intervals do not overlap
    assert slot_at(slots, 13, 0).available
    assert slot_at(slots, 15, 0).available


def test_no_available_slot_overlaps_committed_appointments(business_hours):
    existing = [
        booked("a1", datetime(2030, 1, 7, 9, 0), 90),
        booked("a2", datetime(2030, 1, 7, 16, 15), 45, AppointmentStatus.PENDING),
    ]
    checker = AvailabilityChecker(business_hours, fixed_lookup(*existing))

    for slot in checker.check(MONDAY, 45, PARTICIPANTS):
        if not slot.available:
            continue
        start, end = slot.start.replace(tzinfo=None), slot.end.replace(tzinfo=None)
        assert all(not (start < b.end and b.start < end) for b in existing)


@pytest.mark.parametrize("status", [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED])
def test_non_committed_appointments_do_not_block(business_hours, status):
    existing = booked("a1", datetime(2030, 1, 7, 14, 0), status=status)
    checker = AvailabilityChecker(business_hours, fixed_lookup(existing))

    assert slot_at(checker.check(MONDAY, 60, PARTICIPANTS), 14).available


def test_slots_running_past_closing_are_unavailable(business_hours):
    checker = AvailabilityChecker(business_hours, fixed_lookup())
    slots = checker.check(MONDAY, 90, PARTICIPANTS)

    assert slot_at(slots, 19, 30).available
    late = slot_at(slots, 20, 0)
    assert not late.available
    assert late.reason == OUTSIDE_BUSINESS_HOURS


def test_past_slots_are_unavailable(business_hours):
    checker = AvailabilityChecker(business_hours, fixed_lookup())
    slots = checker.check(MONDAY, 30, PARTICIPANTS, now=datetime(2030, 1, 7, 12, 10))

    assert slot_at(slots, 12, 0).reason == IN_THE_PAST
    assert slot_at(slots, 12, 30).available


def test_lookup_receives_both_participants_and_day_window(business_hours):
    lookup = fixed_lookup()
    AvailabilityChecker(business_hours, lookup).check(MONDAY, 60, PARTICIPANTS)

    participants, window_start, window_end = lookup.calls[0]
    assert participants == tuple(PARTICIPANTS)
    assert window_start == datetime(2030, 1, 7, 8, 0)
    assert window_end == datetime(2030, 1, 7, 21, 30)


def test_closed_day_returns_no_slots():
    from app.domain.scheduling.business_hours import BusinessHoursTable

    table = BusinessHoursTable.from_mapping({"monday": None})
    lookup = fixed_lookup()

    assert AvailabilityChecker(table, lookup).check(MONDAY, 60, PARTICIPANTS) == []
    assert lookup.calls == []


@pytest.mark.parametrize("duration", [0, -30])
def test_invalid_duration_rejected(business_hours, duration):
    with pytest.raises(ValidationError):
        AvailabilityChecker(business_hours, fixed_lookup()).check(MONDAY, duration, PARTICIPANTS)


def test_participants_required(business_hours):
    with pytest.raises(ValidationError):
        AvailabilityChecker(business_hours, fixed_lookup()).check(MONDAY, 60, [])


def test_holiday_slots_are_unavailable(business_hours):
    checker = AvailabilityChecker(business_hours, fixed_lookup(), holidays=["2030-01-07"])

    slots = checker.check(MONDAY, 60, PARTICIPANTS)

    assert slots
    assert all(not s.available and s.reason == HOLIDAY for s in slots)


def test_holiday_does_not_affect_other_days(business_hours):
    checker = AvailabilityChecker(business_hours, fixed_lookup(), holidays=[date(2030, 1, 8)])
    assert slot_at(checker.check(MONDAY, 60, PARTICIPANTS), 10).available
