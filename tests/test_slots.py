from datetime import date, datetime, time, timedelta, timezone

import pytest

from app.domain.scheduling.business_hours import BusinessHoursTable, BusinessWindow
from app.domain.scheduling.slots import generate_slot_starts, iter_slot_starts

MONDAY = date(2030, 1, 7)
FRIDAY = date(2030, 1, 11)
SATURDAY = date(2030, 1, 12)
SUNDAY = date(2030, 1, 13)


def test_weekday_slots_cover_window(business_hours):
    slots = generate_slot_starts(MONDAY, business_hours)

    assert slots[0].time() == time(8, 0)
    assert slots[-1].time() == time(20, 30)
    assert len(slots) == 26


@pytest.mark.parametrize(
    "day,opens,closes",
    [
        (MONDAY, time(8, 0), time(21, 0)),
        (SATURDAY, time(9, 0), time(17, 0)),
        (SUNDAY, time(10, 0), time(18, 0)),
    ],
)
def test_slots_are_aligned_and_inside_window(business_hours, day, opens, closes):
    for start in generate_slot_starts(day, business_hours):
        assert (start.hour * 60 + start.minute) % 30 == 0
        assert start.second == 0
        assert opens <= start.time() < closes
        assert start.date() == day


def test_slots_are_consecutive(business_hours):
    slots = generate_slot_starts(SATURDAY, business_hours)
    gaps = {b - a for a, b in zip(slots, slots[1:])}
    assert gaps == {timedelta(minutes=30)}


def test_same_date_yields_same_sequence(business_hours):
    assert generate_slot_starts(MONDAY, business_hours) == list(iter_slot_starts(MONDAY, business_hours))


def test_opening_time_rounds_up_to_boundary():
    table = BusinessHoursTable.from_mapping({"monday": ["08:15", "10:00"]})
    slots = generate_slot_starts(MONDAY, table)
    assert [s.time() for s in slots] == [time(8, 30), time(9, 0), time(9, 30)]


def test_closed_day_has_no_slots():
    table = BusinessHoursTable.from_mapping({"sunday": None})
    assert generate_slot_starts(SUNDAY, table) == []


def test_day_override_takes_precedence_over_weekdays():
    table = BusinessHoursTable.from_mapping({"weekdays": ["09:00", "17:00"], "friday": ["10:00", "12:00"]})

    assert len(generate_slot_starts(FRIDAY, table)) == 4
    assert generate_slot_starts(MONDAY, table)[0].time() == time(9, 0)


def test_slots_are_in_business_timezone():
    table = BusinessHoursTable.from_mapping(None, "Europe/Oslo")
    first = generate_slot_starts(MONDAY, table)[0]

    assert str(first.tzinfo) == "Europe/Oslo"
    # 08:00 in Oslo is 07:00 UTC in winter
    assert first.astimezone(timezone.utc).replace(tzinfo=None) == datetime(2030, 1, 7, 7, 0)


def test_non_positive_interval_rejected(business_hours):
    with pytest.raises(ValueError):
        generate_slot_starts(MONDAY, business_hours, interval_minutes=0)


def test_window_must_close_after_it_opens():
    with pytest.raises(ValueError):
        BusinessWindow(time(10, 0), time(9, 0))


def test_contains_rejects_interval_past_closing(business_hours):
    assert business_hours.contains(datetime(2030, 1, 7, 20, 0), datetime(2030, 1, 7, 21, 0))
    assert not business_hours.contains(datetime(2030, 1, 7, 20, 30), datetime(2030, 1, 7, 21, 30))
    assert not business_hours.contains(datetime(2030, 1, 7, 7, 30), datetime(2030, 1, 7, 8, 30))
