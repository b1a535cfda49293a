from datetime import datetime
from zoneinfo import ZoneInfo

from app.domain.scheduling.business_hours import to_utc_naive
from app.domain.scheduling.enums import RecurringPattern
from app.domain.scheduling.recurrence import RecurringSeries

START = datetime(2030, 1, 7, 14, 0)
OSLO = ZoneInfo("Europe/Oslo")


def test_weekly_series_includes_end_day():
    series = RecurringSeries(START, RecurringPattern.WEEKLY, datetime(2030, 1, 28))

    assert list(series) == [
        datetime(2030, 1, 7, 14, 0),
        datetime(2030, 1, 14, 14, 0),
        datetime(2030, 1, 21, 14, 0),
        datetime(2030, 1, 28, 14, 0),
    ]


def test_bi_weekly_series():
    series = RecurringSeries(START, RecurringPattern.BI_WEEKLY, datetime(2030, 2, 4))
    assert [d.day for d in series] == [7, 21, 4]


def test_monthly_series_does_not_drift_on_short_months():
    series = RecurringSeries(datetime(2030, 1, 31, 10, 0), RecurringPattern.MONTHLY, datetime(2030, 4, 30))

    assert list(series) == [
        datetime(2030, 1, 31, 10, 0),
        datetime(2030, 2, 28, 10, 0),
        datetime(2030, 3, 31, 10, 0),
        datetime(2030, 4, 30, 10, 0),
    ]


def test_series_is_restartable():
    series = RecurringSeries(START, RecurringPattern.WEEKLY, datetime(2030, 3, 1))
    assert list(series) == list(series)


def test_series_is_lazy():
    series = RecurringSeries(START, RecurringPattern.WEEKLY, datetime(2035, 1, 1))
    iterator = iter(series)

    assert next(iterator) == START
    assert next(iterator) == datetime(2030, 1, 14, 14, 0)


def test_non_recurring_yields_single_occurrence():
    assert list(RecurringSeries(START, RecurringPattern.NONE, datetime(2030, 6, 1))) == [START]
    assert list(RecurringSeries(START, RecurringPattern.WEEKLY)) == [START]


def test_count_stops_past_limit():
    series = RecurringSeries(START, RecurringPattern.WEEKLY, datetime(2040, 1, 1))

    assert series.count(limit=52) == 53
    assert RecurringSeries(START, RecurringPattern.WEEKLY, datetime(2030, 1, 28)).count() == 4


def test_series_keeps_local_time_across_dst_change():
    # Monday 08:00 in Oslo: 06:00 UTC in summer time, 07:00 UTC after the clocks go back on 27 October
    series = RecurringSeries(
        datetime(2030, 10, 14, 6, 0), RecurringPattern.WEEKLY, datetime(2030, 11, 4), tz=OSLO
    )

    assert list(series) == [
        datetime(2030, 10, 14, 6, 0),
        datetime(2030, 10, 21, 6, 0),
        datetime(2030, 10, 28, 7, 0),
        datetime(2030, 11, 4, 7, 0),
    ]


def test_end_date_is_compared_as_local_calendar_date():
    # Local midnight of 4 November is still 3 November in UTC
    end_date = to_utc_naive(datetime(2030, 11, 4, tzinfo=OSLO))
    series = RecurringSeries(datetime(2030, 10, 14, 6, 0), RecurringPattern.WEEKLY, end_date, tz=OSLO)

    assert series.count() == 4
