"""
Business-hour table

Single source of truth for the weekday → opening window mapping used by slot
generation and conflict detection, plus the timezone helpers both rely on.

Datetimes without tzinfo are treated as UTC everywhere in the engine (that is
how they are stored); windows are evaluated in the table's local timezone.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Dict, Mapping, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from ... import config

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Canonical windows. Saturday/weekday cutoffs are still an open product question;
# override through the BUSINESS_HOURS setting rather than editing call sites.
DEFAULT_BUSINESS_HOURS = {
    "weekdays": ("08:00", "21:00"),
    "saturday": ("09:00", "17:00"),
    "sunday": ("10:00", "18:00"),
}


def parse_hhmm(value: Union[str, time]) -> time:
    """Parse 'HH:MM' into a time object"""
    if isinstance(value, time):
        return value
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid time value '{value}', expected HH:MM") from e


def utcnow() -> datetime:
    """Current instant as naive UTC (storage representation)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class BusinessWindow:
    open: time
    close: time

    def __post_init__(self):
        if self.close <= self.open:
            raise ValueError(f"Business window closes ({self.close}) before it opens ({self.open})")


class BusinessHoursTable:
    """Opening windows per weekday (0=Monday) in a given timezone. A missing day is closed."""

    def __init__(self, windows: Mapping[int, Optional[BusinessWindow]], tz: ZoneInfo):
        self.windows: Dict[int, Optional[BusinessWindow]] = {
            weekday: windows.get(weekday) for weekday in range(7)
        }
        self.tz = tz

    @classmethod
    def from_mapping(
        cls,
        mapping: Optional[Mapping[str, Optional[Tuple[str, str]]]] = None,
        timezone_name: str = "UTC",
    ) -> "BusinessHoursTable":
        """
        Build a table from {"weekdays": [open, close], "saturday": ..., "sunday": ...}.

        Day names ("monday" ... "sunday") override the "weekdays" entry; a value of
        None closes that day. Missing keys fall back to the canonical defaults.
        """
        merged = dict(DEFAULT_BUSINESS_HOURS)
        if mapping:
            merged.update({key.lower(): value for key, value in mapping.items()})

        windows: Dict[int, Optional[BusinessWindow]] = {}
        for weekday, name in enumerate(WEEKDAY_NAMES):
            if name in merged:
                entry = merged[name]
            elif weekday < 5:
                entry = merged.get("weekdays")
            else:
                entry = None

            if entry is None:
                windows[weekday] = None
            else:
                open_at, close_at = entry
                windows[weekday] = BusinessWindow(parse_hhmm(open_at), parse_hhmm(close_at))

        return cls(windows, ZoneInfo(timezone_name))

    def window_for(self, day: date) -> Optional[BusinessWindow]:
        return self.windows[day.weekday()]

    def bounds_for(self, day: date) -> Optional[Tuple[datetime, datetime]]:
        """Opening and closing instants of a local calendar date (tz-aware), or None if closed"""
        window = self.window_for(day)
        if window is None:
            return None
        return (
            datetime.combine(day, window.open, tzinfo=self.tz),
            datetime.combine(day, window.close, tzinfo=self.tz),
        )

    def to_local(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(self.tz)

    def contains(self, start: datetime, end: datetime) -> bool:
        """True if [start, end) lies entirely inside the window of start's local day"""
        local_start = self.to_local(start)
        local_end = self.to_local(end)
        bounds = self.bounds_for(local_start.date())
        if bounds is None:
            return False
        open_at, close_at = bounds
        return open_at <= local_start and local_end <= close_at

    def describe(self, day: date) -> str:
        window = self.window_for(day)
        day_name = WEEKDAY_NAMES[day.weekday()].capitalize()
        if window is None:
            return f"No appointments can be scheduled on {day_name}"
        return (
            f"Appointments on {day_name} must be between "
            f"{window.open.strftime('%H:%M')} and {window.close.strftime('%H:%M')}"
        )


def get_business_hours() -> BusinessHoursTable:
    """Business-hour table from settings"""
    return BusinessHoursTable.from_mapping(config.BUSINESS_HOURS, config.SCHEDULING_TIMEZONE)


def parse_holiday(value) -> date:
    """ISO date string, date or datetime to a local calendar date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
