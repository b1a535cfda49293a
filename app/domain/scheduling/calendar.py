"""
Calendar projection

Turns appointments into renderable events for a day, week, month or agenda
view. Colours and positions depend only on the appointments, the view and
the anchor date, so re-rendering the same input gives the same layout.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from .enums import AppointmentStatus, CalendarView

# (background, border)
STATUS_COLORS = {
    AppointmentStatus.CONFIRMED: ("#10b981", "#059669"),
    AppointmentStatus.PENDING: ("#f59e0b", "#d97706"),
    AppointmentStatus.WAITING_TO_COMPLETE: ("#f97316", "#ea580c"),
    AppointmentStatus.COMPLETED: ("#6b7280", "#4b5563"),
    AppointmentStatus.CANCELLED: ("#ef4444", "#dc2626"),
}
TEXT_COLOR = "#ffffff"

# Pixels per hour in the time-grid views
HOUR_HEIGHT = {
    CalendarView.DAY: 80,
    CalendarView.WEEK: 60,
}
MAX_VISIBLE_MINUTES = 180


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: datetime
    end: datetime
    status: AppointmentStatus
    background_color: str
    border_color: str
    text_color: str
    column: int
    row: int
    lane: int = 0
    top: Optional[float] = None
    height: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "status": self.status.value,
            "backgroundColor": self.background_color,
            "borderColor": self.border_color,
            "textColor": self.text_color,
            "column": self.column,
            "row": self.row,
            "lane": self.lane,
            "top": self.top,
            "height": self.height,
        }


def view_range(view: CalendarView, anchor_date: date) -> Tuple[date, date]:
    """Inclusive first and last local date covered by a view"""
    view = CalendarView(view)
    week_start = anchor_date - timedelta(days=anchor_date.weekday())

    if view == CalendarView.DAY:
        return anchor_date, anchor_date
    if view == CalendarView.WEEK:
        return week_start, week_start + timedelta(days=6)
    if view == CalendarView.AGENDA:
        return week_start, week_start + timedelta(days=13)

    # Month grid: Monday-started weeks covering the whole month
    first = anchor_date.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    last = next_month - timedelta(days=1)
    grid_start = first - timedelta(days=first.weekday())
    grid_end = last + timedelta(days=6 - last.weekday())
    return grid_start, grid_end


def _title(appointment) -> str:
    meeting_type = getattr(appointment, "meeting_type", None)
    if not meeting_type:
        return "Appointment"
    value = getattr(meeting_type, "value", meeting_type)
    return value.replace("_", " ").capitalize()


class CalendarProjector:
    """Pure projection of appointments into a calendar view"""

    def __init__(self, tz: Optional[ZoneInfo] = None):
        self.tz = tz or ZoneInfo("UTC")

    def _local(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=ZoneInfo("UTC"))
        return value.astimezone(self.tz)

    def project(self, appointments: Iterable, view: CalendarView, anchor_date: date) -> List[CalendarEvent]:
        view = CalendarView(view)
        range_start, range_end = view_range(view, anchor_date)
        hour_height = HOUR_HEIGHT.get(view)

        placed = []
        for appointment in appointments:
            start = self._local(appointment.date_time)
            if not (range_start <= start.date() <= range_end):
                continue
            placed.append((start, appointment))

        placed.sort(key=lambda item: (item[0], str(item[1].id)))
        lanes = self._assign_lanes(placed)

        events = []
        for start, appointment in placed:
            duration = appointment.duration
            status = AppointmentStatus(appointment.status)
            background, border = STATUS_COLORS[status]

            top = height = None
            if hour_height is not None:
                top = start.minute / 60 * hour_height
                height = min(duration, MAX_VISIBLE_MINUTES) / 60 * hour_height

            events.append(
                CalendarEvent(
                    id=str(appointment.id),
                    title=_title(appointment),
                    start=start,
                    end=start + timedelta(minutes=duration),
                    status=status,
                    background_color=background,
                    border_color=border,
                    text_color=TEXT_COLOR,
                    column=(start.date() - range_start).days,
                    row=start.hour,
                    lane=lanes[str(appointment.id)],
                    top=top,
                    height=height,
                )
            )
        return events

    @staticmethod
    def _assign_lanes(placed) -> Dict[str, int]:
        """Greedy lane assignment per day; events must already be sorted by (start, id)"""
        lanes: Dict[str, int] = {}
        lane_ends: Dict[date, List[datetime]] = {}
        for start, appointment in placed:
            ends = lane_ends.setdefault(start.date(), [])
            end = start + timedelta(minutes=appointment.duration)
            for index, lane_end in enumerate(ends):
                if lane_end <= start:
                    ends[index] = end
                    lanes[str(appointment.id)] = index
                    break
            else:
                ends.append(end)
                lanes[str(appointment.id)] = len(ends) - 1
        return lanes
