"""Appointment and scheduling enums."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: PENDING → CONFIRMED → WAITING_TO_COMPLETE → COMPLETED
              ↘ CANCELLED    ↘ CANCELLED             ↘ CANCELLED (or back to CONFIRMED)
    """

    PENDING = "PENDING"  # Requested, awaiting the other participant
    CONFIRMED = "CONFIRMED"  # Accepted, scheduled
    WAITING_TO_COMPLETE = "WAITING_TO_COMPLETE"  # One side confirmed the session took place
    COMPLETED = "COMPLETED"  # Both sides confirmed
    CANCELLED = "CANCELLED"


# Statuses that occupy a participant's calendar
COMMITTED_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
TERMINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


class AppointmentEvent(str, Enum):
    CREATE = "create"
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"
    MARK_COMPLETE = "mark_complete"
    MARK_NOT_COMPLETE = "mark_not_complete"
    SET_READINESS = "set_readiness"
    RESCHEDULE = "reschedule"
    UPDATE = "update"


class LocationType(str, Enum):
    ONLINE = "online"
    STUDENT_PLACE = "student_place"
    TUTOR_PLACE = "tutor_place"
    LIBRARY = "library"
    CAFE = "cafe"
    PUBLIC_LOCATION = "public_location"


class MeetingType(str, Enum):
    FIRST_MEETING = "first_meeting"
    REGULAR_LESSON = "regular_lesson"
    TRIAL_LESSON = "trial_lesson"
    EXAM_PREP = "exam_prep"
    CONSULTATION = "consultation"
    INTENSIVE_SESSION = "intensive_session"
    GROUP_LESSON = "group_lesson"
    REVIEW_SESSION = "review_session"


class RecurringPattern(str, Enum):
    NONE = "none"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    MONTHLY = "monthly"


class ConflictType(str, Enum):
    BUSINESS_HOURS = "business_hours"
    BUFFER_VIOLATION = "buffer_violation"  # short notice
    OVERLAP = "overlap"
    HOLIDAY = "holiday"
    RECURRING_PATTERN = "recurring_pattern"


class ConflictSeverity(str, Enum):
    ERROR = "error"  # blocks the booking
    WARNING = "warning"
    INFO = "info"


class ParticipantSide(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class CalendarView(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    AGENDA = "agenda"


class MarkNotCompletePolicy(str, Enum):
    CANCEL = "cancel"
    REVERT = "revert"
