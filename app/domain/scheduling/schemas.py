"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import (
    clean_material_list,
    validate_currency,
    validate_optional_text,
    validate_uuid,
)
from .enums import (
    AppointmentStatus,
    LocationType,
    MeetingType,
    ParticipantSide,
    RecurringPattern,
)
from .intervals import MAX_DURATION_MINUTES, MIN_DURATION_MINUTES

MAX_REMINDER_MINUTES = 7 * 24 * 60


class AppointmentCreate(BaseModel):
    """Schema for requesting a new appointment (or recurring series)"""

    chatId: str
    dateTime: datetime
    duration: int
    locationType: LocationType
    location: str
    specificLocation: Optional[str] = None
    meetingType: MeetingType = MeetingType.REGULAR_LESSON
    notes: Optional[str] = None
    agenda: Optional[str] = None
    isRecurring: bool = False
    recurringPattern: RecurringPattern = RecurringPattern.NONE
    recurringEndDate: Optional[datetime] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    specialRate: bool = False
    isTrialLesson: bool = False
    preparationMaterials: List[str] = []
    requiredMaterials: List[str] = []
    reminderTime: Optional[int] = 60

    @field_validator("chatId")
    @classmethod
    def validate_chat_id(cls, v):
        if not validate_uuid(v):
            raise ValueError("chatId must be a valid UUID")
        return v

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v < MIN_DURATION_MINUTES or v > MAX_DURATION_MINUTES:
            raise ValueError(
                f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
            )
        return v

    @field_validator("location")
    @classmethod
    def validate_location(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Location is required")
        if len(v) > 200:
            raise ValueError("Location cannot exceed 200 characters")
        return v

    @field_validator("specificLocation")
    @classmethod
    def validate_specific_location(cls, v):
        return validate_optional_text(v, 500, "Specific location")

    @field_validator("notes", "agenda")
    @classmethod
    def validate_long_text(cls, v, info):
        return validate_optional_text(v, 1000, info.field_name.capitalize())

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Price must be positive")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency_code(cls, v):
        return validate_currency(v)

    @field_validator("preparationMaterials", "requiredMaterials")
    @classmethod
    def validate_materials(cls, v):
        return clean_material_list(v)

    @field_validator("reminderTime")
    @classmethod
    def validate_reminder_time(cls, v):
        if v is not None and not 0 <= v <= MAX_REMINDER_MINUTES:
            raise ValueError("Reminder time must be between 0 and 10080 minutes")
        return v


class RespondRequest(BaseModel):
    accepted: bool


class CompleteRequest(BaseModel):
    completed: bool


class CancelRequest(BaseModel):
    reason: str


class ReadinessRequest(BaseModel):
    ready: bool
    side: Optional[ParticipantSide] = None  # defaults to the caller's side


class RescheduleRequest(BaseModel):
    """Move an appointment to a new start time (optionally with a new length)"""

    newDateTime: datetime
    reason: str
    duration: Optional[int] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Reason is required")
        if len(v) > 500:
            raise ValueError("Reason cannot exceed 500 characters")
        return v

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and not MIN_DURATION_MINUTES <= v <= MAX_DURATION_MINUTES:
            raise ValueError(
                f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
            )
        return v


class AppointmentUpdate(BaseModel):
    """Partial update of an appointment's details. Timing changes go through reschedule."""

    locationType: Optional[LocationType] = None
    location: Optional[str] = None
    specificLocation: Optional[str] = None
    meetingType: Optional[MeetingType] = None
    notes: Optional[str] = None
    agenda: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    specialRate: Optional[bool] = None
    isTrialLesson: Optional[bool] = None
    preparationMaterials: Optional[List[str]] = None
    requiredMaterials: Optional[List[str]] = None
    reminderTime: Optional[int] = None

    @field_validator("location")
    @classmethod
    def validate_location(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Location cannot be blank")
        if len(v) > 200:
            raise ValueError("Location cannot exceed 200 characters")
        return v

    @field_validator("specificLocation")
    @classmethod
    def validate_specific_location(cls, v):
        return validate_optional_text(v, 500, "Specific location")

    @field_validator("notes", "agenda")
    @classmethod
    def validate_long_text(cls, v, info):
        return validate_optional_text(v, 1000, info.field_name.capitalize())

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Price must be positive")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency_code(cls, v):
        return validate_currency(v)

    @field_validator("preparationMaterials", "requiredMaterials")
    @classmethod
    def validate_materials(cls, v):
        return clean_material_list(v) if v is not None else v

    @field_validator("reminderTime")
    @classmethod
    def validate_reminder_time(cls, v):
        if v is not None and not 0 <= v <= MAX_REMINDER_MINUTES:
            raise ValueError("Reminder time must be between 0 and 10080 minutes")
        return v


class ConversationLink(BaseModel):
    """Chat linkage pushed by the conversation subsystem"""

    teacherId: str
    studentId: str
    isActive: bool = True

    @field_validator("teacherId", "studentId")
    @classmethod
    def validate_participant(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Participant id is required")
        return v


class ConversationResponse(BaseModel):
    id: str
    teacherId: str
    studentId: str
    isActive: bool


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: str
    chatId: str
    teacherId: Optional[str] = None
    studentId: Optional[str] = None
    dateTime: datetime
    endTime: datetime
    duration: int
    locationType: str
    location: str
    specificLocation: Optional[str] = None
    meetingType: str
    status: AppointmentStatus
    teacherReady: bool
    studentReady: bool
    teacherCompleted: bool
    studentCompleted: bool
    bothCompleted: bool
    cancellationReason: Optional[str] = None
    isRecurring: bool
    recurringPattern: str
    recurringEndDate: Optional[datetime] = None
    parentAppointmentId: Optional[str] = None
    price: Optional[float] = None
    currency: str
    specialRate: bool
    isTrialLesson: bool
    notes: Optional[str] = None
    agenda: Optional[str] = None
    preparationMaterials: List[str] = []
    requiredMaterials: List[str] = []
    reminderTime: Optional[int] = None
    createdBy: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConflictResponse(BaseModel):
    type: str
    severity: str
    message: str
    conflictingAppointmentId: Optional[str] = None
    occurrence: Optional[datetime] = None


class AppointmentCreateResponse(BaseModel):
    appointments: List[AppointmentResponse]
    warnings: List[ConflictResponse] = []


class AppointmentRescheduleResponse(BaseModel):
    appointment: AppointmentResponse
    warnings: List[ConflictResponse] = []


class TimeSlotResponse(BaseModel):
    start: datetime
    end: datetime
    available: bool
    reason: Optional[str] = None
    conflictingAppointmentId: Optional[str] = None


class AvailabilityResponse(BaseModel):
    date: date
    duration: int
    slots: List[TimeSlotResponse]


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int
    hasMore: bool


class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentResponse]
    pagination: PaginationResponse


class CalendarEventResponse(BaseModel):
    id: str
    title: str
    start: datetime
    end: datetime
    status: AppointmentStatus
    backgroundColor: str
    borderColor: str
    textColor: str
    column: int
    row: int
    lane: int
    top: Optional[float] = None
    height: Optional[float] = None


class CalendarResponse(BaseModel):
    view: str
    rangeStart: date
    rangeEnd: date
    events: List[CalendarEventResponse]


class AppointmentStatsResponse(BaseModel):
    total: int
    pending: int
    confirmed: int
    waitingToComplete: int
    completed: int
    cancelled: int
    upcomingThisWeek: int
    upcomingNextWeek: int
    averageDuration: float
    mostCommonMeetingType: Optional[str] = None
    mostCommonLocation: Optional[str] = None
    completionRate: float
    cancellationRate: float
    totalHours: float
    totalRevenue: float


class AppointmentCheckResponse(BaseModel):
    hasAppointment: bool
    date: date
    appointmentIds: List[str] = []
