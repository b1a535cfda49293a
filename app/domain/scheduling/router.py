"""Scheduling router - FastAPI endpoints for appointments"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import config
from ...auth import get_current_user_id, verify_service_key
from ...database import get_db
from ...models import Appointment
from ...rate_limiter import create_rate_limiter
from .calendar import view_range
from .enums import AppointmentStatus, CalendarView
from .intervals import MAX_DURATION_MINUTES, MIN_DURATION_MINUTES
from .schemas import (
    AppointmentCheckResponse,
    AppointmentCreate,
    AppointmentCreateResponse,
    AppointmentListResponse,
    AppointmentRescheduleResponse,
    AppointmentResponse,
    AppointmentStatsResponse,
    AppointmentUpdate,
    AvailabilityResponse,
    CalendarEventResponse,
    CalendarResponse,
    CancelRequest,
    CompleteRequest,
    ConflictResponse,
    ConversationLink,
    ConversationResponse,
    ReadinessRequest,
    RescheduleRequest,
    RespondRequest,
    TimeSlotResponse,
)
from .service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])
conversations_router = APIRouter(prefix="/conversations", tags=["Conversations"])

booking_rate_limit = create_rate_limiter(
    limit=config.BOOKING_RATE_LIMIT,
    window_seconds=config.BOOKING_RATE_WINDOW_SECONDS,
    key_prefix="booking",
)


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


def to_response(appointment: Appointment) -> AppointmentResponse:
    conversation = appointment.conversation
    return AppointmentResponse(
        id=appointment.id,
        chatId=appointment.chat_id,
        teacherId=conversation.teacher_id if conversation else None,
        studentId=conversation.student_id if conversation else None,
        dateTime=appointment.date_time,
        endTime=appointment.date_time + timedelta(minutes=appointment.duration),
        duration=appointment.duration,
        locationType=appointment.location_type,
        location=appointment.location,
        specificLocation=appointment.specific_location,
        meetingType=appointment.meeting_type,
        status=appointment.status,
        teacherReady=appointment.teacher_ready,
        studentReady=appointment.student_ready,
        teacherCompleted=appointment.teacher_completed,
        studentCompleted=appointment.student_completed,
        bothCompleted=appointment.both_completed,
        cancellationReason=appointment.cancellation_reason,
        isRecurring=appointment.is_recurring,
        recurringPattern=appointment.recurring_pattern,
        recurringEndDate=appointment.recurring_end_date,
        parentAppointmentId=appointment.parent_appointment_id,
        price=appointment.price,
        currency=appointment.currency,
        specialRate=appointment.special_rate,
        isTrialLesson=appointment.is_trial_lesson,
        notes=appointment.notes,
        agenda=appointment.agenda,
        preparationMaterials=appointment.preparation_materials or [],
        requiredMaterials=appointment.required_materials or [],
        reminderTime=appointment.reminder_time,
        createdBy=appointment.created_by,
        createdAt=appointment.created_at,
        updatedAt=appointment.updated_at,
    )


# ============================================================================
# BOOKING
# ============================================================================


@router.post("", response_model=AppointmentCreateResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
    _: None = Depends(booking_rate_limit),
):
    """Request an appointment (or a recurring series) in a conversation"""
    result = service.create_appointment(
        chat_id=data.chatId,
        date_time=data.dateTime,
        duration=data.duration,
        location_type=data.locationType,
        location=data.location,
        meeting_type=data.meetingType,
        actor_id=current_user_id,
        is_recurring=data.isRecurring,
        recurring_pattern=data.recurringPattern,
        recurring_end_date=data.recurringEndDate,
        specific_location=data.specificLocation,
        notes=data.notes,
        agenda=data.agenda,
        price=data.price,
        currency=data.currency,
        special_rate=data.specialRate,
        is_trial_lesson=data.isTrialLesson,
        preparation_materials=data.preparationMaterials,
        required_materials=data.requiredMaterials,
        reminder_time=data.reminderTime,
    )
    return AppointmentCreateResponse(
        appointments=[to_response(a) for a in result.appointments],
        warnings=[ConflictResponse(**w.to_dict()) for w in result.warnings],
    )


@router.get("/availability", response_model=AvailabilityResponse)
async def check_availability(
    chat_id: str = Query(..., alias="chatId"),
    target_date: date = Query(..., alias="date"),
    duration: int = Query(60, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES),
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Candidate slots for a date, marked with availability for both participants"""
    slots = service.check_availability_for_chat(chat_id, target_date, duration, current_user_id)
    return AvailabilityResponse(
        date=target_date,
        duration=duration,
        slots=[TimeSlotResponse(**slot.to_dict()) for slot in slots],
    )


# ============================================================================
# READS
# ============================================================================


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    chat_id: Optional[str] = Query(None, alias="chatId"),
    status: Optional[AppointmentStatus] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Paginated appointments of the current user"""
    result = service.list_appointments(
        current_user_id,
        chat_id=chat_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return AppointmentListResponse(
        appointments=[to_response(a) for a in result["appointments"]],
        pagination=result["pagination"],
    )


@router.get("/calendar", response_model=CalendarResponse)
async def get_calendar(
    view: CalendarView = Query(CalendarView.WEEK),
    anchor_date: date = Query(..., alias="date"),
    chat_id: Optional[str] = Query(None, alias="chatId"),
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Calendar events for the current user in a day/week/month/agenda view"""
    events = service.calendar_for_participant(current_user_id, view, anchor_date, chat_id)
    range_start, range_end = view_range(view, anchor_date)
    return CalendarResponse(
        view=view.value,
        rangeStart=range_start,
        rangeEnd=range_end,
        events=[CalendarEventResponse(**event.to_dict()) for event in events],
    )


@router.get("/stats", response_model=AppointmentStatsResponse)
async def get_stats(
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.get_stats(current_user_id)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return to_response(service.get_appointment(appointment_id, current_user_id))


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{appointment_id}/respond", response_model=AppointmentResponse)
async def respond_to_appointment(
    appointment_id: str,
    data: RespondRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Accept or decline a pending request"""
    appointment = service.respond_to_appointment(appointment_id, current_user_id, data.accepted)
    return to_response(appointment)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def mark_complete(
    appointment_id: str,
    data: CompleteRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Confirm (or deny) that the session took place"""
    appointment = service.mark_complete(appointment_id, current_user_id, data.completed)
    return to_response(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    data: CancelRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = service.cancel_appointment(appointment_id, current_user_id, data.reason)
    return to_response(appointment)


@router.post("/{appointment_id}/readiness", response_model=AppointmentResponse)
async def set_readiness(
    appointment_id: str,
    data: ReadinessRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = service.set_readiness(appointment_id, current_user_id, data.ready, data.side)
    return to_response(appointment)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentRescheduleResponse)
async def reschedule_appointment(
    appointment_id: str,
    data: RescheduleRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
    _: None = Depends(booking_rate_limit),
):
    """Move an upcoming appointment; the other participant has to accept the new time"""
    result = service.reschedule_appointment(
        appointment_id,
        current_user_id,
        data.newDateTime,
        data.reason,
        duration=data.duration,
    )
    return AppointmentRescheduleResponse(
        appointment=to_response(result.appointments[0]),
        warnings=[ConflictResponse(**w.to_dict()) for w in result.warnings],
    )


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = service.update_appointment(
        appointment_id,
        current_user_id,
        location_type=data.locationType,
        location=data.location,
        specific_location=data.specificLocation,
        meeting_type=data.meetingType,
        notes=data.notes,
        agenda=data.agenda,
        price=data.price,
        currency=data.currency,
        special_rate=data.specialRate,
        is_trial_lesson=data.isTrialLesson,
        preparation_materials=data.preparationMaterials,
        required_materials=data.requiredMaterials,
        reminder_time=data.reminderTime,
    )
    return to_response(appointment)


# ============================================================================
# CONVERSATIONS
# ============================================================================


@conversations_router.put("/{chat_id}", response_model=ConversationResponse)
async def link_conversation(
    chat_id: str,
    data: ConversationLink,
    service: SchedulingService = Depends(get_scheduling_service),
    _: None = Depends(verify_service_key),
):
    """Register or update the participants of a chat (called by the conversation service)"""
    conversation = service.link_conversation(chat_id, data.teacherId, data.studentId, data.isActive)
    return ConversationResponse(
        id=conversation.id,
        teacherId=conversation.teacher_id,
        studentId=conversation.student_id,
        isActive=conversation.is_active,
    )


@conversations_router.get("/{chat_id}/appointments/check", response_model=AppointmentCheckResponse)
async def check_chat_appointment(
    chat_id: str,
    target_date: date = Query(..., alias="date"),
    current_user_id: str = Depends(get_current_user_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Whether the chat already has a non-cancelled appointment on a date"""
    appointments = service.appointments_on_date(chat_id, target_date, current_user_id)
    return AppointmentCheckResponse(
        hasAppointment=bool(appointments),
        date=target_date,
        appointmentIds=[a.id for a in appointments],
    )
