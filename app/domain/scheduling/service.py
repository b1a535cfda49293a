"""Scheduling service - Business logic for appointment booking and lifecycle"""

import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence

from sqlalchemy.orm import Session

from ... import config
from ...models import Appointment, Conversation
from .availability import AvailabilityChecker
from .business_hours import BusinessHoursTable, get_business_hours, to_utc_naive, utcnow
from .calendar import CalendarEvent, CalendarProjector, view_range
from .conflicts import Conflict, ConflictDetector, has_blocking
from .enums import (
    AppointmentStatus,
    CalendarView,
    LocationType,
    MarkNotCompletePolicy,
    MeetingType,
    ParticipantSide,
    RecurringPattern,
)
from .exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .intervals import MAX_DURATION_MINUTES, MIN_DURATION_MINUTES, BookedInterval
from .repository import AppointmentRepository
from .slots import TimeSlot
from .state_machine import AppointmentStateMachine, Transition

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class BookingResult(NamedTuple):
    appointments: List[Appointment]
    warnings: List[Conflict]


class SchedulingService:
    """Service layer for appointment scheduling"""

    def __init__(
        self,
        db: Session,
        business_hours: Optional[BusinessHoursTable] = None,
        clock: Callable[[], datetime] = utcnow,
        policy: Optional[MarkNotCompletePolicy] = None,
        holidays: Optional[Iterable] = None,
    ):
        self.db = db
        self.repo = AppointmentRepository()
        self.business_hours = business_hours or get_business_hours()
        self.clock = clock
        self.policy = MarkNotCompletePolicy(policy or config.MARK_NOT_COMPLETE_POLICY)
        self.holidays = list(config.HOLIDAYS if holidays is None else holidays)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _existing_lookup(
        self, participant_ids: Sequence[str], window_start: datetime, window_end: datetime
    ) -> List[BookedInterval]:
        appointments = self.repo.find_committed_for_participants(
            self.db, participant_ids, window_start, window_end
        )
        return [BookedInterval.from_appointment(a) for a in appointments]

    def _detector(self) -> ConflictDetector:
        return ConflictDetector(
            self.business_hours,
            self._existing_lookup,
            min_notice_hours=config.MIN_ADVANCE_NOTICE_HOURS,
            max_occurrences=config.MAX_RECURRING_OCCURRENCES,
            holidays=self.holidays,
        )

    def _get_conversation(self, chat_id: str) -> Conversation:
        conversation = self.repo.get_conversation(self.db, chat_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        return conversation

    @staticmethod
    def _side_of(conversation: Conversation, user_id: str) -> ParticipantSide:
        if user_id == conversation.teacher_id:
            return ParticipantSide.TEACHER
        if user_id == conversation.student_id:
            return ParticipantSide.STUDENT
        raise AuthorizationError("You are not a participant in this conversation")

    @staticmethod
    def _check_duration(duration: Optional[int]):
        if duration is None or not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
            raise ValidationError(
                f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
            )

    def _get_for_participant(self, appointment_id: str, user_id: str) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        self._side_of(appointment.conversation, user_id)
        return appointment

    def _machine(self, appointment: Appointment) -> AppointmentStateMachine:
        return AppointmentStateMachine(
            appointment,
            now=self.clock(),
            policy=self.policy,
            readiness_window_hours=config.READINESS_WINDOW_HOURS,
            modification_cutoff_hours=config.MIN_ADVANCE_NOTICE_HOURS,
        )

    def _apply(self, appointment: Appointment, transition: Transition, **expected) -> Appointment:
        """Persist a transition as a compare-and-swap on the status the machine saw"""
        try:
            changed = self.repo.compare_and_set(
                self.db, appointment.id, transition.from_status, transition.values(), **expected
            )
            if changed == 0:
                self.db.rollback()
                fresh = self.repo.get_appointment(self.db, appointment.id)
                self.db.refresh(fresh)
                logger.warning(
                    f"⚠️ Lost update on appointment {appointment.id}: "
                    f"expected {transition.from_status.value}, found {fresh.status}"
                )
                raise InvalidTransitionError(
                    fresh.status,
                    transition.event,
                    f"Appointment changed concurrently and is now {fresh.status}",
                )
            self.db.commit()
        except InvalidTransitionError:
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"🔄 Appointment {appointment.id}: {transition.event.value} "
            f"{transition.from_status.value} → {transition.to_status.value}"
        )
        return appointment

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def create_appointment(
        self,
        chat_id: str,
        date_time: datetime,
        duration: int,
        location_type: LocationType,
        location: str,
        meeting_type: MeetingType = MeetingType.REGULAR_LESSON,
        actor_id: Optional[str] = None,
        is_recurring: bool = False,
        recurring_pattern: RecurringPattern = RecurringPattern.NONE,
        recurring_end_date: Optional[datetime] = None,
        **details,
    ) -> BookingResult:
        """
        Validate and commit a new appointment (or every occurrence of a series) as PENDING.

        The conflict check runs inside the write transaction after the
        participants' conversations are locked, so it sees the latest committed
        state. Recurring series are all-or-nothing.

        Raises:
            ValidationError: bad input or start not in the future
            NotFoundError: unknown conversation
            AuthorizationError: actor is not a participant
            ConflictError: at least one blocking conflict (all of them are attached)
        """
        self._check_duration(duration)
        if not location or not location.strip():
            raise ValidationError("Location is required")

        now = self.clock()
        start = to_utc_naive(date_time)
        end_date = to_utc_naive(recurring_end_date) if recurring_end_date else None
        if start <= now:
            raise ValidationError("Appointment must be scheduled in the future")

        pattern = RecurringPattern(recurring_pattern or RecurringPattern.NONE)
        if pattern != RecurringPattern.NONE:
            # A pattern always means a series; a missing end date is reported as a pattern conflict
            is_recurring = True

        logger.info(f"📥 Booking request for chat {chat_id} at {start.isoformat()} ({duration} min)")

        try:
            conversation = self._get_conversation(chat_id)
            if actor_id is not None:
                self._side_of(conversation, actor_id)
            if not conversation.is_active:
                raise ValidationError("Conversation is not active")

            participant_ids = conversation.participant_ids
            self.repo.lock_participant_conversations(self.db, participant_ids)

            detector = self._detector()
            conflicts = detector.detect(
                start,
                duration,
                participant_ids,
                now=now,
                is_recurring=is_recurring,
                recurring_pattern=pattern,
                recurring_end_date=end_date,
            )
            if has_blocking(conflicts):
                raise ConflictError(conflicts)

            occurrences = list(detector.occurrences(start, is_recurring, pattern, end_date))
            fields = {
                "duration": duration,
                "location_type": LocationType(location_type).value,
                "location": location.strip(),
                "meeting_type": MeetingType(meeting_type).value,
                "status": AppointmentStatus.PENDING.value,
                "is_recurring": is_recurring,
                "recurring_pattern": pattern.value if is_recurring else RecurringPattern.NONE.value,
                "recurring_end_date": end_date if is_recurring else None,
                "currency": details.pop("currency", None) or config.DEFAULT_CURRENCY,
                "created_by": actor_id,
            }
            fields.update({k: v for k, v in details.items() if v is not None})

            appointments = self.repo.add_series(self.db, chat_id, occurrences, **fields)
            self.db.commit()
        except ConflictError as e:
            self.db.rollback()
            logger.warning(
                f"🚫 Booking rejected for chat {chat_id}: "
                f"{[c.type.value for c in e.blocking]}"
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        for appointment in appointments:
            self.db.refresh(appointment)

        logger.info(f"✅ Booked {len(appointments)} appointment(s) for chat {chat_id}")
        return BookingResult(appointments, [c for c in conflicts if not c.is_blocking])

    def check_availability(
        self,
        target_date: date,
        duration: int,
        participant_ids: Sequence[str],
    ) -> List[TimeSlot]:
        """Candidate slots for a date with availability for both participants"""
        checker = AvailabilityChecker(
            self.business_hours,
            self._existing_lookup,
            config.SLOT_INTERVAL_MINUTES,
            holidays=self.holidays,
        )
        return checker.check(target_date, duration, participant_ids, now=self.clock())

    def check_availability_for_chat(
        self, chat_id: str, target_date: date, duration: int, actor_id: str
    ) -> List[TimeSlot]:
        conversation = self._get_conversation(chat_id)
        self._side_of(conversation, actor_id)
        return self.check_availability(target_date, duration, conversation.participant_ids)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: str, actor_id: str) -> Appointment:
        return self._get_for_participant(appointment_id, actor_id)

    def list_appointments(
        self,
        actor_id: str,
        chat_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict:
        """
        Returns:
            {"appointments": [...], "pagination": {page, limit, total, totalPages, hasMore}}
        """
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")

        if chat_id:
            self._side_of(self._get_conversation(chat_id), actor_id)

        items, total = self.repo.list_for_participant(
            self.db,
            actor_id,
            page,
            limit,
            chat_id=chat_id,
            status=status,
            date_from=to_utc_naive(date_from) if date_from else None,
            date_to=to_utc_naive(date_to) if date_to else None,
        )
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "appointments": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": total_pages,
                "hasMore": page < total_pages,
            },
        }

    def has_appointment_on_date(self, chat_id: str, target_date: date, actor_id: str) -> bool:
        return bool(self.appointments_on_date(chat_id, target_date, actor_id))

    def appointments_on_date(self, chat_id: str, target_date: date, actor_id: str) -> List[Appointment]:
        """Non-cancelled appointments of the chat on a local calendar date"""
        conversation = self._get_conversation(chat_id)
        self._side_of(conversation, actor_id)
        day_start, day_end = self._local_day_bounds(target_date, target_date)
        return self.repo.find_active_on_chat(self.db, chat_id, day_start, day_end)

    def _local_day_bounds(self, first: date, last: date):
        """Naive UTC instants spanning local dates first..last inclusive"""
        tz = self.business_hours.tz
        start = datetime.combine(first, datetime.min.time(), tzinfo=tz)
        end = datetime.combine(last + timedelta(days=1), datetime.min.time(), tzinfo=tz)
        return to_utc_naive(start), to_utc_naive(end)

    def get_stats(self, actor_id: str) -> dict:
        """Totals per status, rates, hours and revenue across the actor's appointments"""
        appointments = self.repo.query_for_participant(self.db, actor_id).all()
        counts = Counter(AppointmentStatus(a.status) for a in appointments)
        total = len(appointments)

        now = self.clock()
        this_week_start, _ = view_range(CalendarView.WEEK, self.business_hours.to_local(now).date())
        week_bounds = self._local_day_bounds(this_week_start, this_week_start + timedelta(days=6))
        next_bounds = self._local_day_bounds(
            this_week_start + timedelta(days=7), this_week_start + timedelta(days=13)
        )

        def upcoming_in(bounds):
            start, end = bounds
            return sum(
                1
                for a in appointments
                if a.status in (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)
                and max(start, now) <= a.date_time < end
            )

        completed = [a for a in appointments if a.status == AppointmentStatus.COMPLETED.value]
        meeting_types = Counter(a.meeting_type for a in appointments)
        locations = Counter(a.location_type for a in appointments)

        return {
            "total": total,
            "pending": counts[AppointmentStatus.PENDING],
            "confirmed": counts[AppointmentStatus.CONFIRMED],
            "waitingToComplete": counts[AppointmentStatus.WAITING_TO_COMPLETE],
            "completed": counts[AppointmentStatus.COMPLETED],
            "cancelled": counts[AppointmentStatus.CANCELLED],
            "upcomingThisWeek": upcoming_in(week_bounds),
            "upcomingNextWeek": upcoming_in(next_bounds),
            "averageDuration": round(sum(a.duration for a in appointments) / total, 1) if total else 0.0,
            "mostCommonMeetingType": meeting_types.most_common(1)[0][0] if total else None,
            "mostCommonLocation": locations.most_common(1)[0][0] if total else None,
            "completionRate": round(counts[AppointmentStatus.COMPLETED] / total * 100, 1) if total else 0.0,
            "cancellationRate": round(counts[AppointmentStatus.CANCELLED] / total * 100, 1) if total else 0.0,
            "totalHours": round(sum(a.duration for a in completed) / 60, 2),
            "totalRevenue": round(sum(a.price or 0 for a in completed), 2),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def respond_to_appointment(self, appointment_id: str, actor_id: str, accepted: bool) -> Appointment:
        """PENDING → CONFIRMED (accepted) or CANCELLED (rejected)"""
        appointment = self._get_for_participant(appointment_id, actor_id)
        transition = self._machine(appointment).respond(accepted)
        return self._apply(appointment, transition)

    def mark_complete(self, appointment_id: str, actor_id: str, completed: bool) -> Appointment:
        """Record the actor's side of two-sided completion"""
        appointment = self._get_for_participant(appointment_id, actor_id)
        side = self._side_of(appointment.conversation, actor_id)
        transition = self._machine(appointment).record_completion(side, completed)
        appointment = self._apply(appointment, transition)
        if appointment.status == AppointmentStatus.COMPLETED.value:
            logger.info(f"🎉 Appointment {appointment.id} completed by both participants")
        return appointment

    def cancel_appointment(self, appointment_id: str, actor_id: str, reason: str) -> Appointment:
        appointment = self._get_for_participant(appointment_id, actor_id)
        transition = self._machine(appointment).cancel(reason)
        return self._apply(appointment, transition)

    def reschedule_appointment(
        self,
        appointment_id: str,
        actor_id: str,
        new_date_time: datetime,
        reason: str,
        duration: Optional[int] = None,
    ) -> BookingResult:
        """
        Move an upcoming appointment to a new start time.

        The new time is validated like a new booking, ignoring the appointment
        itself, while the participants' conversations are locked. A confirmed
        appointment goes back to PENDING so the other side can accept the move.

        Raises:
            InvalidTransitionError: terminal status, or less than the notice period before the start
            ValidationError: blank reason, bad duration or a start in the past
            ConflictError: the new time has blocking conflicts
        """
        appointment = self._get_for_participant(appointment_id, actor_id)
        if duration is not None:
            self._check_duration(duration)
        now = self.clock()
        new_start = to_utc_naive(new_date_time)
        participant_ids = appointment.conversation.participant_ids

        try:
            self.repo.lock_participant_conversations(self.db, participant_ids)
            self.db.refresh(appointment)
            previous_start = appointment.date_time

            transition = self._machine(appointment).reschedule(new_start, reason, duration)
            conflicts = self._detector().detect(
                new_start,
                duration or appointment.duration,
                participant_ids,
                now=now,
                exclude_ids=[appointment.id],
            )
            if has_blocking(conflicts):
                raise ConflictError(conflicts)
        except ConflictError as e:
            self.db.rollback()
            logger.warning(
                f"🚫 Reschedule of {appointment_id} rejected: {[c.type.value for c in e.blocking]}"
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        appointment = self._apply(appointment, transition, date_time=previous_start)
        logger.info(
            f"📅 Appointment {appointment.id} moved from {previous_start.isoformat()} "
            f"to {appointment.date_time.isoformat()}"
        )
        return BookingResult([appointment], [c for c in conflicts if not c.is_blocking])

    def update_appointment(self, appointment_id: str, actor_id: str, **details) -> Appointment:
        """Edit location, notes, pricing and materials of a PENDING or CONFIRMED appointment"""
        appointment = self._get_for_participant(appointment_id, actor_id)
        changes = {k: v for k, v in details.items() if v is not None}
        if "location" in changes:
            if not changes["location"].strip():
                raise ValidationError("Location cannot be blank")
            changes["location"] = changes["location"].strip()
        if "location_type" in changes:
            changes["location_type"] = LocationType(changes["location_type"])
        if "meeting_type" in changes:
            changes["meeting_type"] = MeetingType(changes["meeting_type"])
        transition = self._machine(appointment).update(changes)
        return self._apply(appointment, transition)

    def set_readiness(
        self,
        appointment_id: str,
        actor_id: str,
        ready: bool,
        side: Optional[ParticipantSide] = None,
    ) -> Appointment:
        """Toggle the actor's readiness flag; a participant can only set their own side"""
        appointment = self._get_for_participant(appointment_id, actor_id)
        actor_side = self._side_of(appointment.conversation, actor_id)
        if side is not None and ParticipantSide(side) != actor_side:
            raise AuthorizationError(f"Only the {ParticipantSide(side).value} can change this flag")
        transition = self._machine(appointment).set_readiness(actor_side, ready)
        return self._apply(appointment, transition)

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    def project_calendar(
        self, appointments: Iterable, view: CalendarView, anchor_date: date
    ) -> List[CalendarEvent]:
        return CalendarProjector(self.business_hours.tz).project(appointments, view, anchor_date)

    def calendar_for_participant(
        self,
        actor_id: str,
        view: CalendarView,
        anchor_date: date,
        chat_id: Optional[str] = None,
    ) -> List[CalendarEvent]:
        """Load the actor's appointments covering the view range and project them"""
        first, last = view_range(view, anchor_date)
        window_start, window_end = self._local_day_bounds(first, last)
        if chat_id:
            self._side_of(self._get_conversation(chat_id), actor_id)
        appointments = self.repo.query_for_participant(
            self.db, actor_id, chat_id=chat_id, date_from=window_start, date_to=window_end
        ).all()
        return self.project_calendar(appointments, view, anchor_date)

    # ------------------------------------------------------------------
    # Chat linkage
    # ------------------------------------------------------------------

    def link_conversation(
        self, chat_id: str, teacher_id: str, student_id: str, is_active: bool = True
    ) -> Conversation:
        if teacher_id == student_id:
            raise ValidationError("Teacher and student must be different users")

        existing = self.repo.get_conversation(self.db, chat_id)
        if (
            existing is not None
            and (existing.teacher_id, existing.student_id) != (teacher_id, student_id)
            and self.repo.chat_has_appointments(self.db, chat_id)
        ):
            logger.warning(f"⚠️ Refused to change participants of chat {chat_id} with appointments")
            raise ValidationError("Participants cannot change once the conversation has appointments")

        conversation = self.repo.upsert_conversation(
            self.db, chat_id, teacher_id, student_id, is_active
        )
        logger.info(f"🔗 Linked conversation {chat_id} ({teacher_id} ↔ {student_id})")
        return conversation
