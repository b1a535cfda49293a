"""
Appointment State Machine

Explicit transition table for the appointment lifecycle. The machine never
touches storage: each event returns a ``Transition`` describing the expected
current status and the column changes, which the repository applies as a
compare-and-swap on ``status``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional, Tuple

from .business_hours import to_utc_naive
from .enums import AppointmentEvent, AppointmentStatus, MarkNotCompletePolicy, ParticipantSide
from .exceptions import InvalidTransitionError, ValidationError

logger = logging.getLogger(__name__)

S = AppointmentStatus
E = AppointmentEvent

# (from, event) -> permitted targets. Anything missing is an invalid transition.
TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentEvent], FrozenSet[AppointmentStatus]] = {
    (S.PENDING, E.ACCEPT): frozenset({S.CONFIRMED}),
    (S.PENDING, E.REJECT): frozenset({S.CANCELLED}),
    (S.CONFIRMED, E.CANCEL): frozenset({S.CANCELLED}),
    (S.CONFIRMED, E.MARK_COMPLETE): frozenset({S.WAITING_TO_COMPLETE}),
    (S.WAITING_TO_COMPLETE, E.MARK_COMPLETE): frozenset({S.COMPLETED}),
    (S.WAITING_TO_COMPLETE, E.MARK_NOT_COMPLETE): frozenset({S.CANCELLED, S.CONFIRMED}),
    (S.CONFIRMED, E.SET_READINESS): frozenset({S.CONFIRMED}),
    # A moved appointment needs the other participant to accept it again
    (S.PENDING, E.RESCHEDULE): frozenset({S.PENDING}),
    (S.CONFIRMED, E.RESCHEDULE): frozenset({S.PENDING}),
    (S.PENDING, E.UPDATE): frozenset({S.PENDING}),
    (S.CONFIRMED, E.UPDATE): frozenset({S.CONFIRMED}),
}

DEFAULT_READINESS_WINDOW_HOURS = 24
DEFAULT_MODIFICATION_CUTOFF_HOURS = 2

COMPLETION_FLAGS = {
    ParticipantSide.TEACHER: "teacher_completed",
    ParticipantSide.STUDENT: "student_completed",
}
READINESS_FLAGS = {
    ParticipantSide.TEACHER: "teacher_ready",
    ParticipantSide.STUDENT: "student_ready",
}


def allowed_events(status: AppointmentStatus) -> list:
    status = AppointmentStatus(status)
    return [event for (source, event) in TRANSITIONS if source == status]


@dataclass
class Transition:
    """Result of applying an event: expected status plus the columns to write"""

    event: AppointmentEvent
    from_status: AppointmentStatus
    to_status: AppointmentStatus
    changes: Dict[str, object] = field(default_factory=dict)

    def values(self) -> Dict[str, object]:
        values = dict(self.changes)
        values["status"] = self.to_status
        return values


class AppointmentStateMachine:
    """
    Lifecycle rules for a single appointment.

    ``appointment`` only needs ``status``, ``date_time``, ``duration`` and the
    readiness/completion flags, so ORM rows and plain test objects both work.
    """

    def __init__(
        self,
        appointment,
        now: datetime,
        policy: MarkNotCompletePolicy = MarkNotCompletePolicy.CANCEL,
        readiness_window_hours: float = DEFAULT_READINESS_WINDOW_HOURS,
        modification_cutoff_hours: float = DEFAULT_MODIFICATION_CUTOFF_HOURS,
    ):
        self.appointment = appointment
        self.now = to_utc_naive(now)
        self.policy = MarkNotCompletePolicy(policy)
        self.readiness_window = timedelta(hours=readiness_window_hours)
        self.modification_cutoff = timedelta(hours=modification_cutoff_hours)

    @property
    def status(self) -> AppointmentStatus:
        return AppointmentStatus(self.appointment.status)

    @property
    def starts_at(self) -> datetime:
        return to_utc_naive(self.appointment.date_time)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.appointment.duration)

    def _target(self, event: AppointmentEvent, preferred: Optional[AppointmentStatus] = None):
        targets = TRANSITIONS.get((self.status, event))
        if not targets:
            raise InvalidTransitionError(self.status, event)
        if preferred is not None:
            return preferred
        (target,) = targets
        return target

    def _transition(self, event, to_status, **changes) -> Transition:
        transition = Transition(event, self.status, to_status, changes)
        logger.debug(f"{event.value}: {self.status.value} → {to_status.value}")
        return transition

    # Responses to a request

    def accept(self) -> Transition:
        target = self._target(E.ACCEPT)
        return self._transition(E.ACCEPT, target)

    def reject(self) -> Transition:
        target = self._target(E.REJECT)
        return self._transition(E.REJECT, target, cancellation_reason="Declined")

    def respond(self, accepted: bool) -> Transition:
        return self.accept() if accepted else self.reject()

    def cancel(self, reason: Optional[str]) -> Transition:
        target = self._target(E.CANCEL)
        if self.now >= self.starts_at:
            raise InvalidTransitionError(
                self.status, E.CANCEL, "Only upcoming appointments can be cancelled"
            )
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        return self._transition(E.CANCEL, target, cancellation_reason=reason.strip())

    # Two-sided completion

    def mark_complete(self, side: ParticipantSide) -> Transition:
        side = ParticipantSide(side)
        target = self._target(E.MARK_COMPLETE)
        flag = COMPLETION_FLAGS[side]

        if self.status == S.CONFIRMED and self.now < self.ends_at:
            raise InvalidTransitionError(
                self.status, E.MARK_COMPLETE, "The appointment has not finished yet"
            )
        if getattr(self.appointment, flag):
            raise InvalidTransitionError(
                self.status, E.MARK_COMPLETE, f"The {side.value} has already confirmed completion"
            )

        flags = {name: bool(getattr(self.appointment, name)) for name in COMPLETION_FLAGS.values()}
        flags[flag] = True
        both = all(flags.values())
        return self._transition(E.MARK_COMPLETE, target, **{flag: True, "both_completed": both})

    def mark_not_complete(self) -> Transition:
        if self.policy == MarkNotCompletePolicy.REVERT:
            target = self._target(E.MARK_NOT_COMPLETE, S.CONFIRMED)
            return self._transition(
                E.MARK_NOT_COMPLETE,
                target,
                teacher_completed=False,
                student_completed=False,
                both_completed=False,
            )
        target = self._target(E.MARK_NOT_COMPLETE, S.CANCELLED)
        return self._transition(
            E.MARK_NOT_COMPLETE,
            target,
            both_completed=False,
            cancellation_reason="Session did not take place",
        )

    def record_completion(self, side: ParticipantSide, completed: bool) -> Transition:
        return self.mark_complete(side) if completed else self.mark_not_complete()

    # Readiness

    def set_readiness(self, side: ParticipantSide, ready: bool) -> Transition:
        side = ParticipantSide(side)
        target = self._target(E.SET_READINESS)
        opens_at = self.starts_at - self.readiness_window
        if not (opens_at <= self.now < self.ends_at):
            raise InvalidTransitionError(
                self.status,
                E.SET_READINESS,
                "Readiness can only be set within "
                f"{self.readiness_window.total_seconds() / 3600:g} hours of the appointment",
            )
        return self._transition(E.SET_READINESS, target, **{READINESS_FLAGS[side]: bool(ready)})

    # Changes to an upcoming appointment

    def _check_cutoff(self, event: AppointmentEvent, action: str):
        if self.starts_at - self.now < self.modification_cutoff:
            raise InvalidTransitionError(
                self.status,
                event,
                f"Appointments cannot be {action} less than "
                f"{self.modification_cutoff.total_seconds() / 3600:g} hours before they start",
            )

    def reschedule(
        self, new_start: datetime, reason: Optional[str], duration: Optional[int] = None
    ) -> Transition:
        """Move to a new start; confirmed appointments go back to PENDING and readiness resets"""
        target = self._target(E.RESCHEDULE)
        self._check_cutoff(E.RESCHEDULE, "rescheduled")
        if not reason or not reason.strip():
            raise ValidationError("A reason for rescheduling is required")
        new_start = to_utc_naive(new_start)
        if new_start <= self.now:
            raise ValidationError("Appointment must be scheduled in the future")

        notes = getattr(self.appointment, "notes", None) or ""
        changes = {
            "date_time": new_start,
            "teacher_ready": False,
            "student_ready": False,
            "notes": f"{notes}\n\nRescheduled: {reason.strip()}".strip(),
        }
        if duration is not None:
            changes["duration"] = duration
        return self._transition(E.RESCHEDULE, target, **changes)

    def update(self, changes: Dict[str, object]) -> Transition:
        """Edit details without touching the timing or the status"""
        target = self._target(E.UPDATE)
        if self.status == S.CONFIRMED:
            self._check_cutoff(E.UPDATE, "changed")
        if not changes:
            raise ValidationError("No changes given")
        return self._transition(E.UPDATE, target, **changes)
