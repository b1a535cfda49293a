"""Scheduling errors.

Every error is local to a single operation. The HTTP layer turns them into
JSON responses (see ``app.main``); service callers can catch ``SchedulingError``.
"""

from typing import Optional

from .enums import AppointmentEvent, AppointmentStatus, ConflictSeverity


class SchedulingError(Exception):
    """Base class for all scheduling engine errors"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class ValidationError(SchedulingError):
    """Malformed or missing input"""

    status_code = 400


class NotFoundError(SchedulingError):
    status_code = 404


class AuthorizationError(SchedulingError):
    """Actor is not a participant of the appointment's conversation"""

    status_code = 403


class InvalidTransitionError(SchedulingError):
    """Event is not allowed from the appointment's current status"""

    status_code = 409

    def __init__(
        self,
        current_status: AppointmentStatus,
        event: AppointmentEvent,
        message: Optional[str] = None,
    ):
        self.current_status = AppointmentStatus(current_status)
        self.event = AppointmentEvent(event)
        super().__init__(
            message
            or f"Cannot {self.event.value} an appointment in status {self.current_status.value}"
        )

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "currentStatus": self.current_status.value,
            "event": self.event.value,
        }


class ConflictError(SchedulingError):
    """Booking rejected because at least one conflict has severity ``error``"""

    status_code = 409

    def __init__(self, conflicts: list, message: Optional[str] = None):
        self.conflicts = list(conflicts)
        super().__init__(message or "Appointment conflicts with scheduling rules")

    @property
    def blocking(self) -> list:
        return [c for c in self.conflicts if c.severity == ConflictSeverity.ERROR]

    @property
    def advisory(self) -> list:
        return [c for c in self.conflicts if c.severity != ConflictSeverity.ERROR]

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }
