"""
Scheduling Domain

Appointment booking between a teacher and a student of a conversation:
slot generation, availability, conflict detection, recurring series, the
appointment lifecycle and calendar projection.

Layers:
- business_hours / slots / availability / conflicts / recurrence / state_machine / calendar:
  pure rules, no database access
- repository: SQLAlchemy reads and compare-and-swap writes
- service: SchedulingService, composes rules with the repository
- router: FastAPI endpoints
"""

from .router import conversations_router, router

__all__ = ["router", "conversations_router"]
