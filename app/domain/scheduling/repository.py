"""Appointment repository - Database operations for appointments and chat linkage"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Appointment, Conversation, generate_id
from .enums import COMMITTED_STATUSES, AppointmentStatus
from .intervals import MAX_DURATION_MINUTES


def _participant_filter(participant_ids: Sequence[str]):
    return or_(
        Conversation.teacher_id.in_(participant_ids),
        Conversation.student_id.in_(participant_ids),
    )


class AppointmentRepository:
    """Repository for appointment database operations"""

    # Conversations

    @staticmethod
    def get_conversation(db: Session, chat_id: str) -> Optional[Conversation]:
        return db.query(Conversation).filter(Conversation.id == chat_id).first()

    @staticmethod
    def upsert_conversation(
        db: Session, chat_id: str, teacher_id: str, student_id: str, is_active: bool = True
    ) -> Conversation:
        """Create or update the participants of a chat"""
        conversation = db.query(Conversation).filter(Conversation.id == chat_id).first()
        if conversation is None:
            conversation = Conversation(id=chat_id)
            db.add(conversation)
        conversation.teacher_id = teacher_id
        conversation.student_id = student_id
        conversation.is_active = is_active
        db.commit()
        db.refresh(conversation)
        return conversation

    @staticmethod
    def lock_participant_conversations(db: Session, participant_ids: Sequence[str]) -> list[Conversation]:
        """
        SELECT ... FOR UPDATE every conversation either participant belongs to.

        Bookings that share a participant serialize on these rows until commit.
        Rows are locked in id order to keep lock acquisition deadlock-free.
        """
        return (
            db.query(Conversation)
            .filter(_participant_filter(participant_ids))
            .order_by(Conversation.id)
            .with_for_update()
            .all()
        )

    # Reads

    @staticmethod
    def get_appointment(db: Session, appointment_id: str) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def find_committed_for_participants(
        db: Session,
        participant_ids: Sequence[str],
        window_start: datetime,
        window_end: datetime,
    ) -> list[Appointment]:
        """
        PENDING/CONFIRMED appointments of any participant that may intersect [window_start, window_end).

        Only start times are filtered in SQL; callers do the exact interval check.
        """
        earliest = window_start - timedelta(minutes=MAX_DURATION_MINUTES)
        return (
            db.query(Appointment)
            .join(Conversation, Appointment.chat_id == Conversation.id)
            .filter(
                _participant_filter(participant_ids),
                Appointment.status.in_([s.value for s in COMMITTED_STATUSES]),
                Appointment.date_time < window_end,
                Appointment.date_time > earliest,
            )
            .order_by(Appointment.date_time, Appointment.id)
            .all()
        )

    @staticmethod
    def query_for_participant(
        db: Session,
        user_id: str,
        chat_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ):
        """Base query of a user's appointments with optional filters"""
        query = (
            db.query(Appointment)
            .join(Conversation, Appointment.chat_id == Conversation.id)
            .filter(_participant_filter([user_id]))
        )
        if chat_id:
            query = query.filter(Appointment.chat_id == chat_id)
        if status:
            query = query.filter(Appointment.status == AppointmentStatus(status).value)
        if date_from:
            query = query.filter(Appointment.date_time >= date_from)
        if date_to:
            query = query.filter(Appointment.date_time < date_to)
        return query

    @staticmethod
    def list_for_participant(
        db: Session,
        user_id: str,
        page: int,
        limit: int,
        **filters,
    ) -> tuple[list[Appointment], int]:
        """One page of a user's appointments, soonest first, plus the total count"""
        query = AppointmentRepository.query_for_participant(db, user_id, **filters)
        total = query.count()
        items = (
            query.order_by(Appointment.date_time, Appointment.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def chat_has_appointments(db: Session, chat_id: str) -> bool:
        return db.query(Appointment.id).filter(Appointment.chat_id == chat_id).first() is not None

    @staticmethod
    def find_active_on_chat(
        db: Session, chat_id: str, window_start: datetime, window_end: datetime
    ) -> list[Appointment]:
        """Non-cancelled appointments of a chat starting inside the window"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.chat_id == chat_id,
                Appointment.status != AppointmentStatus.CANCELLED.value,
                Appointment.date_time >= window_start,
                Appointment.date_time < window_end,
            )
            .order_by(Appointment.date_time)
            .all()
        )

    # Writes

    @staticmethod
    def add_series(
        db: Session, chat_id: str, occurrences: Sequence[datetime], **fields
    ) -> list[Appointment]:
        """
        Stage one row per occurrence. The first row is the series parent.
        Does not commit: the caller owns the transaction.
        """
        appointments = []
        parent_id = None
        for index, occurrence in enumerate(occurrences):
            appointment = Appointment(
                id=generate_id(),
                chat_id=chat_id,
                date_time=occurrence,
                parent_appointment_id=parent_id,
                **fields,
            )
            if index == 0:
                parent_id = appointment.id
            db.add(appointment)
            appointments.append(appointment)
        db.flush()
        return appointments

    @staticmethod
    def compare_and_set(
        db: Session,
        appointment_id: str,
        expected_status: AppointmentStatus,
        values: dict,
        **expected,
    ) -> int:
        """
        UPDATE ... WHERE id = :id AND status = :expected [AND column = :value ...]

        Extra keyword arguments pin further columns to the values the caller read.
        Returns the number of rows changed (0 when the status moved underneath us).
        Does not commit.
        """
        values = {
            key: value.value if isinstance(value, Enum) else value
            for key, value in values.items()
        }
        query = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.status == AppointmentStatus(expected_status).value,
        )
        for column, value in expected.items():
            query = query.filter(getattr(Appointment, column) == value)
        return query.update(values, synchronize_session=False)
