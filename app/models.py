import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID string primary key"""
    return str(uuid.uuid4())


class Conversation(Base):
    """Chat between a teacher and a student. Owned by the conversation subsystem; read here."""

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=generate_id)
    teacher_id = Column(String(255), nullable=False, index=True)
    student_id = Column(String(255), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="conversation")

    @property
    def participant_ids(self):
        return [self.teacher_id, self.student_id]


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=generate_id)
    chat_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)

    # Scheduling (date_time is stored as naive UTC)
    date_time = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, nullable=False)  # minutes
    location_type = Column(String(50), nullable=False)  # online, student_place, tutor_place, ...
    location = Column(String(200), nullable=False)
    specific_location = Column(String(500), nullable=True)
    meeting_type = Column(String(50), nullable=False)  # first_meeting, regular_lesson, ...

    # Lifecycle
    status = Column(String(50), default="PENDING", nullable=False, index=True)
    teacher_ready = Column(Boolean, default=False, nullable=False)
    student_ready = Column(Boolean, default=False, nullable=False)
    teacher_completed = Column(Boolean, default=False, nullable=False)
    student_completed = Column(Boolean, default=False, nullable=False)
    both_completed = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(String(500), nullable=True)

    # Recurrence
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_pattern = Column(String(20), default="none", nullable=False)
    recurring_end_date = Column(DateTime, nullable=True)
    parent_appointment_id = Column(
        String(36), ForeignKey("appointments.id"), nullable=True, index=True
    )  # First occurrence of the series

    # Commercial / metadata
    price = Column(Float, nullable=True)
    currency = Column(String(3), default="NOK", nullable=False)
    special_rate = Column(Boolean, default=False, nullable=False)
    is_trial_lesson = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    agenda = Column(Text, nullable=True)
    preparation_materials = Column(JSON, default=list)
    required_materials = Column(JSON, default=list)
    reminder_time = Column(Integer, default=60, nullable=True)  # minutes before start

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    conversation = relationship("Conversation", back_populates="appointments")
