"""
Queue Domain Models

Same-day patient queue per doctor and the doctor's daily presence record.
"""

from sqlalchemy import (
    Column, String, Date, DateTime, ForeignKey,
    Integer, Text, Enum, Index, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from clinicflow.core.clock import utcnow
from clinicflow.infrastructure.database import Base
import uuid
import enum


class QueueEntryType(str, enum.Enum):
    """Type of queue entry"""
    WALK_IN = "WALK_IN"
    SCHEDULED = "SCHEDULED"


class QueueStatus(str, enum.Enum):
    """Queue status"""
    QUEUED = "QUEUED"
    WAITING = "WAITING"
    WITH_DOCTOR = "WITH_DOCTOR"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    LEFT = "LEFT"


class QueuePriority(str, enum.Enum):
    NORMAL = "NORMAL"
    URGENT = "URGENT"
    EMERGENCY = "EMERGENCY"


class CheckinStatus(str, enum.Enum):
    """Doctor presence for the day"""
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    CHECKED_IN = "CHECKED_IN"
    ON_BREAK = "ON_BREAK"
    CHECKED_OUT = "CHECKED_OUT"


ACTIVE_QUEUE_STATUSES = (QueueStatus.QUEUED, QueueStatus.WAITING, QueueStatus.WITH_DOCTOR)
PENDING_QUEUE_STATUSES = (QueueStatus.QUEUED, QueueStatus.WAITING)
TERMINAL_QUEUE_STATUSES = (QueueStatus.COMPLETED, QueueStatus.NO_SHOW, QueueStatus.LEFT)

QUEUE_TRANSITIONS = {
    QueueStatus.QUEUED: {QueueStatus.WAITING, QueueStatus.WITH_DOCTOR, QueueStatus.NO_SHOW, QueueStatus.LEFT},
    QueueStatus.WAITING: {QueueStatus.WITH_DOCTOR, QueueStatus.NO_SHOW, QueueStatus.LEFT},
    QueueStatus.WITH_DOCTOR: {QueueStatus.COMPLETED, QueueStatus.NO_SHOW, QueueStatus.LEFT},
    QueueStatus.COMPLETED: set(),
    QueueStatus.NO_SHOW: set(),
    QueueStatus.LEFT: set(),
}


class QueueEntry(Base):
    """One patient in a doctor's queue for one service day"""
    __tablename__ = "queue_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hospital_id = Column(UUID(as_uuid=True), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(UUID(as_uuid=True), ForeignKey("doctor_profiles.id"), nullable=False)

    queue_date = Column(Date, nullable=False)
    # Not unique: renumbering QUEUED entries may pass over numbers held by finished entries
    queue_number = Column(Integer, nullable=False)

    entry_type = Column(Enum(QueueEntryType), nullable=False)
    appointment_id = Column(UUID(as_uuid=True), ForeignKey("appointments.id"), index=True)
    patient_id = Column(UUID(as_uuid=True), ForeignKey("patients.id"))
    walk_in_name = Column(String(200))
    walk_in_phone = Column(String(30))

    status = Column(Enum(QueueStatus), nullable=False, default=QueueStatus.QUEUED)
    priority = Column(Enum(QueuePriority), nullable=False, default=QueuePriority.NORMAL)
    reason_for_visit = Column(Text)
    notes = Column(Text)

    checked_in_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    called_at = Column(DateTime(timezone=True))
    with_doctor_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    wait_time_minutes = Column(Integer)
    consultation_time_minutes = Column(Integer)

    public_token = Column(String(64), unique=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_queue_doctor_date_number', 'doctor_id', 'queue_date', 'queue_number'),
    )


class DoctorDailyCheckin(Base):
    """Doctor's presence for one day; also the lock row for that day's queue"""
    __tablename__ = "doctor_daily_checkins"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hospital_id = Column(UUID(as_uuid=True), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(UUID(as_uuid=True), ForeignKey("doctor_profiles.id", ondelete="CASCADE"), nullable=False)
    checkin_date = Column(Date, nullable=False)

    status = Column(Enum(CheckinStatus), nullable=False, default=CheckinStatus.NOT_CHECKED_IN)
    checked_in_at = Column(DateTime(timezone=True))
    checked_out_at = Column(DateTime(timezone=True))
    break_started_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('doctor_id', 'checkin_date', name='uq_doctor_checkin_day'),
    )
