"""
Schedules Domain Models

Weekly availability template and time-off periods for doctors.
"""

from sqlalchemy import (
    Column, String, Date, Boolean, DateTime, ForeignKey,
    Integer, Time, Text, CheckConstraint, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from clinicflow.core.clock import utcnow
from clinicflow.infrastructure.database import Base
import uuid
import enum


class ApprovalStatus(str, enum.Enum):
    """Time-off approval status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WeeklyScheduleEntry(Base):
    """One row per doctor per weekday, replaced wholesale on save"""
    __tablename__ = "doctor_schedules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    doctor_id = Column(UUID(as_uuid=True), ForeignKey("doctor_profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    # Day of week (0=Sunday, 6=Saturday)
    day_of_week = Column(Integer, nullable=False)
    is_working = Column(Boolean, nullable=False, default=True)
    shift_start = Column(Time)
    shift_end = Column(Time)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_day_of_week'),
        UniqueConstraint('doctor_id', 'day_of_week', name='uq_doctor_schedule_day'),
    )


class TimeOffPeriod(Base):
    """Date-inclusive range during which a doctor is away"""
    __tablename__ = "doctor_time_off"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    doctor_id = Column(UUID(as_uuid=True), ForeignKey("doctor_profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text)
    approval_status = Column(String(20), nullable=False, default=ApprovalStatus.APPROVED.value)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint('start_date <= end_date', name='check_time_off_dates'),
    )
