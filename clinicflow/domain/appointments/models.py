"""
Appointments Domain Models

Implements the database models for:
- Bookable slot inventory
- Appointments booked against slots
"""

from sqlalchemy import (
    Column, String, Date, DateTime, ForeignKey,
    Integer, Time, Text, Enum, Index, UniqueConstraint, text
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from clinicflow.core.clock import utcnow
from clinicflow.infrastructure.database import Base
import uuid
import enum


class SlotPeriod(str, enum.Enum):
    """Part of the day a slot falls in"""
    MORNING = "MORNING"
    EVENING = "EVENING"
    NIGHT = "NIGHT"


class SlotStatus(str, enum.Enum):
    """Slot status"""
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"


class AppointmentStatus(str, enum.Enum):
    """Appointment status enumeration"""
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)
TERMINAL_APPOINTMENT_STATUSES = (
    AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW
)


class CancellationReason:
    SCHEDULE_CHANGE = "Schedule change by hospital"
    BY_PATIENT = "Cancelled by patient"
    RESCHEDULED = "Rescheduled by patient"


class Slot(Base):
    """A bookable time unit for one doctor on one date"""
    __tablename__ = "appointment_slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hospital_id = Column(UUID(as_uuid=True), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(UUID(as_uuid=True), ForeignKey("doctor_profiles.id", ondelete="CASCADE"), nullable=False)

    slot_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    period = Column(Enum(SlotPeriod), nullable=False)
    status = Column(Enum(SlotStatus), nullable=False, default=SlotStatus.AVAILABLE)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('doctor_id', 'slot_date', 'start_time', name='uq_slot_doctor_date_start'),
        Index('ix_slots_doctor_date', 'doctor_id', 'slot_date'),
    )


class Appointment(Base):
    """Appointment booked against a slot"""
    __tablename__ = "appointments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hospital_id = Column(UUID(as_uuid=True), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("appointment_slots.id", ondelete="RESTRICT"), nullable=False)
    patient_id = Column(UUID(as_uuid=True), ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(UUID(as_uuid=True), ForeignKey("doctor_profiles.id"), nullable=False)

    # Copied from the slot at booking time
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED)

    reason_for_visit = Column(Text)
    notes = Column(Text)

    # Cancellation
    cancellation_reason = Column(Text)
    cancelled_at = Column(DateTime(timezone=True))

    confirmed_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    booked_by_user_id = Column(UUID(as_uuid=True))
    public_token = Column(String(64), unique=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    slot = relationship("Slot", lazy="raise")
    patient = relationship("Patient", lazy="raise")
    doctor = relationship("DoctorProfile", lazy="raise")

    __table_args__ = (
        # At most one non-cancelled appointment per slot
        Index(
            'uq_appointments_active_slot', 'slot_id',
            unique=True,
            postgresql_where=text("status != 'CANCELLED'"),
            sqlite_where=text("status != 'CANCELLED'"),
        ),
        Index('ix_appointments_doctor_date', 'doctor_id', 'appointment_date'),
    )

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start
