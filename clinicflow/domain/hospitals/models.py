"""
Hospital Domain Models

Tenants and the doctors that work for them. These records are owned by the
wider platform; only the fields the scheduling core reads are mapped here.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, JSON
from sqlalchemy.dialects.postgresql import UUID
from clinicflow.core.clock import utcnow
from sqlalchemy.orm import relationship
from clinicflow.infrastructure.database import Base
import uuid


class Hospital(Base):
    """Tenant"""
    __tablename__ = "hospitals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    logo_url = Column(String(500))

    created_at = Column(DateTime(timezone=True), default=utcnow)

    doctors = relationship("DoctorProfile", back_populates="hospital")


class DoctorProfile(Base):
    """Doctor working inside one hospital"""
    __tablename__ = "doctor_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hospital_id = Column(UUID(as_uuid=True), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True))

    full_name = Column(String(200), nullable=False)
    specialization = Column(String(120))

    # Slot configuration
    appointment_duration_minutes = Column(Integer, nullable=False, default=30)
    # {"morning": {"start": "06:00", "end": "14:00"}, "evening": {"end": "22:00"}}
    shift_timing_config = Column(JSON)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    hospital = relationship("Hospital", back_populates="doctors")
