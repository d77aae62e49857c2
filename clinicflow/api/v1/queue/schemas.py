"""
Queue API Schemas

Pydantic models for the same-day queue and doctor check-in.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict
from datetime import datetime, date, time
import uuid

from clinicflow.domain.appointments.models import AppointmentStatus
from clinicflow.domain.queue.models import (
    CheckinStatus, QueueEntryType, QueuePriority, QueueStatus
)


class WalkInCreate(BaseModel):
    doctor_id: uuid.UUID
    patient_id: Optional[uuid.UUID] = None
    walk_in_name: Optional[str] = Field(None, max_length=200)
    walk_in_phone: Optional[str] = Field(None, max_length=30)
    priority: QueuePriority = QueuePriority.NORMAL
    reason_for_visit: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def require_patient_or_name(self):
        if not self.patient_id and not self.walk_in_name:
            raise ValueError("Either patient_id or walk_in_name is required")
        return self


class CheckInRequest(BaseModel):
    notes: Optional[str] = None


class QueueStatusUpdate(BaseModel):
    status: QueueStatus


class QueuePriorityUpdate(BaseModel):
    priority: QueuePriority


class DoctorCheckinRequest(BaseModel):
    doctor_id: uuid.UUID


class QueueEntryResponse(BaseModel):
    """Schema for a queue entry"""
    id: uuid.UUID
    doctor_id: uuid.UUID
    queue_date: date
    queue_number: int
    entry_type: QueueEntryType
    appointment_id: Optional[uuid.UUID] = None
    patient_id: Optional[uuid.UUID] = None
    walk_in_name: Optional[str] = None
    walk_in_phone: Optional[str] = None
    status: QueueStatus
    priority: QueuePriority
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    checked_in_at: datetime
    called_at: Optional[datetime] = None
    with_doctor_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    wait_time_minutes: Optional[int] = None
    consultation_time_minutes: Optional[int] = None
    public_token: str

    class Config:
        from_attributes = True


class QueueEntryView(BaseModel):
    """Queue entry with patient details and live position"""
    id: uuid.UUID
    queue_number: int
    entry_type: QueueEntryType
    status: QueueStatus
    priority: QueuePriority
    appointment_id: Optional[uuid.UUID] = None
    patient_id: Optional[uuid.UUID] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    checked_in_at: datetime
    called_at: Optional[datetime] = None
    with_doctor_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    wait_time_minutes: Optional[int] = None
    consultation_time_minutes: Optional[int] = None
    patients_ahead: int
    estimated_wait_minutes: Optional[int] = None
    public_token: str


class ScheduledAppointmentView(BaseModel):
    appointment_id: uuid.UUID
    patient_id: uuid.UUID
    patient_name: str
    patient_phone: Optional[str] = None
    start_time: time
    end_time: time
    status: AppointmentStatus
    reason_for_visit: Optional[str] = None


class DoctorCheckinResponse(BaseModel):
    doctor_id: uuid.UUID
    checkin_date: date
    status: CheckinStatus
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    break_started_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DailyQueueResponse(BaseModel):
    date: date
    doctor_id: uuid.UUID
    doctor_checkin: Optional[DoctorCheckinResponse] = None
    queue: List[QueueEntryView]
    waiting: List[QueueEntryView]
    with_doctor: List[QueueEntryView]
    completed: List[QueueEntryView]
    scheduled: List[ScheduledAppointmentView]
    stats: Dict[str, int]


class QueueDayStats(BaseModel):
    date: date
    walk_ins: int
    scheduled: int
    total: int
