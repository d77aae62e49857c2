"""
Public API Schemas

Response shapes for the token-scoped endpoints patients reach from a link.
Internal identifiers other than the appointment's own id are not exposed.
"""

from pydantic import BaseModel
from typing import Optional, List, Dict
from datetime import datetime, date, time
import uuid

from clinicflow.domain.appointments.models import AppointmentStatus, SlotPeriod
from clinicflow.domain.queue.models import QueuePriority, QueueStatus


class PublicAppointmentStatus(BaseModel):
    appointment_id: uuid.UUID
    status: AppointmentStatus
    appointment_date: date
    start_time: time
    end_time: time
    reason_for_visit: Optional[str] = None
    cancellation_reason: Optional[str] = None
    patient_name: Optional[str] = None
    doctor_id: uuid.UUID
    doctor_name: Optional[str] = None
    hospital_name: Optional[str] = None
    hospital_logo_url: Optional[str] = None
    can_cancel: bool
    can_reschedule: bool


class PublicAppointmentResult(BaseModel):
    """Result of a cancel or reschedule; carries the token to use from now on"""
    appointment_id: uuid.UUID
    status: AppointmentStatus
    appointment_date: date
    start_time: time
    end_time: time
    cancellation_reason: Optional[str] = None
    public_token: str

    @classmethod
    def from_appointment(cls, appointment) -> "PublicAppointmentResult":
        return cls(
            appointment_id=appointment.id,
            status=appointment.status,
            appointment_date=appointment.appointment_date,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            cancellation_reason=appointment.cancellation_reason,
            public_token=appointment.public_token,
        )


class PublicSlot(BaseModel):
    id: uuid.UUID
    start_time: time
    end_time: time
    period: SlotPeriod


class PublicSlotsResponse(BaseModel):
    date: date
    slots: Dict[str, List[PublicSlot]]


class PublicRescheduleRequest(BaseModel):
    new_slot_id: uuid.UUID


class PublicQueueStatus(BaseModel):
    patient_name: str
    queue_number: int
    status: QueueStatus
    priority: QueuePriority
    reason_for_visit: Optional[str] = None
    checked_in_at: datetime
    called_at: Optional[datetime] = None
    with_doctor_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    wait_time_minutes: Optional[int] = None
    patients_ahead: int
    patients_behind: int
    estimated_wait_minutes: Optional[int] = None
    doctor_name: str
    doctor_checked_in: bool
    hospital_name: str
    hospital_logo_url: Optional[str] = None
    queue_date: date
    can_cancel: bool


class PublicQueueCancelResponse(BaseModel):
    status: QueueStatus
    completed_at: Optional[datetime] = None
    message: str
