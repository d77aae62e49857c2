"""
Appointments API Schemas

Pydantic models for slot inventory, regeneration and booking requests
and responses.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, date, time
import uuid

from clinicflow.api.v1.doctors.schemas import WeeklyScheduleRow
from clinicflow.domain.appointments.conflicts import ChangeType
from clinicflow.domain.appointments.models import AppointmentStatus, SlotPeriod, SlotStatus


# ==================== Slot Generation Schemas ====================

class SlotGenerateRequest(BaseModel):
    doctor_id: uuid.UUID
    start_date: date
    end_date: date
    duration_minutes: Optional[int] = Field(None, description="Defaults to the doctor's configured duration")

    @field_validator("end_date")
    @classmethod
    def validate_date_order(cls, v, info):
        start = info.data.get("start_date")
        if start and v < start:
            raise ValueError("end_date must be on or after start_date")
        return v


class SlotGenerateResponse(BaseModel):
    doctor_id: uuid.UUID
    start_date: date
    end_date: date
    generated: int
    skipped: int


class SlotResponse(BaseModel):
    id: uuid.UUID
    doctor_id: uuid.UUID
    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    period: SlotPeriod
    status: SlotStatus

    class Config:
        from_attributes = True


class SlotAppointmentInfo(BaseModel):
    id: uuid.UUID
    status: AppointmentStatus
    patient_id: uuid.UUID
    patient_name: str
    patient_phone: Optional[str] = None
    reason_for_visit: Optional[str] = None
    public_token: str


class SlotListItem(BaseModel):
    id: uuid.UUID
    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    period: SlotPeriod
    status: SlotStatus
    appointment: Optional[SlotAppointmentInfo] = None


class CancelledAppointmentInfo(BaseModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    patient_name: str
    patient_phone: Optional[str] = None
    start_time: time
    end_time: time
    cancellation_reason: Optional[str] = None


class SlotDayStats(BaseModel):
    total: int
    available: int
    booked: int
    blocked: int


class SlotDayResponse(BaseModel):
    """Slots for one doctor and date, grouped by period"""
    date: date
    doctor_id: uuid.UUID
    slots: Dict[str, List[SlotListItem]]
    stats: SlotDayStats
    is_time_off: bool
    time_off_reason: Optional[str] = None
    cancelled_appointments: List[CancelledAppointmentInfo] = []


class LatestSlotDateResponse(BaseModel):
    doctor_id: uuid.UUID
    latest_date: Optional[date] = None


class CalendarDayResponse(BaseModel):
    date: date
    available: int
    booked: int
    closed_reason: Optional[str] = None


class DayStatsResponse(BaseModel):
    date: date
    doctor_id: uuid.UUID
    total_slots: int
    available_slots: int
    booked_slots: int
    blocked_slots: int
    appointments: Dict[str, int]


# ==================== Conflict & Regeneration Schemas ====================

class ConflictCheckRequest(BaseModel):
    """A proposed change to simulate; only the fields for its type are read"""
    doctor_id: uuid.UUID
    change_type: ChangeType
    schedule: List[WeeklyScheduleRow] = []
    duration_minutes: Optional[int] = None
    time_off_start: Optional[date] = None
    time_off_end: Optional[date] = None


class ConflictItem(BaseModel):
    appointment_id: uuid.UUID
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    patient_id: uuid.UUID
    patient_name: str
    patient_phone: Optional[str] = None
    has_queue_entry: bool
    reason: str


class ConflictSummary(BaseModel):
    total_appointments: int
    total_queue_entries: int
    date_from: date
    date_to: date
    slots_to_delete: int


class ConflictCheckResponse(BaseModel):
    doctor_id: uuid.UUID
    change_type: ChangeType
    conflicts: List[ConflictItem]
    summary: ConflictSummary


class RegenerateRequest(BaseModel):
    doctor_id: uuid.UUID
    approved_appointment_ids: List[uuid.UUID] = []


class RegenerateFailure(BaseModel):
    appointment_id: str
    error: str


class RegenerateResponse(BaseModel):
    doctor_id: str
    start_date: str
    end_date: str
    cancelled: List[str]
    already_cancelled: List[str]
    failed: List[RegenerateFailure]
    queue_entries_left: int
    slots_deleted: int
    slots_generated: int
    slots_skipped: int


# ==================== Appointment Schemas ====================

class AppointmentCreate(BaseModel):
    slot_id: uuid.UUID
    patient_id: uuid.UUID
    reason_for_visit: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = None


class AppointmentUpdate(BaseModel):
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None
    reason_for_visit: Optional[str] = Field(None, max_length=1000)


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""
    id: uuid.UUID
    hospital_id: uuid.UUID
    slot_id: uuid.UUID
    doctor_id: uuid.UUID
    patient_id: uuid.UUID
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    booked_by_user_id: Optional[uuid.UUID] = None
    public_token: str
    created_at: Optional[datetime] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None

    class Config:
        from_attributes = True


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list"""
    items: List[AppointmentResponse]
    total: int
    skip: int
    limit: int


class AppointmentCountResponse(BaseModel):
    date: date
    count: int


def appointment_view(appointment, patient=None) -> AppointmentResponse:
    response = AppointmentResponse.model_validate(appointment)
    if patient is not None:
        response.patient_name = patient.full_name
        response.patient_phone = patient.phone
    return response
