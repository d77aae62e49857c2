"""
Doctors API Schemas

Pydantic models for doctor listings and availability settings.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, date, time
import uuid

from clinicflow.domain.schedules.models import ApprovalStatus


class DoctorResponse(BaseModel):
    """Schema for doctor response"""
    id: uuid.UUID
    hospital_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    full_name: str
    specialization: Optional[str] = None
    appointment_duration_minutes: int
    shift_timing_config: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


# ==================== Weekly Schedule Schemas ====================

class WeeklyScheduleRow(BaseModel):
    """One day of the weekly template"""
    day_of_week: int = Field(..., ge=0, le=6, description="Day of week (0=Sunday, 6=Saturday)")
    is_working: bool = True
    shift_start: Optional[time] = None
    shift_end: Optional[time] = None


class WeeklyScheduleUpdate(BaseModel):
    """Full replacement of the weekly template"""
    schedule: List[WeeklyScheduleRow]


class WeeklyScheduleResponse(WeeklyScheduleRow):
    id: uuid.UUID
    doctor_id: uuid.UUID

    class Config:
        from_attributes = True


# ==================== Time Off Schemas ====================

class TimeOffCreate(BaseModel):
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=1000)
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED

    @field_validator("end_date")
    @classmethod
    def validate_date_order(cls, v, info):
        start = info.data.get("start_date")
        if start and v < start:
            raise ValueError("end_date must be on or after start_date")
        return v


class TimeOffResponse(BaseModel):
    id: uuid.UUID
    doctor_id: uuid.UUID
    start_date: date
    end_date: date
    reason: Optional[str] = None
    approval_status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Slot Configuration Schemas ====================

class AppointmentDurationUpdate(BaseModel):
    duration_minutes: int


class AppointmentDurationResponse(BaseModel):
    doctor_id: uuid.UUID
    duration_minutes: int


class ShiftWindow(BaseModel):
    start: Optional[time] = None
    end: Optional[time] = None


class ShiftTimingUpdate(BaseModel):
    """Period boundaries; omitted values fall back to the hospital defaults"""
    morning: Optional[ShiftWindow] = None
    evening: Optional[ShiftWindow] = None

    def to_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        for name in ("morning", "evening"):
            window = getattr(self, name)
            if window is None:
                continue
            config[name] = {
                key: value.strftime("%H:%M")
                for key, value in (("start", window.start), ("end", window.end))
                if value is not None
            }
        return config
