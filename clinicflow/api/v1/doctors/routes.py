"""
Doctors API Routes

Doctor listing plus the availability settings that drive slot generation:
weekly template, time off, appointment duration and period boundaries.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import uuid

from clinicflow.api.deps import get_request_context
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.hospitals.service import DoctorService
from clinicflow.domain.schedules.service import ScheduleService
from clinicflow.infrastructure.database import get_db
from clinicflow.api.v1.doctors.schemas import (
    DoctorResponse,
    WeeklyScheduleUpdate, WeeklyScheduleResponse,
    TimeOffCreate, TimeOffResponse,
    AppointmentDurationUpdate, AppointmentDurationResponse,
    ShiftTimingUpdate,
)

router = APIRouter()


@router.get("", response_model=List[DoctorResponse])
async def list_doctors(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """List doctors visible to the caller"""
    return await DoctorService(db).list_doctors(ctx)


# ==================== Weekly Schedule Endpoints ====================

@router.get("/{doctor_id}/schedule", response_model=List[WeeklyScheduleResponse])
async def get_weekly_schedule(
    doctor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Get the doctor's weekly template, ordered by day"""
    return await ScheduleService(db).get_weekly_schedule(ctx, doctor_id)


@router.put("/{doctor_id}/schedule", response_model=List[WeeklyScheduleResponse])
async def save_weekly_schedule(
    doctor_id: uuid.UUID,
    payload: WeeklyScheduleUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Replace the weekly template. Slots are not touched; regenerate afterwards."""
    return await ScheduleService(db).save_weekly_schedule(ctx, doctor_id, payload.schedule)


# ==================== Time Off Endpoints ====================

@router.get("/{doctor_id}/time-off", response_model=List[TimeOffResponse])
async def list_time_off(
    doctor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ScheduleService(db).list_time_off(ctx, doctor_id)


@router.post("/{doctor_id}/time-off", response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
async def add_time_off(
    doctor_id: uuid.UUID,
    payload: TimeOffCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ScheduleService(db).add_time_off(
        ctx,
        doctor_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        approval_status=payload.approval_status,
    )


@router.delete("/{doctor_id}/time-off/{time_off_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_off(
    doctor_id: uuid.UUID,
    time_off_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    await ScheduleService(db).delete_time_off(ctx, doctor_id, time_off_id)


# ==================== Slot Configuration Endpoints ====================

@router.get("/{doctor_id}/appointment-duration", response_model=AppointmentDurationResponse)
async def get_appointment_duration(
    doctor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    minutes = await ScheduleService(db).get_appointment_duration(ctx, doctor_id)
    return AppointmentDurationResponse(doctor_id=doctor_id, duration_minutes=minutes)


@router.put("/{doctor_id}/appointment-duration", response_model=AppointmentDurationResponse)
async def update_appointment_duration(
    doctor_id: uuid.UUID,
    payload: AppointmentDurationUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    doctor = await ScheduleService(db).update_appointment_duration(ctx, doctor_id, payload.duration_minutes)
    return AppointmentDurationResponse(doctor_id=doctor.id, duration_minutes=doctor.appointment_duration_minutes)


@router.put("/{doctor_id}/shift-timing", response_model=DoctorResponse)
async def update_shift_timing(
    doctor_id: uuid.UUID,
    payload: ShiftTimingUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Set the morning/evening/night boundaries used to label new slots"""
    return await ScheduleService(db).update_shift_timing(ctx, doctor_id, payload.to_config())
