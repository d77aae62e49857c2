"""
Queue API Routes

API endpoints for the same-day patient queue and doctor check-in.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date
import uuid

from clinicflow.api.deps import get_business_calendar, get_request_context
from clinicflow.core.clock import BusinessCalendar
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.queue.service import QueueService
from clinicflow.infrastructure.database import get_db
from clinicflow.api.v1.queue.schemas import (
    WalkInCreate, CheckInRequest, QueueStatusUpdate, QueuePriorityUpdate,
    DoctorCheckinRequest, QueueEntryResponse, DailyQueueResponse,
    DoctorCheckinResponse, QueueDayStats,
)

router = APIRouter()


# ==================== Queue View Endpoints ====================

@router.get("/daily", response_model=DailyQueueResponse)
async def get_daily_queue(
    doctor_id: uuid.UUID = Query(...),
    queue_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    """Today's queue for a doctor (or another date), with live positions"""
    return await QueueService(db).get_daily_queue(ctx, calendar, doctor_id, queue_date)


@router.get("/stats", response_model=List[QueueDayStats])
async def get_queue_stats(
    start_date: date = Query(...),
    end_date: date = Query(...),
    doctor_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await QueueService(db).get_queue_stats(ctx, start_date, end_date, doctor_id)


# ==================== Queue Entry Endpoints ====================

@router.post("/walk-in", response_model=QueueEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_walk_in(
    payload: WalkInCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    """Add a walk-in patient to today's queue"""
    return await QueueService(db).add_walk_in(
        ctx,
        calendar,
        payload.doctor_id,
        walk_in_name=payload.walk_in_name,
        walk_in_phone=payload.walk_in_phone,
        patient_id=payload.patient_id,
        priority=payload.priority,
        reason_for_visit=payload.reason_for_visit,
        notes=payload.notes,
    )


@router.post("/check-in/{appointment_id}", response_model=QueueEntryResponse, status_code=status.HTTP_201_CREATED)
async def check_in_appointment(
    appointment_id: uuid.UUID,
    payload: Optional[CheckInRequest] = None,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    """Check in a patient for today's appointment"""
    return await QueueService(db).check_in_appointment(
        ctx, calendar, appointment_id, notes=payload.notes if payload else None
    )


@router.post("/appointment/{appointment_id}/no-show", response_model=QueueEntryResponse)
async def mark_no_show(
    appointment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    return await QueueService(db).mark_appointment_no_show(ctx, calendar, appointment_id)


@router.patch("/{entry_id}/status", response_model=QueueEntryResponse)
async def update_queue_status(
    entry_id: uuid.UUID,
    payload: QueueStatusUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    return await QueueService(db).update_status(ctx, calendar, entry_id, payload.status)


@router.patch("/{entry_id}/priority", response_model=QueueEntryResponse)
async def update_queue_priority(
    entry_id: uuid.UUID,
    payload: QueuePriorityUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await QueueService(db).update_priority(ctx, entry_id, payload.priority)


@router.post("/{entry_id}/move-to-top", response_model=QueueEntryResponse)
async def move_to_top(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Promote a queued patient ahead of everyone else still queued"""
    return await QueueService(db).move_to_top(ctx, entry_id)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_queue(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    await QueueService(db).remove(ctx, entry_id)


# ==================== Doctor Check-in Endpoints ====================

@router.post("/doctor/check-in", response_model=DoctorCheckinResponse)
async def doctor_check_in(
    payload: DoctorCheckinRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    return await QueueService(db).doctor_check_in(ctx, calendar, payload.doctor_id)


@router.post("/doctor/check-out", response_model=DoctorCheckinResponse)
async def doctor_check_out(
    payload: DoctorCheckinRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    return await QueueService(db).doctor_check_out(ctx, calendar, payload.doctor_id)


@router.post("/doctor/break-start", response_model=DoctorCheckinResponse)
async def doctor_break_start(
    payload: DoctorCheckinRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    return await QueueService(db).start_break(ctx, calendar, payload.doctor_id)


@router.post("/doctor/break-end", response_model=DoctorCheckinResponse)
async def doctor_break_end(
    payload: DoctorCheckinRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    return await QueueService(db).end_break(ctx, calendar, payload.doctor_id)
