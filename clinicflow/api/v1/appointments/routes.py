"""
Appointments API Routes

API endpoints for slot inventory, schedule-change regeneration and the
booking lifecycle.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date
import uuid

from clinicflow.api.deps import get_business_calendar, get_request_context
from clinicflow.core.clock import BusinessCalendar
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.appointments.conflicts import ConflictAnalyzer, ProposedChange
from clinicflow.domain.appointments.models import AppointmentStatus
from clinicflow.domain.appointments.regeneration import RegenerationOrchestrator
from clinicflow.domain.appointments.service import AppointmentService, SlotService
from clinicflow.infrastructure.database import get_db
from clinicflow.api.v1.appointments.schemas import (
    # Slot schemas
    SlotGenerateRequest, SlotGenerateResponse, SlotResponse, SlotDayResponse,
    LatestSlotDateResponse, CalendarDayResponse, DayStatsResponse,
    # Regeneration schemas
    ConflictCheckRequest, ConflictCheckResponse, RegenerateRequest, RegenerateResponse,
    # Appointment schemas
    AppointmentCreate, AppointmentUpdate, AppointmentCancel,
    AppointmentResponse, AppointmentListResponse, AppointmentCountResponse,
    appointment_view,
)

router = APIRouter()


# ==================== Slot Endpoints ====================

@router.post("/slots/generate", response_model=SlotGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_slots(
    payload: SlotGenerateRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Generate slots for a date range. Re-running over the same range adds nothing."""
    return await SlotService(db).generate(
        ctx, payload.doctor_id, payload.start_date, payload.end_date, payload.duration_minutes
    )


@router.post("/slots/check-conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(
    payload: ConflictCheckRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    """Preview which future appointments a proposed change would break"""
    change = ProposedChange(
        change_type=payload.change_type,
        schedule=payload.schedule,
        duration_minutes=payload.duration_minutes,
        time_off_start=payload.time_off_start,
        time_off_end=payload.time_off_end,
    )
    return await ConflictAnalyzer(db).analyze(ctx, calendar, payload.doctor_id, change)


@router.post("/slots/regenerate", response_model=RegenerateResponse)
async def regenerate_slots(
    payload: RegenerateRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    """Cancel approved conflicts, purge unbooked future slots and rebuild inventory"""
    return await RegenerationOrchestrator(db).regenerate(
        ctx, calendar, payload.doctor_id, payload.approved_appointment_ids
    )


@router.get("/slots/date/{slot_date}", response_model=SlotDayResponse)
async def get_slots_for_date(
    slot_date: date,
    doctor_id: uuid.UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await SlotService(db).list_for_date(ctx, doctor_id, slot_date)


@router.get("/slots/latest", response_model=LatestSlotDateResponse)
async def get_latest_slot_date(
    doctor_id: uuid.UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Last date the doctor has generated inventory for"""
    latest = await SlotService(db).get_latest_slot_date(ctx, doctor_id)
    return LatestSlotDateResponse(doctor_id=doctor_id, latest_date=latest)


@router.patch("/slots/{slot_id}/block", response_model=SlotResponse)
async def block_slot(
    slot_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await SlotService(db).block_slot(ctx, slot_id)


@router.patch("/slots/{slot_id}/unblock", response_model=SlotResponse)
async def unblock_slot(
    slot_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await SlotService(db).unblock_slot(ctx, slot_id)


@router.get("/calendar/{year}/{month}", response_model=List[CalendarDayResponse])
async def get_calendar_overview(
    year: int,
    month: int,
    doctor_id: uuid.UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Per-day available and booked counts for a month"""
    return await SlotService(db).get_calendar_overview(ctx, doctor_id, year, month)


@router.get("/stats/{doctor_id}/{stats_date}", response_model=DayStatsResponse)
async def get_day_stats(
    doctor_id: uuid.UUID,
    stats_date: date,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await SlotService(db).get_day_stats(ctx, doctor_id, stats_date)


@router.get("/counts", response_model=List[AppointmentCountResponse])
async def get_appointment_counts(
    start_date: date = Query(...),
    end_date: date = Query(...),
    doctor_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Active appointment counts per date, for calendar badges"""
    counts = await AppointmentService(db).calendar_counts(ctx, start_date, end_date, doctor_id)
    return [AppointmentCountResponse(date=day, count=count) for day, count in sorted(counts.items())]


# ==================== Appointment Endpoints ====================

@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    payload: AppointmentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    """Book an AVAILABLE slot for a patient"""
    appointment = await AppointmentService(db).book_appointment(
        ctx,
        calendar,
        slot_id=payload.slot_id,
        patient_id=payload.patient_id,
        reason_for_visit=payload.reason_for_visit,
        notes=payload.notes,
    )
    return appointment_view(appointment)


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    doctor_id: Optional[uuid.UUID] = None,
    patient_id: Optional[uuid.UUID] = None,
    on_date: Optional[date] = Query(None, alias="date"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    rows, total = await AppointmentService(db).list_appointments(
        ctx,
        doctor_id=doctor_id,
        patient_id=patient_id,
        on_date=on_date,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
        skip=skip,
        limit=limit,
    )
    return AppointmentListResponse(
        items=[appointment_view(appointment, patient) for appointment, patient in rows],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    appointment, patient = await AppointmentService(db).get_appointment_with_patient(ctx, appointment_id)
    return appointment_view(appointment, patient)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: uuid.UUID,
    payload: AppointmentUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    appointment = await AppointmentService(db).update_appointment(
        ctx,
        calendar,
        appointment_id,
        status=payload.status,
        notes=payload.notes,
        reason_for_visit=payload.reason_for_visit,
    )
    return appointment_view(appointment)


@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: uuid.UUID,
    payload: Optional[AppointmentCancel] = None,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    calendar: BusinessCalendar = Depends(get_business_calendar),
):
    """Cancel an appointment and release its slot"""
    appointment = await AppointmentService(db).cancel_appointment(
        ctx, calendar, appointment_id, reason=payload.reason if payload else None
    )
    return appointment_view(appointment)
