"""
Public API Routes

Unauthenticated endpoints keyed by an appointment or queue token. They
take no tenant headers; the token alone selects the record.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date

from clinicflow.api.deps import get_clock
from clinicflow.core.clock import Clock
from clinicflow.domain.public.service import PublicAppointmentService, PublicQueueService
from clinicflow.infrastructure.database import get_db
from clinicflow.api.v1.public.schemas import (
    PublicAppointmentStatus, PublicAppointmentResult, PublicSlotsResponse,
    PublicRescheduleRequest, PublicQueueStatus, PublicQueueCancelResponse,
)

appointments_router = APIRouter()
queue_router = APIRouter()


# ==================== Public Appointment Endpoints ====================

@appointments_router.get("/status/{token}", response_model=PublicAppointmentStatus)
async def get_appointment_status(
    token: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await PublicAppointmentService(db, clock).get_status(token)


@appointments_router.post("/cancel/{token}", response_model=PublicAppointmentResult)
async def cancel_appointment(
    token: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Patient-initiated cancellation; releases the slot"""
    appointment = await PublicAppointmentService(db, clock).cancel(token)
    return PublicAppointmentResult.from_appointment(appointment)


@appointments_router.get("/slots/{token}", response_model=PublicSlotsResponse)
async def get_reschedule_slots(
    token: str,
    slot_date: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await PublicAppointmentService(db, clock).list_reschedule_slots(token, slot_date)


@appointments_router.post("/reschedule/{token}", response_model=PublicAppointmentResult)
async def reschedule_appointment(
    token: str,
    payload: PublicRescheduleRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Move to another slot with the same doctor. The response carries a new token."""
    appointment = await PublicAppointmentService(db, clock).reschedule(token, payload.new_slot_id)
    return PublicAppointmentResult.from_appointment(appointment)


# ==================== Public Queue Endpoints ====================

@queue_router.get("/status/{token}", response_model=PublicQueueStatus)
async def get_queue_status(
    token: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Position and estimated wait; only valid on the queue's own day"""
    return await PublicQueueService(db, clock).get_status(token)


@queue_router.post("/cancel/{token}", response_model=PublicQueueCancelResponse)
async def leave_queue(
    token: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    entry = await PublicQueueService(db, clock).cancel(token)
    return PublicQueueCancelResponse(
        status=entry.status,
        completed_at=entry.completed_at,
        message="You have left the queue",
    )
