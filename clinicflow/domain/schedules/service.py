from typing import Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from loguru import logger
import uuid

from clinicflow.core.config import settings
from clinicflow.core.exceptions import NotFoundError, ValidationError
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.appointments.slot_generator import PeriodBoundaries
from clinicflow.domain.hospitals.models import DoctorProfile
from clinicflow.domain.hospitals.service import DoctorService
from clinicflow.domain.schedules.models import WeeklyScheduleEntry, TimeOffPeriod, ApprovalStatus
from clinicflow.domain.schedules.repository import ScheduleRepository, TimeOffRepository


def validate_schedule_rows(rows: Iterable) -> List:
    """Check a proposed weekly template; returns the rows as a list"""
    rows = list(rows)
    seen = set()
    for row in rows:
        if not 0 <= row.day_of_week <= 6:
            raise ValidationError(
                "day_of_week must be between 0 (Sunday) and 6 (Saturday)",
                details={"day_of_week": row.day_of_week},
            )
        if row.day_of_week in seen:
            raise ValidationError(
                "Duplicate day in weekly schedule",
                details={"day_of_week": row.day_of_week},
            )
        seen.add(row.day_of_week)
        if row.is_working:
            if row.shift_start is None or row.shift_end is None:
                raise ValidationError(
                    "Working days need a shift start and end",
                    details={"day_of_week": row.day_of_week},
                )
            if row.shift_start >= row.shift_end:
                raise ValidationError(
                    "Shift start must be before shift end",
                    details={"day_of_week": row.day_of_week},
                )
    return rows


def validate_duration(minutes: int) -> int:
    if minutes not in settings.ALLOWED_APPOINTMENT_DURATIONS:
        raise ValidationError(
            "Unsupported appointment duration",
            details={"duration": minutes, "allowed": settings.ALLOWED_APPOINTMENT_DURATIONS},
        )
    return minutes


def validate_date_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError(
            "start_date must be on or before end_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


class ScheduleService:
    """Weekly template, time-off and slot configuration for a doctor.

    None of these mutations touch the slot inventory. Run conflict analysis
    and regeneration afterwards to rebuild slots under the new rules.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctors = DoctorService(db)
        self.schedule_repo = ScheduleRepository(db)
        self.time_off_repo = TimeOffRepository(db)

    async def get_weekly_schedule(self, ctx: RequestContext, doctor_id: uuid.UUID) -> List[WeeklyScheduleEntry]:
        await self.doctors.get_doctor(ctx, doctor_id)
        return await self.schedule_repo.get_weekly(doctor_id)

    async def save_weekly_schedule(self, ctx: RequestContext, doctor_id: uuid.UUID, rows: Iterable) -> List[WeeklyScheduleEntry]:
        await self.doctors.get_doctor(ctx, doctor_id)
        rows = validate_schedule_rows(rows)
        entries = await self.schedule_repo.replace_weekly(
            doctor_id,
            [
                {
                    "day_of_week": row.day_of_week,
                    "is_working": row.is_working,
                    "shift_start": row.shift_start if row.is_working else None,
                    "shift_end": row.shift_end if row.is_working else None,
                }
                for row in rows
            ],
        )
        await self.db.commit()
        logger.info(f"Weekly schedule saved for doctor {doctor_id}: {len(entries)} rows")
        return entries

    # ==================== Time Off ====================

    async def list_time_off(self, ctx: RequestContext, doctor_id: uuid.UUID) -> List[TimeOffPeriod]:
        await self.doctors.get_doctor(ctx, doctor_id)
        return await self.time_off_repo.list(doctor_id)

    async def add_time_off(
        self,
        ctx: RequestContext,
        doctor_id: uuid.UUID,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
    ) -> TimeOffPeriod:
        await self.doctors.get_doctor(ctx, doctor_id)
        validate_date_range(start_date, end_date)
        period = await self.time_off_repo.create({
            "doctor_id": doctor_id,
            "start_date": start_date,
            "end_date": end_date,
            "reason": reason,
            "approval_status": ApprovalStatus(approval_status).value,
        })
        await self.db.commit()
        logger.info(f"Time off {start_date}..{end_date} added for doctor {doctor_id}")
        return period

    async def delete_time_off(self, ctx: RequestContext, doctor_id: uuid.UUID, time_off_id: uuid.UUID) -> None:
        await self.doctors.get_doctor(ctx, doctor_id)
        period = await self.time_off_repo.get(doctor_id, time_off_id)
        if not period:
            raise NotFoundError("Time off not found", details={"time_off_id": str(time_off_id)})
        await self.time_off_repo.delete(period)
        await self.db.commit()
        logger.info(f"Time off {time_off_id} removed for doctor {doctor_id}")

    # ==================== Slot Configuration ====================

    async def get_appointment_duration(self, ctx: RequestContext, doctor_id: uuid.UUID) -> int:
        doctor = await self.doctors.get_doctor(ctx, doctor_id)
        return doctor.appointment_duration_minutes or settings.DEFAULT_APPOINTMENT_DURATION_MINUTES

    async def update_appointment_duration(self, ctx: RequestContext, doctor_id: uuid.UUID, minutes: int) -> DoctorProfile:
        doctor = await self.doctors.get_doctor(ctx, doctor_id)
        doctor.appointment_duration_minutes = validate_duration(minutes)
        await self.db.commit()
        logger.info(f"Appointment duration for doctor {doctor_id} set to {minutes} minutes")
        return doctor

    async def update_shift_timing(self, ctx: RequestContext, doctor_id: uuid.UUID, config: dict) -> DoctorProfile:
        doctor = await self.doctors.get_doctor(ctx, doctor_id)
        try:
            boundaries = PeriodBoundaries.from_config(config)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid shift timing", details={"original_error": str(exc)}) from exc
        if not boundaries.morning_start < boundaries.morning_end < boundaries.evening_end:
            raise ValidationError("Shift timing boundaries must be increasing")
        doctor.shift_timing_config = config
        await self.db.commit()
        logger.info(f"Shift timing for doctor {doctor_id} set to {config}")
        return doctor
