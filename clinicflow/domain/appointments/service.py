"""
Appointments Service Layer

Slot inventory and the booking lifecycle. A slot is BOOKED exactly when a
non-cancelled appointment references it; the two records are written in
the same transaction, and listing a day repairs any drift it finds.
"""

import calendar as month_calendar
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date, timedelta
from loguru import logger
import uuid

from clinicflow.core.clock import BusinessCalendar
from clinicflow.core.config import settings
from clinicflow.core.exceptions import (
    InvalidStateError, NotFoundError, SlotAlreadyBookedError, ValidationError, handle_database_error
)
from clinicflow.core.security import generate_public_token
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.appointments.models import (
    Slot, SlotStatus, SlotPeriod, Appointment, AppointmentStatus,
    ACTIVE_APPOINTMENT_STATUSES
)
from clinicflow.domain.appointments.repository import SlotRepository, AppointmentRepository
from clinicflow.domain.appointments.slot_generator import (
    DAY_OFF, GenerationResult, PeriodBoundaries, approved_time_off, closed_reason,
    generate_slots, index_schedule, iter_dates
)
from clinicflow.domain.hospitals.models import DoctorProfile
from clinicflow.domain.hospitals.service import DoctorService
from clinicflow.domain.patients.models import Patient
from clinicflow.domain.patients.repository import PatientRepository
from clinicflow.domain.queue.repository import QueueRepository
from clinicflow.domain.schedules.repository import ScheduleRepository, TimeOffRepository
from clinicflow.domain.schedules.service import validate_date_range, validate_duration


def doctor_duration(doctor: DoctorProfile) -> int:
    return doctor.appointment_duration_minutes or settings.DEFAULT_APPOINTMENT_DURATION_MINUTES


class SlotService:
    """Service for generating, listing and blocking slots"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctors = DoctorService(db)
        self.slot_repo = SlotRepository(db)
        self.appointment_repo = AppointmentRepository(db)
        self.schedule_repo = ScheduleRepository(db)
        self.time_off_repo = TimeOffRepository(db)

    async def _load_rules(self, doctor_id: uuid.UUID, start_date: date, end_date: date):
        schedule = await self.schedule_repo.get_weekly(doctor_id)
        time_off = await self.time_off_repo.list_approved_overlapping(doctor_id, start_date, end_date)
        return index_schedule(schedule), approved_time_off(time_off)

    async def generate_for_doctor(
        self,
        doctor: DoctorProfile,
        start_date: date,
        end_date: date,
        duration_minutes: Optional[int] = None,
    ) -> GenerationResult:
        """Generate and insert slots without committing"""
        duration = duration_minutes or doctor_duration(doctor)
        schedule = await self.schedule_repo.get_weekly(doctor.id)
        time_off = await self.time_off_repo.list_approved_overlapping(doctor.id, start_date, end_date)
        existing = await self.slot_repo.existing_keys(doctor.id, start_date, end_date)

        result = generate_slots(
            start_date,
            end_date,
            duration,
            schedule,
            time_off,
            existing_keys=existing,
            boundaries=PeriodBoundaries.from_config(doctor.shift_timing_config),
        )

        rows = [
            {
                "id": uuid.uuid4(),
                "hospital_id": doctor.hospital_id,
                "doctor_id": doctor.id,
                "slot_date": candidate.slot_date,
                "start_time": candidate.start_time,
                "end_time": candidate.end_time,
                "duration_minutes": candidate.duration_minutes,
                "period": candidate.period,
                "status": SlotStatus.AVAILABLE,
            }
            for candidate in result.slots
        ]
        if rows:
            inserted = await self.slot_repo.insert_ignore_duplicates(rows, settings.SLOT_INSERT_BATCH_SIZE)
            # Rows written by a concurrent generator in the meantime count as skipped
            result.record_conflicts(len(rows) - inserted)

        logger.info(
            f"Generated slots for doctor {doctor.id} {start_date}..{end_date}: "
            f"generated={result.generated} skipped={result.skipped} duration={duration}"
        )
        return result

    async def generate(
        self,
        ctx: RequestContext,
        doctor_id: uuid.UUID,
        start_date: date,
        end_date: date,
        duration_minutes: Optional[int] = None,
    ) -> Dict[str, Any]:
        doctor = await self.doctors.get_doctor(ctx, doctor_id)
        validate_date_range(start_date, end_date)
        if (end_date - start_date).days + 1 > settings.MAX_SLOT_GENERATION_DAYS:
            raise ValidationError(
                "Requested range is too long",
                details={"max_days": settings.MAX_SLOT_GENERATION_DAYS},
            )
        if duration_minutes is not None:
            validate_duration(duration_minutes)

        result = await self.generate_for_doctor(doctor, start_date, end_date, duration_minutes)
        await self.db.commit()
        return {
            "doctor_id": doctor.id,
            "start_date": start_date,
            "end_date": end_date,
            "generated": result.generated,
            "skipped": result.skipped,
        }

    async def _heal(self, slots: List[Slot], active: Dict[uuid.UUID, Tuple[Appointment, Patient]]) -> None:
        drifted = [slot for slot in slots if slot.status == SlotStatus.AVAILABLE and slot.id in active]
        if not drifted:
            return
        for slot in drifted:
            slot.status = SlotStatus.BOOKED
        await self.db.commit()
        logger.warning(
            f"Repaired {len(drifted)} slot(s) marked AVAILABLE with an active appointment: "
            f"doctor={drifted[0].doctor_id} date={drifted[0].slot_date} "
            f"slots={[str(slot.id) for slot in drifted]}"
        )

    async def list_for_date(self, ctx: RequestContext, doctor_id: uuid.UUID, day: date) -> Dict[str, Any]:
        """Slots for one day, grouped by period.

        AVAILABLE slots on time-off or non-working days are hidden. On a
        time-off day the cancelled appointments are listed for rebooking.
        """
        await self.doctors.get_doctor(ctx, doctor_id)
        slots = await self.slot_repo.list_for_date(doctor_id, day)
        active = await self.appointment_repo.active_by_slot(slot.id for slot in slots)
        await self._heal(slots, active)

        schedule_by_day, time_off = await self._load_rules(doctor_id, day, day)
        reason = closed_reason(day, schedule_by_day, time_off)
        if reason:
            slots = [slot for slot in slots if slot.status != SlotStatus.AVAILABLE]

        grouped: Dict[str, List[Dict[str, Any]]] = {period.value: [] for period in SlotPeriod}
        stats = {"total": 0, "available": 0, "booked": 0, "blocked": 0}
        for slot in slots:
            item: Dict[str, Any] = {
                "id": slot.id,
                "slot_date": slot.slot_date,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "duration_minutes": slot.duration_minutes,
                "period": slot.period,
                "status": slot.status,
                "appointment": None,
            }
            if slot.id in active:
                appointment, patient = active[slot.id]
                item["appointment"] = {
                    "id": appointment.id,
                    "status": appointment.status,
                    "patient_id": patient.id,
                    "patient_name": patient.full_name,
                    "patient_phone": patient.phone,
                    "reason_for_visit": appointment.reason_for_visit,
                    "public_token": appointment.public_token,
                }
            grouped[slot.period.value].append(item)
            stats["total"] += 1
            stats[slot.status.value.lower()] += 1

        cancelled: List[Dict[str, Any]] = []
        if reason == DAY_OFF:
            rows = await self.appointment_repo.for_doctor_on_date(
                doctor_id, day, statuses=[AppointmentStatus.CANCELLED]
            )
            cancelled = [
                {
                    "id": appointment.id,
                    "patient_id": patient.id,
                    "patient_name": patient.full_name,
                    "patient_phone": patient.phone,
                    "start_time": appointment.start_time,
                    "end_time": appointment.end_time,
                    "cancellation_reason": appointment.cancellation_reason,
                }
                for appointment, patient in rows
            ]

        return {
            "date": day,
            "doctor_id": doctor_id,
            "slots": grouped,
            "stats": stats,
            "is_time_off": reason is not None,
            "time_off_reason": reason,
            "cancelled_appointments": cancelled,
        }

    async def _get_slot(self, ctx: RequestContext, slot_id: uuid.UUID) -> Slot:
        slot = await self.slot_repo.get(ctx.hospital_id, slot_id)
        if not slot or not ctx.visibility.is_doctor_visible(slot.doctor_id):
            raise NotFoundError("Slot not found", details={"slot_id": str(slot_id)})
        return slot

    async def block_slot(self, ctx: RequestContext, slot_id: uuid.UUID) -> Slot:
        slot = await self._get_slot(ctx, slot_id)
        if slot.status != SlotStatus.AVAILABLE:
            raise InvalidStateError(f"Only available slots can be blocked (slot is {slot.status.value})")
        slot.status = SlotStatus.BLOCKED
        await self.db.commit()
        logger.info(f"Slot {slot.id} blocked")
        return slot

    async def unblock_slot(self, ctx: RequestContext, slot_id: uuid.UUID) -> Slot:
        slot = await self._get_slot(ctx, slot_id)
        if slot.status != SlotStatus.BLOCKED:
            raise InvalidStateError(f"Only blocked slots can be unblocked (slot is {slot.status.value})")
        slot.status = SlotStatus.AVAILABLE
        await self.db.commit()
        logger.info(f"Slot {slot.id} unblocked")
        return slot

    async def get_calendar_overview(self, ctx: RequestContext, doctor_id: uuid.UUID, year: int, month: int) -> List[Dict[str, Any]]:
        await self.doctors.get_doctor(ctx, doctor_id)
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", details={"month": month})
        start_date = date(year, month, 1)
        end_date = date(year, month, month_calendar.monthrange(year, month)[1])

        slots = await self.slot_repo.list_in_range(doctor_id, start_date, end_date)
        schedule_by_day, time_off = await self._load_rules(doctor_id, start_date, end_date)

        days = {
            day: {"date": day, "available": 0, "booked": 0, "closed_reason": closed_reason(day, schedule_by_day, time_off)}
            for day in iter_dates(start_date, end_date)
        }
        for slot in slots:
            summary = days[slot.slot_date]
            if slot.status == SlotStatus.AVAILABLE and not summary["closed_reason"]:
                summary["available"] += 1
            elif slot.status == SlotStatus.BOOKED:
                summary["booked"] += 1
        return list(days.values())

    async def get_latest_slot_date(self, ctx: RequestContext, doctor_id: uuid.UUID) -> Optional[date]:
        await self.doctors.get_doctor(ctx, doctor_id)
        return await self.slot_repo.latest_date(doctor_id)

    async def get_day_stats(self, ctx: RequestContext, doctor_id: uuid.UUID, day: date) -> Dict[str, Any]:
        await self.doctors.get_doctor(ctx, doctor_id)
        slots = await self.slot_repo.list_for_date(doctor_id, day)
        by_status = await self.appointment_repo.count_by_status(doctor_id, day)
        return {
            "date": day,
            "doctor_id": doctor_id,
            "total_slots": len(slots),
            "available_slots": sum(1 for slot in slots if slot.status == SlotStatus.AVAILABLE),
            "booked_slots": sum(1 for slot in slots if slot.status == SlotStatus.BOOKED),
            "blocked_slots": sum(1 for slot in slots if slot.status == SlotStatus.BLOCKED),
            "appointments": {status.value: by_status.get(status, 0) for status in AppointmentStatus},
        }


class AppointmentService:
    """Service layer for the booking lifecycle"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctors = DoctorService(db)
        self.slot_repo = SlotRepository(db)
        self.appointment_repo = AppointmentRepository(db)
        self.patient_repo = PatientRepository(db)
        self.queue_repo = QueueRepository(db)

    async def _heal_lost_race(self, slot_id: uuid.UUID) -> None:
        await self.slot_repo.set_status([slot_id], SlotStatus.BOOKED)
        await self.db.commit()
        logger.warning(f"Slot {slot_id} already held an active appointment; status corrected to BOOKED")

    async def check_slot_bookable(self, slot: Optional[Slot], calendar: BusinessCalendar) -> Slot:
        """Validate a slot for booking; repairs and raises if the race is already lost"""
        if slot is None:
            raise NotFoundError("Slot not found")
        if slot.slot_date < calendar.today:
            raise InvalidStateError("Cannot book a slot in the past")
        if slot.status != SlotStatus.AVAILABLE:
            raise InvalidStateError(f"Slot is not available (status {slot.status.value})")
        if await self.appointment_repo.get_active_for_slot(slot.id):
            slot_id = slot.id
            await self._heal_lost_race(slot_id)
            raise SlotAlreadyBookedError(details={"slot_id": str(slot_id)})
        return slot

    def new_appointment_data(self, slot: Slot, patient_id: uuid.UUID, **fields) -> dict:
        data = {
            "hospital_id": slot.hospital_id,
            "slot_id": slot.id,
            "doctor_id": slot.doctor_id,
            "patient_id": patient_id,
            "appointment_date": slot.slot_date,
            "start_time": slot.start_time,
            "end_time": slot.end_time,
            "status": AppointmentStatus.SCHEDULED,
            "public_token": generate_public_token(),
        }
        data.update(fields)
        return data

    async def book_appointment(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        slot_id: uuid.UUID,
        patient_id: uuid.UUID,
        reason_for_visit: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """Book a slot for a patient.

        The slot row is locked for the duration of the transaction. If a
        concurrent booking still slips through, the partial unique index on
        active appointments rejects it and the caller gets
        ``SlotAlreadyBookedError``.
        """
        slot = await self.slot_repo.get(ctx.hospital_id, slot_id, for_update=True)
        if slot is not None and not ctx.visibility.is_doctor_visible(slot.doctor_id):
            slot = None
        slot = await self.check_slot_bookable(slot, calendar)

        patient = await self.patient_repo.get(ctx.hospital_id, patient_id)
        if not patient:
            raise NotFoundError("Patient not found", details={"patient_id": str(patient_id)})

        try:
            appointment = await self.appointment_repo.create(self.new_appointment_data(
                slot,
                patient.id,
                reason_for_visit=reason_for_visit,
                notes=notes,
                booked_by_user_id=ctx.user_id,
            ))
            slot.status = SlotStatus.BOOKED
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            if await self.appointment_repo.get_active_for_slot(slot_id):
                logger.warning(f"Booking race lost on slot {slot_id}")
                await self._heal_lost_race(slot_id)
                raise SlotAlreadyBookedError(details={"slot_id": str(slot_id)}) from exc
            raise handle_database_error(exc, "book appointment") from exc

        logger.info(f"Appointment {appointment.id} booked on slot {slot_id} for patient {patient_id}")
        return appointment

    async def get_appointment(self, ctx: RequestContext, appointment_id: uuid.UUID) -> Appointment:
        appointment = await self.appointment_repo.get(ctx.hospital_id, appointment_id)
        if not appointment or not ctx.visibility.is_doctor_visible(appointment.doctor_id):
            raise NotFoundError("Appointment not found", details={"appointment_id": str(appointment_id)})
        return appointment

    async def get_appointment_with_patient(self, ctx: RequestContext, appointment_id: uuid.UUID) -> Tuple[Appointment, Optional[Patient]]:
        appointment = await self.get_appointment(ctx, appointment_id)
        patient = await self.patient_repo.get(ctx.hospital_id, appointment.patient_id)
        return appointment, patient

    async def list_appointments(
        self,
        ctx: RequestContext,
        doctor_id: Optional[uuid.UUID] = None,
        patient_id: Optional[uuid.UUID] = None,
        on_date: Optional[date] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Tuple[Appointment, Patient]], int]:
        if doctor_id and not ctx.visibility.is_doctor_visible(doctor_id):
            return [], 0
        if on_date:
            start_date = end_date = on_date
        if start_date and end_date:
            validate_date_range(start_date, end_date)
        return await self.appointment_repo.list(
            ctx.hospital_id,
            ctx.visibility,
            doctor_id=doctor_id,
            patient_id=patient_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            skip=skip,
            limit=limit,
        )

    async def apply_cancellation(self, appointment: Appointment, reason: str, calendar: BusinessCalendar) -> int:
        """Mark cancelled, release the slot and take any pending queue entry
        out of the line, without committing.

        Returns the number of queue entries moved to LEFT.
        """
        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancellation_reason = reason
        appointment.cancelled_at = calendar.now
        await self.db.flush()
        await self.slot_repo.set_status([appointment.slot_id], SlotStatus.AVAILABLE)
        return await self.queue_repo.mark_left_for_appointments([appointment.id], calendar.now)

    async def cancel_appointment(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        appointment_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Appointment:
        appointment = await self.get_appointment(ctx, appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidStateError("Appointment is already cancelled")
        if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            raise InvalidStateError(f"Cannot cancel an appointment that is {appointment.status.value}")

        await self.apply_cancellation(appointment, reason or "Cancelled by staff", calendar)
        await self.db.commit()
        logger.info(f"Appointment {appointment.id} cancelled; slot {appointment.slot_id} released")
        return appointment

    async def update_appointment(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        appointment_id: uuid.UUID,
        status: Optional[AppointmentStatus] = None,
        notes: Optional[str] = None,
        reason_for_visit: Optional[str] = None,
    ) -> Appointment:
        appointment = await self.get_appointment(ctx, appointment_id)
        if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            raise InvalidStateError(f"Appointment is {appointment.status.value} and can no longer be changed")
        if status == AppointmentStatus.SCHEDULED and appointment.status != AppointmentStatus.SCHEDULED:
            raise InvalidStateError("A confirmed appointment cannot return to SCHEDULED")

        if notes is not None:
            appointment.notes = notes
        if reason_for_visit is not None:
            appointment.reason_for_visit = reason_for_visit

        if status == AppointmentStatus.CANCELLED:
            await self.apply_cancellation(appointment, "Cancelled by staff", calendar)
        elif status is not None and status != appointment.status:
            appointment.status = status
            if status == AppointmentStatus.CONFIRMED:
                appointment.confirmed_at = calendar.now
            elif status == AppointmentStatus.COMPLETED:
                appointment.completed_at = calendar.now
        await self.db.commit()
        if status is not None:
            logger.info(f"Appointment {appointment.id} status is now {appointment.status.value}")
        return appointment

    async def calendar_counts(
        self,
        ctx: RequestContext,
        start_date: date,
        end_date: date,
        doctor_id: Optional[uuid.UUID] = None,
    ) -> Dict[date, int]:
        validate_date_range(start_date, end_date)
        if end_date - start_date > timedelta(days=settings.MAX_SLOT_GENERATION_DAYS):
            raise ValidationError("Requested range is too long")
        return await self.appointment_repo.count_active_by_date(
            ctx.hospital_id, ctx.visibility, start_date, end_date, doctor_id
        )
