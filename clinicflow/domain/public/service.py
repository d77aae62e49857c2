"""
Public Token Service

Unauthenticated operations keyed by the opaque token carried on each
appointment and queue entry. Each call touches exactly the one record its
token names, and the hospital's business calendar is built from that
record's tenant.
"""

from typing import Any, Dict, List
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from loguru import logger
import uuid

from clinicflow.core.clock import BusinessCalendar, Clock
from clinicflow.core.exceptions import (
    InvalidStateError, NotFoundError, SlotAlreadyBookedError, handle_database_error
)
from clinicflow.domain.appointments.models import (
    Appointment, SlotPeriod, SlotStatus, ACTIVE_APPOINTMENT_STATUSES, CancellationReason
)
from clinicflow.domain.appointments.repository import AppointmentRepository, SlotRepository
from clinicflow.domain.appointments.service import AppointmentService
from clinicflow.domain.appointments.slot_generator import approved_time_off, closed_reason, index_schedule
from clinicflow.domain.hospitals.repository import DoctorRepository, HospitalRepository
from clinicflow.domain.patients.repository import PatientRepository
from clinicflow.domain.queue.models import CheckinStatus, PENDING_QUEUE_STATUSES, QueueStatus
from clinicflow.domain.queue.repository import CheckinRepository, QueueRepository
from clinicflow.domain.queue.service import QueueEstimator
from clinicflow.domain.schedules.repository import ScheduleRepository, TimeOffRepository


class PublicAppointmentService:
    """Status, cancel and reschedule for an appointment token"""

    def __init__(self, db: AsyncSession, clock: Clock):
        self.db = db
        self.clock = clock
        self.appointments = AppointmentService(db)
        self.appointment_repo = AppointmentRepository(db)
        self.slot_repo = SlotRepository(db)
        self.hospital_repo = HospitalRepository(db)
        self.doctor_repo = DoctorRepository(db)
        self.patient_repo = PatientRepository(db)
        self.schedule_repo = ScheduleRepository(db)
        self.time_off_repo = TimeOffRepository(db)

    async def _load(self, token: str):
        appointment = await self.appointment_repo.get_by_token(token)
        if not appointment:
            raise NotFoundError("Appointment not found")
        hospital = await self.hospital_repo.get_by_id(appointment.hospital_id)
        calendar = BusinessCalendar.for_timezone(self.clock, hospital.timezone if hospital else None)
        return appointment, hospital, calendar

    async def get_status(self, token: str) -> Dict[str, Any]:
        appointment, hospital, _ = await self._load(token)
        doctor = await self.doctor_repo.get_by_id(appointment.doctor_id)
        patient = await self.patient_repo.get(appointment.hospital_id, appointment.patient_id)
        actionable = appointment.status in ACTIVE_APPOINTMENT_STATUSES
        return {
            "appointment_id": appointment.id,
            "status": appointment.status,
            "appointment_date": appointment.appointment_date,
            "start_time": appointment.start_time,
            "end_time": appointment.end_time,
            "reason_for_visit": appointment.reason_for_visit,
            "cancellation_reason": appointment.cancellation_reason,
            "patient_name": patient.full_name if patient else None,
            "doctor_id": appointment.doctor_id,
            "doctor_name": doctor.full_name if doctor else None,
            "hospital_name": hospital.name if hospital else None,
            "hospital_logo_url": hospital.logo_url if hospital else None,
            "can_cancel": actionable,
            "can_reschedule": actionable,
        }

    async def cancel(self, token: str) -> Appointment:
        appointment, _, calendar = await self._load(token)
        if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            raise InvalidStateError(f"This appointment can no longer be cancelled (it is {appointment.status.value})")
        await self.appointments.apply_cancellation(appointment, CancellationReason.BY_PATIENT, calendar)
        await self.db.commit()
        logger.info(f"Appointment {appointment.id} cancelled via public link")
        return appointment

    async def list_reschedule_slots(self, token: str, day: date) -> Dict[str, Any]:
        """AVAILABLE slots with the same doctor on ``day``, grouped by period"""
        appointment, _, calendar = await self._load(token)
        if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            raise InvalidStateError("This appointment can no longer be rescheduled")

        grouped: Dict[str, List[Dict[str, Any]]] = {period.value: [] for period in SlotPeriod}
        if day < calendar.today:
            return {"date": day, "slots": grouped}

        schedule = await self.schedule_repo.get_weekly(appointment.doctor_id)
        time_off = await self.time_off_repo.list_approved_overlapping(appointment.doctor_id, day, day)
        if closed_reason(day, index_schedule(schedule), approved_time_off(time_off)):
            return {"date": day, "slots": grouped}

        slots = await self.slot_repo.list_available_for_date(appointment.doctor_id, day)
        taken = await self.appointment_repo.active_by_slot(slot.id for slot in slots)
        for slot in slots:
            if slot.id in taken:
                continue
            grouped[slot.period.value].append({
                "id": slot.id,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "period": slot.period,
            })
        return {"date": day, "slots": grouped}

    async def reschedule(self, token: str, new_slot_id: uuid.UUID) -> Appointment:
        """Move the booking to another slot of the same doctor.

        Cancelling the old appointment and booking the new slot share one
        transaction; if the new booking fails, the rollback leaves the old
        appointment and its slot exactly as they were.
        """
        appointment, _, calendar = await self._load(token)
        if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            raise InvalidStateError("This appointment can no longer be rescheduled")
        if new_slot_id == appointment.slot_id:
            raise InvalidStateError("The appointment is already in this slot")

        slot = await self.slot_repo.get(appointment.hospital_id, new_slot_id, for_update=True)
        if slot is None or slot.doctor_id != appointment.doctor_id:
            raise NotFoundError("Slot not found", details={"slot_id": str(new_slot_id)})
        slot = await self.appointments.check_slot_bookable(slot, calendar)

        old_id = appointment.id
        try:
            await self.appointments.apply_cancellation(appointment, CancellationReason.RESCHEDULED, calendar)
            replacement = await self.appointment_repo.create(self.appointments.new_appointment_data(
                slot,
                appointment.patient_id,
                reason_for_visit=appointment.reason_for_visit,
                notes=appointment.notes,
                booked_by_user_id=appointment.booked_by_user_id,
            ))
            slot.status = SlotStatus.BOOKED
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            if await self.appointment_repo.get_active_for_slot(new_slot_id):
                await self.slot_repo.set_status([new_slot_id], SlotStatus.BOOKED)
                await self.db.commit()
                logger.warning(f"Reschedule of {old_id} lost the race for slot {new_slot_id}; original kept")
                raise SlotAlreadyBookedError(
                    details={"slot_id": str(new_slot_id), "appointment_id": str(old_id)}
                ) from exc
            raise handle_database_error(exc, "reschedule appointment") from exc

        logger.info(f"Appointment {old_id} rescheduled via public link to {replacement.id}")
        return replacement


class PublicQueueService:
    """Status and cancel for a queue entry token; links expire with the day"""

    def __init__(self, db: AsyncSession, clock: Clock):
        self.db = db
        self.clock = clock
        self.queue_repo = QueueRepository(db)
        self.checkin_repo = CheckinRepository(db)
        self.hospital_repo = HospitalRepository(db)
        self.doctor_repo = DoctorRepository(db)
        self.patient_repo = PatientRepository(db)
        self.estimator = QueueEstimator(db)

    async def _load(self, token: str):
        entry = await self.queue_repo.get_by_token(token)
        if not entry:
            raise NotFoundError("Queue entry not found or link expired")
        hospital = await self.hospital_repo.get_by_id(entry.hospital_id)
        calendar = BusinessCalendar.for_timezone(self.clock, hospital.timezone if hospital else None)
        if entry.queue_date != calendar.today:
            raise InvalidStateError("This queue link has expired. Links are only valid for the day.")
        return entry, hospital, calendar

    async def get_status(self, token: str) -> Dict[str, Any]:
        entry, hospital, calendar = await self._load(token)
        doctor = await self.doctor_repo.get_by_id(entry.doctor_id)
        entries = await self.queue_repo.for_doctor_day(entry.doctor_id, entry.queue_date)
        position = (await self.estimator.positions(doctor, entry.queue_date, entries, calendar, targets=[entry]))[entry.id]
        checkin = await self.checkin_repo.get(entry.doctor_id, entry.queue_date)
        patient = await self.patient_repo.get(entry.hospital_id, entry.patient_id) if entry.patient_id else None

        return {
            "patient_name": patient.full_name if patient else (entry.walk_in_name or "Patient"),
            "queue_number": entry.queue_number,
            "status": entry.status,
            "priority": entry.priority,
            "reason_for_visit": entry.reason_for_visit,
            "checked_in_at": entry.checked_in_at,
            "called_at": entry.called_at,
            "with_doctor_at": entry.with_doctor_at,
            "completed_at": entry.completed_at,
            "wait_time_minutes": entry.wait_time_minutes,
            "patients_ahead": position.patients_ahead,
            "patients_behind": position.patients_behind,
            "estimated_wait_minutes": position.estimated_wait_minutes,
            "doctor_name": doctor.full_name if doctor else "Doctor",
            "doctor_checked_in": bool(checkin and checkin.status == CheckinStatus.CHECKED_IN),
            "hospital_name": hospital.name if hospital else "Hospital",
            "hospital_logo_url": hospital.logo_url if hospital else None,
            "queue_date": entry.queue_date,
            "can_cancel": entry.status in PENDING_QUEUE_STATUSES,
        }

    async def cancel(self, token: str):
        entry, _, calendar = await self._load(token)
        if entry.status not in PENDING_QUEUE_STATUSES:
            raise InvalidStateError("Cannot cancel: you are already being seen or your visit has ended")
        entry.status = QueueStatus.LEFT
        entry.completed_at = calendar.now
        await self.db.commit()
        logger.info(f"Queue entry {entry.id} left via public link")
        return entry
