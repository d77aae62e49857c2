"""
Queue Service Layer

Same-day patient queue per doctor. ``queue_number`` is the only ordering
key; promotion rewrites numbers instead of adding a sort field, so every
operation that allocates or rewrites numbers first locks the doctor's
check-in row for that day.
"""

from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from loguru import logger
import uuid

from clinicflow.core.clock import BusinessCalendar, as_utc
from clinicflow.core.config import settings
from clinicflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from clinicflow.core.security import generate_public_token
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.appointments.models import (
    Appointment, AppointmentStatus, ACTIVE_APPOINTMENT_STATUSES
)
from clinicflow.domain.appointments.repository import AppointmentRepository
from clinicflow.domain.appointments.service import doctor_duration
from clinicflow.domain.hospitals.models import DoctorProfile
from clinicflow.domain.hospitals.service import DoctorService
from clinicflow.domain.patients.repository import PatientRepository
from clinicflow.domain.queue.models import (
    QueueEntry, QueueEntryType, QueueStatus, QueuePriority, CheckinStatus,
    DoctorDailyCheckin, QUEUE_TRANSITIONS, TERMINAL_QUEUE_STATUSES
)
from clinicflow.domain.queue.repository import QueueRepository, CheckinRepository
from clinicflow.domain.queue.wait_time import (
    QueuePosition, fallback_duration, queue_position, round_half_up
)
from clinicflow.domain.schedules.service import validate_date_range


class QueueEstimator:
    """Loads what the wait-time estimator needs for one doctor and day"""

    def __init__(self, db: AsyncSession):
        self.queue_repo = QueueRepository(db)
        self.appointment_repo = AppointmentRepository(db)

    async def appointment_minutes(self, entries: Iterable[QueueEntry]) -> Dict[uuid.UUID, int]:
        appointments = await self.appointment_repo.get_by_ids(
            {entry.appointment_id for entry in entries if entry.appointment_id}
        )
        return {appointment.id: appointment.duration_minutes for appointment in appointments}

    async def fallback(self, doctor: DoctorProfile, day: date) -> float:
        completed = await self.queue_repo.completed_consultation_minutes(doctor.id, day)
        return fallback_duration(doctor_duration(doctor), completed, settings.WAIT_TIME_MIN_SAMPLES)

    async def positions(
        self,
        doctor: DoctorProfile,
        day: date,
        entries: List[QueueEntry],
        calendar: BusinessCalendar,
        targets: Optional[Iterable[QueueEntry]] = None,
    ) -> Dict[uuid.UUID, QueuePosition]:
        minutes = await self.appointment_minutes(entries)
        fallback = await self.fallback(doctor, day)
        return {
            target.id: queue_position(target, entries, calendar.now, minutes, fallback)
            for target in (targets if targets is not None else entries)
        }


class QueueService:
    """Service layer for queue operations"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctors = DoctorService(db)
        self.queue_repo = QueueRepository(db)
        self.checkin_repo = CheckinRepository(db)
        self.appointment_repo = AppointmentRepository(db)
        self.patient_repo = PatientRepository(db)
        self.estimator = QueueEstimator(db)

    async def _get_entry(self, ctx: RequestContext, entry_id: uuid.UUID) -> QueueEntry:
        entry = await self.queue_repo.get(ctx.hospital_id, entry_id)
        if not entry or not ctx.visibility.is_doctor_visible(entry.doctor_id):
            raise NotFoundError("Queue entry not found", details={"queue_entry_id": str(entry_id)})
        return entry

    async def _get_appointment(self, ctx: RequestContext, appointment_id: uuid.UUID) -> Appointment:
        appointment = await self.appointment_repo.get(ctx.hospital_id, appointment_id)
        if not appointment or not ctx.visibility.is_doctor_visible(appointment.doctor_id):
            raise NotFoundError("Appointment not found", details={"appointment_id": str(appointment_id)})
        return appointment

    async def _new_entry(self, hospital_id: uuid.UUID, doctor_id: uuid.UUID, day: date, **fields) -> QueueEntry:
        """Allocate the next number and insert; caller holds the day lock"""
        queue_number = await self.queue_repo.next_queue_number(doctor_id, day)
        data = {
            "hospital_id": hospital_id,
            "doctor_id": doctor_id,
            "queue_date": day,
            "queue_number": queue_number,
            "public_token": generate_public_token(),
        }
        data.update(fields)
        return await self.queue_repo.create(data)

    # ==================== Entry Creation ====================

    async def add_walk_in(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        doctor_id: uuid.UUID,
        walk_in_name: Optional[str] = None,
        walk_in_phone: Optional[str] = None,
        patient_id: Optional[uuid.UUID] = None,
        priority: QueuePriority = QueuePriority.NORMAL,
        reason_for_visit: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> QueueEntry:
        await self.doctors.get_doctor(ctx, doctor_id)
        if patient_id:
            patient = await self.patient_repo.get(ctx.hospital_id, patient_id)
            if not patient:
                raise NotFoundError("Patient not found", details={"patient_id": str(patient_id)})
            walk_in_name = walk_in_name or patient.full_name
        if not walk_in_name:
            raise ValidationError("A walk-in needs a patient or a name")

        await self.checkin_repo.lock_day(ctx.hospital_id, doctor_id, calendar.today)
        entry = await self._new_entry(
            ctx.hospital_id,
            doctor_id,
            calendar.today,
            entry_type=QueueEntryType.WALK_IN,
            patient_id=patient_id,
            walk_in_name=walk_in_name,
            walk_in_phone=walk_in_phone,
            priority=priority,
            reason_for_visit=reason_for_visit,
            notes=notes,
            status=QueueStatus.QUEUED,
            checked_in_at=calendar.now,
        )
        await self.db.commit()
        logger.info(f"Walk-in added to queue: doctor={doctor_id} number={entry.queue_number} entry={entry.id}")
        return entry

    async def check_in_appointment(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        appointment_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> QueueEntry:
        """Put a booked patient into today's queue and confirm the appointment"""
        appointment = await self._get_appointment(ctx, appointment_id)
        if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            raise InvalidStateError(f"Cannot check in an appointment that is {appointment.status.value}")
        if appointment.appointment_date != calendar.today:
            raise InvalidStateError("Only today's appointments can be checked in")

        await self.checkin_repo.lock_day(ctx.hospital_id, appointment.doctor_id, calendar.today)
        if await self.queue_repo.for_appointment_on_date(appointment.id, calendar.today):
            raise InvalidStateError("This appointment is already checked in today")

        entry = await self._new_entry(
            ctx.hospital_id,
            appointment.doctor_id,
            calendar.today,
            entry_type=QueueEntryType.SCHEDULED,
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            reason_for_visit=appointment.reason_for_visit,
            notes=notes,
            status=QueueStatus.QUEUED,
            checked_in_at=calendar.now,
        )
        if appointment.status == AppointmentStatus.SCHEDULED:
            appointment.status = AppointmentStatus.CONFIRMED
            appointment.confirmed_at = calendar.now
        await self.db.commit()
        logger.info(
            f"Appointment {appointment.id} checked in: doctor={appointment.doctor_id} "
            f"number={entry.queue_number} entry={entry.id}"
        )
        return entry

    async def mark_appointment_no_show(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        appointment_id: uuid.UUID,
    ) -> QueueEntry:
        """Record a booked patient who never arrived"""
        appointment = await self._get_appointment(ctx, appointment_id)
        if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            raise InvalidStateError(f"Cannot mark an appointment that is {appointment.status.value} as no-show")

        day = appointment.appointment_date
        await self.checkin_repo.lock_day(ctx.hospital_id, appointment.doctor_id, day)
        entry = await self.queue_repo.for_appointment_on_date(appointment.id, day)
        if entry is None:
            entry = await self._new_entry(
                ctx.hospital_id,
                appointment.doctor_id,
                day,
                entry_type=QueueEntryType.SCHEDULED,
                appointment_id=appointment.id,
                patient_id=appointment.patient_id,
                reason_for_visit=appointment.reason_for_visit,
                status=QueueStatus.NO_SHOW,
                checked_in_at=calendar.now,
                completed_at=calendar.now,
            )
        else:
            self._transition(entry, QueueStatus.NO_SHOW, calendar)

        appointment.status = AppointmentStatus.NO_SHOW
        await self.db.commit()
        logger.info(f"Appointment {appointment.id} marked no-show (entry {entry.id})")
        return entry

    # ==================== Transitions ====================

    def _transition(self, entry: QueueEntry, new_status: QueueStatus, calendar: BusinessCalendar) -> None:
        if new_status not in QUEUE_TRANSITIONS[entry.status]:
            raise InvalidStateError(
                f"Cannot move a queue entry from {entry.status.value} to {new_status.value}",
                details={"from": entry.status.value, "to": new_status.value},
            )
        now = calendar.now
        if new_status == QueueStatus.WAITING:
            entry.called_at = now
        elif new_status == QueueStatus.WITH_DOCTOR:
            entry.called_at = entry.called_at or now
            entry.with_doctor_at = now
        else:
            entry.completed_at = now

        if new_status == QueueStatus.COMPLETED:
            checked_in = as_utc(entry.checked_in_at)
            started = as_utc(entry.with_doctor_at)
            if checked_in and started:
                entry.wait_time_minutes = max(0, round_half_up((started - checked_in).total_seconds() / 60))
            if started:
                entry.consultation_time_minutes = max(0, round_half_up((now - started).total_seconds() / 60))
        entry.status = new_status

    async def update_status(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        entry_id: uuid.UUID,
        new_status: QueueStatus,
    ) -> QueueEntry:
        entry = await self._get_entry(ctx, entry_id)
        previous = entry.status
        self._transition(entry, new_status, calendar)

        if entry.appointment_id and new_status in (QueueStatus.COMPLETED, QueueStatus.NO_SHOW):
            appointment = await self.appointment_repo.get(ctx.hospital_id, entry.appointment_id)
            if appointment and appointment.status in ACTIVE_APPOINTMENT_STATUSES:
                if new_status == QueueStatus.COMPLETED:
                    appointment.status = AppointmentStatus.COMPLETED
                    appointment.completed_at = calendar.now
                else:
                    appointment.status = AppointmentStatus.NO_SHOW

        await self.db.commit()
        logger.info(f"Queue entry {entry.id}: {previous.value} -> {new_status.value}")
        return entry

    async def update_priority(self, ctx: RequestContext, entry_id: uuid.UUID, priority: QueuePriority) -> QueueEntry:
        entry = await self._get_entry(ctx, entry_id)
        if entry.status in TERMINAL_QUEUE_STATUSES:
            raise InvalidStateError(f"Cannot change priority of a {entry.status.value} entry")
        entry.priority = priority
        await self.db.commit()
        logger.info(f"Queue entry {entry.id} priority set to {priority.value}")
        return entry

    async def move_to_top(self, ctx: RequestContext, entry_id: uuid.UUID) -> QueueEntry:
        """Promote a QUEUED entry ahead of every other QUEUED entry.

        Smaller QUEUED numbers each shift up by one and the promoted entry
        takes the smallest, so [3, 5, 7, 9] promoting 9 becomes [4, 6, 8, 3].
        """
        entry = await self._get_entry(ctx, entry_id)
        await self.checkin_repo.lock_day(entry.hospital_id, entry.doctor_id, entry.queue_date)
        await self.db.refresh(entry)
        if entry.status != QueueStatus.QUEUED:
            raise InvalidStateError("Only queued patients can be moved to the top")

        ahead = await self.queue_repo.queued_before(entry.doctor_id, entry.queue_date, entry.queue_number)
        if ahead:
            top = ahead[-1].queue_number
            for other in ahead:
                other.queue_number += 1
            entry.queue_number = top
        entry.priority = QueuePriority.URGENT
        await self.db.commit()
        logger.info(f"Queue entry {entry.id} moved to top as number {entry.queue_number}; {len(ahead)} shifted")
        return entry

    async def remove(self, ctx: RequestContext, entry_id: uuid.UUID) -> None:
        entry = await self._get_entry(ctx, entry_id)
        await self.queue_repo.delete(entry)
        await self.db.commit()
        logger.info(f"Queue entry {entry_id} removed")

    # ==================== Views ====================

    async def entry_views(
        self,
        ctx: RequestContext,
        doctor: DoctorProfile,
        day: date,
        entries: List[QueueEntry],
        calendar: BusinessCalendar,
    ) -> List[Dict[str, Any]]:
        positions = await self.estimator.positions(doctor, day, entries, calendar)
        patients = await self.patient_repo.get_many(ctx.hospital_id, {entry.patient_id for entry in entries})
        views = []
        for entry in entries:
            patient = patients.get(entry.patient_id)
            position = positions[entry.id]
            views.append({
                "id": entry.id,
                "queue_number": entry.queue_number,
                "entry_type": entry.entry_type,
                "status": entry.status,
                "priority": entry.priority,
                "appointment_id": entry.appointment_id,
                "patient_id": entry.patient_id,
                "patient_name": patient.full_name if patient else entry.walk_in_name,
                "patient_phone": patient.phone if patient else entry.walk_in_phone,
                "reason_for_visit": entry.reason_for_visit,
                "notes": entry.notes,
                "checked_in_at": entry.checked_in_at,
                "called_at": entry.called_at,
                "with_doctor_at": entry.with_doctor_at,
                "completed_at": entry.completed_at,
                "wait_time_minutes": entry.wait_time_minutes,
                "consultation_time_minutes": entry.consultation_time_minutes,
                "patients_ahead": position.patients_ahead,
                "estimated_wait_minutes": position.estimated_wait_minutes,
                "public_token": entry.public_token,
            })
        return views

    async def get_daily_queue(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        doctor_id: uuid.UUID,
        day: Optional[date] = None,
    ) -> Dict[str, Any]:
        doctor = await self.doctors.get_doctor(ctx, doctor_id)
        day = day or calendar.today
        entries = await self.queue_repo.for_doctor_day(doctor_id, day)
        views = await self.entry_views(ctx, doctor, day, entries, calendar)

        grouped: Dict[str, List[Dict[str, Any]]] = {"queue": [], "waiting": [], "with_doctor": [], "completed": []}
        for view in views:
            if view["status"] == QueueStatus.QUEUED:
                grouped["queue"].append(view)
            elif view["status"] == QueueStatus.WAITING:
                grouped["waiting"].append(view)
            elif view["status"] == QueueStatus.WITH_DOCTOR:
                grouped["with_doctor"].append(view)
            else:
                grouped["completed"].append(view)

        checked_in_ids = {entry.appointment_id for entry in entries if entry.appointment_id}
        scheduled = [
            {
                "appointment_id": appointment.id,
                "patient_id": patient.id,
                "patient_name": patient.full_name,
                "patient_phone": patient.phone,
                "start_time": appointment.start_time,
                "end_time": appointment.end_time,
                "status": appointment.status,
                "reason_for_visit": appointment.reason_for_visit,
            }
            for appointment, patient in await self.appointment_repo.for_doctor_on_date(
                doctor_id, day, statuses=ACTIVE_APPOINTMENT_STATUSES
            )
            if appointment.id not in checked_in_ids
        ]

        checkin = await self.checkin_repo.get(doctor_id, day)
        stats = {status.value.lower(): 0 for status in QueueStatus}
        for entry in entries:
            stats[entry.status.value.lower()] += 1
        stats.update({
            "total": len(entries),
            "walk_ins": sum(1 for entry in entries if entry.entry_type == QueueEntryType.WALK_IN),
            "scheduled_checked_in": sum(1 for entry in entries if entry.entry_type == QueueEntryType.SCHEDULED),
            "pending_appointments": len(scheduled),
        })

        return {
            "date": day,
            "doctor_id": doctor_id,
            "doctor_checkin": checkin,
            **grouped,
            "scheduled": scheduled,
            "stats": stats,
        }

    async def get_queue_stats(
        self,
        ctx: RequestContext,
        start_date: date,
        end_date: date,
        doctor_id: Optional[uuid.UUID] = None,
    ) -> List[Dict[str, Any]]:
        validate_date_range(start_date, end_date)
        if doctor_id:
            await self.doctors.get_doctor(ctx, doctor_id)
        counts = await self.queue_repo.counts_by_date_and_type(
            ctx.hospital_id, ctx.visibility, start_date, end_date, doctor_id
        )
        days: Dict[date, Dict[str, Any]] = {}
        for (day, entry_type), count in counts.items():
            summary = days.setdefault(day, {"date": day, "walk_ins": 0, "scheduled": 0, "total": 0})
            key = "walk_ins" if entry_type == QueueEntryType.WALK_IN else "scheduled"
            summary[key] += count
            summary["total"] += count
        return [days[day] for day in sorted(days)]

    # ==================== Doctor Check-in ====================

    async def _update_checkin(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        doctor_id: uuid.UUID,
        allowed_from: Iterable[CheckinStatus],
        new_status: CheckinStatus,
    ) -> DoctorDailyCheckin:
        await self.doctors.get_doctor(ctx, doctor_id)
        checkin = await self.checkin_repo.lock_day(ctx.hospital_id, doctor_id, calendar.today)
        if checkin.status not in allowed_from:
            raise InvalidStateError(
                f"Doctor is {checkin.status.value}; cannot change to {new_status.value}"
            )
        now = calendar.now
        if new_status == CheckinStatus.CHECKED_IN:
            if checkin.status == CheckinStatus.ON_BREAK:
                checkin.break_started_at = None
            else:
                checkin.checked_in_at = now
                checkin.checked_out_at = None
        elif new_status == CheckinStatus.ON_BREAK:
            checkin.break_started_at = now
        elif new_status == CheckinStatus.CHECKED_OUT:
            checkin.checked_out_at = now
            checkin.break_started_at = None
        checkin.status = new_status
        await self.db.commit()
        logger.info(f"Doctor {doctor_id} {new_status.value} on {calendar.today}")
        return checkin

    async def doctor_check_in(self, ctx: RequestContext, calendar: BusinessCalendar, doctor_id: uuid.UUID) -> DoctorDailyCheckin:
        return await self._update_checkin(
            ctx, calendar, doctor_id,
            (CheckinStatus.NOT_CHECKED_IN, CheckinStatus.CHECKED_OUT),
            CheckinStatus.CHECKED_IN,
        )

    async def doctor_check_out(self, ctx: RequestContext, calendar: BusinessCalendar, doctor_id: uuid.UUID) -> DoctorDailyCheckin:
        return await self._update_checkin(
            ctx, calendar, doctor_id,
            (CheckinStatus.CHECKED_IN, CheckinStatus.ON_BREAK),
            CheckinStatus.CHECKED_OUT,
        )

    async def start_break(self, ctx: RequestContext, calendar: BusinessCalendar, doctor_id: uuid.UUID) -> DoctorDailyCheckin:
        return await self._update_checkin(
            ctx, calendar, doctor_id, (CheckinStatus.CHECKED_IN,), CheckinStatus.ON_BREAK
        )

    async def end_break(self, ctx: RequestContext, calendar: BusinessCalendar, doctor_id: uuid.UUID) -> DoctorDailyCheckin:
        return await self._update_checkin(
            ctx, calendar, doctor_id, (CheckinStatus.ON_BREAK,), CheckinStatus.CHECKED_IN
        )
