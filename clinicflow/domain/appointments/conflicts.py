"""
Conflict Analyzer

Read-only simulation of a schedule, duration or time-off change: which
future bookings would no longer fit, and how much inventory a
regeneration would purge. Nothing here writes to the store.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import enum
import uuid

from clinicflow.core.clock import BusinessCalendar
from clinicflow.core.exceptions import ValidationError
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.appointments.repository import AppointmentRepository, SlotRepository
from clinicflow.domain.appointments.slot_generator import day_of_week, index_schedule
from clinicflow.domain.hospitals.service import DoctorService
from clinicflow.domain.queue.repository import QueueRepository
from clinicflow.domain.schedules.service import (
    validate_date_range, validate_duration, validate_schedule_rows
)


class ChangeType(str, enum.Enum):
    SCHEDULE = "schedule"
    DURATION = "duration"
    TIMEOFF = "timeoff"


@dataclass
class ProposedChange:
    change_type: ChangeType
    schedule: List = field(default_factory=list)
    duration_minutes: Optional[int] = None
    time_off_start: Optional[date] = None
    time_off_end: Optional[date] = None

    def validate(self) -> "ProposedChange":
        if self.change_type == ChangeType.SCHEDULE:
            self.schedule = validate_schedule_rows(self.schedule)
        elif self.change_type == ChangeType.DURATION:
            if self.duration_minutes is None:
                raise ValidationError("A duration change needs duration_minutes")
            validate_duration(self.duration_minutes)
        elif self.change_type == ChangeType.TIMEOFF:
            if self.time_off_start is None or self.time_off_end is None:
                raise ValidationError("A time-off change needs a start and end date")
            validate_date_range(self.time_off_start, self.time_off_end)
        return self


def conflict_reason(appointment, change: ProposedChange, schedule_by_day: Optional[Dict[int, Any]] = None) -> Optional[str]:
    """Why ``appointment`` would not survive ``change``; None if it fits"""
    if change.change_type == ChangeType.DURATION:
        return "Slot duration is changing"

    if change.change_type == ChangeType.TIMEOFF:
        if change.time_off_start <= appointment.appointment_date <= change.time_off_end:
            return "Falls within time off"
        return None

    if schedule_by_day is None:
        schedule_by_day = index_schedule(change.schedule)
    entry = schedule_by_day.get(day_of_week(appointment.appointment_date))
    if entry is None or not entry.is_working or entry.shift_start is None or entry.shift_end is None:
        return "Day is no longer a working day"
    if appointment.start_time < entry.shift_start or appointment.end_time > entry.shift_end:
        return "Outside the new shift hours"
    return None


def find_conflicts(appointments, change: ProposedChange) -> List:
    """Pairs of (appointment, reason) for every appointment the change breaks"""
    schedule_by_day = index_schedule(change.schedule) if change.change_type == ChangeType.SCHEDULE else None
    conflicts = []
    for appointment in appointments:
        reason = conflict_reason(appointment, change, schedule_by_day)
        if reason:
            conflicts.append((appointment, reason))
    return conflicts


class ConflictAnalyzer:
    """Loads future bookings and runs the conflict rules against them"""

    def __init__(self, db: AsyncSession):
        self.doctors = DoctorService(db)
        self.appointment_repo = AppointmentRepository(db)
        self.slot_repo = SlotRepository(db)
        self.queue_repo = QueueRepository(db)

    async def analyze(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        doctor_id: uuid.UUID,
        change: ProposedChange,
    ) -> Dict[str, Any]:
        await self.doctors.get_doctor(ctx, doctor_id)
        change.validate()
        today = calendar.today

        rows = await self.appointment_repo.future_active_for_doctor(doctor_id, today)
        patients = {appointment.id: patient for appointment, patient in rows}
        conflicts = find_conflicts([appointment for appointment, _ in rows], change)

        queued = await self.queue_repo.pending_appointment_ids(appointment.id for appointment, _ in conflicts)
        slots_to_delete = await self.slot_repo.count_unreferenced_available(doctor_id, today)

        dates = [appointment.appointment_date for appointment, _ in conflicts]
        return {
            "doctor_id": doctor_id,
            "change_type": change.change_type,
            "conflicts": [
                {
                    "appointment_id": appointment.id,
                    "appointment_date": appointment.appointment_date,
                    "start_time": appointment.start_time,
                    "end_time": appointment.end_time,
                    "status": appointment.status,
                    "patient_id": appointment.patient_id,
                    "patient_name": patients[appointment.id].full_name,
                    "patient_phone": patients[appointment.id].phone,
                    "has_queue_entry": appointment.id in queued,
                    "reason": reason,
                }
                for appointment, reason in conflicts
            ],
            "summary": {
                "total_appointments": len(conflicts),
                "total_queue_entries": len(queued),
                "date_from": min(dates) if dates else today,
                "date_to": max(dates) if dates else today,
                "slots_to_delete": slots_to_delete,
            },
        }
