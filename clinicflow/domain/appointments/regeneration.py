"""
Regeneration Orchestrator

Replaces a doctor's future slot inventory after an availability change.
The three steps commit independently:

1. cancel the appointments staff approved, release their slots and mark
   their pending queue entries LEFT;
2. purge future AVAILABLE slots that no appointment references;
3. regenerate from today through the configured horizon.

A failed step leaves earlier steps in place. Every step is idempotent, so
the run is resumed by calling it again with the same input.
"""

from typing import Any, Dict, Iterable, List
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger
import uuid

from clinicflow.core.clock import BusinessCalendar
from clinicflow.core.config import settings
from clinicflow.core.exceptions import RegenerationStepError
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.appointments.models import (
    AppointmentStatus, ACTIVE_APPOINTMENT_STATUSES, CancellationReason
)
from clinicflow.domain.appointments.repository import AppointmentRepository, SlotRepository
from clinicflow.domain.appointments.service import AppointmentService, SlotService
from clinicflow.domain.appointments.slot_generator import add_months
from clinicflow.domain.hospitals.service import DoctorService


class RegenerationOrchestrator:
    """Cancel approved conflicts, purge stale slots, rebuild inventory"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctors = DoctorService(db)
        self.appointments = AppointmentService(db)
        self.slots = SlotService(db)
        self.appointment_repo = AppointmentRepository(db)
        self.slot_repo = SlotRepository(db)

    async def _cancel_approved(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        doctor_id: uuid.UUID,
        appointment_ids: Iterable[uuid.UUID],
        report: Dict[str, Any],
    ) -> None:
        for appointment_id in appointment_ids:
            appointment = await self.appointment_repo.get(ctx.hospital_id, appointment_id)
            if appointment is None or appointment.doctor_id != doctor_id:
                logger.warning(
                    f"Regeneration cancel skipped: doctor={doctor_id} appointment={appointment_id} not found"
                )
                report["failed"].append({"appointment_id": str(appointment_id), "error": "Appointment not found"})
                continue
            if appointment.status == AppointmentStatus.CANCELLED:
                report["already_cancelled"].append(str(appointment_id))
                continue
            if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
                logger.warning(
                    f"Regeneration cancel skipped: doctor={doctor_id} appointment={appointment_id} "
                    f"status={appointment.status.value}"
                )
                report["failed"].append({
                    "appointment_id": str(appointment_id),
                    "error": f"Appointment is {appointment.status.value}",
                })
                continue

            try:
                left = await self.appointments.apply_cancellation(
                    appointment, CancellationReason.SCHEDULE_CHANGE, calendar
                )
                await self.db.commit()
            except SQLAlchemyError as exc:
                await self.db.rollback()
                logger.error(
                    f"Regeneration cancel failed: doctor={doctor_id} appointment={appointment_id} error={exc}"
                )
                report["failed"].append({"appointment_id": str(appointment_id), "error": str(exc)})
                continue

            report["cancelled"].append(str(appointment_id))
            report["queue_entries_left"] += left

    async def regenerate(
        self,
        ctx: RequestContext,
        calendar: BusinessCalendar,
        doctor_id: uuid.UUID,
        approved_appointment_ids: List[uuid.UUID],
    ) -> Dict[str, Any]:
        await self.doctors.get_doctor(ctx, doctor_id)
        today = calendar.today
        horizon_end = add_months(today, settings.SLOT_REGENERATION_HORIZON_MONTHS)
        approved = list(dict.fromkeys(approved_appointment_ids))

        report: Dict[str, Any] = {
            "doctor_id": str(doctor_id),
            "start_date": today.isoformat(),
            "end_date": horizon_end.isoformat(),
            "cancelled": [],
            "already_cancelled": [],
            "failed": [],
            "queue_entries_left": 0,
            "slots_deleted": 0,
            "slots_generated": 0,
            "slots_skipped": 0,
        }
        logger.info(
            f"Regeneration started: doctor={doctor_id} today={today} approved={[str(i) for i in approved]}"
        )

        # Step 1: cancel approved conflicts
        await self._cancel_approved(ctx, calendar, doctor_id, approved, report)
        logger.info(
            f"Regeneration step cancel: doctor={doctor_id} cancelled={len(report['cancelled'])} "
            f"already_cancelled={len(report['already_cancelled'])} failed={len(report['failed'])} "
            f"queue_entries_left={report['queue_entries_left']}"
        )

        # Step 2: purge unreferenced future inventory
        try:
            report["slots_deleted"] = await self.slot_repo.delete_unreferenced_available(doctor_id, today)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(f"Regeneration step purge failed: doctor={doctor_id} from={today} error={exc}")
            raise RegenerationStepError(
                "Slot regeneration failed while purging old slots; run it again to resume",
                details={"step": "purge", "completed": report, "original_error": str(exc)},
            ) from exc
        logger.info(f"Regeneration step purge: doctor={doctor_id} deleted={report['slots_deleted']}")

        # Step 3: rebuild
        try:
            doctor = await self.doctors.get_doctor(ctx, doctor_id)
            result = await self.slots.generate_for_doctor(doctor, today, horizon_end)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(
                f"Regeneration step generate failed: doctor={doctor_id} range={today}..{horizon_end} error={exc}"
            )
            raise RegenerationStepError(
                "Slot regeneration failed while generating new slots; run it again to resume",
                details={"step": "generate", "completed": report, "original_error": str(exc)},
            ) from exc
        report["slots_generated"] = result.generated
        report["slots_skipped"] = result.skipped

        logger.info(
            f"Regeneration finished: doctor={doctor_id} cancelled={len(report['cancelled'])} "
            f"deleted={report['slots_deleted']} generated={report['slots_generated']} "
            f"skipped={report['slots_skipped']}"
        )
        return report
