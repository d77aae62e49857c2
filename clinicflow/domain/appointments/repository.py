"""
Appointments Repository Layer

Provides data access operations for slots and appointments. Repositories
flush but never commit; transaction boundaries belong to the services.
"""

from typing import Dict, Iterable, List, Optional, Set, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, exists
from sqlalchemy.dialects import postgresql, sqlite
from datetime import date, time
import uuid

from clinicflow.core.clock import utcnow
from clinicflow.core.visibility import VisibilityFilter
from clinicflow.domain.appointments.models import (
    Slot, SlotStatus, Appointment, AppointmentStatus, ACTIVE_APPOINTMENT_STATUSES
)
from clinicflow.domain.patients.models import Patient


class SlotRepository:
    """Repository for slot inventory"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, hospital_id: uuid.UUID, slot_id: uuid.UUID, for_update: bool = False) -> Optional[Slot]:
        query = select(Slot).where(Slot.id == slot_id, Slot.hospital_id == hospital_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def existing_keys(self, doctor_id: uuid.UUID, start_date: date, end_date: date) -> Set[Tuple[date, time]]:
        result = await self.db.execute(
            select(Slot.slot_date, Slot.start_time).where(
                Slot.doctor_id == doctor_id,
                Slot.slot_date >= start_date,
                Slot.slot_date <= end_date,
            )
        )
        return {(row.slot_date, row.start_time) for row in result}

    async def insert_ignore_duplicates(self, rows: List[dict], batch_size: int) -> int:
        """Insert slot rows, silently skipping (doctor, date, start) collisions.

        Returns the number of rows actually written.
        """
        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        inserted = 0
        for offset in range(0, len(rows), batch_size):
            batch = rows[offset:offset + batch_size]
            stmt = insert(Slot).values(batch).on_conflict_do_nothing(
                index_elements=["doctor_id", "slot_date", "start_time"]
            )
            result = await self.db.execute(stmt)
            inserted += max(result.rowcount or 0, 0)
        return inserted

    async def list_for_date(self, doctor_id: uuid.UUID, day: date) -> List[Slot]:
        result = await self.db.execute(
            select(Slot)
            .where(Slot.doctor_id == doctor_id, Slot.slot_date == day)
            .order_by(Slot.start_time)
        )
        return list(result.scalars().all())

    async def list_available_for_date(self, doctor_id: uuid.UUID, day: date) -> List[Slot]:
        result = await self.db.execute(
            select(Slot)
            .where(
                Slot.doctor_id == doctor_id,
                Slot.slot_date == day,
                Slot.status == SlotStatus.AVAILABLE,
            )
            .order_by(Slot.start_time)
        )
        return list(result.scalars().all())

    async def list_in_range(self, doctor_id: uuid.UUID, start_date: date, end_date: date) -> List[Slot]:
        result = await self.db.execute(
            select(Slot)
            .where(
                Slot.doctor_id == doctor_id,
                Slot.slot_date >= start_date,
                Slot.slot_date <= end_date,
            )
            .order_by(Slot.slot_date, Slot.start_time)
        )
        return list(result.scalars().all())

    async def set_status(self, slot_ids: Iterable[uuid.UUID], status: SlotStatus) -> None:
        slot_ids = list(slot_ids)
        if not slot_ids:
            return
        await self.db.execute(
            update(Slot)
            .where(Slot.id.in_(slot_ids))
            .values(status=status, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )

    def _unreferenced_available(self, doctor_id: uuid.UUID, from_date: date):
        referenced = exists().where(Appointment.slot_id == Slot.id)
        return (
            Slot.doctor_id == doctor_id,
            Slot.slot_date >= from_date,
            Slot.status == SlotStatus.AVAILABLE,
            ~referenced,
        )

    async def count_unreferenced_available(self, doctor_id: uuid.UUID, from_date: date) -> int:
        result = await self.db.execute(
            select(func.count(Slot.id)).where(*self._unreferenced_available(doctor_id, from_date))
        )
        return result.scalar_one()

    async def delete_unreferenced_available(self, doctor_id: uuid.UUID, from_date: date) -> int:
        """Delete future AVAILABLE slots that no appointment of any status points at"""
        result = await self.db.execute(
            delete(Slot)
            .where(*self._unreferenced_available(doctor_id, from_date))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def latest_date(self, doctor_id: uuid.UUID) -> Optional[date]:
        result = await self.db.execute(select(func.max(Slot.slot_date)).where(Slot.doctor_id == doctor_id))
        return result.scalar_one_or_none()


class AppointmentRepository:
    """Repository for appointment data access operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: dict) -> Appointment:
        appointment = Appointment(**data)
        self.db.add(appointment)
        await self.db.flush()
        return appointment

    async def get(self, hospital_id: uuid.UUID, appointment_id: uuid.UUID) -> Optional[Appointment]:
        result = await self.db.execute(
            select(Appointment).where(
                Appointment.id == appointment_id,
                Appointment.hospital_id == hospital_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_ids(self, appointment_ids: Iterable[uuid.UUID]) -> List[Appointment]:
        appointment_ids = list(appointment_ids)
        if not appointment_ids:
            return []
        result = await self.db.execute(select(Appointment).where(Appointment.id.in_(appointment_ids)))
        return list(result.scalars().all())

    async def get_by_token(self, token: str) -> Optional[Appointment]:
        result = await self.db.execute(select(Appointment).where(Appointment.public_token == token))
        return result.scalar_one_or_none()

    async def get_active_for_slot(self, slot_id: uuid.UUID) -> Optional[Appointment]:
        result = await self.db.execute(
            select(Appointment).where(
                Appointment.slot_id == slot_id,
                Appointment.status != AppointmentStatus.CANCELLED,
            )
        )
        return result.scalars().first()

    async def active_by_slot(self, slot_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Tuple[Appointment, Patient]]:
        """Map slot id to its active appointment and patient"""
        slot_ids = list(slot_ids)
        if not slot_ids:
            return {}
        result = await self.db.execute(
            select(Appointment, Patient)
            .join(Patient, Patient.id == Appointment.patient_id)
            .where(
                Appointment.slot_id.in_(slot_ids),
                Appointment.status != AppointmentStatus.CANCELLED,
            )
        )
        return {appointment.slot_id: (appointment, patient) for appointment, patient in result.all()}

    async def future_active_for_doctor(self, doctor_id: uuid.UUID, from_date: date) -> List[Tuple[Appointment, Patient]]:
        result = await self.db.execute(
            select(Appointment, Patient)
            .join(Patient, Patient.id == Appointment.patient_id)
            .where(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date >= from_date,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            )
            .order_by(Appointment.appointment_date, Appointment.start_time)
        )
        return list(result.all())

    async def for_doctor_on_date(
        self, doctor_id: uuid.UUID, day: date, statuses: Optional[Iterable[AppointmentStatus]] = None
    ) -> List[Tuple[Appointment, Patient]]:
        query = (
            select(Appointment, Patient)
            .join(Patient, Patient.id == Appointment.patient_id)
            .where(Appointment.doctor_id == doctor_id, Appointment.appointment_date == day)
        )
        if statuses is not None:
            query = query.where(Appointment.status.in_(list(statuses)))
        result = await self.db.execute(query.order_by(Appointment.start_time))
        return list(result.all())

    async def list(
        self,
        hospital_id: uuid.UUID,
        visibility: VisibilityFilter,
        doctor_id: Optional[uuid.UUID] = None,
        patient_id: Optional[uuid.UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Tuple[Appointment, Patient]], int]:
        """List appointments with filters; returns the page and the total count"""
        conditions = [Appointment.hospital_id == hospital_id]
        if doctor_id:
            conditions.append(Appointment.doctor_id == doctor_id)
        if patient_id:
            conditions.append(Appointment.patient_id == patient_id)
        if start_date:
            conditions.append(Appointment.appointment_date >= start_date)
        if end_date:
            conditions.append(Appointment.appointment_date <= end_date)
        if status:
            conditions.append(Appointment.status == status)

        count_query = visibility.apply_to(
            select(func.count(Appointment.id)).where(*conditions), Appointment.doctor_id
        )
        total = (await self.db.execute(count_query)).scalar_one()

        query = visibility.apply_to(
            select(Appointment, Patient)
            .join(Patient, Patient.id == Appointment.patient_id)
            .where(*conditions),
            Appointment.doctor_id,
        )
        result = await self.db.execute(
            query.order_by(Appointment.appointment_date, Appointment.start_time)
            .offset(skip)
            .limit(limit)
        )
        return list(result.all()), total

    async def count_by_status(self, doctor_id: uuid.UUID, day: date) -> Dict[AppointmentStatus, int]:
        result = await self.db.execute(
            select(Appointment.status, func.count(Appointment.id))
            .where(Appointment.doctor_id == doctor_id, Appointment.appointment_date == day)
            .group_by(Appointment.status)
        )
        return {status: count for status, count in result.all()}

    async def count_active_by_date(self, hospital_id: uuid.UUID, visibility: VisibilityFilter,
                                   start_date: date, end_date: date,
                                   doctor_id: Optional[uuid.UUID] = None) -> Dict[date, int]:
        query = (
            select(Appointment.appointment_date, func.count(Appointment.id))
            .where(
                Appointment.hospital_id == hospital_id,
                Appointment.appointment_date >= start_date,
                Appointment.appointment_date <= end_date,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            )
            .group_by(Appointment.appointment_date)
        )
        if doctor_id:
            query = query.where(Appointment.doctor_id == doctor_id)
        query = visibility.apply_to(query, Appointment.doctor_id)
        result = await self.db.execute(query)
        return {day: count for day, count in result.all()}
