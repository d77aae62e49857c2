"""
Queue Repository Layer

Data access for queue entries and doctor daily check-ins.
"""

from typing import Dict, Iterable, List, Optional, Set, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.dialects import postgresql, sqlite
from datetime import date, datetime
import uuid

from clinicflow.core.clock import utcnow
from clinicflow.core.visibility import VisibilityFilter
from clinicflow.domain.queue.models import (
    QueueEntry, QueueStatus, QueueEntryType, DoctorDailyCheckin, CheckinStatus,
    PENDING_QUEUE_STATUSES
)


class QueueRepository:
    """Repository for queue entries"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: dict) -> QueueEntry:
        entry = QueueEntry(**data)
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get(self, hospital_id: uuid.UUID, entry_id: uuid.UUID) -> Optional[QueueEntry]:
        result = await self.db.execute(
            select(QueueEntry).where(QueueEntry.id == entry_id, QueueEntry.hospital_id == hospital_id)
        )
        return result.scalar_one_or_none()

    async def get_by_token(self, token: str) -> Optional[QueueEntry]:
        result = await self.db.execute(select(QueueEntry).where(QueueEntry.public_token == token))
        return result.scalar_one_or_none()

    async def for_doctor_day(self, doctor_id: uuid.UUID, day: date) -> List[QueueEntry]:
        result = await self.db.execute(
            select(QueueEntry)
            .where(QueueEntry.doctor_id == doctor_id, QueueEntry.queue_date == day)
            .order_by(QueueEntry.queue_number, QueueEntry.checked_in_at)
        )
        return list(result.scalars().all())

    async def for_appointment_on_date(self, appointment_id: uuid.UUID, day: date) -> Optional[QueueEntry]:
        result = await self.db.execute(
            select(QueueEntry).where(
                QueueEntry.appointment_id == appointment_id,
                QueueEntry.queue_date == day,
            )
        )
        return result.scalars().first()

    async def pending_appointment_ids(self, appointment_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        """Appointments that have a QUEUED or WAITING entry"""
        appointment_ids = list(appointment_ids)
        if not appointment_ids:
            return set()
        result = await self.db.execute(
            select(QueueEntry.appointment_id).where(
                QueueEntry.appointment_id.in_(appointment_ids),
                QueueEntry.status.in_(PENDING_QUEUE_STATUSES),
            )
        )
        return set(result.scalars().all())

    async def next_queue_number(self, doctor_id: uuid.UUID, day: date) -> int:
        result = await self.db.execute(
            select(func.max(QueueEntry.queue_number)).where(
                QueueEntry.doctor_id == doctor_id,
                QueueEntry.queue_date == day,
            )
        )
        return (result.scalar_one_or_none() or 0) + 1

    async def queued_before(self, doctor_id: uuid.UUID, day: date, queue_number: int) -> List[QueueEntry]:
        """QUEUED entries with a smaller number, highest number first"""
        result = await self.db.execute(
            select(QueueEntry)
            .where(
                QueueEntry.doctor_id == doctor_id,
                QueueEntry.queue_date == day,
                QueueEntry.status == QueueStatus.QUEUED,
                QueueEntry.queue_number < queue_number,
            )
            .order_by(QueueEntry.queue_number.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def mark_left_for_appointments(self, appointment_ids: Iterable[uuid.UUID], when: datetime) -> int:
        appointment_ids = list(appointment_ids)
        if not appointment_ids:
            return 0
        result = await self.db.execute(
            update(QueueEntry)
            .where(
                QueueEntry.appointment_id.in_(appointment_ids),
                QueueEntry.status.in_(PENDING_QUEUE_STATUSES),
            )
            .values(status=QueueStatus.LEFT, completed_at=when, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def completed_consultation_minutes(self, doctor_id: uuid.UUID, day: date) -> List[int]:
        result = await self.db.execute(
            select(QueueEntry.consultation_time_minutes).where(
                QueueEntry.doctor_id == doctor_id,
                QueueEntry.queue_date == day,
                QueueEntry.status == QueueStatus.COMPLETED,
                QueueEntry.consultation_time_minutes.is_not(None),
            )
        )
        return [minutes for minutes in result.scalars().all() if minutes]

    async def counts_by_date_and_type(
        self,
        hospital_id: uuid.UUID,
        visibility: VisibilityFilter,
        start_date: date,
        end_date: date,
        doctor_id: Optional[uuid.UUID] = None,
    ) -> Dict[Tuple[date, QueueEntryType], int]:
        query = (
            select(QueueEntry.queue_date, QueueEntry.entry_type, func.count(QueueEntry.id))
            .where(
                QueueEntry.hospital_id == hospital_id,
                QueueEntry.queue_date >= start_date,
                QueueEntry.queue_date <= end_date,
            )
            .group_by(QueueEntry.queue_date, QueueEntry.entry_type)
        )
        if doctor_id:
            query = query.where(QueueEntry.doctor_id == doctor_id)
        query = visibility.apply_to(query, QueueEntry.doctor_id)
        result = await self.db.execute(query)
        return {(day, entry_type): count for day, entry_type, count in result.all()}

    async def delete(self, entry: QueueEntry) -> None:
        await self.db.delete(entry)
        await self.db.flush()


class CheckinRepository:
    """Repository for doctor daily check-ins"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, doctor_id: uuid.UUID, day: date) -> Optional[DoctorDailyCheckin]:
        result = await self.db.execute(
            select(DoctorDailyCheckin).where(
                DoctorDailyCheckin.doctor_id == doctor_id,
                DoctorDailyCheckin.checkin_date == day,
            )
        )
        return result.scalar_one_or_none()

    async def lock_day(self, hospital_id: uuid.UUID, doctor_id: uuid.UUID, day: date) -> DoctorDailyCheckin:
        """Upsert the doctor's row for ``day`` and lock it until commit.

        Every queue mutation that allocates or rewrites queue numbers for the
        doctor and day takes this lock first.
        """
        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        now = utcnow()
        await self.db.execute(
            insert(DoctorDailyCheckin)
            .values(
                id=uuid.uuid4(),
                hospital_id=hospital_id,
                doctor_id=doctor_id,
                checkin_date=day,
                status=CheckinStatus.NOT_CHECKED_IN,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["doctor_id", "checkin_date"])
        )
        result = await self.db.execute(
            select(DoctorDailyCheckin)
            .where(
                DoctorDailyCheckin.doctor_id == doctor_id,
                DoctorDailyCheckin.checkin_date == day,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
