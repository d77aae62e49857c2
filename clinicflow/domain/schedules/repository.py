"""
Schedules Repository Layer

Data access for weekly schedule rows and time-off periods.
"""

from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from datetime import date
import uuid

from clinicflow.domain.schedules.models import WeeklyScheduleEntry, TimeOffPeriod, ApprovalStatus


class ScheduleRepository:
    """Repository for weekly schedule rows"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_weekly(self, doctor_id: uuid.UUID) -> List[WeeklyScheduleEntry]:
        result = await self.db.execute(
            select(WeeklyScheduleEntry)
            .where(WeeklyScheduleEntry.doctor_id == doctor_id)
            .order_by(WeeklyScheduleEntry.day_of_week)
        )
        return list(result.scalars().all())

    async def replace_weekly(self, doctor_id: uuid.UUID, rows: List[dict]) -> List[WeeklyScheduleEntry]:
        """Delete every row for the doctor and insert the new set"""
        await self.db.execute(
            delete(WeeklyScheduleEntry).where(WeeklyScheduleEntry.doctor_id == doctor_id)
        )
        entries = [WeeklyScheduleEntry(doctor_id=doctor_id, **row) for row in rows]
        self.db.add_all(entries)
        await self.db.flush()
        return sorted(entries, key=lambda e: e.day_of_week)


class TimeOffRepository:
    """Repository for doctor time-off periods"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, doctor_id: uuid.UUID) -> List[TimeOffPeriod]:
        result = await self.db.execute(
            select(TimeOffPeriod)
            .where(TimeOffPeriod.doctor_id == doctor_id)
            .order_by(TimeOffPeriod.start_date)
        )
        return list(result.scalars().all())

    async def list_approved_overlapping(
        self, doctor_id: uuid.UUID, start_date: date, end_date: date
    ) -> List[TimeOffPeriod]:
        result = await self.db.execute(
            select(TimeOffPeriod).where(
                TimeOffPeriod.doctor_id == doctor_id,
                TimeOffPeriod.approval_status == ApprovalStatus.APPROVED.value,
                TimeOffPeriod.start_date <= end_date,
                TimeOffPeriod.end_date >= start_date,
            )
        )
        return list(result.scalars().all())

    async def get(self, doctor_id: uuid.UUID, time_off_id: uuid.UUID) -> Optional[TimeOffPeriod]:
        result = await self.db.execute(
            select(TimeOffPeriod).where(
                TimeOffPeriod.id == time_off_id,
                TimeOffPeriod.doctor_id == doctor_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(self, data: dict) -> TimeOffPeriod:
        period = TimeOffPeriod(**data)
        self.db.add(period)
        await self.db.flush()
        return period

    async def delete(self, period: TimeOffPeriod) -> None:
        await self.db.delete(period)
        await self.db.flush()
