from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import uuid

from clinicflow.core.visibility import VisibilityFilter
from clinicflow.domain.hospitals.models import Hospital, DoctorProfile


class HospitalRepository:
    """Repository for tenant lookups"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, hospital_id: uuid.UUID) -> Optional[Hospital]:
        result = await self.db.execute(select(Hospital).where(Hospital.id == hospital_id))
        return result.scalar_one_or_none()

    async def get_timezone(self, hospital_id: uuid.UUID) -> Optional[str]:
        result = await self.db.execute(select(Hospital.timezone).where(Hospital.id == hospital_id))
        return result.scalar_one_or_none()


class DoctorRepository:
    """Repository for doctor profile data access"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, hospital_id: uuid.UUID, doctor_id: uuid.UUID) -> Optional[DoctorProfile]:
        result = await self.db.execute(
            select(DoctorProfile).where(
                DoctorProfile.id == doctor_id,
                DoctorProfile.hospital_id == hospital_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, doctor_id: uuid.UUID) -> Optional[DoctorProfile]:
        result = await self.db.execute(select(DoctorProfile).where(DoctorProfile.id == doctor_id))
        return result.scalar_one_or_none()

    async def list(self, hospital_id: uuid.UUID, visibility: VisibilityFilter) -> List[DoctorProfile]:
        query = select(DoctorProfile).where(DoctorProfile.hospital_id == hospital_id)
        query = visibility.apply_to(query, DoctorProfile.id)
        result = await self.db.execute(query.order_by(DoctorProfile.full_name))
        return list(result.scalars().all())
