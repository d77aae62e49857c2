from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from clinicflow.core.clock import BusinessCalendar, Clock
from clinicflow.core.exceptions import NotFoundError
from clinicflow.core.visibility import RequestContext
from clinicflow.domain.hospitals.models import DoctorProfile
from clinicflow.domain.hospitals.repository import DoctorRepository, HospitalRepository


class DoctorService:
    """Doctor lookups scoped to the caller's tenant and visibility filter"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctor_repo = DoctorRepository(db)

    async def get_doctor(self, ctx: RequestContext, doctor_id: uuid.UUID) -> DoctorProfile:
        ctx.visibility.ensure_doctor_visible(doctor_id)
        doctor = await self.doctor_repo.get(ctx.hospital_id, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor not found", details={"doctor_id": str(doctor_id)})
        return doctor

    async def list_doctors(self, ctx: RequestContext) -> List[DoctorProfile]:
        return await self.doctor_repo.list(ctx.hospital_id, ctx.visibility)


class CalendarService:
    """Builds the per-request business calendar for a hospital"""

    def __init__(self, db: AsyncSession, clock: Clock):
        self.hospital_repo = HospitalRepository(db)
        self.clock = clock

    async def for_hospital(self, hospital_id: uuid.UUID) -> BusinessCalendar:
        tz_name = await self.hospital_repo.get_timezone(hospital_id)
        return BusinessCalendar.for_timezone(self.clock, tz_name)
