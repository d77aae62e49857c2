from typing import Dict, Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from clinicflow.domain.patients.models import Patient
import uuid


class PatientRepository:
    """Repository for patient data access operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, hospital_id: uuid.UUID, patient_id: uuid.UUID) -> Optional[Patient]:
        """Get a patient registered with the given hospital"""
        result = await self.db.execute(
            select(Patient).where(
                Patient.id == patient_id,
                Patient.hospital_id == hospital_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_many(self, hospital_id: uuid.UUID, patient_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Patient]:
        patient_ids = [patient_id for patient_id in patient_ids if patient_id]
        if not patient_ids:
            return {}
        result = await self.db.execute(
            select(Patient).where(
                Patient.id.in_(patient_ids),
                Patient.hospital_id == hospital_id,
            )
        )
        return {patient.id: patient for patient in result.scalars().all()}
