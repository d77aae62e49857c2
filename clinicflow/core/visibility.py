"""
Request context and visibility filter

The caller's identity, tenant and the set of doctors they may see are
resolved upstream and handed to this service in request headers.
"""

from dataclasses import dataclass
from typing import FrozenSet, Optional
import uuid

from clinicflow.core.exceptions import NotFoundError


@dataclass(frozen=True)
class VisibilityFilter:
    """``doctor_ids`` of None means unrestricted"""

    doctor_ids: Optional[FrozenSet[uuid.UUID]] = None

    def is_doctor_visible(self, doctor_id: uuid.UUID) -> bool:
        return self.doctor_ids is None or doctor_id in self.doctor_ids

    def ensure_doctor_visible(self, doctor_id: uuid.UUID) -> None:
        if not self.is_doctor_visible(doctor_id):
            raise NotFoundError("Doctor not found", details={"doctor_id": str(doctor_id)})

    def apply_to(self, query, column):
        if self.doctor_ids is None:
            return query
        return query.where(column.in_(list(self.doctor_ids)))


UNRESTRICTED = VisibilityFilter()


@dataclass(frozen=True)
class RequestContext:
    hospital_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    visibility: VisibilityFilter = UNRESTRICTED
