from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from clinicflow.core.clock import BusinessCalendar, Clock, SystemClock
from clinicflow.core.exceptions import AuthenticationError, ValidationError
from clinicflow.core.tenant import get_tenant_id
from clinicflow.core.visibility import RequestContext, VisibilityFilter, UNRESTRICTED
from clinicflow.domain.hospitals.service import CalendarService
from clinicflow.infrastructure.database import get_db

_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


def _parse_uuid(value: str, header: str) -> uuid.UUID:
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        raise AuthenticationError(f"Invalid {header} header", details={"value": value})


def parse_visible_doctors(raw: Optional[str]) -> VisibilityFilter:
    """Absent header is unrestricted; an empty header allows no doctors"""
    if raw is None:
        return UNRESTRICTED
    try:
        ids = frozenset(uuid.UUID(part.strip()) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValidationError("Invalid X-Visible-Doctor-IDs header", details={"value": raw})
    return VisibilityFilter(doctor_ids=ids)


async def get_request_context(
    x_tenant_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_visible_doctor_ids: Optional[str] = Header(None),
) -> RequestContext:
    tenant = get_tenant_id() or x_tenant_id
    if not tenant:
        raise AuthenticationError("Missing X-Tenant-ID header")
    if not x_user_id:
        raise AuthenticationError("Missing X-User-ID header")
    return RequestContext(
        hospital_id=_parse_uuid(tenant, "X-Tenant-ID"),
        user_id=_parse_uuid(x_user_id, "X-User-ID"),
        visibility=parse_visible_doctors(x_visible_doctor_ids),
    )


async def get_business_calendar(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> BusinessCalendar:
    return await CalendarService(db, clock).for_hospital(ctx.hospital_id)
