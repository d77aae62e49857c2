"""
Clock and Business Calendar

"Today" for a hospital is decided once per request from an injected clock
and the hospital's timezone, and then passed down to every service call.
"""

from dataclasses import dataclass
from datetime import datetime, date, timedelta, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from clinicflow.core.config import settings


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored timestamp to an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, falling back to {settings.DEFAULT_TIMEZONE}")
        return ZoneInfo(settings.DEFAULT_TIMEZONE)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock pinned to one instant"""

    def __init__(self, instant: datetime):
        self.instant = as_utc(instant)

    def now(self) -> datetime:
        return self.instant

    def advance(self, **delta) -> None:
        self.instant = self.instant + timedelta(**delta)


@dataclass(frozen=True)
class BusinessCalendar:
    """Snapshot of "now" for one hospital, taken once per request"""

    now: datetime
    tz: ZoneInfo

    @classmethod
    def for_timezone(cls, clock: Clock, tz_name: Optional[str]) -> "BusinessCalendar":
        return cls(now=as_utc(clock.now()), tz=resolve_timezone(tz_name))

    @property
    def local_now(self) -> datetime:
        return self.now.astimezone(self.tz)

    @property
    def today(self) -> date:
        return self.local_now.date()


def utcnow() -> datetime:
    """Column default for audit timestamps"""
    return datetime.now(timezone.utc)
