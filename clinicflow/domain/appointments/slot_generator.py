"""
Slot Generator

Expands a doctor's weekly shift template into dated slots. Everything in
this module is pure: callers load the schedule, time-off and existing
slot keys, and persist the result.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from clinicflow.core.config import settings
from clinicflow.domain.appointments.models import SlotPeriod
from clinicflow.domain.schedules.models import ApprovalStatus

SlotKey = Tuple[date, time]

DAY_OFF = "Day Off"
NOT_WORKING = "Not Working"


def day_of_week(day: date) -> int:
    """Weekday number with 0=Sunday"""
    return (day.weekday() + 1) % 7


def iter_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def add_months(day: date, months: int) -> date:
    """Shift by calendar months, clamping to the last day of the target month"""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def _parse_time(value, default: time) -> time:
    if value is None:
        return default
    if isinstance(value, time):
        return value
    hours, _, minutes = str(value).partition(":")
    return time(int(hours), int(minutes[:2] or 0))


@dataclass(frozen=True)
class PeriodBoundaries:
    """Morning/evening/night split of the day"""

    morning_start: time = settings.MORNING_START
    morning_end: time = settings.MORNING_END
    evening_end: time = settings.EVENING_END

    @classmethod
    def from_config(cls, config: Optional[dict]) -> "PeriodBoundaries":
        """Build from a doctor's ``shift_timing_config``, falling back to settings"""
        config = config or {}
        morning = config.get("morning") or {}
        evening = config.get("evening") or {}
        return cls(
            morning_start=_parse_time(morning.get("start"), settings.MORNING_START),
            morning_end=_parse_time(morning.get("end"), settings.MORNING_END),
            evening_end=_parse_time(evening.get("end"), settings.EVENING_END),
        )

    def period_for(self, start: time) -> SlotPeriod:
        if self.morning_start <= start < self.morning_end:
            return SlotPeriod.MORNING
        if self.morning_end <= start < self.evening_end:
            return SlotPeriod.EVENING
        return SlotPeriod.NIGHT


@dataclass(frozen=True)
class SlotCandidate:
    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    period: SlotPeriod

    @property
    def key(self) -> SlotKey:
        return (self.slot_date, self.start_time)


@dataclass
class GenerationResult:
    slots: List[SlotCandidate] = field(default_factory=list)
    skipped: int = 0
    conflicts: int = 0

    @property
    def generated(self) -> int:
        return len(self.slots) - self.conflicts

    def record_conflicts(self, count: int) -> None:
        """Candidates the store rejected as already present"""
        if count > 0:
            self.conflicts += count
            self.skipped += count


def index_schedule(schedule: Iterable) -> Dict[int, object]:
    return {entry.day_of_week: entry for entry in schedule}


def approved_time_off(time_off: Iterable) -> List:
    return [
        period for period in time_off
        if (period.approval_status or "").lower() == ApprovalStatus.APPROVED.value
    ]


def closed_reason(day: date, schedule_by_day: Dict[int, object], time_off: Iterable) -> Optional[str]:
    """Why no slots exist on ``day``, or None if the doctor works that day.

    ``time_off`` must already be filtered to approved periods.
    """
    if any(period.start_date <= day <= period.end_date for period in time_off):
        return DAY_OFF
    entry = schedule_by_day.get(day_of_week(day))
    if entry is None or not entry.is_working or entry.shift_start is None or entry.shift_end is None:
        return NOT_WORKING
    return None


def slots_for_window(
    day: date,
    shift_start: time,
    shift_end: time,
    duration_minutes: int,
    boundaries: PeriodBoundaries,
) -> Iterator[SlotCandidate]:
    current = _to_minutes(shift_start)
    end = _to_minutes(shift_end)
    while current + duration_minutes <= end:
        start_time = _from_minutes(current)
        yield SlotCandidate(
            slot_date=day,
            start_time=start_time,
            end_time=_from_minutes(current + duration_minutes),
            duration_minutes=duration_minutes,
            period=boundaries.period_for(start_time),
        )
        current += duration_minutes


def generate_slots(
    start_date: date,
    end_date: date,
    duration_minutes: int,
    schedule: Iterable,
    time_off: Iterable,
    existing_keys: Optional[Set[SlotKey]] = None,
    boundaries: Optional[PeriodBoundaries] = None,
) -> GenerationResult:
    """Expand the weekly template over ``[start_date, end_date]``.

    Candidates whose (date, start) key is already in ``existing_keys`` or
    was produced earlier in this run are counted as skipped.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    boundaries = boundaries or PeriodBoundaries()
    schedule_by_day = index_schedule(schedule)
    approved = approved_time_off(time_off)
    seen: Set[SlotKey] = set(existing_keys or ())
    result = GenerationResult()

    for day in iter_dates(start_date, end_date):
        if closed_reason(day, schedule_by_day, approved):
            continue
        entry = schedule_by_day[day_of_week(day)]
        for candidate in slots_for_window(day, entry.shift_start, entry.shift_end, duration_minutes, boundaries):
            if candidate.key in seen:
                result.skipped += 1
                continue
            seen.add(candidate.key)
            result.slots.append(candidate)

    return result
