import pytest
from datetime import date, time
from types import SimpleNamespace

from clinicflow.domain.appointments.models import SlotPeriod
from clinicflow.domain.appointments.slot_generator import (
    DAY_OFF, NOT_WORKING, PeriodBoundaries, add_months, closed_reason,
    day_of_week, generate_slots, index_schedule
)

MONDAY = date(2026, 10, 19)
SUNDAY = date(2026, 10, 18)


def weekday_schedule(start=time(9, 0), end=time(17, 0)):
    rows = []
    for day in range(7):
        working = 1 <= day <= 5
        rows.append(SimpleNamespace(
            day_of_week=day,
            is_working=working,
            shift_start=start if working else None,
            shift_end=end if working else None,
        ))
    return rows


def time_off(start, end, approval_status="approved"):
    return SimpleNamespace(start_date=start, end_date=end, approval_status=approval_status)


@pytest.mark.unit
@pytest.mark.scheduling
class TestSlotGeneration:
    """Expansion of the weekly template into dated slots."""

    def test_single_working_day(self) -> None:
        """A 09:00-17:00 shift at 30 minutes yields 16 slots split by period."""
        result = generate_slots(MONDAY, MONDAY, 30, weekday_schedule(), [])

        assert result.generated == 16
        assert result.skipped == 0
        assert result.slots[0].start_time == time(9, 0)
        assert result.slots[-1].start_time == time(16, 30)
        assert result.slots[-1].end_time == time(17, 0)
        periods = [slot.period for slot in result.slots]
        assert periods.count(SlotPeriod.MORNING) == 10
        assert periods.count(SlotPeriod.EVENING) == 6

    def test_existing_keys_are_skipped(self) -> None:
        """Rerunning over the same range creates nothing new."""
        first = generate_slots(MONDAY, MONDAY, 30, weekday_schedule(), [])
        existing = {slot.key for slot in first.slots}

        second = generate_slots(MONDAY, MONDAY, 30, weekday_schedule(), [], existing_keys=existing)

        assert second.generated == 0
        assert second.skipped == 16

    def test_week_skips_weekend(self) -> None:
        """Sunday through Saturday only produces slots Monday to Friday."""
        result = generate_slots(SUNDAY, date(2026, 10, 24), 60, weekday_schedule(), [])

        assert result.generated == 5 * 8
        assert {slot.slot_date for slot in result.slots} == {
            date(2026, 10, 19), date(2026, 10, 20), date(2026, 10, 21),
            date(2026, 10, 22), date(2026, 10, 23),
        }

    def test_approved_time_off_suppresses_slots(self) -> None:
        result = generate_slots(
            MONDAY, date(2026, 10, 20), 30, weekday_schedule(),
            [time_off(MONDAY, MONDAY)],
        )

        assert {slot.slot_date for slot in result.slots} == {date(2026, 10, 20)}

    def test_pending_time_off_is_ignored(self) -> None:
        result = generate_slots(
            MONDAY, MONDAY, 30, weekday_schedule(),
            [time_off(MONDAY, MONDAY, approval_status="pending")],
        )

        assert result.generated == 16

    def test_slot_must_fit_inside_shift(self) -> None:
        """A 45 minute slot does not fit twice into one hour."""
        result = generate_slots(MONDAY, MONDAY, 45, weekday_schedule(time(9, 0), time(10, 0)), [])

        assert result.generated == 1
        assert result.slots[0].end_time == time(9, 45)

    def test_invalid_duration(self) -> None:
        with pytest.raises(ValueError):
            generate_slots(MONDAY, MONDAY, 0, weekday_schedule(), [])


@pytest.mark.unit
@pytest.mark.scheduling
class TestCalendarHelpers:
    """Weekday numbering, month arithmetic and period boundaries."""

    def test_day_of_week_starts_on_sunday(self) -> None:
        assert day_of_week(SUNDAY) == 0
        assert day_of_week(MONDAY) == 1
        assert day_of_week(date(2026, 10, 24)) == 6

    def test_add_months_clamps_to_month_end(self) -> None:
        assert add_months(date(2026, 11, 30), 3) == date(2027, 2, 28)
        assert add_months(date(2026, 10, 19), 3) == date(2027, 1, 19)

    def test_period_boundaries_default(self) -> None:
        boundaries = PeriodBoundaries()

        assert boundaries.period_for(time(6, 0)) == SlotPeriod.MORNING
        assert boundaries.period_for(time(13, 59)) == SlotPeriod.MORNING
        assert boundaries.period_for(time(14, 0)) == SlotPeriod.EVENING
        assert boundaries.period_for(time(22, 0)) == SlotPeriod.NIGHT
        assert boundaries.period_for(time(5, 30)) == SlotPeriod.NIGHT

    def test_period_boundaries_from_doctor_config(self) -> None:
        boundaries = PeriodBoundaries.from_config({
            "morning": {"start": "08:00", "end": "12:00"},
            "evening": {"end": "20:00"},
        })

        assert boundaries.period_for(time(7, 30)) == SlotPeriod.NIGHT
        assert boundaries.period_for(time(12, 0)) == SlotPeriod.EVENING
        assert boundaries.period_for(time(20, 0)) == SlotPeriod.NIGHT

    def test_closed_reason(self) -> None:
        schedule = index_schedule(weekday_schedule())

        assert closed_reason(MONDAY, schedule, []) is None
        assert closed_reason(SUNDAY, schedule, []) == NOT_WORKING
        assert closed_reason(MONDAY, schedule, [time_off(MONDAY, MONDAY)]) == DAY_OFF
