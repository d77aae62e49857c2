import pytest
from datetime import date, time

from clinicflow.core.exceptions import InvalidStateError, ValidationError
from clinicflow.domain.appointments.models import AppointmentStatus
from clinicflow.domain.appointments.repository import SlotRepository
from clinicflow.domain.appointments.service import AppointmentService, SlotService
from clinicflow.domain.queue.models import (
    CheckinStatus, QueueEntryType, QueuePriority, QueueStatus
)
from clinicflow.domain.queue.service import QueueService

MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)


async def book(db_session, ctx, calendar, doctor_id, patient_id, day=MONDAY, start=time(10, 0)):
    for slot in await SlotRepository(db_session).list_for_date(doctor_id, day):
        if slot.start_time == start:
            return await AppointmentService(db_session).book_appointment(ctx, calendar, slot.id, patient_id)
    raise AssertionError(f"no slot at {day} {start}")


@pytest.fixture
async def slots(db_session, ctx, doctor, weekly_schedule):
    await SlotService(db_session).generate(ctx, doctor.id, MONDAY, TUESDAY)


@pytest.mark.integration
@pytest.mark.queue
class TestQueueEntries:
    """Walk-ins, check-ins and queue numbering."""

    async def test_walk_ins_are_numbered_in_order(self, db_session, ctx, doctor, make_calendar) -> None:
        service = QueueService(db_session)

        entries = [
            await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name=f"Walk-in {n}")
            for n in range(3)
        ]

        assert [entry.queue_number for entry in entries] == [1, 2, 3]
        assert all(entry.entry_type == QueueEntryType.WALK_IN for entry in entries)
        assert all(entry.status == QueueStatus.QUEUED for entry in entries)
        assert len({entry.public_token for entry in entries}) == 3

    async def test_walk_in_needs_a_name(self, db_session, ctx, doctor, make_calendar) -> None:
        with pytest.raises(ValidationError):
            await QueueService(db_session).add_walk_in(ctx, make_calendar(), doctor.id)

    async def test_walk_in_for_registered_patient(self, db_session, ctx, doctor, patient, make_calendar) -> None:
        entry = await QueueService(db_session).add_walk_in(ctx, make_calendar(), doctor.id, patient_id=patient.id)

        assert entry.walk_in_name == "John Doe"
        assert entry.patient_id == patient.id

    async def test_check_in_confirms_appointment(
        self, db_session, ctx, doctor, patient, slots, make_calendar
    ) -> None:
        appointment = await book(db_session, ctx, make_calendar(), doctor.id, patient.id)
        service = QueueService(db_session)

        entry = await service.check_in_appointment(ctx, make_calendar(), appointment.id)

        assert entry.entry_type == QueueEntryType.SCHEDULED
        assert entry.appointment_id == appointment.id
        assert entry.queue_number == 1
        await db_session.refresh(appointment)
        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.confirmed_at is not None

        with pytest.raises(InvalidStateError, match="already checked in"):
            await service.check_in_appointment(ctx, make_calendar(), appointment.id)

    async def test_only_todays_appointments_check_in(
        self, db_session, ctx, doctor, patient, slots, make_calendar
    ) -> None:
        appointment = await book(db_session, ctx, make_calendar(), doctor.id, patient.id, day=TUESDAY)

        with pytest.raises(InvalidStateError, match="today"):
            await QueueService(db_session).check_in_appointment(ctx, make_calendar(), appointment.id)

    async def test_no_show_without_check_in(
        self, db_session, ctx, doctor, patient, slots, make_calendar
    ) -> None:
        appointment = await book(db_session, ctx, make_calendar(), doctor.id, patient.id)

        entry = await QueueService(db_session).mark_appointment_no_show(ctx, make_calendar(), appointment.id)

        assert entry.status == QueueStatus.NO_SHOW
        assert entry.completed_at is not None
        await db_session.refresh(appointment)
        assert appointment.status == AppointmentStatus.NO_SHOW

    async def test_remove_entry(self, db_session, ctx, doctor, make_calendar) -> None:
        service = QueueService(db_session)
        entry = await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name="Temp")
        entry_id = entry.id

        await service.remove(ctx, entry_id)

        queue = await service.get_daily_queue(ctx, make_calendar(), doctor.id)
        assert queue["stats"]["total"] == 0


@pytest.mark.integration
@pytest.mark.queue
class TestQueueOrdering:
    """Promotion and status transitions."""

    async def test_move_to_top_renumbers_queued_only(self, db_session, ctx, doctor, make_calendar) -> None:
        """Numbers 3, 5, 7 shift up by one and 9 takes number 3."""
        service = QueueService(db_session)
        entries = [
            await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name=f"Walk-in {n}")
            for n in range(1, 10)
        ]
        for number in (1, 2, 4, 6, 8):
            await service.update_status(ctx, make_calendar(), entries[number - 1].id, QueueStatus.LEFT)

        promoted = await service.move_to_top(ctx, entries[8].id)

        assert promoted.queue_number == 3
        assert promoted.priority == QueuePriority.URGENT
        queue = await service.get_daily_queue(ctx, make_calendar(), doctor.id)
        assert [(view["id"], view["queue_number"]) for view in queue["queue"]] == [
            (entries[8].id, 3),
            (entries[2].id, 4),
            (entries[4].id, 6),
            (entries[6].id, 8),
        ]
        assert queue["queue"][0]["patients_ahead"] == 0

    async def test_move_to_top_requires_queued(self, db_session, ctx, doctor, make_calendar) -> None:
        service = QueueService(db_session)
        entry = await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name="Walk-in")
        await service.update_status(ctx, make_calendar(), entry.id, QueueStatus.WAITING)

        with pytest.raises(InvalidStateError):
            await service.move_to_top(ctx, entry.id)

    async def test_consultation_timings(
        self, db_session, ctx, doctor, patient, slots, clock, make_calendar
    ) -> None:
        """Wait and consultation minutes are recorded on completion."""
        appointment = await book(db_session, ctx, make_calendar(), doctor.id, patient.id)
        service = QueueService(db_session)
        entry = await service.check_in_appointment(ctx, make_calendar(), appointment.id)

        clock.advance(minutes=4)
        await service.update_status(ctx, make_calendar(), entry.id, QueueStatus.WAITING)
        clock.advance(minutes=6)
        await service.update_status(ctx, make_calendar(), entry.id, QueueStatus.WITH_DOCTOR)
        clock.advance(minutes=12)
        done = await service.update_status(ctx, make_calendar(), entry.id, QueueStatus.COMPLETED)

        assert done.wait_time_minutes == 10
        assert done.consultation_time_minutes == 12
        await db_session.refresh(appointment)
        assert appointment.status == AppointmentStatus.COMPLETED

        with pytest.raises(InvalidStateError):
            await service.update_status(ctx, make_calendar(), entry.id, QueueStatus.WAITING)

    async def test_priority_of_finished_entry(self, db_session, ctx, doctor, make_calendar) -> None:
        service = QueueService(db_session)
        entry = await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name="Walk-in")
        updated = await service.update_priority(ctx, entry.id, QueuePriority.EMERGENCY)
        assert updated.priority == QueuePriority.EMERGENCY

        await service.update_status(ctx, make_calendar(), entry.id, QueueStatus.LEFT)

        with pytest.raises(InvalidStateError):
            await service.update_priority(ctx, entry.id, QueuePriority.NORMAL)


@pytest.mark.integration
@pytest.mark.queue
class TestDailyQueue:
    """Daily board, estimates and statistics."""

    async def test_board_groups_and_stats(
        self, db_session, ctx, doctor, patient, second_patient, slots, make_calendar
    ) -> None:
        service = QueueService(db_session)
        checked_in = await book(db_session, ctx, make_calendar(), doctor.id, patient.id)
        pending = await book(db_session, ctx, make_calendar(), doctor.id, second_patient.id, start=time(11, 0))
        await service.check_in_appointment(ctx, make_calendar(), checked_in.id)
        await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name="Walk-in", walk_in_phone="555")

        queue = await service.get_daily_queue(ctx, make_calendar(), doctor.id)

        assert queue["date"] == MONDAY
        assert [view["patient_name"] for view in queue["queue"]] == ["John Doe", "Walk-in"]
        assert queue["queue"][1]["patient_phone"] == "555"
        assert [item["appointment_id"] for item in queue["scheduled"]] == [pending.id]
        stats = queue["stats"]
        assert stats["total"] == 2
        assert stats["queued"] == 2
        assert stats["walk_ins"] == 1
        assert stats["scheduled_checked_in"] == 1
        assert stats["pending_appointments"] == 1

    async def test_estimates_use_default_duration(self, db_session, ctx, doctor, make_calendar) -> None:
        """Without enough completed visits each walk-in counts 30 minutes."""
        service = QueueService(db_session)
        for n in range(3):
            await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name=f"Walk-in {n}")

        queue = await service.get_daily_queue(ctx, make_calendar(), doctor.id)

        assert [view["estimated_wait_minutes"] for view in queue["queue"]] == [0, 30, 60]
        assert [view["patients_ahead"] for view in queue["queue"]] == [0, 1, 2]

    async def test_queue_stats(self, db_session, ctx, doctor, make_calendar) -> None:
        service = QueueService(db_session)
        for n in range(3):
            await service.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name=f"Walk-in {n}")

        stats = await service.get_queue_stats(ctx, MONDAY, TUESDAY)

        assert stats == [{"date": MONDAY, "walk_ins": 3, "scheduled": 0, "total": 3}]


@pytest.mark.integration
@pytest.mark.queue
class TestDoctorCheckin:
    """Doctor presence for the day."""

    async def test_presence_state_machine(self, db_session, ctx, doctor, make_calendar) -> None:
        service = QueueService(db_session)

        checkin = await service.doctor_check_in(ctx, make_calendar(), doctor.id)
        assert checkin.status == CheckinStatus.CHECKED_IN
        assert checkin.checked_in_at is not None

        checkin = await service.start_break(ctx, make_calendar(), doctor.id)
        assert checkin.status == CheckinStatus.ON_BREAK
        with pytest.raises(InvalidStateError):
            await service.start_break(ctx, make_calendar(), doctor.id)

        checkin = await service.end_break(ctx, make_calendar(), doctor.id)
        assert checkin.status == CheckinStatus.CHECKED_IN
        assert checkin.break_started_at is None

        checkin = await service.doctor_check_out(ctx, make_calendar(), doctor.id)
        assert checkin.status == CheckinStatus.CHECKED_OUT
        with pytest.raises(InvalidStateError):
            await service.doctor_check_out(ctx, make_calendar(), doctor.id)

        checkin = await service.doctor_check_in(ctx, make_calendar(), doctor.id)
        assert checkin.status == CheckinStatus.CHECKED_IN

    async def test_break_requires_check_in(self, db_session, ctx, doctor, make_calendar) -> None:
        with pytest.raises(InvalidStateError):
            await QueueService(db_session).start_break(ctx, make_calendar(), doctor.id)
