import pytest
import uuid
from datetime import date, time
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.exceptions import InvalidStateError, NotFoundError, SlotAlreadyBookedError
from clinicflow.core.visibility import RequestContext, VisibilityFilter
from clinicflow.domain.appointments.models import AppointmentStatus, SlotStatus
from clinicflow.domain.appointments.repository import AppointmentRepository, SlotRepository
from clinicflow.domain.appointments.service import AppointmentService, SlotService
from clinicflow.domain.patients.models import Patient
from clinicflow.domain.queue.models import QueueStatus
from clinicflow.domain.queue.service import QueueService

MONDAY = date(2026, 10, 19)
LAST_FRIDAY = date(2026, 10, 16)


async def slot_at(db: AsyncSession, doctor_id, day: date, start: time):
    for slot in await SlotRepository(db).list_for_date(doctor_id, day):
        if slot.start_time == start:
            return slot
    raise AssertionError(f"no slot at {day} {start}")


@pytest.fixture
async def monday_slots(db_session, ctx, doctor, weekly_schedule):
    return await SlotService(db_session).generate(ctx, doctor.id, MONDAY, MONDAY)


@pytest.mark.integration
@pytest.mark.booking
class TestSlotInventory:
    """Generation, listing and blocking of slots."""

    async def test_generation_is_idempotent(self, db_session, ctx, doctor, monday_slots) -> None:
        """Generating the same range twice adds nothing."""
        assert monday_slots["generated"] == 16

        again = await SlotService(db_session).generate(ctx, doctor.id, MONDAY, MONDAY)

        assert again["generated"] == 0
        assert again["skipped"] == 16

    async def test_store_ignores_duplicates_missed_by_key_check(
        self, db_session, ctx, doctor, monday_slots, monkeypatch
    ) -> None:
        """Rows inserted concurrently after the key lookup are counted as skipped."""
        service = SlotService(db_session)

        async def no_existing_keys(*args, **kwargs):
            return set()

        monkeypatch.setattr(service.slot_repo, "existing_keys", no_existing_keys)

        again = await service.generate(ctx, doctor.id, MONDAY, MONDAY)

        assert again["generated"] == 0
        assert again["skipped"] == 16
        assert len(await SlotRepository(db_session).list_for_date(doctor.id, MONDAY)) == 16

    async def test_list_for_date_groups_by_period(self, db_session, ctx, doctor, monday_slots) -> None:
        day = await SlotService(db_session).list_for_date(ctx, doctor.id, MONDAY)

        assert len(day["slots"]["MORNING"]) == 10
        assert len(day["slots"]["EVENING"]) == 6
        assert day["slots"]["NIGHT"] == []
        assert day["stats"] == {"total": 16, "available": 16, "booked": 0, "blocked": 0}
        assert day["is_time_off"] is False

    async def test_block_and_unblock(self, db_session, ctx, doctor, monday_slots) -> None:
        service = SlotService(db_session)
        slot = await slot_at(db_session, doctor.id, MONDAY, time(9, 0))

        blocked = await service.block_slot(ctx, slot.id)
        assert blocked.status == SlotStatus.BLOCKED
        with pytest.raises(InvalidStateError):
            await service.block_slot(ctx, slot.id)

        day = await service.list_for_date(ctx, doctor.id, MONDAY)
        assert day["stats"]["blocked"] == 1
        assert day["stats"]["available"] == 15

        unblocked = await service.unblock_slot(ctx, slot.id)
        assert unblocked.status == SlotStatus.AVAILABLE

    async def test_calendar_overview(self, db_session, ctx, doctor, monday_slots) -> None:
        days = await SlotService(db_session).get_calendar_overview(ctx, doctor.id, 2026, 10)
        by_date = {day["date"]: day for day in days}

        assert len(days) == 31
        assert by_date[MONDAY]["available"] == 16
        assert by_date[date(2026, 10, 18)]["closed_reason"] == "Not Working"
        assert by_date[date(2026, 10, 20)]["closed_reason"] is None
        assert by_date[date(2026, 10, 20)]["available"] == 0

    async def test_latest_slot_date(self, db_session, ctx, doctor, monday_slots) -> None:
        assert await SlotService(db_session).get_latest_slot_date(ctx, doctor.id) == MONDAY


@pytest.mark.integration
@pytest.mark.booking
class TestBookingLifecycle:
    """Booking, cancelling and updating appointments."""

    async def test_book_and_cancel_restores_inventory(
        self, db_session, ctx, doctor, patient, monday_slots, make_calendar
    ) -> None:
        """Booking flips the slot to BOOKED; cancelling releases it."""
        appointments = AppointmentService(db_session)
        slots = SlotService(db_session)
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))

        appointment = await appointments.book_appointment(
            ctx, make_calendar(), slot.id, patient.id, reason_for_visit="Checkup"
        )

        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.start_time == time(10, 0)
        assert appointment.end_time == time(10, 30)
        assert appointment.public_token
        day = await slots.list_for_date(ctx, doctor.id, MONDAY)
        assert day["stats"]["available"] == 15
        assert day["stats"]["booked"] == 1
        booked = [item for item in day["slots"]["MORNING"] if item["id"] == slot.id][0]
        assert booked["appointment"]["patient_name"] == "John Doe"

        cancelled = await appointments.cancel_appointment(ctx, make_calendar(), appointment.id)

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancellation_reason == "Cancelled by staff"
        assert cancelled.cancelled_at is not None
        day = await slots.list_for_date(ctx, doctor.id, MONDAY)
        assert day["stats"]["available"] == 16

    async def test_cancelled_slot_can_be_rebooked(
        self, db_session, ctx, doctor, patient, second_patient, monday_slots, make_calendar
    ) -> None:
        service = AppointmentService(db_session)
        slot = await slot_at(db_session, doctor.id, MONDAY, time(11, 0))
        first = await service.book_appointment(ctx, make_calendar(), slot.id, patient.id)
        await service.cancel_appointment(ctx, make_calendar(), first.id, reason="Patient called")

        second = await service.book_appointment(ctx, make_calendar(), slot.id, second_patient.id)

        assert second.slot_id == slot.id
        assert second.public_token != first.public_token

    async def test_cancel_twice_is_rejected(
        self, db_session, ctx, doctor, patient, monday_slots, make_calendar
    ) -> None:
        service = AppointmentService(db_session)
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        appointment = await service.book_appointment(ctx, make_calendar(), slot.id, patient.id)
        await service.cancel_appointment(ctx, make_calendar(), appointment.id)

        with pytest.raises(InvalidStateError, match="already cancelled"):
            await service.cancel_appointment(ctx, make_calendar(), appointment.id)

    async def test_cancel_takes_checked_in_patient_out_of_queue(
        self, db_session, ctx, doctor, patient, monday_slots, make_calendar
    ) -> None:
        """Cancelling after check-in leaves the queue entry LEFT and no longer ahead of anyone."""
        service = AppointmentService(db_session)
        queue = QueueService(db_session)
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        appointment = await service.book_appointment(ctx, make_calendar(), slot.id, patient.id)
        entry = await queue.check_in_appointment(ctx, make_calendar(), appointment.id)
        walk_in = await queue.add_walk_in(ctx, make_calendar(), doctor.id, walk_in_name="Ana")

        await service.cancel_appointment(ctx, make_calendar(), appointment.id, reason="Patient went home")

        await db_session.refresh(entry)
        assert entry.status == QueueStatus.LEFT
        assert entry.completed_at is not None
        board = await queue.get_daily_queue(ctx, make_calendar(), doctor.id)
        assert [view["id"] for view in board["queue"]] == [walk_in.id]
        assert board["queue"][0]["patients_ahead"] == 0
        assert board["queue"][0]["estimated_wait_minutes"] == 0

    async def test_booked_slot_is_rejected(
        self, db_session, ctx, doctor, patient, second_patient, monday_slots, make_calendar
    ) -> None:
        service = AppointmentService(db_session)
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        await service.book_appointment(ctx, make_calendar(), slot.id, patient.id)

        with pytest.raises(InvalidStateError):
            await service.book_appointment(ctx, make_calendar(), slot.id, second_patient.id)

    async def test_past_slot_is_rejected(
        self, db_session, ctx, doctor, patient, weekly_schedule, make_calendar
    ) -> None:
        await SlotService(db_session).generate(ctx, doctor.id, LAST_FRIDAY, LAST_FRIDAY)
        slot = await slot_at(db_session, doctor.id, LAST_FRIDAY, time(9, 0))

        with pytest.raises(InvalidStateError, match="past"):
            await AppointmentService(db_session).book_appointment(ctx, make_calendar(), slot.id, patient.id)

    async def test_patient_from_other_tenant(
        self, db_session, ctx, doctor, other_hospital, monday_slots, make_calendar
    ) -> None:
        outsider = Patient(hospital_id=other_hospital.id, first_name="Other", last_name="Tenant")
        db_session.add(outsider)
        await db_session.commit()
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))

        with pytest.raises(NotFoundError):
            await AppointmentService(db_session).book_appointment(ctx, make_calendar(), slot.id, outsider.id)

    async def test_hidden_doctor_slot_not_found(
        self, db_session, hospital, doctor, patient, monday_slots, make_calendar
    ) -> None:
        restricted = RequestContext(hospital.id, uuid.uuid4(), VisibilityFilter(frozenset()))
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))

        with pytest.raises(NotFoundError):
            await AppointmentService(db_session).book_appointment(restricted, make_calendar(), slot.id, patient.id)

    async def test_status_transitions(
        self, db_session, ctx, doctor, patient, monday_slots, make_calendar
    ) -> None:
        service = AppointmentService(db_session)
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        appointment = await service.book_appointment(ctx, make_calendar(), slot.id, patient.id)

        confirmed = await service.update_appointment(
            ctx, make_calendar(), appointment.id, status=AppointmentStatus.CONFIRMED, notes="Arrived early"
        )
        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert confirmed.confirmed_at is not None
        assert confirmed.notes == "Arrived early"

        with pytest.raises(InvalidStateError):
            await service.update_appointment(ctx, make_calendar(), appointment.id, status=AppointmentStatus.SCHEDULED)

        completed = await service.update_appointment(
            ctx, make_calendar(), appointment.id, status=AppointmentStatus.COMPLETED
        )
        assert completed.status == AppointmentStatus.COMPLETED
        assert completed.completed_at is not None

        with pytest.raises(InvalidStateError):
            await service.cancel_appointment(ctx, make_calendar(), appointment.id)
        with pytest.raises(InvalidStateError):
            await service.update_appointment(ctx, make_calendar(), appointment.id, notes="Late note")

    async def test_list_and_count(
        self, db_session, ctx, doctor, patient, second_patient, monday_slots, make_calendar
    ) -> None:
        service = AppointmentService(db_session)
        first = await slot_at(db_session, doctor.id, MONDAY, time(9, 0))
        second = await slot_at(db_session, doctor.id, MONDAY, time(9, 30))
        await service.book_appointment(ctx, make_calendar(), first.id, patient.id)
        await service.book_appointment(ctx, make_calendar(), second.id, second_patient.id)

        rows, total = await service.list_appointments(ctx, doctor_id=doctor.id, on_date=MONDAY)
        assert total == 2
        assert [patient_row.full_name for _, patient_row in rows] == ["John Doe", "Jane Roe"]

        rows, total = await service.list_appointments(ctx, patient_id=patient.id)
        assert total == 1

        counts = await service.calendar_counts(ctx, MONDAY, date(2026, 10, 25))
        assert counts == {MONDAY: 2}


@pytest.mark.integration
@pytest.mark.booking
class TestSlotConsistency:
    """A slot is BOOKED exactly when an active appointment points at it."""

    async def _drift(self, db_session, slot, patient_id):
        """Write an active appointment without touching the slot status"""
        service = AppointmentService(db_session)
        appointment = await AppointmentRepository(db_session).create(
            service.new_appointment_data(slot, patient_id)
        )
        await db_session.commit()
        return appointment

    async def test_listing_repairs_drift(self, db_session, ctx, doctor, patient, monday_slots) -> None:
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        await self._drift(db_session, slot, patient.id)

        day = await SlotService(db_session).list_for_date(ctx, doctor.id, MONDAY)

        assert day["stats"]["booked"] == 1
        await db_session.refresh(slot)
        assert slot.status == SlotStatus.BOOKED

    async def test_booking_drifted_slot_raises_and_repairs(
        self, db_session, ctx, doctor, patient, second_patient, monday_slots, make_calendar
    ) -> None:
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        slot_id = slot.id
        await self._drift(db_session, slot, patient.id)

        with pytest.raises(SlotAlreadyBookedError) as exc_info:
            await AppointmentService(db_session).book_appointment(
                ctx, make_calendar(), slot_id, second_patient.id
            )

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "SLOT_ALREADY_BOOKED"
        await db_session.refresh(slot)
        assert slot.status == SlotStatus.BOOKED

    async def test_second_active_appointment_violates_index(
        self, db_session, doctor, patient, second_patient, monday_slots
    ) -> None:
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        await self._drift(db_session, slot, patient.id)

        with pytest.raises(IntegrityError):
            await AppointmentRepository(db_session).create(
                AppointmentService(db_session).new_appointment_data(slot, second_patient.id)
            )
        await db_session.rollback()

    async def test_lost_race_after_check_raises_and_repairs(
        self, db_session, ctx, doctor, patient, second_patient, monday_slots, make_calendar, monkeypatch
    ) -> None:
        """A competing booking that commits after the pre-insert check trips the unique index."""
        slot = await slot_at(db_session, doctor.id, MONDAY, time(10, 0))
        slot_id = slot.id
        await self._drift(db_session, slot, patient.id)
        service = AppointmentService(db_session)
        lookup = service.appointment_repo.get_active_for_slot
        calls = []

        async def stale_then_real(requested):
            calls.append(requested)
            if len(calls) == 1:
                return None
            return await lookup(requested)

        monkeypatch.setattr(service.appointment_repo, "get_active_for_slot", stale_then_real)

        with pytest.raises(SlotAlreadyBookedError):
            await service.book_appointment(ctx, make_calendar(), slot_id, second_patient.id)

        assert len(calls) == 2
        await db_session.refresh(slot)
        assert slot.status == SlotStatus.BOOKED
        rows, total = await service.list_appointments(ctx, doctor_id=doctor.id, on_date=MONDAY)
        assert total == 1
        assert rows[0][1].full_name == "John Doe"
