import pytest
from httpx import AsyncClient

API = "/api/v1"
MONDAY = "2026-10-19"


def weekday_rows():
    return [
        {
            "day_of_week": day,
            "is_working": 1 <= day <= 5,
            "shift_start": "09:00" if 1 <= day <= 5 else None,
            "shift_end": "17:00" if 1 <= day <= 5 else None,
        }
        for day in range(7)
    ]


@pytest.fixture
async def generated(client: AsyncClient, staff_headers, doctor):
    response = await client.put(
        f"{API}/doctors/{doctor.id}/schedule", json={"schedule": weekday_rows()}, headers=staff_headers
    )
    assert response.status_code == 200
    response = await client.post(
        f"{API}/appointments/slots/generate",
        json={"doctor_id": str(doctor.id), "start_date": MONDAY, "end_date": MONDAY},
        headers=staff_headers,
    )
    assert response.status_code == 201
    return response.json()


async def first_slot_id(client, staff_headers, doctor) -> str:
    response = await client.get(
        f"{API}/appointments/slots/date/{MONDAY}", params={"doctor_id": str(doctor.id)}, headers=staff_headers
    )
    return response.json()["slots"]["MORNING"][0]["id"]


@pytest.mark.api
class TestHealthAndTenancy:
    """Service health and request identity."""

    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_missing_tenant_header(self, client: AsyncClient) -> None:
        response = await client.get(f"{API}/doctors")

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTHENTICATION_ERROR"

    async def test_list_doctors(self, client: AsyncClient, staff_headers, doctor) -> None:
        response = await client.get(f"{API}/doctors", headers=staff_headers)

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [str(doctor.id)]

    async def test_visibility_header_hides_doctor(self, client: AsyncClient, staff_headers, doctor) -> None:
        headers = {**staff_headers, "X-Visible-Doctor-IDs": ""}

        response = await client.get(f"{API}/doctors/{doctor.id}/schedule", headers=headers)

        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.booking
class TestBookingApi:
    """Slot generation and booking over HTTP."""

    async def test_generate_and_list(self, client: AsyncClient, staff_headers, doctor, generated) -> None:
        assert generated["generated"] == 16

        response = await client.get(
            f"{API}/appointments/slots/date/{MONDAY}", params={"doctor_id": str(doctor.id)}, headers=staff_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["total"] == 16
        assert len(data["slots"]["MORNING"]) == 10

    async def test_book_then_cancel(self, client: AsyncClient, staff_headers, doctor, patient, generated) -> None:
        slot_id = await first_slot_id(client, staff_headers, doctor)

        response = await client.post(
            f"{API}/appointments",
            json={"slot_id": slot_id, "patient_id": str(patient.id), "reason_for_visit": "Fever"},
            headers=staff_headers,
        )
        assert response.status_code == 201
        appointment = response.json()
        assert appointment["status"] == "SCHEDULED"
        assert appointment["public_token"]

        response = await client.post(
            f"{API}/appointments",
            json={"slot_id": slot_id, "patient_id": str(patient.id)},
            headers=staff_headers,
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_STATE"

        response = await client.patch(
            f"{API}/appointments/{appointment['id']}/cancel", json={"reason": "Patient called"}, headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["cancellation_reason"] == "Patient called"

        response = await client.get(
            f"{API}/appointments", params={"date": MONDAY, "status": "CANCELLED"}, headers=staff_headers
        )
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["patient_name"] == "John Doe"

    async def test_conflict_check(self, client: AsyncClient, staff_headers, doctor, patient, generated) -> None:
        slot_id = await first_slot_id(client, staff_headers, doctor)
        await client.post(
            f"{API}/appointments", json={"slot_id": slot_id, "patient_id": str(patient.id)}, headers=staff_headers
        )

        response = await client.post(
            f"{API}/appointments/slots/check-conflicts",
            json={"doctor_id": str(doctor.id), "change_type": "duration", "duration_minutes": 20},
            headers=staff_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["total_appointments"] == 1
        assert data["conflicts"][0]["reason"] == "Slot duration is changing"

    async def test_unsupported_duration(self, client: AsyncClient, staff_headers, doctor) -> None:
        response = await client.put(
            f"{API}/doctors/{doctor.id}/appointment-duration", json={"duration_minutes": 25}, headers=staff_headers
        )

        assert response.status_code == 422


@pytest.mark.api
@pytest.mark.queue
class TestQueueApi:
    """Walk-ins and promotion over HTTP."""

    async def test_walk_in_and_move_to_top(self, client: AsyncClient, staff_headers, doctor) -> None:
        ids = []
        for name in ("Ana", "Ben", "Cleo"):
            response = await client.post(
                f"{API}/queue/walk-in", json={"doctor_id": str(doctor.id), "walk_in_name": name}, headers=staff_headers
            )
            assert response.status_code == 201
            ids.append(response.json()["id"])

        response = await client.post(f"{API}/queue/{ids[2]}/move-to-top", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["queue_number"] == 1

        response = await client.get(f"{API}/queue/daily", params={"doctor_id": str(doctor.id)}, headers=staff_headers)
        assert response.status_code == 200
        assert [item["patient_name"] for item in response.json()["queue"]] == ["Cleo", "Ana", "Ben"]

    async def test_walk_in_requires_name(self, client: AsyncClient, staff_headers, doctor) -> None:
        response = await client.post(
            f"{API}/queue/walk-in", json={"doctor_id": str(doctor.id)}, headers=staff_headers
        )

        assert response.status_code == 422


@pytest.mark.api
@pytest.mark.public
class TestPublicApi:
    """Token endpoints need no tenant headers."""

    async def test_appointment_status_and_cancel(
        self, client: AsyncClient, staff_headers, doctor, patient, generated
    ) -> None:
        slot_id = await first_slot_id(client, staff_headers, doctor)
        booked = await client.post(
            f"{API}/appointments", json={"slot_id": slot_id, "patient_id": str(patient.id)}, headers=staff_headers
        )
        token = booked.json()["public_token"]

        response = await client.get(f"{API}/appointments/public/status/{token}")
        assert response.status_code == 200
        assert response.json()["can_cancel"] is True
        assert response.json()["hospital_name"] == "Riverside Clinic"

        response = await client.post(f"{API}/appointments/public/cancel/{token}")
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    async def test_queue_status(self, client: AsyncClient, staff_headers, doctor) -> None:
        created = await client.post(
            f"{API}/queue/walk-in", json={"doctor_id": str(doctor.id), "walk_in_name": "Ana"}, headers=staff_headers
        )
        token = created.json()["public_token"]

        response = await client.get(f"{API}/queue/public/status/{token}")
        assert response.status_code == 200
        assert response.json()["queue_number"] == 1
        assert response.json()["patients_ahead"] == 0

        response = await client.post(f"{API}/queue/public/cancel/{token}")
        assert response.status_code == 200
        assert response.json()["status"] == "LEFT"
        assert response.json()["message"] == "You have left the queue"

    async def test_unknown_token(self, client: AsyncClient) -> None:
        response = await client.get(f"{API}/appointments/public/status/not-a-token")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND_ERROR"
