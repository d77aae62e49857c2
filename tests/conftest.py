import pytest
import uuid
from datetime import datetime, time, timezone
from typing import AsyncGenerator, Callable
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clinicflow.main import app
from clinicflow.api.deps import get_clock
from clinicflow.core.clock import BusinessCalendar, FixedClock
from clinicflow.core.visibility import RequestContext
from clinicflow.infrastructure.database import get_db, Base
from clinicflow.domain.hospitals.models import Hospital, DoctorProfile
from clinicflow.domain.patients.models import Patient
from clinicflow.domain.schedules.models import WeeklyScheduleEntry


# In-memory database, one per test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Monday 2026-10-19, 08:00 UTC
FROZEN_NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database and session for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()

    await engine.dispose()


@pytest.fixture(scope="function")
def clock() -> FixedClock:
    """Clock frozen at a Monday morning; tests may advance it."""
    return FixedClock(FROZEN_NOW)


@pytest.fixture(scope="function")
def make_calendar(clock: FixedClock, hospital: Hospital) -> Callable[[], BusinessCalendar]:
    """Build a business calendar from the clock's current instant."""
    def _make() -> BusinessCalendar:
        return BusinessCalendar.for_timezone(clock, hospital.timezone)
    return _make


@pytest.fixture(scope="function")
async def hospital(db_session: AsyncSession) -> Hospital:
    hospital = Hospital(name="Riverside Clinic", timezone="UTC", logo_url="https://example.com/logo.png")
    db_session.add(hospital)
    await db_session.commit()
    return hospital


@pytest.fixture(scope="function")
async def other_hospital(db_session: AsyncSession) -> Hospital:
    hospital = Hospital(name="Hilltop Clinic", timezone="UTC")
    db_session.add(hospital)
    await db_session.commit()
    return hospital


@pytest.fixture(scope="function")
async def doctor(db_session: AsyncSession, hospital: Hospital) -> DoctorProfile:
    doctor = DoctorProfile(
        hospital_id=hospital.id,
        user_id=uuid.uuid4(),
        full_name="Dr. Amelia Stone",
        specialization="General Practice",
        appointment_duration_minutes=30,
    )
    db_session.add(doctor)
    await db_session.commit()
    return doctor


@pytest.fixture(scope="function")
async def weekly_schedule(db_session: AsyncSession, doctor: DoctorProfile) -> list:
    """Monday to Friday 09:00-17:00; weekends off."""
    rows = []
    for day in range(7):
        working = 1 <= day <= 5
        rows.append(WeeklyScheduleEntry(
            doctor_id=doctor.id,
            day_of_week=day,
            is_working=working,
            shift_start=time(9, 0) if working else None,
            shift_end=time(17, 0) if working else None,
        ))
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest.fixture(scope="function")
async def patient(db_session: AsyncSession, hospital: Hospital) -> Patient:
    patient = Patient(
        hospital_id=hospital.id,
        first_name="John",
        last_name="Doe",
        phone="+1234567890",
        email="john.doe@example.com",
    )
    db_session.add(patient)
    await db_session.commit()
    return patient


@pytest.fixture(scope="function")
async def second_patient(db_session: AsyncSession, hospital: Hospital) -> Patient:
    patient = Patient(hospital_id=hospital.id, first_name="Jane", last_name="Roe", phone="+1234567891")
    db_session.add(patient)
    await db_session.commit()
    return patient


@pytest.fixture(scope="function")
def ctx(hospital: Hospital) -> RequestContext:
    """Unrestricted staff context for the test hospital."""
    return RequestContext(hospital_id=hospital.id, user_id=uuid.uuid4())


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and clock overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def staff_headers(hospital: Hospital) -> dict:
    return {"X-Tenant-ID": str(hospital.id), "X-User-ID": str(uuid.uuid4())}


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as a database-backed service test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an HTTP end-to-end test"
    )
    config.addinivalue_line(
        "markers", "scheduling: mark test as slot generation or schedule change test"
    )
    config.addinivalue_line(
        "markers", "booking: mark test as booking lifecycle test"
    )
    config.addinivalue_line(
        "markers", "queue: mark test as queue or wait-time test"
    )
    config.addinivalue_line(
        "markers", "public: mark test as public token surface test"
    )
