"""Pytest configuration and fixtures."""

import uuid
from datetime import date
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ehr_guard.access.principal import Principal, resolve_principal
from ehr_guard.core.models import Base, Patient, User, UserRole
from ehr_guard.observability import ObservabilityLogger
from ehr_guard.services.records import RecordService, RequestMeta
from ehr_guard.triggers.notifications import InMemorySink, NotificationDispatcher


ADMIN_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")
PROVIDER_A_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000002")
PROVIDER_B_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000003")
STAFF_ID = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000004")
PATIENT_1_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000001")
PATIENT_2_ID = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000002")


# ---------------------------------------------------------------------------
# Database: in-memory SQLite per test
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as sess:
        yield sess
        await sess.rollback()


def _user(user_id, auth_ref, role, first, last, email):
    return User(
        id=user_id,
        auth_ref=auth_ref,
        username=auth_ref,
        email=email,
        role=role.value,
        first_name=first,
        last_name=last,
    )


@pytest_asyncio.fixture
async def seed(session: AsyncSession):
    """Admin, two providers, a staff member and two patients (P1 with portal access)."""
    admin = _user(ADMIN_ID, "auth-admin", UserRole.admin, "Ada", "Admin", "admin@clinic.test")
    provider_a = _user(PROVIDER_A_ID, "auth-dr-a", UserRole.provider, "Alice", "Avery", "dr.a@clinic.test")
    provider_b = _user(PROVIDER_B_ID, "auth-dr-b", UserRole.provider, "Bob", "Brooks", "dr.b@clinic.test")
    staff = _user(STAFF_ID, "auth-staff", UserRole.staff, "Sam", "Staff", "staff@clinic.test")

    patient_1 = Patient(
        id=PATIENT_1_ID,
        auth_ref="auth-patient-1",
        primary_provider_id=PROVIDER_A_ID,
        first_name="Pat",
        last_name="One",
        date_of_birth=date(1985, 4, 12),
        gender="female",
        email="pat.one@mail.test",
    )
    patient_2 = Patient(
        id=PATIENT_2_ID,
        primary_provider_id=PROVIDER_B_ID,
        first_name="Quinn",
        last_name="Two",
        date_of_birth=date(1972, 9, 30),
        gender="male",
    )
    session.add_all([admin, provider_a, provider_b, staff])
    await session.flush()
    session.add_all([patient_1, patient_2])
    await session.commit()

    return SimpleNamespace(
        admin=admin,
        provider_a=provider_a,
        provider_b=provider_b,
        staff=staff,
        patient_1=patient_1,
        patient_2=patient_2,
    )


# ---------------------------------------------------------------------------
# Telemetry and notifications
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def obs_logger(tmp_path):
    """Route access-decision telemetry to a temp directory."""
    logger = ObservabilityLogger(log_dir=tmp_path / "logs", enabled=True)
    ObservabilityLogger.reset_instance(logger)
    yield logger
    ObservabilityLogger.reset_instance(None)


@pytest.fixture
def sink():
    return InMemorySink()


@pytest.fixture
def dispatcher(sink):
    return NotificationDispatcher([sink])


# ---------------------------------------------------------------------------
# Principals and services
# ---------------------------------------------------------------------------

@pytest.fixture
def principal_for(session):
    """Resolve a principal from an auth reference against the seeded database."""

    async def _resolve(auth_ref: str) -> Principal:
        return await resolve_principal(session, auth_ref)

    return _resolve


@pytest.fixture
def service_for(session, principal_for, dispatcher):
    """Build a RecordService acting as the given auth reference."""

    async def _build(auth_ref: str) -> RecordService:
        principal = await principal_for(auth_ref)
        return RecordService(
            session,
            principal,
            meta=RequestMeta(ip_address="10.0.0.5", user_agent="pytest"),
            dispatcher=dispatcher,
        )

    return _build


def make_principal(role: UserRole, user_id=None, patient_id=None, caseload=()) -> Principal:
    """Synthetic principal for pure policy tests."""
    return Principal(
        auth_ref=f"synthetic-{role.value}",
        role=role,
        user_id=user_id,
        patient_id=patient_id,
        caseload=frozenset(caseload),
    )


@pytest.fixture
def principals():
    """One synthetic principal per role, mirroring the seeded identities."""
    return SimpleNamespace(
        admin=make_principal(UserRole.admin, user_id=ADMIN_ID),
        provider_a=make_principal(UserRole.provider, user_id=PROVIDER_A_ID, caseload={PATIENT_1_ID}),
        provider_b=make_principal(UserRole.provider, user_id=PROVIDER_B_ID, caseload={PATIENT_2_ID}),
        staff=make_principal(UserRole.staff, user_id=STAFF_ID),
        patient_1=make_principal(UserRole.patient, patient_id=PATIENT_1_ID),
        patient_2=make_principal(UserRole.patient, patient_id=PATIENT_2_ID),
    )
