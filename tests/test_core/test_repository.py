"""Tests for core repositories using async SQLite."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.core.models import Appointment, Assessment, AuditRecord, CarePlan, ClinicalNote, Patient
from ehr_guard.core.repository import (
    AuditRepository,
    CaseloadRepository,
    IdentityRepository,
    PatientActivityRepository,
    RecordRepository,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


# --- RecordRepository ---

async def test_record_add_and_get(session: AsyncSession, seed):
    repo = RecordRepository(session, Patient)
    patient = await repo.add(
        Patient(first_name="John", last_name="Doe", date_of_birth=date(1990, 1, 15), gender="male")
    )
    assert patient.id is not None

    fetched = await repo.get_by_id(patient.id)
    assert fetched is not None
    assert fetched.last_name == "Doe"

    assert await repo.get_by_id(uuid.uuid4()) is None


async def test_record_get_for_update(session: AsyncSession, seed):
    repo = RecordRepository(session, Patient)
    fetched = await repo.get_by_id(seed.patient_1.id, for_update=True)
    assert fetched.id == seed.patient_1.id


async def test_record_list_with_criteria_newest_first(session: AsyncSession, seed):
    repo = RecordRepository(session, CarePlan)
    for offset, title in enumerate(["first", "second", "third"]):
        await repo.add(
            CarePlan(
                patient_id=seed.patient_1.id,
                provider_id=seed.provider_a.id,
                title=title,
                start_date=date(2026, 1, 1),
                created_at=NOW + timedelta(minutes=offset),
            )
        )
    await repo.add(
        CarePlan(patient_id=seed.patient_2.id, provider_id=seed.provider_b.id, title="other", start_date=date(2026, 1, 1))
    )

    plans = await repo.list(CarePlan.patient_id == seed.patient_1.id)
    assert [p.title for p in plans] == ["third", "second", "first"]
    assert len(await repo.list(limit=2)) == 2


async def test_record_delete(session: AsyncSession, seed):
    repo = RecordRepository(session, Patient)
    await repo.delete(seed.patient_2)
    assert await repo.get_by_id(seed.patient_2.id) is None


# --- IdentityRepository ---

async def test_identity_lookup(session: AsyncSession, seed):
    repo = IdentityRepository(session)
    assert (await repo.user_by_auth_ref("auth-dr-a")).id == seed.provider_a.id
    assert await repo.user_by_auth_ref("auth-patient-1") is None
    assert (await repo.patient_by_auth_ref("auth-patient-1")).id == seed.patient_1.id
    assert await repo.patient_by_auth_ref("missing") is None


# --- CaseloadRepository ---

async def test_caseload_unions_primary_and_shared_records(session: AsyncSession, seed):
    repo = CaseloadRepository(session)
    assert await repo.patient_ids(seed.provider_a.id) == frozenset({seed.patient_1.id})

    session.add(
        ClinicalNote(patient_id=seed.patient_2.id, provider_id=seed.provider_a.id, note_type="consult")
    )
    await session.flush()

    assert await repo.patient_ids(seed.provider_a.id) == frozenset({seed.patient_1.id, seed.patient_2.id})
    assert await repo.patient_ids(seed.staff.id) == frozenset()


# --- AuditRepository ---

async def test_audit_list_filters(session: AsyncSession, seed):
    session.add_all(
        [
            AuditRecord(table_name="patients", record_id=seed.patient_1.id, action="UPDATE", changed_data={"city": "A"}),
            AuditRecord(table_name="patients", record_id=seed.patient_2.id, action="UPDATE", changed_data={"city": "B"}),
            AuditRecord(table_name="appointments", record_id=uuid.uuid4(), action="INSERT", changed_data={}),
        ]
    )
    await session.flush()

    repo = AuditRepository(session)
    assert len(await repo.list()) == 3
    assert len(await repo.list(table_name="patients")) == 2
    assert len(await repo.get_by_record("patients", seed.patient_1.id)) == 1
    scoped = await repo.list(table_name="patients", record_ids=frozenset({seed.patient_2.id}))
    assert [r.changed_data for r in scoped] == [{"city": "B"}]
    assert len(await repo.list(limit=1)) == 1


# --- PatientActivityRepository ---

def _visit(seed, start, status):
    return Appointment(
        patient_id=seed.patient_1.id,
        provider_id=seed.provider_a.id,
        appointment_type="individual",
        start_time=start,
        end_time=start + timedelta(hours=1),
        duration=60,
        status=status,
    )


async def test_activity_appointments(session: AsyncSession, seed):
    session.add_all(
        [
            _visit(seed, NOW - timedelta(days=10), "completed"),
            _visit(seed, NOW - timedelta(days=1), "cancelled"),
            _visit(seed, NOW + timedelta(days=2), "cancelled"),
            _visit(seed, NOW + timedelta(days=5), "confirmed"),
        ]
    )
    await session.flush()

    repo = PatientActivityRepository(session)
    last = await repo.last_completed_appointment(seed.patient_1.id)
    assert last.replace(tzinfo=timezone.utc) == NOW - timedelta(days=10) + timedelta(hours=1)
    upcoming = await repo.next_appointment(seed.patient_1.id, NOW)
    assert upcoming.replace(tzinfo=timezone.utc) == NOW + timedelta(days=5)
    assert await repo.has_upcoming_appointments(seed.patient_1.id, NOW)
    assert not await repo.has_upcoming_appointments(seed.patient_2.id, NOW)


async def test_activity_assessments(session: AsyncSession, seed):
    for day, assessment_type, score in [(1, "PHQ-9", 12), (8, "PHQ-9", 9), (5, "GAD-7", 6)]:
        session.add(
            Assessment(
                patient_id=seed.patient_1.id,
                provider_id=seed.provider_a.id,
                assessment_type=assessment_type,
                assessment_date=date(2026, 5, day),
                score=score,
            )
        )
    await session.flush()

    repo = PatientActivityRepository(session)
    recent = await repo.recent_assessments(seed.patient_1.id, limit=2)
    assert [a.assessment_date.day for a in recent] == [8, 5]
    latest = await repo.latest_assessment(seed.patient_1.id, "PHQ-9")
    assert latest.score == 9


async def test_activity_note_for_appointment(session: AsyncSession, seed):
    visit = _visit(seed, NOW, "completed")
    session.add(visit)
    await session.flush()

    repo = PatientActivityRepository(session)
    assert await repo.note_for_appointment(visit.id) is None

    session.add(
        ClinicalNote(
            patient_id=seed.patient_1.id,
            provider_id=seed.provider_a.id,
            appointment_id=visit.id,
            note_type="soap",
        )
    )
    await session.flush()
    assert (await repo.note_for_appointment(visit.id)).appointment_id == visit.id


async def test_activity_care_plan_status(session: AsyncSession, seed):
    repo = PatientActivityRepository(session)
    assert await repo.latest_care_plan_status(seed.patient_1.id) is None

    session.add(
        CarePlan(
            patient_id=seed.patient_1.id,
            provider_id=seed.provider_a.id,
            title="Plan",
            start_date=date(2026, 1, 1),
            status="completed",
        )
    )
    await session.flush()
    assert await repo.latest_care_plan_status(seed.patient_1.id) == "completed"
