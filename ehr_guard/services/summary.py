"""Read-only patient aggregations.

Every function first loads the patient through the record service, so a
caller that cannot read the patient gets ``NotFound`` before anything else
is queried.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from ehr_guard.access.policy import ResourceType
from ehr_guard.core.models import Assessment, Patient, User
from ehr_guard.core.repository import PatientActivityRepository
from ehr_guard.core.schemas import AssessmentBrief, MedicationBrief, PatientSummary
from ehr_guard.services.records import RecordService
from ehr_guard.triggers.notes import as_utc


def _age(date_of_birth: date, today: date) -> int:
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


async def _readable_patient(records: RecordService, patient_id: uuid.UUID) -> Patient:
    return await records.get(ResourceType.patients, patient_id)


async def generate_patient_summary(
    records: RecordService,
    patient_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> PatientSummary:
    now = now or datetime.now(timezone.utc)
    patient = await _readable_patient(records, patient_id)
    activity = PatientActivityRepository(records.session)

    primary_provider = None
    if patient.primary_provider_id is not None:
        provider = await records.session.get(User, patient.primary_provider_id)
        if provider is not None:
            primary_provider = provider.full_name

    medications = await activity.active_medications(patient.id)
    assessments = await activity.recent_assessments(patient.id, limit=5)

    return PatientSummary(
        patient_id=patient.id,
        patient_name=patient.full_name,
        date_of_birth=patient.date_of_birth,
        age=_age(patient.date_of_birth, now.date()),
        primary_provider=primary_provider,
        last_appointment=as_utc(await activity.last_completed_appointment(patient.id)),
        next_appointment=as_utc(await activity.next_appointment(patient.id, now)),
        active_medications=[
            MedicationBrief(name=m.medication_name, dosage=m.dosage, frequency=m.frequency) for m in medications
        ],
        recent_assessments=[
            AssessmentBrief(assessment_type=a.assessment_type, assessment_date=a.assessment_date, score=a.score)
            for a in assessments
        ],
        care_plan_status=await activity.latest_care_plan_status(patient.id),
    )


async def patient_has_upcoming_appointments(
    records: RecordService,
    patient_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> bool:
    patient = await _readable_patient(records, patient_id)
    return await PatientActivityRepository(records.session).has_upcoming_appointments(patient.id, now)


async def get_latest_assessment(
    records: RecordService,
    patient_id: uuid.UUID,
    assessment_type: str,
) -> Optional[Assessment]:
    patient = await _readable_patient(records, patient_id)
    return await PatientActivityRepository(records.session).latest_assessment(patient.id, assessment_type)


async def days_since_last_appointment(
    records: RecordService,
    patient_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """Whole days since the last completed appointment ended, or None if there was none."""
    now = now or datetime.now(timezone.utc)
    patient = await _readable_patient(records, patient_id)
    last = await PatientActivityRepository(records.session).last_completed_appointment(patient.id)
    if last is None:
        return None
    return (as_utc(now) - as_utc(last)).days
