"""Query helpers over the clinical records store."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.core.models import (
    Appointment,
    AppointmentStatus,
    Assessment,
    AuditRecord,
    Base,
    CarePlan,
    ClinicalNote,
    Medication,
    Patient,
    User,
)

UPCOMING_STATUSES = (AppointmentStatus.scheduled.value, AppointmentStatus.confirmed.value)


class RecordRepository:
    """Row access for a single model; authorization happens in the service layer."""

    def __init__(self, session: AsyncSession, model: type[Base]):
        self.session = session
        self.model = model

    async def get_by_id(self, record_id: uuid.UUID, for_update: bool = False):
        stmt = select(self.model).where(self.model.id == record_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(self, *criteria, limit: Optional[int] = None, offset: int = 0) -> Sequence:
        stmt = select(self.model).where(*criteria).order_by(self.model.created_at.desc(), self.model.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def add(self, row):
        self.session.add(row)
        await self.session.flush()
        return row

    async def delete(self, row) -> None:
        await self.session.delete(row)
        await self.session.flush()


class IdentityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def user_by_auth_ref(self, auth_ref: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.auth_ref == auth_ref))
        return result.scalar_one_or_none()

    async def patient_by_auth_ref(self, auth_ref: str) -> Optional[Patient]:
        result = await self.session.execute(select(Patient).where(Patient.auth_ref == auth_ref))
        return result.scalar_one_or_none()


class CaseloadRepository:
    """Patients a provider is related to, by primary assignment or shared records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def patient_ids(self, provider_id: uuid.UUID) -> frozenset[uuid.UUID]:
        stmt = union(
            select(Patient.id).where(Patient.primary_provider_id == provider_id),
            select(Appointment.patient_id).where(Appointment.provider_id == provider_id),
            select(ClinicalNote.patient_id).where(ClinicalNote.provider_id == provider_id),
            select(CarePlan.patient_id).where(CarePlan.provider_id == provider_id),
            select(Medication.patient_id).where(Medication.provider_id == provider_id),
            select(Assessment.patient_id).where(Assessment.provider_id == provider_id),
        )
        result = await self.session.execute(stmt)
        return frozenset(row[0] for row in result.all())


class AuditRepository:
    """Read-only access to audit records. Writes go through AuditRecorder."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[uuid.UUID] = None,
        record_ids: Optional[frozenset[uuid.UUID]] = None,
        limit: int = 100,
    ) -> Sequence[AuditRecord]:
        stmt = select(AuditRecord)
        if table_name:
            stmt = stmt.where(AuditRecord.table_name == table_name)
        if record_id:
            stmt = stmt.where(AuditRecord.record_id == record_id)
        if record_ids is not None:
            stmt = stmt.where(AuditRecord.record_id.in_(record_ids))
        stmt = stmt.order_by(AuditRecord.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_by_record(self, table_name: str, record_id: uuid.UUID) -> Sequence[AuditRecord]:
        return await self.list(table_name=table_name, record_id=record_id)


class PatientActivityRepository:
    """Aggregations behind the patient summary."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def last_completed_appointment(self, patient_id: uuid.UUID) -> Optional[datetime]:
        result = await self.session.execute(
            select(func.max(Appointment.end_time)).where(
                Appointment.patient_id == patient_id,
                Appointment.status == AppointmentStatus.completed.value,
            )
        )
        return result.scalar_one_or_none()

    async def next_appointment(self, patient_id: uuid.UUID, now: Optional[datetime] = None) -> Optional[datetime]:
        now = now or datetime.now(timezone.utc)
        result = await self.session.execute(
            select(func.min(Appointment.start_time)).where(
                Appointment.patient_id == patient_id,
                Appointment.start_time > now,
                Appointment.status.in_(UPCOMING_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def has_upcoming_appointments(self, patient_id: uuid.UUID, now: Optional[datetime] = None) -> bool:
        return await self.next_appointment(patient_id, now) is not None

    async def active_medications(self, patient_id: uuid.UUID) -> Sequence[Medication]:
        result = await self.session.execute(
            select(Medication)
            .where(Medication.patient_id == patient_id, Medication.status == "active")
            .order_by(Medication.medication_name)
        )
        return result.scalars().all()

    async def recent_assessments(self, patient_id: uuid.UUID, limit: int = 5) -> Sequence[Assessment]:
        result = await self.session.execute(
            select(Assessment)
            .where(Assessment.patient_id == patient_id)
            .order_by(Assessment.assessment_date.desc(), Assessment.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()

    async def latest_assessment(self, patient_id: uuid.UUID, assessment_type: str) -> Optional[Assessment]:
        result = await self.session.execute(
            select(Assessment)
            .where(Assessment.patient_id == patient_id, Assessment.assessment_type == assessment_type)
            .order_by(Assessment.assessment_date.desc(), Assessment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def latest_care_plan_status(self, patient_id: uuid.UUID) -> Optional[str]:
        result = await self.session.execute(
            select(CarePlan.status)
            .where(CarePlan.patient_id == patient_id)
            .order_by(CarePlan.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def note_for_appointment(self, appointment_id: uuid.UUID) -> Optional[ClinicalNote]:
        result = await self.session.execute(
            select(ClinicalNote).where(ClinicalNote.appointment_id == appointment_id).limit(1)
        )
        return result.scalar_one_or_none()
