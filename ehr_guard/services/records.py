"""Transactional record service.

Every operation runs in the caller's session: the target row is locked, the
policy evaluated, field writes validated, the change applied, its audit row
added and in-transaction triggers run, all before one commit. Notifications
collected along the way are dispatched only after that commit succeeds.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import inspect, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.access.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ehr_guard.access.fields import check_field_writes
from ehr_guard.access.policy import Operation, ResourceType, granting_clause, matching_clauses
from ehr_guard.access.principal import Principal
from ehr_guard.audit.recorder import AuditRecorder, snapshot
from ehr_guard.config import Settings, get_settings
from ehr_guard.core.models import (
    Appointment,
    Assessment,
    AuditRecord,
    MODEL_BY_TABLE,
    Base,
    CarePlan,
    ClinicalNote,
    Medication,
    Patient,
    User,
    UserRole,
)
from ehr_guard.core.repository import AuditRepository, RecordRepository
from ehr_guard.observability import get_observability_logger
from ehr_guard.triggers.appointments import build_followup, ensure_completion_note, is_completion_transition
from ehr_guard.triggers.assessments import high_risk_notification
from ehr_guard.triggers.notes import lock_due, lock_note
from ehr_guard.triggers.notifications import Notification, NotificationDispatcher, build_dispatcher

logger = logging.getLogger(__name__)

LIST_BATCH_SIZE = 200

MODEL_BY_RESOURCE: dict[ResourceType, type[Base]] = {
    ResourceType.users: User,
    ResourceType.patients: Patient,
    ResourceType.appointments: Appointment,
    ResourceType.clinical_notes: ClinicalNote,
    ResourceType.care_plans: CarePlan,
    ResourceType.medications: Medication,
    ResourceType.assessments: Assessment,
}

_LABELS = {
    ResourceType.users: "User",
    ResourceType.patients: "Patient",
    ResourceType.appointments: "Appointment",
    ResourceType.clinical_notes: "Clinical note",
    ResourceType.care_plans: "Care plan",
    ResourceType.medications: "Medication",
    ResourceType.assessments: "Assessment",
}


@dataclass(frozen=True)
class RequestMeta:
    """Where a request came from, for audit attribution."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, enum.Enum) else v) for k, v in values.items()}


def _column_names(model: type[Base]) -> set[str]:
    return {attr.key for attr in inspect(model).column_attrs}


def _referencing_keys(model: type[Base]) -> list:
    """Foreign keys that cascade to or detach from ``model`` rows on delete.

    Tables come deepest first so a row is removed before anything it references.
    """
    keys = []
    for table in reversed(Base.metadata.sorted_tables):
        fks = [fk for fk in table.foreign_keys if fk.column.table is model.__table__ and fk.ondelete]
        keys.extend(sorted(fks, key=lambda fk: fk.ondelete.upper() != "CASCADE"))
    return keys


class RecordService:
    """Authorized CRUD over the clinical records store for one principal."""

    def __init__(
        self,
        session: AsyncSession,
        principal: Principal,
        meta: Optional[RequestMeta] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.principal = principal
        self.meta = meta or RequestMeta()
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher or build_dispatcher(self.settings)
        self.recorder = AuditRecorder(
            session,
            actor_id=principal.user_id,
            ip_address=self.meta.ip_address,
            user_agent=self.meta.user_agent,
            audited_tables=self.settings.audited_tables,
            excluded_fields=self.settings.audit_excluded_fields,
        )
        self._pending: list[Notification] = []

    # Policy helpers

    def _check(
        self,
        resource_type: ResourceType,
        operation: Operation,
        resource: Any,
        record_id: Any = None,
        log: bool = True,
    ) -> bool:
        clause = granting_clause(self.principal, resource_type, operation, resource)
        if log and self.settings.decision_log_enabled:
            get_observability_logger().log_access_decision(
                auth_ref=self.principal.auth_ref,
                role=self.principal.role.value,
                resource_type=resource_type.value,
                operation=operation.value,
                allowed=clause is not None,
                record_id=str(record_id) if record_id is not None else None,
                clause=clause.name if clause else None,
                request_id=self.meta.request_id,
            )
        return clause is not None

    def _not_found(self, resource_type: ResourceType, record_id: Any) -> NotFound:
        return NotFound(f"{_LABELS.get(resource_type, resource_type.value)} {record_id} not found")

    def _model(self, resource_type: ResourceType | str) -> tuple[ResourceType, type[Base]]:
        resource_type = ResourceType(resource_type)
        model = MODEL_BY_RESOURCE.get(resource_type)
        if model is None:
            raise ValidationFailed(f"{resource_type.value} records cannot be managed directly")
        return resource_type, model

    def _validate_columns(self, model: type[Base], values: dict[str, Any]) -> None:
        unknown = set(values) - _column_names(model)
        if unknown:
            raise ValidationFailed(f"Unknown fields: {', '.join(sorted(unknown))}", fields=sorted(unknown))

    async def _load(self, resource_type: ResourceType, model: type[Base], record_id: uuid.UUID, for_update: bool = False):
        """Fetch a row the principal can read; absent and unreadable look the same."""
        row = await RecordRepository(self.session, model).get_by_id(record_id, for_update=for_update)
        if row is None or not self._check(resource_type, Operation.read, row, record_id):
            raise self._not_found(resource_type, record_id)
        return row

    async def _ensure_patient_exists(self, patient_id: Any) -> None:
        if patient_id is None or await self.session.get(Patient, patient_id) is None:
            raise ValidationFailed(f"Patient {patient_id} does not exist", fields=["patient_id"])

    async def _commit(self) -> None:
        await self.session.commit()
        pending, self._pending = self._pending, []
        if pending:
            self.dispatcher.dispatch_in_background(pending)

    def _scope(self, resource_type: ResourceType, model: type[Base]) -> list:
        """SQL narrowing for list queries. Always a superset of what the policy allows."""
        principal = self.principal
        if principal.is_patient:
            if resource_type is ResourceType.patients:
                return [Patient.id == principal.patient_id]
            if resource_type is ResourceType.users:
                return [User.role == UserRole.provider.value]
            return [model.patient_id == principal.patient_id]
        if principal.is_provider:
            if resource_type is ResourceType.patients:
                return [or_(Patient.primary_provider_id == principal.user_id, Patient.id.in_(principal.caseload))]
            if resource_type is ResourceType.users:
                return []
            return [or_(model.provider_id == principal.user_id, model.patient_id.in_(principal.caseload))]
        return []

    # CRUD

    async def get(self, resource_type: ResourceType | str, record_id: uuid.UUID):
        resource_type, model = self._model(resource_type)
        return await self._load(resource_type, model, record_id)

    async def list(
        self,
        resource_type: ResourceType | str,
        patient_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> list:
        """Rows of one type the principal may read, newest first."""
        resource_type, model = self._model(resource_type)
        clauses = matching_clauses(self.principal, resource_type, Operation.read)
        if not clauses:
            raise Forbidden(f"Role {self.principal.role.value} cannot list {resource_type.value}")

        criteria = self._scope(resource_type, model)
        if patient_id is not None:
            if resource_type is ResourceType.patients:
                criteria.append(Patient.id == patient_id)
            elif hasattr(model, "patient_id"):
                criteria.append(model.patient_id == patient_id)

        repo = RecordRepository(self.session, model)
        if all(clause.unconditional for clause in clauses):
            return await repo.list(*criteria, limit=limit)

        readable = []
        offset = 0
        while len(readable) < limit:
            batch = await repo.list(*criteria, limit=LIST_BATCH_SIZE, offset=offset)
            readable.extend(row for row in batch if self._check(resource_type, Operation.read, row, log=False))
            if len(batch) < LIST_BATCH_SIZE:
                break
            offset += LIST_BATCH_SIZE
        return readable[:limit]

    async def create(self, resource_type: ResourceType | str, values: dict[str, Any]):
        resource_type, model = self._model(resource_type)
        values = _plain(values)
        self._validate_columns(model, values)
        check_field_writes(self.principal, resource_type, values, creating=True)

        if not self._check(resource_type, Operation.create, values):
            raise Forbidden(f"Not allowed to create this {_LABELS[resource_type].lower()}")
        if "patient_id" in _column_names(model):
            await self._ensure_patient_exists(values.get("patient_id"))

        row = await RecordRepository(self.session, model).add(model(**values))
        self.recorder.record_insert(model.__tablename__, row)

        if resource_type is ResourceType.appointments and is_completion_transition(None, row.status):
            await ensure_completion_note(self.session, row, self.recorder, self.settings.completion_note_type)
        if resource_type is ResourceType.assessments:
            notification = await high_risk_notification(self.session, row, self.settings.high_risk_thresholds)
            if notification is not None:
                self._pending.append(notification)

        await self._commit()
        logger.info(f"{self.principal.role.value} {self.principal.auth_ref} created {resource_type.value}/{row.id}")
        return row

    async def update(self, resource_type: ResourceType | str, record_id: uuid.UUID, changes: dict[str, Any]):
        resource_type, model = self._model(resource_type)
        changes = _plain(changes)
        self._validate_columns(model, changes)

        row = await self._load(resource_type, model, record_id, for_update=True)

        if resource_type is ResourceType.clinical_notes:
            await self._authorize_note_write(row, "update")
        elif not self._check(resource_type, Operation.update, row, record_id):
            raise Forbidden(f"Not allowed to update {_LABELS[resource_type].lower()} {record_id}")
        check_field_writes(self.principal, resource_type, changes)

        before = snapshot(row)
        if not self._check(resource_type, Operation.update, {**before, **changes}, record_id):
            raise Forbidden(f"Update would place {_LABELS[resource_type].lower()} {record_id} outside your access")

        for key, value in changes.items():
            setattr(row, key, value)
        await self.session.flush()
        self.recorder.record_update(model.__tablename__, before, row)

        if resource_type is ResourceType.appointments and is_completion_transition(before["status"], row.status):
            await ensure_completion_note(self.session, row, self.recorder, self.settings.completion_note_type)

        await self._commit()
        return row

    async def delete(self, resource_type: ResourceType | str, record_id: uuid.UUID) -> None:
        resource_type, model = self._model(resource_type)
        row = await self._load(resource_type, model, record_id, for_update=True)
        if not self._check(resource_type, Operation.delete, row, record_id):
            raise Forbidden(f"Not allowed to delete {_LABELS[resource_type].lower()} {record_id}")

        await self._delete_with_dependents(model, row)
        await self._commit()
        logger.info(f"{self.principal.role.value} {self.principal.auth_ref} deleted {resource_type.value}/{record_id}")

    async def _delete_with_dependents(self, model: type[Base], row) -> None:
        """Delete a row after removing or detaching every row that references it.

        Dependents go through the session one by one, deepest first, so each
        gets its own audit entry and the database has nothing left to cascade.
        """
        for fk in _referencing_keys(model):
            child = MODEL_BY_TABLE[fk.parent.table.name]
            column = fk.parent.name
            dependents = await RecordRepository(self.session, child).list(getattr(child, column) == row.id)
            for dependent in dependents:
                if fk.ondelete.upper() == "CASCADE":
                    await self._delete_with_dependents(child, dependent)
                    continue
                before = snapshot(dependent)
                setattr(dependent, column, None)
                await self.session.flush()
                self.recorder.record_update(child.__tablename__, before, dependent)

        self.recorder.record_delete(model.__tablename__, row)
        await RecordRepository(self.session, model).delete(row)

    # Clinical notes

    async def _authorize_note_write(self, note: ClinicalNote, action: str) -> None:
        """Update permission is judged on the note as if unlocked; the lock then answers Conflict."""
        unlocked = {**snapshot(note), "is_locked": False}
        if not self._check(ResourceType.clinical_notes, Operation.update, unlocked, note.id):
            raise Forbidden(f"Not allowed to {action} clinical note {note.id}")
        await self._reject_locked_note(note)

    async def _reject_locked_note(self, note: ClinicalNote) -> None:
        """Locked notes never change. A note found past its lock date is locked now."""
        if note.is_locked:
            raise Conflict(f"Clinical note {note.id} is locked")

        now = datetime.now(timezone.utc)
        if lock_due(note, now, self.settings.note_lock_days):
            system = AuditRecorder(
                self.session,
                audited_tables=self.settings.audited_tables,
                excluded_fields=self.settings.audit_excluded_fields,
            )
            lock_note(note, now, system)
            await self.session.flush()
            await self.session.commit()
            logger.info(f"Locked overdue clinical note {note.id} on write")
            raise Conflict(f"Clinical note {note.id} is locked")

    async def sign_note(self, note_id: uuid.UUID, signature: str) -> ClinicalNote:
        """Sign a draft note. Only principals who may update the note can sign it."""
        note = await self._load(ResourceType.clinical_notes, ClinicalNote, note_id, for_update=True)
        await self._authorize_note_write(note, "sign")
        if note.is_signed:
            raise Conflict(f"Clinical note {note_id} is already signed")

        before = snapshot(note)
        note.is_signed = True
        note.signed_at = datetime.now(timezone.utc)
        note.signature = signature
        await self.session.flush()
        self.recorder.record_update(ClinicalNote.__tablename__, before, note)

        await self._commit()
        return note

    # Appointments

    async def create_followup_appointment(
        self,
        appointment_id: uuid.UUID,
        days_until_followup: Optional[int] = None,
    ) -> Appointment:
        """Schedule a copy of an appointment ``days_until_followup`` days later."""
        days = days_until_followup if days_until_followup is not None else self.settings.followup_default_days
        if days < 1:
            raise ValidationFailed("days_until_followup must be positive", fields=["days_until_followup"])

        source = await self._load(ResourceType.appointments, Appointment, appointment_id)
        followup = build_followup(source, days)
        if not self._check(ResourceType.appointments, Operation.create, followup):
            raise Forbidden(f"Not allowed to schedule a follow-up for appointment {appointment_id}")

        await RecordRepository(self.session, Appointment).add(followup)
        self.recorder.record_insert(Appointment.__tablename__, followup)
        await self._commit()
        logger.info(f"Scheduled follow-up {followup.id} for appointment {appointment_id} in {days} days")
        return followup

    # Audit

    async def list_audit_records(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> Sequence[AuditRecord]:
        if not matching_clauses(self.principal, ResourceType.audit_records, Operation.read):
            raise Forbidden("Not allowed to read audit records")

        repo = AuditRepository(self.session)
        if self.principal.is_admin:
            return await repo.list(table_name=table_name, record_id=record_id, limit=limit)

        if table_name not in (None, ResourceType.patients.value):
            return []
        records = await repo.list(
            table_name=ResourceType.patients.value,
            record_id=record_id,
            record_ids=self.principal.caseload,
            limit=limit,
        )
        return [r for r in records if self._check(ResourceType.audit_records, Operation.read, r, log=False)]
