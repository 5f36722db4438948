"""Audit recording.

Audit rows are added to the same session as the mutation they describe, so
they commit or roll back together with it. Once flushed, an audit row can
never be modified or deleted through the ORM.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from ehr_guard.access.errors import Forbidden
from ehr_guard.config import get_settings
from ehr_guard.core.models import AuditAction, AuditRecord

logger = logging.getLogger(__name__)


class AuditImmutableError(Forbidden):
    error = "audit_immutable"


def snapshot(row: Any) -> dict[str, Any]:
    """Column values of an ORM row, keyed by attribute name."""
    mapper = inspect(row).mapper
    return {attr.key: getattr(row, attr.key) for attr in mapper.column_attrs}


def diff_rows(
    before: Optional[dict[str, Any]],
    after: Optional[dict[str, Any]],
    excluded_fields: Iterable[str] = (),
) -> tuple[Optional[dict[str, Any]], Optional[dict[str, Any]]]:
    """Compute (changed, previous) field maps for a mutation.

    Insert: previous is None and changed holds every non-excluded field.
    Delete: changed is None and previous holds every non-excluded field.
    Update: both hold only the fields whose values differ.
    """
    excluded = set(excluded_fields)

    if before is None and after is None:
        return None, None

    if before is None:
        return {k: v for k, v in after.items() if k not in excluded}, None

    if after is None:
        return None, {k: v for k, v in before.items() if k not in excluded}

    changed: dict[str, Any] = {}
    previous: dict[str, Any] = {}
    for key in set(before) | set(after):
        if key in excluded:
            continue
        old, new = before.get(key), after.get(key)
        if old != new:
            changed[key] = new
            previous[key] = old
    return changed, previous


def _action(before: Optional[dict], after: Optional[dict]) -> AuditAction:
    if before is None:
        return AuditAction.INSERT
    if after is None:
        return AuditAction.DELETE
    return AuditAction.UPDATE


class AuditRecorder:
    """Adds audit rows for mutations of audited tables to the current session."""

    def __init__(
        self,
        session: AsyncSession,
        actor_id: Optional[uuid.UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        audited_tables: Optional[Iterable[str]] = None,
        excluded_fields: Optional[Iterable[str]] = None,
    ):
        settings = get_settings()
        self.session = session
        self.actor_id = actor_id
        self.ip_address = ip_address
        self.user_agent = user_agent
        self.audited_tables = frozenset(audited_tables if audited_tables is not None else settings.audited_tables)
        self.excluded_fields = frozenset(
            excluded_fields if excluded_fields is not None else settings.audit_excluded_fields
        )

    def is_audited(self, table_name: str) -> bool:
        return table_name in self.audited_tables

    def record(
        self,
        table_name: str,
        record_id: uuid.UUID,
        before: Optional[dict[str, Any]],
        after: Optional[dict[str, Any]],
    ) -> Optional[AuditRecord]:
        """Add one audit row for a mutation, or nothing if no audited field changed."""
        if not self.is_audited(table_name):
            return None

        changed, previous = diff_rows(before, after, self.excluded_fields)
        action = _action(before, after)
        if action is AuditAction.UPDATE and not changed:
            return None

        record = AuditRecord(
            table_name=table_name,
            record_id=record_id,
            action=action.value,
            changed_data=jsonable_encoder(changed) if changed is not None else None,
            previous_data=jsonable_encoder(previous) if previous is not None else None,
            changed_by=self.actor_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )
        self.session.add(record)
        logger.debug(f"Audit {action.value} {table_name}/{record_id} by {self.actor_id}")
        return record

    def record_insert(self, table_name: str, row: Any) -> Optional[AuditRecord]:
        return self.record(table_name, row.id, None, snapshot(row))

    def record_update(self, table_name: str, before: dict[str, Any], row: Any) -> Optional[AuditRecord]:
        return self.record(table_name, row.id, before, snapshot(row))

    def record_delete(self, table_name: str, row: Any) -> Optional[AuditRecord]:
        return self.record(table_name, row.id, snapshot(row), None)


@event.listens_for(Session, "before_flush")
def _guard_audit_records(session: Session, flush_context: Any, instances: Any) -> None:
    for obj in session.dirty:
        if isinstance(obj, AuditRecord) and session.is_modified(obj):
            raise AuditImmutableError("Audit records cannot be modified")
    for obj in session.deleted:
        if isinstance(obj, AuditRecord):
            raise AuditImmutableError("Audit records cannot be deleted")
