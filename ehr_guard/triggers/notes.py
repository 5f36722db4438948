"""Clinical note locking.

A signed note locks once it has been signed for more than ``note_lock_days``.
Locking is done by a periodic sweep over all due notes, and also on demand
when an update touches a note that is already past due.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.audit.recorder import AuditRecorder, snapshot
from ehr_guard.config import get_settings
from ehr_guard.core.models import ClinicalNote

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def lock_cutoff(now: datetime, lock_days: int) -> datetime:
    return as_utc(now) - timedelta(days=lock_days)


def lock_due(note: ClinicalNote, now: datetime, lock_days: int) -> bool:
    if not note.is_signed or note.is_locked or note.signed_at is None:
        return False
    return as_utc(note.signed_at) < lock_cutoff(now, lock_days)


def lock_note(note: ClinicalNote, now: datetime, recorder: AuditRecorder) -> None:
    """Lock a note in place and record the change. The caller flushes."""
    before = snapshot(note)
    note.is_locked = True
    note.locked_at = now
    note.locked_by = note.provider_id
    recorder.record(ClinicalNote.__tablename__, note.id, before, snapshot(note))


async def lock_expired_notes(
    session: AsyncSession,
    now: Optional[datetime] = None,
    lock_days: Optional[int] = None,
    recorder: Optional[AuditRecorder] = None,
) -> list[ClinicalNote]:
    """Lock every signed, unlocked note signed before the cutoff.

    Changes are attributed to no actor. The caller commits.
    """
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    lock_days = lock_days if lock_days is not None else get_settings().note_lock_days
    recorder = recorder or AuditRecorder(session)

    result = await session.execute(
        select(ClinicalNote)
        .where(
            ClinicalNote.is_signed.is_(True),
            ClinicalNote.is_locked.is_(False),
            ClinicalNote.signed_at.is_not(None),
            ClinicalNote.signed_at < lock_cutoff(now, lock_days),
        )
        .with_for_update(skip_locked=True)
    )
    notes = list(result.scalars().all())

    for note in notes:
        lock_note(note, now, recorder)
    if notes:
        await session.flush()
        logger.info(f"Locked {len(notes)} clinical note(s) signed more than {lock_days} days ago")

    return notes
