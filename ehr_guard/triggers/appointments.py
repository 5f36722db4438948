"""Appointment reactions: completion note stub and follow-up scheduling."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.audit.recorder import AuditRecorder
from ehr_guard.core.models import Appointment, AppointmentStatus, ClinicalNote
from ehr_guard.core.repository import PatientActivityRepository

logger = logging.getLogger(__name__)

COMPLETION_NOTE_TEXT = "Auto-generated note for completed appointment. Please update with session details."
FOLLOWUP_NOTE_TEXT = "Follow-up appointment automatically scheduled"


def is_completion_transition(previous_status: Optional[str], new_status: Optional[str]) -> bool:
    """True only when the status moves into ``completed`` from anything else."""
    completed = AppointmentStatus.completed.value
    return new_status == completed and previous_status != completed


async def ensure_completion_note(
    session: AsyncSession,
    appointment: Appointment,
    recorder: AuditRecorder,
    note_type: str = "soap",
) -> Optional[ClinicalNote]:
    """Create the note stub for a completed appointment unless one already exists.

    Runs inside the transaction that completed the appointment.
    """
    existing = await PatientActivityRepository(session).note_for_appointment(appointment.id)
    if existing is not None:
        logger.debug(f"Appointment {appointment.id} already has note {existing.id}")
        return None

    note = ClinicalNote(
        patient_id=appointment.patient_id,
        appointment_id=appointment.id,
        provider_id=appointment.provider_id,
        note_type=note_type,
        subjective=COMPLETION_NOTE_TEXT,
    )
    session.add(note)
    await session.flush()
    recorder.record_insert(ClinicalNote.__tablename__, note)

    logger.info(f"Created note stub {note.id} for completed appointment {appointment.id}")
    return note


def build_followup(appointment: Appointment, days_until_followup: int = 14) -> Appointment:
    """A scheduled copy of ``appointment`` shifted forward by the given number of days."""
    shift = timedelta(days=days_until_followup)
    return Appointment(
        patient_id=appointment.patient_id,
        provider_id=appointment.provider_id,
        appointment_type=appointment.appointment_type,
        start_time=appointment.start_time + shift,
        end_time=appointment.end_time + shift,
        duration=appointment.duration,
        status=AppointmentStatus.scheduled.value,
        location=appointment.location,
        room=appointment.room,
        is_telehealth=appointment.is_telehealth,
        telehealth_provider=appointment.telehealth_provider,
        notes=FOLLOWUP_NOTE_TEXT,
    )
