"""Clinical note API routes."""

from __future__ import annotations

import uuid

from fastapi import Depends

from ehr_guard.access.policy import ResourceType
from ehr_guard.api.dependencies import get_record_service
from ehr_guard.api.routes.crud import build_crud_router
from ehr_guard.core.schemas import ClinicalNoteCreate, ClinicalNoteRead, ClinicalNoteUpdate, NoteSignRequest
from ehr_guard.services.records import RecordService

router = build_crud_router(
    ResourceType.clinical_notes,
    prefix="/notes",
    tag="notes",
    create_schema=ClinicalNoteCreate,
    update_schema=ClinicalNoteUpdate,
    read_schema=ClinicalNoteRead,
)


@router.post("/{note_id}/sign", response_model=ClinicalNoteRead)
async def sign_note(
    note_id: uuid.UUID,
    data: NoteSignRequest,
    records: RecordService = Depends(get_record_service),
):
    return await records.sign_note(note_id, data.signature)
