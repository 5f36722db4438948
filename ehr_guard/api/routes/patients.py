"""Patient API routes."""

from __future__ import annotations

import uuid

from fastapi import Depends

from ehr_guard.access.policy import ResourceType
from ehr_guard.api.dependencies import get_record_service
from ehr_guard.api.routes.crud import build_crud_router
from ehr_guard.core.schemas import PatientCreate, PatientRead, PatientSummary, PatientUpdate
from ehr_guard.services.records import RecordService
from ehr_guard.services.summary import generate_patient_summary

router = build_crud_router(
    ResourceType.patients,
    prefix="/patients",
    tag="patients",
    create_schema=PatientCreate,
    update_schema=PatientUpdate,
    read_schema=PatientRead,
)


@router.get("/{patient_id}/summary", response_model=PatientSummary)
async def get_patient_summary(
    patient_id: uuid.UUID,
    records: RecordService = Depends(get_record_service),
):
    return await generate_patient_summary(records, patient_id)
