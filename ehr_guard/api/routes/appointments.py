"""Appointment API routes."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends

from ehr_guard.access.policy import ResourceType
from ehr_guard.api.dependencies import get_record_service
from ehr_guard.api.routes.crud import build_crud_router
from ehr_guard.core.schemas import AppointmentCreate, AppointmentRead, AppointmentUpdate, FollowupRequest
from ehr_guard.services.records import RecordService

router = build_crud_router(
    ResourceType.appointments,
    prefix="/appointments",
    tag="appointments",
    create_schema=AppointmentCreate,
    update_schema=AppointmentUpdate,
    read_schema=AppointmentRead,
)


@router.post("/{appointment_id}/followup", response_model=AppointmentRead, status_code=201)
async def create_followup(
    appointment_id: uuid.UUID,
    data: Optional[FollowupRequest] = None,
    records: RecordService = Depends(get_record_service),
):
    days = data.days_until_followup if data else None
    return await records.create_followup_appointment(appointment_id, days_until_followup=days)
