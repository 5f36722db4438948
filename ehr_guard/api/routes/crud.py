"""Router factory for the list/get/create/update/delete endpoints of one resource.

Annotations here must stay real objects (no postponed evaluation): the
request and response schemas are closure variables that FastAPI reads
from the endpoint signatures.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from ehr_guard.access.policy import ResourceType
from ehr_guard.api.dependencies import get_record_service
from ehr_guard.services.records import RecordService


def build_crud_router(
    resource_type: ResourceType,
    prefix: str,
    tag: str,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    read_schema: type[BaseModel],
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.get("", response_model=list[read_schema])
    async def list_records(
        patient_id: Optional[uuid.UUID] = Query(None),
        limit: int = Query(50, ge=1, le=200),
        records: RecordService = Depends(get_record_service),
    ):
        return await records.list(resource_type, patient_id=patient_id, limit=limit)

    @router.get("/{record_id}", response_model=read_schema)
    async def get_record(
        record_id: uuid.UUID,
        records: RecordService = Depends(get_record_service),
    ):
        return await records.get(resource_type, record_id)

    @router.post("", response_model=read_schema, status_code=201)
    async def create_record(
        data: create_schema,
        records: RecordService = Depends(get_record_service),
    ):
        return await records.create(resource_type, data.model_dump())

    @router.patch("/{record_id}", response_model=read_schema)
    async def update_record(
        record_id: uuid.UUID,
        data: update_schema,
        records: RecordService = Depends(get_record_service),
    ):
        return await records.update(resource_type, record_id, data.model_dump(exclude_unset=True))

    @router.delete("/{record_id}", status_code=204)
    async def delete_record(
        record_id: uuid.UUID,
        records: RecordService = Depends(get_record_service),
    ):
        await records.delete(resource_type, record_id)
        return Response(status_code=204)

    return router
