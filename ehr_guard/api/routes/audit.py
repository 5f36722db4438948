"""Audit trail query routes (read-only)."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ehr_guard.api.dependencies import get_record_service
from ehr_guard.core.schemas import AuditRecordRead
from ehr_guard.services.records import RecordService

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditRecordRead])
async def list_audit_records(
    table_name: Optional[str] = Query(None),
    record_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    records: RecordService = Depends(get_record_service),
):
    return await records.list_audit_records(table_name=table_name, record_id=record_id, limit=limit)
