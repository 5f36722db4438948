"""Transactional services over the clinical records store."""

from ehr_guard.services.records import MODEL_BY_RESOURCE, RecordService, RequestMeta
from ehr_guard.services.summary import (
    days_since_last_appointment,
    generate_patient_summary,
    get_latest_assessment,
    patient_has_upcoming_appointments,
)

__all__ = [
    "MODEL_BY_RESOURCE",
    "RecordService",
    "RequestMeta",
    "days_since_last_appointment",
    "generate_patient_summary",
    "get_latest_assessment",
    "patient_has_upcoming_appointments",
]
