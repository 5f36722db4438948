"""Care plan, medication and assessment API routes."""

from ehr_guard.access.policy import ResourceType
from ehr_guard.api.routes.crud import build_crud_router
from ehr_guard.core.schemas import (
    AssessmentCreate,
    AssessmentRead,
    AssessmentUpdate,
    CarePlanCreate,
    CarePlanRead,
    CarePlanUpdate,
    MedicationCreate,
    MedicationRead,
    MedicationUpdate,
)

care_plans_router = build_crud_router(
    ResourceType.care_plans,
    prefix="/care-plans",
    tag="care-plans",
    create_schema=CarePlanCreate,
    update_schema=CarePlanUpdate,
    read_schema=CarePlanRead,
)

medications_router = build_crud_router(
    ResourceType.medications,
    prefix="/medications",
    tag="medications",
    create_schema=MedicationCreate,
    update_schema=MedicationUpdate,
    read_schema=MedicationRead,
)

assessments_router = build_crud_router(
    ResourceType.assessments,
    prefix="/assessments",
    tag="assessments",
    create_schema=AssessmentCreate,
    update_schema=AssessmentUpdate,
    read_schema=AssessmentRead,
)
