"""Current-principal endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ehr_guard.access.principal import Principal
from ehr_guard.api.dependencies import get_principal
from ehr_guard.core.schemas import PrincipalRead

router = APIRouter()


@router.get("/me", response_model=PrincipalRead)
async def get_me(principal: Principal = Depends(get_principal)) -> PrincipalRead:
    """Return the resolved principal: the role the server derived, not the one claimed."""
    return PrincipalRead(
        auth_ref=principal.auth_ref,
        role=principal.role.value,
        user_id=principal.user_id,
        patient_id=principal.patient_id,
        display_name=principal.display_name,
        caseload_size=len(principal.caseload),
    )
