"""Principal resolution.

A principal is the resolved identity a request acts as. The role is always
re-derived from the users/patients tables; whatever role an identity token
claims is only compared against it for logging.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.access.errors import Unauthenticated
from ehr_guard.core.models import Patient, User, UserRole
from ehr_guard.core.repository import CaseloadRepository, IdentityRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    auth_ref: str
    role: UserRole
    user_id: Optional[uuid.UUID] = None
    patient_id: Optional[uuid.UUID] = None
    display_name: str = ""
    caseload: frozenset[uuid.UUID] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.admin

    @property
    def is_provider(self) -> bool:
        return self.role is UserRole.provider

    @property
    def is_staff(self) -> bool:
        return self.role is UserRole.staff

    @property
    def is_patient(self) -> bool:
        return self.role is UserRole.patient

    def in_caseload(self, patient_id: Optional[uuid.UUID]) -> bool:
        return patient_id is not None and patient_id in self.caseload


def build_principal(auth_ref: str, user: Optional[User], patient: Optional[Patient]) -> Principal:
    """Combine the (optional) user and patient rows for one auth identity.

    Inactive users and patients without portal access are treated as absent.
    """
    if user is not None and not user.is_active:
        user = None
    if patient is not None and not patient.portal_access_enabled:
        patient = None

    if user is None and patient is None:
        raise Unauthenticated("No active user or patient matches this identity")

    patient_id = patient.id if patient is not None else None

    if user is not None:
        try:
            role = UserRole(user.role)
        except ValueError:
            raise Unauthenticated(f"Unsupported role '{user.role}'")
        return Principal(
            auth_ref=auth_ref,
            role=role,
            user_id=user.id,
            patient_id=patient_id,
            display_name=user.full_name,
        )

    return Principal(
        auth_ref=auth_ref,
        role=UserRole.patient,
        patient_id=patient_id,
        display_name=patient.full_name,
    )


async def resolve_principal(
    session: AsyncSession,
    auth_ref: str,
    claimed_role: Optional[str] = None,
) -> Principal:
    """Resolve an auth reference to a Principal within the caller's transaction."""
    identities = IdentityRepository(session)
    user = await identities.user_by_auth_ref(auth_ref)
    patient = await identities.patient_by_auth_ref(auth_ref)

    principal = build_principal(auth_ref, user, patient)

    if principal.is_provider and principal.user_id is not None:
        caseload = await CaseloadRepository(session).patient_ids(principal.user_id)
        principal = replace(principal, caseload=caseload)

    if claimed_role and claimed_role != principal.role.value:
        logger.warning(
            f"Identity {auth_ref} claimed role {claimed_role!r} but resolves to "
            f"{principal.role.value!r}; using resolved role"
        )

    return principal
