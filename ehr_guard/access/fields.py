"""Field-level write rules.

Row policies decide whether a principal may touch a row at all; these rules
decide which columns of that row it may write. On create only system and
note-state columns are rejected; the row policy covers the rest.
"""

from __future__ import annotations

from typing import Iterable

from ehr_guard.access.errors import ValidationFailed
from ehr_guard.access.policy import ResourceType
from ehr_guard.access.principal import Principal
from ehr_guard.core.models import UserRole

SYSTEM_FIELDS = frozenset({"id", "created_at", "updated_at"})

# Changed only through sign_note and the lock sweep.
NOTE_STATE_FIELDS = frozenset({"is_signed", "signed_at", "signature", "is_locked", "locked_at", "locked_by"})

USER_IMMUTABLE_FIELDS = frozenset({"role", "auth_ref"})
USER_ADMIN_FIELDS = frozenset({"is_active"})

PATIENT_ASSIGNMENT_FIELDS = frozenset({"primary_provider_id", "auth_ref", "portal_access_enabled"})

PATIENT_SELF_WRITABLE = frozenset(
    {
        "email",
        "phone_home",
        "phone_cell",
        "phone_work",
        "address_line1",
        "address_line2",
        "city",
        "state",
        "postal_code",
        "emergency_contact_name",
        "emergency_contact_phone",
        "emergency_contact_relationship",
        "portal_terms_accepted",
    }
)


def forbidden_fields(
    principal: Principal,
    resource_type: ResourceType | str,
    fields: Iterable[str],
) -> set[str]:
    """Return the subset of ``fields`` this principal may not write."""
    resource_type = ResourceType(resource_type)
    fields = set(fields)
    denied = fields & SYSTEM_FIELDS

    if resource_type is ResourceType.clinical_notes:
        denied |= fields & NOTE_STATE_FIELDS

    elif resource_type is ResourceType.users:
        denied |= fields & USER_IMMUTABLE_FIELDS
        if not principal.is_admin:
            denied |= fields & USER_ADMIN_FIELDS

    elif resource_type is ResourceType.patients:
        if principal.role is UserRole.patient:
            denied |= fields - PATIENT_SELF_WRITABLE
        elif principal.role not in (UserRole.admin, UserRole.staff):
            denied |= fields & PATIENT_ASSIGNMENT_FIELDS

    return denied


def forbidden_create_fields(resource_type: ResourceType | str, fields: Iterable[str]) -> set[str]:
    """Fields no principal may supply on create."""
    fields = set(fields)
    denied = fields & SYSTEM_FIELDS
    if ResourceType(resource_type) is ResourceType.clinical_notes:
        denied |= fields & NOTE_STATE_FIELDS
    return denied


def check_field_writes(
    principal: Principal,
    resource_type: ResourceType | str,
    fields: Iterable[str],
    creating: bool = False,
) -> None:
    if creating:
        denied = forbidden_create_fields(resource_type, fields)
    else:
        denied = forbidden_fields(principal, resource_type, fields)
    if denied:
        raise ValidationFailed(
            f"Fields not writable by {principal.role.value}: {', '.join(sorted(denied))}",
            fields=sorted(denied),
        )
