"""Ownership predicates.

Pure functions over a principal and a row. A row may be an ORM instance,
a mapping (e.g. a proposed row or a synthetic test row), or any object
exposing the relevant attributes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ehr_guard.access.principal import Principal


def field(resource: Any, name: str, default: Any = None) -> Any:
    if isinstance(resource, Mapping):
        return resource.get(name, default)
    return getattr(resource, name, default)


def is_author(principal: Principal, resource: Any) -> bool:
    """The row's provider_id is the principal's user id."""
    return principal.user_id is not None and field(resource, "provider_id") == principal.user_id


def owns_as_provider(principal: Principal, resource: Any) -> bool:
    """Authored by the principal, or about a patient in the principal's caseload."""
    if principal.user_id is None:
        return False
    if is_author(principal, resource):
        return True
    return principal.in_caseload(field(resource, "patient_id"))


def owns_patient_as_provider(principal: Principal, patient: Any) -> bool:
    """Patient rows: primary assignment, or the patient is in the caseload."""
    if principal.user_id is None:
        return False
    if field(patient, "primary_provider_id") == principal.user_id:
        return True
    return principal.in_caseload(field(patient, "id"))


def assigns_self_as_primary(principal: Principal, patient: Any) -> bool:
    return principal.user_id is not None and field(patient, "primary_provider_id") == principal.user_id


def owns_as_patient(principal: Principal, resource: Any) -> bool:
    return principal.patient_id is not None and field(resource, "patient_id") == principal.patient_id


def is_own_patient_record(principal: Principal, patient: Any) -> bool:
    return principal.patient_id is not None and field(patient, "id") == principal.patient_id


def is_self(principal: Principal, user: Any) -> bool:
    return principal.user_id is not None and field(user, "id") == principal.user_id
