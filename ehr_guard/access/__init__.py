"""Role- and ownership-based row-level access control."""

from ehr_guard.access.errors import (
    AccessError,
    Conflict,
    Forbidden,
    NotFound,
    Unauthenticated,
    ValidationFailed,
)
from ehr_guard.access.fields import PATIENT_SELF_WRITABLE, check_field_writes, forbidden_fields
from ehr_guard.access.policy import (
    POLICIES,
    Decision,
    Operation,
    PolicyClause,
    ResourceType,
    authorize,
    describe_policies,
    is_allowed,
)
from ehr_guard.access.principal import Principal, build_principal, resolve_principal

__all__ = [
    "AccessError",
    "Conflict",
    "Decision",
    "Forbidden",
    "NotFound",
    "Operation",
    "PATIENT_SELF_WRITABLE",
    "POLICIES",
    "PolicyClause",
    "Principal",
    "ResourceType",
    "Unauthenticated",
    "ValidationFailed",
    "authorize",
    "build_principal",
    "check_field_writes",
    "describe_policies",
    "forbidden_fields",
    "is_allowed",
    "resolve_principal",
]
