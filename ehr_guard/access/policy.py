"""Row-level policy engine.

The policy is a flat table of clauses. Each clause names a resource type,
an operation, the role it applies to and a condition over the principal and
the row. A request is allowed when any clause matching its
(resource, operation, role) evaluates true; with no matching clause the
answer is deny.

For ``create`` the row is the proposed row. For ``read``/``delete`` it is
the stored row. For ``update`` callers check both the stored row and the
proposed post-image, so an update can neither touch a row it may not
update nor move a row out of its own reach.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from ehr_guard.access.ownership import (
    assigns_self_as_primary,
    field,
    is_author,
    is_own_patient_record,
    is_self,
    owns_as_patient,
    owns_as_provider,
    owns_patient_as_provider,
)
from ehr_guard.access.principal import Principal
from ehr_guard.core.models import UserRole


class ResourceType(str, enum.Enum):
    users = "users"
    patients = "patients"
    appointments = "appointments"
    clinical_notes = "clinical_notes"
    care_plans = "care_plans"
    medications = "medications"
    assessments = "assessments"
    audit_records = "audit_records"


class Operation(str, enum.Enum):
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"

    def __bool__(self) -> bool:
        return self is Decision.ALLOW


Condition = Callable[[Principal, Any], bool]


def _always(principal: Principal, resource: Any) -> bool:
    return True


@dataclass(frozen=True)
class PolicyClause:
    name: str
    resource: ResourceType
    operation: Operation
    role: UserRole
    condition: Condition = _always
    description: str = "all rows"

    @property
    def unconditional(self) -> bool:
        """Grants every row to its role, so no row check is needed."""
        return self.condition is _always

    def applies_to(self, principal: Principal) -> bool:
        return self.role is principal.role

    def evaluate(self, principal: Principal, resource: Any) -> bool:
        return self.applies_to(principal) and bool(self.condition(principal, resource))


def note_is_locked(resource: Any) -> bool:
    return bool(field(resource, "is_locked", False))


def _role_in(*roles: UserRole) -> Condition:
    values = {role.value for role in roles}

    def condition(principal: Principal, user: Any) -> bool:
        role = field(user, "role", "")
        if isinstance(role, enum.Enum):
            role = role.value
        return role in values

    return condition


def _either(*conditions: Condition) -> Condition:
    def condition(principal: Principal, resource: Any) -> bool:
        return any(check(principal, resource) for check in conditions)

    return condition


def _author_unlocked(principal: Principal, note: Any) -> bool:
    return is_author(principal, note) and not note_is_locked(note)


def _unlocked(principal: Principal, note: Any) -> bool:
    return not note_is_locked(note)


def _own_signed_note(principal: Principal, note: Any) -> bool:
    return owns_as_patient(principal, note) and bool(field(note, "is_signed", False))


def _caseload_patient_audit(principal: Principal, record: Any) -> bool:
    return field(record, "table_name") == ResourceType.patients.value and principal.in_caseload(
        field(record, "record_id")
    )


A = UserRole.admin
P = UserRole.provider
S = UserRole.staff
PT = UserRole.patient

R = Operation.read
C = Operation.create
U = Operation.update
D = Operation.delete


def _clause(
    resource: ResourceType,
    operation: Operation,
    role: UserRole,
    condition: Condition = _always,
    description: str = "all rows",
) -> PolicyClause:
    name = f"{resource.value}.{operation.value}.{role.value}"
    return PolicyClause(name, resource, operation, role, condition, description)


def _owned_clinical_clauses(resource: ResourceType, staff_may_create: bool = False) -> list[PolicyClause]:
    clauses = [
        _clause(resource, R, A),
        _clause(resource, R, P, owns_as_provider, "authored or patient in caseload"),
        _clause(resource, R, S),
        _clause(resource, R, PT, owns_as_patient, "own records"),
        _clause(resource, C, A),
        _clause(resource, C, P, is_author, "provider_id is self"),
        _clause(resource, U, A),
        _clause(resource, U, P, is_author, "authored"),
        _clause(resource, D, A),
        _clause(resource, D, P, is_author, "authored"),
    ]
    if staff_may_create:
        clauses.append(_clause(resource, C, S))
    return clauses


_USERS = ResourceType.users
_PATIENTS = ResourceType.patients
_APPOINTMENTS = ResourceType.appointments
_NOTES = ResourceType.clinical_notes
_AUDIT = ResourceType.audit_records

POLICIES: tuple[PolicyClause, ...] = (
    # users
    _clause(_USERS, R, A),
    _clause(_USERS, R, P, _either(is_self, _role_in(P, S)), "self, providers and staff"),
    _clause(_USERS, R, S, _either(is_self, _role_in(P)), "self and providers"),
    _clause(_USERS, R, PT, _role_in(P), "providers"),
    _clause(_USERS, C, A),
    _clause(_USERS, U, A),
    _clause(_USERS, U, P, is_self, "own row"),
    _clause(_USERS, U, S, is_self, "own row"),
    _clause(_USERS, U, PT, is_self, "own row"),
    _clause(_USERS, D, A),
    # patients
    _clause(_PATIENTS, R, A),
    _clause(_PATIENTS, R, P, owns_patient_as_provider, "caseload"),
    _clause(_PATIENTS, R, S),
    _clause(_PATIENTS, R, PT, is_own_patient_record, "self"),
    _clause(_PATIENTS, C, A),
    _clause(_PATIENTS, C, P, assigns_self_as_primary, "self as primary provider"),
    _clause(_PATIENTS, U, A),
    _clause(_PATIENTS, U, P, owns_patient_as_provider, "caseload"),
    _clause(_PATIENTS, U, S),
    _clause(_PATIENTS, U, PT, is_own_patient_record, "self, limited fields"),
    _clause(_PATIENTS, D, A),
    # appointments
    _clause(_APPOINTMENTS, R, A),
    _clause(_APPOINTMENTS, R, P, owns_as_provider, "authored or patient in caseload"),
    _clause(_APPOINTMENTS, R, S),
    _clause(_APPOINTMENTS, R, PT, owns_as_patient, "own appointments"),
    _clause(_APPOINTMENTS, C, A),
    _clause(_APPOINTMENTS, C, P, is_author, "provider_id is self"),
    _clause(_APPOINTMENTS, C, S),
    _clause(_APPOINTMENTS, U, A),
    _clause(_APPOINTMENTS, U, P, is_author, "authored"),
    _clause(_APPOINTMENTS, U, S),
    _clause(_APPOINTMENTS, D, A),
    _clause(_APPOINTMENTS, D, P, is_author, "authored"),
    _clause(_APPOINTMENTS, D, S),
    # clinical notes
    _clause(_NOTES, R, A),
    _clause(_NOTES, R, P, owns_as_provider, "authored or patient in caseload"),
    _clause(_NOTES, R, S),
    _clause(_NOTES, R, PT, _own_signed_note, "own signed notes"),
    _clause(_NOTES, C, A),
    _clause(_NOTES, C, P, is_author, "provider_id is self"),
    _clause(_NOTES, U, A, _unlocked, "unlocked notes"),
    _clause(_NOTES, U, P, _author_unlocked, "authored and unlocked"),
    _clause(_NOTES, D, A),
    # care plans, medications, assessments
    *_owned_clinical_clauses(ResourceType.care_plans),
    *_owned_clinical_clauses(ResourceType.medications),
    *_owned_clinical_clauses(ResourceType.assessments, staff_may_create=True),
    # audit records: read-only for everyone
    _clause(_AUDIT, R, A),
    _clause(_AUDIT, R, P, _caseload_patient_audit, "patient rows in caseload"),
)


def _index(clauses: Iterable[PolicyClause]) -> dict[tuple[ResourceType, Operation], tuple[PolicyClause, ...]]:
    index: dict[tuple[ResourceType, Operation], list[PolicyClause]] = {}
    for clause in clauses:
        index.setdefault((clause.resource, clause.operation), []).append(clause)
    return {key: tuple(value) for key, value in index.items()}


_POLICY_INDEX = _index(POLICIES)


def matching_clauses(
    principal: Principal,
    resource_type: ResourceType,
    operation: Operation,
) -> tuple[PolicyClause, ...]:
    """Clauses that could grant this principal the operation, before row checks."""
    clauses = _POLICY_INDEX.get((ResourceType(resource_type), Operation(operation)), ())
    return tuple(clause for clause in clauses if clause.applies_to(principal))


def authorize(
    principal: Principal,
    resource_type: ResourceType | str,
    operation: Operation | str,
    resource: Any,
) -> Decision:
    """Decide whether ``principal`` may perform ``operation`` on ``resource``."""
    if granting_clause(principal, resource_type, operation, resource) is not None:
        return Decision.ALLOW
    return Decision.DENY


def is_allowed(
    principal: Principal,
    resource_type: ResourceType | str,
    operation: Operation | str,
    resource: Any,
) -> bool:
    return authorize(principal, resource_type, operation, resource) is Decision.ALLOW


def granting_clause(
    principal: Principal,
    resource_type: ResourceType | str,
    operation: Operation | str,
    resource: Any,
) -> PolicyClause | None:
    """The first clause that allows the request, for decision telemetry."""
    for clause in matching_clauses(principal, ResourceType(resource_type), Operation(operation)):
        if clause.evaluate(principal, resource):
            return clause
    return None


def describe_policies(resource_type: ResourceType | str | None = None) -> list[PolicyClause]:
    if resource_type is None:
        return list(POLICIES)
    resource_type = ResourceType(resource_type)
    return [clause for clause in POLICIES if clause.resource is resource_type]
