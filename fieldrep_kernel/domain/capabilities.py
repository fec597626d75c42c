"""
fieldrep_kernel.domain.capabilities -- The single role/operation check.

Responsibility:
    Decide whether an actor's role permits an operation.  Every service
    consults ``require_capability`` before doing anything else, so the
    answer to "may this role do X" lives in exactly one table.

Architecture position:
    Kernel > Domain.  Pure; the matrix may be replaced by the one compiled
    from ``fieldrep_config``.

Invariants:
    - A missing actor (unauthenticated caller) is always refused.
    - Ownership and regional scope are checked by the services on top of
      this; a capability is necessary, never sufficient.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from fieldrep_kernel.domain.identity import Actor, Role
from fieldrep_kernel.exceptions import ForbiddenError


class Operation(str, Enum):
    CREATE_VISIT_REPORT = "create_visit_report"
    UPDATE_VISIT_REPORT = "update_visit_report"
    DELETE_VISIT_REPORT = "delete_visit_report"
    CREATE_EXPENSE_SHEET = "create_expense_sheet"
    UPDATE_EXPENSE_SHEET = "update_expense_sheet"
    VALIDATE = "validate"
    REIMBURSE = "reimburse"
    CLOSE = "close"
    LIST_PENDING = "list_pending"
    LIST_OWNED = "list_owned"
    SAMPLE_SUMMARY = "sample_summary"
    PERIOD_SUMMARY = "period_summary"


CapabilityMatrix = Mapping[Operation, frozenset[Role]]

_ALL_ROLES = frozenset(Role)
_REVIEWERS = frozenset({Role.ACCOUNTANT, Role.REGIONAL_MANAGER})

DEFAULT_CAPABILITIES: dict[Operation, frozenset[Role]] = {
    Operation.CREATE_VISIT_REPORT: frozenset({Role.REPRESENTATIVE}),
    Operation.UPDATE_VISIT_REPORT: frozenset({Role.REPRESENTATIVE}),
    Operation.DELETE_VISIT_REPORT: frozenset({Role.REPRESENTATIVE}),
    Operation.CREATE_EXPENSE_SHEET: frozenset({Role.REPRESENTATIVE}),
    Operation.UPDATE_EXPENSE_SHEET: frozenset({Role.REPRESENTATIVE, Role.ADMINISTRATOR}),
    Operation.VALIDATE: _REVIEWERS,
    Operation.REIMBURSE: _REVIEWERS,
    Operation.CLOSE: frozenset({Role.ADMINISTRATOR}),
    Operation.LIST_PENDING: _REVIEWERS | {Role.REPRESENTATIVE},
    Operation.LIST_OWNED: _ALL_ROLES,
    Operation.SAMPLE_SUMMARY: _REVIEWERS | {Role.REPRESENTATIVE},
    Operation.PERIOD_SUMMARY: _REVIEWERS | {Role.REPRESENTATIVE},
}


def check_capability(
    actor: Actor | None,
    operation: Operation,
    matrix: CapabilityMatrix | None = None,
) -> tuple[bool, str]:
    """Check whether the actor's role grants the operation.

    Returns:
        (allowed, reason). reason is empty when allowed.
    """
    if actor is None:
        return (False, "no authenticated actor")
    table = DEFAULT_CAPABILITIES if matrix is None else matrix
    allowed_roles = table.get(operation, frozenset())
    if actor.role not in allowed_roles:
        return (False, f"role '{actor.role.value}' may not {operation.value}")
    return (True, "")


def require_capability(
    actor: Actor | None,
    operation: Operation,
    matrix: CapabilityMatrix | None = None,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> Actor:
    """Raise ForbiddenError unless the actor may perform the operation."""
    allowed, reason = check_capability(actor, operation, matrix)
    if not allowed:
        raise ForbiddenError(
            operation.value,
            reason,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor.id if actor is not None else None,
            actor_role=actor.role.value if actor is not None else None,
        )
    return actor
