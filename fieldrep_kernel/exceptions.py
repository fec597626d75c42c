"""
Typed Exception Hierarchy for the field-reporting kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from FieldRepError:

    FieldRepError (base)
    |
    +-- ValidationError
    |   +-- DuplicateExpenseSheetError
    |   +-- RoleNotPermittedError (also a ForbiddenError)
    |
    +-- ForbiddenError
    |
    +-- InvalidStateTransitionError
    |
    +-- NotFoundError
    |   +-- EntityNotFoundError
    |   +-- CatalogItemNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- CollaboratorUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Malformed or out-of-range input
                | DUPLICATE_EXPENSE_SHEET     | Second sheet for the same owner/month
----------------|-----------------------------|-----------------------------------------
Authorization   | FORBIDDEN                   | Role (or ownership/scope) refuses the op
                | ROLE_NOT_PERMITTED          | Non-representative creates a submission
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_STATE_TRANSITION    | Action not defined in the current state
----------------|-----------------------------|-----------------------------------------
Lookup          | ENTITY_NOT_FOUND            | Visit report / expense sheet id unknown
                | CATALOG_ITEM_NOT_FOUND      | Doctor, product or expense type unknown
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Concurrent edit of a Created entity
----------------|-----------------------------|-----------------------------------------
Collaborator    | COLLABORATOR_UNAVAILABLE    | Storage / catalog I/O failure

===============================================================================
HANDLING PATTERNS
===============================================================================

1. "You may never do this" and "you may do this, but not now" are different
   types:

    try:
        machine.validate_expense_sheet(sheet_id, actor)
    except ForbiddenError as e:
        show_denied(e.operation)
    except InvalidStateTransitionError as e:
        refresh_from(e.current_state)

2. Only CollaboratorUnavailableError is eligible for caller-initiated retry.
   The kernel never retries on its own: a transition happens only when its
   atomic write succeeded.

3. Every error carries the audit context that was known when it was raised
   (entity_type, entity_id, actor_id, actor_role).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


class FieldRepError(Exception):
    """
    Base exception for all field-reporting kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FIELDREP_ERROR"

    def __init__(
        self,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        actor_id: str | None = None,
        actor_role: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = None if entity_id is None else str(entity_id)
        self.actor_id = actor_id
        self.actor_role = actor_role
        super().__init__(message)


# Validation


@dataclass(frozen=True)
class RuleViolation:
    """One violated input rule."""

    rule: str
    field: str
    message: str


class ValidationError(FieldRepError):
    """Input is malformed or out of range.

    ``rule`` is the first violated rule; ``violations`` lists all of them.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        violations: Sequence[RuleViolation],
        **context: str | None,
    ):
        if not violations:
            raise ValueError("ValidationError requires at least one violation")
        self.violations = tuple(violations)
        self.rule = self.violations[0].rule
        super().__init__(
            "; ".join(f"{v.rule}: {v.message}" for v in self.violations),
            **context,
        )

    @classmethod
    def single(
        cls, rule: str, field: str, message: str, **context: str | None
    ) -> "ValidationError":
        return cls([RuleViolation(rule, field, message)], **context)


class DuplicateExpenseSheetError(ValidationError):
    """An expense sheet already exists for this owner and month."""

    code: str = "DUPLICATE_EXPENSE_SHEET"

    def __init__(self, owner_id: str, period: str, **context: str | None):
        self.owner_id = owner_id
        self.period = period
        super().__init__(
            [
                RuleViolation(
                    "sheet_unique_per_month",
                    "month",
                    f"An expense sheet already exists for {owner_id} in {period}",
                )
            ],
            **context,
        )


# Authorization


class ForbiddenError(FieldRepError):
    """The actor may not perform this operation."""

    code: str = "FORBIDDEN"

    def __init__(self, operation: str, reason: str, **context: str | None):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Operation '{operation}' forbidden: {reason}", **context)


class RoleNotPermittedError(ValidationError, ForbiddenError):
    """Only representatives submit visit reports and expense sheets.

    Both a ValidationError (rule ``actor_role_representative``) and a
    ForbiddenError, so callers handling either type see it.
    """

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, operation: str, reason: str, **context: str | None):
        self.operation = operation
        self.reason = reason
        self.violations = (RuleViolation("actor_role_representative", "actor", reason),)
        self.rule = "actor_role_representative"
        FieldRepError.__init__(
            self, f"Operation '{operation}' forbidden: {reason}", **context
        )


# Lifecycle


class InvalidStateTransitionError(FieldRepError):
    """The action is not defined for the entity's current state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, action: str, current_state: str, **context: str | None):
        self.action = action
        self.current_state = current_state
        super().__init__(
            f"Action '{action}' is not allowed from state '{current_state}'",
            **context,
        )


# Lookup


class NotFoundError(FieldRepError):
    """Base exception for absent entities or catalog items."""

    code: str = "NOT_FOUND"


class EntityNotFoundError(NotFoundError):
    """Visit report or expense sheet does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str, **context: str | None):
        super().__init__(
            f"{entity_type} not found: {entity_id}",
            entity_type=entity_type,
            entity_id=entity_id,
            **context,
        )


class CatalogItemNotFoundError(NotFoundError):
    """A referenced doctor, product or expense type is absent from the catalog."""

    code: str = "CATALOG_ITEM_NOT_FOUND"

    def __init__(self, item_kind: str, item_id: str, **context: str | None):
        self.item_kind = item_kind
        self.item_id = item_id
        super().__init__(f"Unknown {item_kind}: {item_id}", **context)


# Concurrency


class ConcurrencyError(FieldRepError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """An edit lost a race against another edit of the same entity."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, **context: str | None):
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another request",
            entity_type=entity_type,
            entity_id=entity_id,
            **context,
        )


# Collaborators


class CollaboratorUnavailableError(FieldRepError):
    """Storage or catalog I/O failed. The only retryable error class."""

    code: str = "COLLABORATOR_UNAVAILABLE"

    def __init__(self, collaborator: str, operation: str, **context: str | None):
        self.collaborator = collaborator
        self.operation = operation
        super().__init__(
            f"{collaborator} unavailable during {operation}",
            **context,
        )
