"""
Canonical workflow types (``fieldrep_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the approval state machines, and the two fixed
workflows: visit reports and expense sheets.  Each transition names the
operation whose capability gates it, so the state machine needs no
per-entity role logic.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* States only advance: no transition leads back to ``created``, and
  terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fieldrep_kernel.domain.capabilities import Operation


class SubmissionState(str, Enum):
    """Lifecycle states shared by visit reports and expense sheets."""

    CREATED = "created"
    VALIDATED = "validated"
    REIMBURSED = "reimbursed"
    CLOSED = "closed"

    @property
    def legacy_code(self) -> str:
        """Two-letter state code used by the historical database (CR/VA/RB/CL)."""
        return _LEGACY_CODES[self]


_LEGACY_CODES = {
    SubmissionState.CREATED: "CR",
    SubmissionState.VALIDATED: "VA",
    SubmissionState.REIMBURSED: "RB",
    SubmissionState.CLOSED: "CL",
}


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; the approval service evaluates it by name.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``operation`` is the capability the actor must hold.
    ``records_review=True`` marks the transition that persists the
    reviewer-entered justification count and validated amount.
    """
    from_state: SubmissionState
    to_state: SubmissionState
    action: str
    operation: Operation
    guard: Guard | None = None
    records_review: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a submission lifecycle."""
    name: str
    entity_type: str
    description: str
    initial_state: SubmissionState
    states: tuple[SubmissionState, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[SubmissionState, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action} references unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {t.from_state.value} has outgoing transition"
                )
        self.operations()

    def find_transition(
        self, current_state: SubmissionState, action: str
    ) -> Transition | None:
        for t in self.transitions:
            if t.from_state == current_state and t.action == action:
                return t
        return None

    def actions(self) -> frozenset[str]:
        return frozenset(t.action for t in self.transitions)

    def operations(self) -> dict[str, Operation]:
        """The capability gating each action; one per action across all its transitions."""
        gating: dict[str, Operation] = {}
        for t in self.transitions:
            if gating.setdefault(t.action, t.operation) != t.operation:
                raise ValueError(
                    f"{self.name}: action {t.action} is gated by more than one operation"
                )
        return gating


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

REVIEW_FIGURES_VALID = Guard(
    name="review_figures_valid",
    description="Justification count and validated amount are non-negative",
)


# -----------------------------------------------------------------------------
# Workflows
# -----------------------------------------------------------------------------

VISIT_REPORT_WORKFLOW = Workflow(
    name="visit_report",
    entity_type="visit_report",
    description="Visit report review lifecycle",
    initial_state=SubmissionState.CREATED,
    states=(
        SubmissionState.CREATED,
        SubmissionState.VALIDATED,
        SubmissionState.REIMBURSED,
    ),
    transitions=(
        Transition(
            SubmissionState.CREATED, SubmissionState.VALIDATED,
            action="validate",
            operation=Operation.VALIDATE,
            guard=REVIEW_FIGURES_VALID,
            records_review=True,
        ),
        Transition(
            SubmissionState.VALIDATED, SubmissionState.REIMBURSED,
            action="reimburse",
            operation=Operation.REIMBURSE,
        ),
    ),
    terminal_states=(SubmissionState.REIMBURSED,),
)

EXPENSE_SHEET_WORKFLOW = Workflow(
    name="expense_sheet",
    entity_type="expense_sheet",
    description="Monthly expense sheet lifecycle",
    initial_state=SubmissionState.CREATED,
    states=(
        SubmissionState.CREATED,
        SubmissionState.VALIDATED,
        SubmissionState.REIMBURSED,
        SubmissionState.CLOSED,
    ),
    transitions=(
        Transition(
            SubmissionState.CREATED, SubmissionState.VALIDATED,
            action="validate",
            operation=Operation.VALIDATE,
            guard=REVIEW_FIGURES_VALID,
            records_review=True,
        ),
        Transition(
            SubmissionState.VALIDATED, SubmissionState.REIMBURSED,
            action="reimburse",
            operation=Operation.REIMBURSE,
        ),
        # Administrative closure
        Transition(
            SubmissionState.CREATED, SubmissionState.CLOSED,
            action="close",
            operation=Operation.CLOSE,
        ),
        Transition(
            SubmissionState.VALIDATED, SubmissionState.CLOSED,
            action="close",
            operation=Operation.CLOSE,
        ),
    ),
    terminal_states=(SubmissionState.REIMBURSED, SubmissionState.CLOSED),
)

# Forward order used to check that observed state sequences never regress.
STATE_RANK: dict[SubmissionState, int] = {
    SubmissionState.CREATED: 0,
    SubmissionState.VALIDATED: 1,
    SubmissionState.REIMBURSED: 2,
    SubmissionState.CLOSED: 2,
}
