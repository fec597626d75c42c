"""
Approval State Machine (``fieldrep_kernel.services.approval_service``).

Responsibility
--------------
Apply ``validate``, ``reimburse`` and ``close`` to visit reports and
expense sheets.  One code path serves every entity type: the workflow
table says which transitions exist, the capability matrix says who may
fire them, and the store's compare-and-swap makes each one atomic.

Architecture position
---------------------
**Kernel services layer** -- thin coordinator.  Pure decisions live in
``domain.workflow``, ``domain.capabilities`` and ``domain.aggregation``;
persistence in the stores.

Evaluation order
----------------
1. Capability check for the action's operation (``ForbiddenError``).
2. Load the entity (``EntityNotFoundError``).
3. Regional scope for scoped regional managers (``ForbiddenError``).
4. Transition lookup from the current state
   (``InvalidStateTransitionError``).
5. Guard ``review_figures_valid`` on the validate transition
   (``ValidationError``).
6. Compare-and-swap from the observed state.  When it matches nothing, a
   concurrent caller won; the loser gets ``InvalidStateTransitionError``
   with the state it lost to.

Every attempt emits one ``workflow_transition`` log record.

Invariants enforced
-------------------
* States only move forward along the workflow; terminal states accept no
  action.
* No transition is reported as done unless its atomic write succeeded.
* The reviewer-entered figures are what is persisted; computed totals are
  only suggestions.
* The kernel never retries.
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Any
from uuid import UUID

from fieldrep_kernel.domain.aggregation import (
    ExpenseTotals,
    ReviewRules,
    compute_default_total,
    compute_line_totals,
    suggest_visit_report_total,
)
from fieldrep_kernel.domain.capabilities import (
    CapabilityMatrix,
    Operation,
    check_capability,
)
from fieldrep_kernel.domain.clock import Clock, SystemClock
from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    VISIT_REPORT,
    ExpenseSheet,
    Submission,
    TransitionRecord,
    VisitReport,
)
from fieldrep_kernel.domain.identity import Actor, Role
from fieldrep_kernel.domain.protocols import (
    ExpenseSheetStore,
    ReferenceCatalog,
    VisitReportStore,
)
from fieldrep_kernel.domain.validation import review_figure_violations
from fieldrep_kernel.domain.values import to_money
from fieldrep_kernel.domain.workflow import (
    EXPENSE_SHEET_WORKFLOW,
    VISIT_REPORT_WORKFLOW,
    Transition,
    Workflow,
)
from fieldrep_kernel.exceptions import (
    ForbiddenError,
    InvalidStateTransitionError,
    ValidationError,
)
from fieldrep_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.approval")

OUTCOME_SUCCESS = "success"
OUTCOME_FORBIDDEN = "forbidden"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_LOST_RACE = "lost_race"
OUTCOME_INVALID_AMOUNTS = "invalid_amounts"

def _emit_workflow_trace(
    workflow: Workflow,
    action: str,
    entity_id: UUID,
    actor: Actor | None,
    outcome: str,
    reason: str,
    started: float,
    from_state: str | None = None,
    to_state: str | None = None,
) -> None:
    """Emit one structured record per transition attempt."""
    extra: dict[str, Any] = {
        "workflow": workflow.name,
        "action": action,
        "entity_type": workflow.entity_type,
        "entity_id": str(entity_id),
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round((time.monotonic() - started) * 1000, 3),
    }
    if from_state is not None:
        extra["from_state"] = from_state
    if to_state is not None:
        extra["to_state"] = to_state
    if actor is not None:
        extra.update(actor.log_fields())
    if outcome == OUTCOME_SUCCESS:
        logger.info("workflow_transition", extra=extra)
    else:
        logger.warning("workflow_transition", extra=extra)


class ApprovalStateMachine:
    """Role-gated, atomic state transitions for both submission types."""

    def __init__(
        self,
        visit_reports: VisitReportStore,
        expense_sheets: ExpenseSheetStore,
        catalog: ReferenceCatalog,
        clock: Clock | None = None,
        review_rules: ReviewRules | None = None,
        capabilities: CapabilityMatrix | None = None,
    ) -> None:
        self._stores: dict[str, Any] = {
            VISIT_REPORT: visit_reports,
            EXPENSE_SHEET: expense_sheets,
        }
        self._workflows: dict[str, Workflow] = {
            VISIT_REPORT: VISIT_REPORT_WORKFLOW,
            EXPENSE_SHEET: EXPENSE_SHEET_WORKFLOW,
        }
        # Actions are gated before the entity is read.
        self._action_operations: dict[str, Operation] = {}
        for workflow in self._workflows.values():
            for action, operation in workflow.operations().items():
                if self._action_operations.setdefault(action, operation) != operation:
                    raise ValueError(f"Action {action!r} is gated differently across workflows")
        self._catalog = catalog
        self._clock = clock or SystemClock()
        self._review_rules = review_rules or ReviewRules()
        self._capabilities = capabilities

    # -----------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------

    def validate_visit_report(
        self,
        report_id: UUID,
        actor: Actor,
        justification_count: int | None = None,
        validated_amount: Decimal | str | int | None = None,
    ) -> VisitReport:
        return self.transition(
            VISIT_REPORT, report_id, "validate", actor,
            justification_count=justification_count,
            validated_amount=validated_amount,
        )

    def reimburse_visit_report(self, report_id: UUID, actor: Actor) -> VisitReport:
        return self.transition(VISIT_REPORT, report_id, "reimburse", actor)

    def validate_expense_sheet(
        self,
        sheet_id: UUID,
        actor: Actor,
        justification_count: int | None = None,
        validated_amount: Decimal | str | int | None = None,
    ) -> ExpenseSheet:
        """Validate a sheet.

        Unless the reviewer supplies them, the justification count is 0
        and the validated amount is the default total at current tariffs.
        """
        return self.transition(
            EXPENSE_SHEET, sheet_id, "validate", actor,
            justification_count=justification_count,
            validated_amount=validated_amount,
        )

    def reimburse_expense_sheet(self, sheet_id: UUID, actor: Actor) -> ExpenseSheet:
        return self.transition(EXPENSE_SHEET, sheet_id, "reimburse", actor)

    def close_expense_sheet(self, sheet_id: UUID, actor: Actor) -> ExpenseSheet:
        return self.transition(EXPENSE_SHEET, sheet_id, "close", actor)

    def transition(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor: Actor | None,
        *,
        justification_count: int | None = None,
        validated_amount: Decimal | str | int | None = None,
    ) -> Submission:
        """Apply ``action`` to an entity and return its new state.

        Raises:
            ForbiddenError: role or regional scope does not permit it.
            EntityNotFoundError: unknown id.
            InvalidStateTransitionError: not allowed from the current
                state, including losing a race to a concurrent caller.
            ValidationError: negative or malformed review figures.
        """
        workflow = self._workflows.get(entity_type)
        if workflow is None:
            raise ValueError(f"Unknown entity type: {entity_type!r}")
        operation = self._action_operations.get(action)
        if operation is None:
            raise ValueError(f"Unknown action: {action!r}")
        store = self._stores[entity_type]
        started = time.monotonic()
        context = {"actor_id": actor.id, "actor_role": actor.role.value} if actor else {}

        with LogContext.bind(entity_type=entity_type, entity_id=str(entity_id), **context):
            allowed, reason = check_capability(actor, operation, self._capabilities)
            if not allowed:
                _emit_workflow_trace(
                    workflow, action, entity_id, actor, OUTCOME_FORBIDDEN, reason, started
                )
                raise ForbiddenError(
                    operation.value, reason,
                    entity_type=entity_type, entity_id=str(entity_id), **context,
                )

            entity = store.get(entity_id)
            self._require_scope(workflow, entity, action, operation, actor, started)

            t = workflow.find_transition(entity.state, action)
            if t is None:
                _emit_workflow_trace(
                    workflow, action, entity_id, actor, OUTCOME_NO_TRANSITION,
                    f"No transition from '{entity.state.value}' via action '{action}' "
                    f"in workflow '{workflow.name}'",
                    started, from_state=entity.state.value,
                )
                raise InvalidStateTransitionError(
                    action, entity.state.value,
                    entity_type=entity_type, entity_id=str(entity_id), **context,
                )

            now = self._clock.now()
            extra_fields: dict[str, Any] = {"updated_at": now}
            if t.records_review:
                extra_fields.update(
                    self._review_figures(
                        workflow, entity, t, actor, started,
                        justification_count, validated_amount,
                    )
                )

            record = TransitionRecord(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                from_state=t.from_state,
                to_state=t.to_state,
                actor_id=actor.id,
                actor_role=actor.role.value,
                at=now,
                justification_count=extra_fields.get("justification_count"),
                validated_amount=extra_fields.get("validated_amount"),
            )
            updated = store.compare_and_swap_state(
                entity_id, t.from_state, t.to_state, extra_fields, record
            )
            if updated is None:
                latest = store.get(entity_id)
                _emit_workflow_trace(
                    workflow, action, entity_id, actor, OUTCOME_LOST_RACE,
                    f"State changed to '{latest.state.value}' before the write",
                    started, from_state=t.from_state.value,
                )
                raise InvalidStateTransitionError(
                    action, latest.state.value,
                    entity_type=entity_type, entity_id=str(entity_id), **context,
                )

            _emit_workflow_trace(
                workflow, action, entity_id, actor, OUTCOME_SUCCESS,
                f"{t.from_state.value} -> {t.to_state.value}",
                started, from_state=t.from_state.value, to_state=t.to_state.value,
            )
            return updated

    # -----------------------------------------------------------------
    # Suggestions for the validation dialog
    # -----------------------------------------------------------------

    def suggested_expense_total(self, sheet_id: UUID, actor: Actor) -> Decimal:
        """Default total of a sheet at the tariffs currently in effect."""
        sheet = self._readable(EXPENSE_SHEET, sheet_id, actor)
        return compute_default_total(sheet, self._catalog)

    def expense_breakdown(self, sheet_id: UUID, actor: Actor) -> ExpenseTotals:
        """Per-line totals of a sheet, for its owner or a reviewer."""
        sheet = self._readable(EXPENSE_SHEET, sheet_id, actor)
        return compute_line_totals(sheet, self._catalog)

    def suggested_visit_report_total(self, report_id: UUID, actor: Actor) -> Decimal:
        """Indicative total of a report from its offered samples."""
        report = self._readable(VISIT_REPORT, report_id, actor)
        return suggest_visit_report_total(report, self._review_rules)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _readable(self, entity_type: str, entity_id: UUID, actor: Actor | None) -> Submission:
        """Load an entity its owner or an in-scope reviewer may look at."""
        allowed, reason = check_capability(actor, Operation.VALIDATE, self._capabilities)
        entity = self._stores[entity_type].get(entity_id)
        if actor is not None and entity.owner_id == actor.id:
            return entity
        if not allowed or not _in_scope(actor, entity):
            raise ForbiddenError(
                "view_totals",
                reason or "submission outside the reviewer's region",
                entity_type=entity_type,
                entity_id=str(entity_id),
                actor_id=actor.id if actor else None,
                actor_role=actor.role.value if actor else None,
            )
        return entity

    def _require_scope(
        self,
        workflow: Workflow,
        entity: Submission,
        action: str,
        operation: Operation,
        actor: Actor,
        started: float,
    ) -> None:
        if _in_scope(actor, entity):
            return
        reason = f"entity belongs to region '{entity.region_id}', actor to '{actor.region_id}'"
        _emit_workflow_trace(
            workflow, action, entity.id, actor, OUTCOME_FORBIDDEN, reason, started,
            from_state=entity.state.value,
        )
        raise ForbiddenError(
            operation.value, reason,
            entity_type=workflow.entity_type, entity_id=str(entity.id),
            **actor.log_fields(),
        )

    def _review_figures(
        self,
        workflow: Workflow,
        entity: Submission,
        t: Transition,
        actor: Actor,
        started: float,
        justification_count: int | None,
        validated_amount: Decimal | str | int | None,
    ) -> dict[str, Any]:
        """Resolve and check the figures persisted by a validate transition."""
        if isinstance(entity, ExpenseSheet):
            if justification_count is None:
                justification_count = 0
            if validated_amount is None:
                validated_amount = compute_default_total(entity, self._catalog)

        violations = review_figure_violations(justification_count, validated_amount)
        if violations:
            _emit_workflow_trace(
                workflow, t.action, entity.id, actor, OUTCOME_INVALID_AMOUNTS,
                f"Guard not satisfied: {t.guard.name if t.guard else 'review figures'}",
                started, from_state=entity.state.value,
            )
            raise ValidationError(
                violations,
                entity_type=workflow.entity_type,
                entity_id=str(entity.id),
                **actor.log_fields(),
            )
        return {
            "justification_count": justification_count,
            "validated_amount": (
                None if validated_amount is None else to_money(validated_amount)
            ),
        }


def _in_scope(actor: Actor, entity: Submission) -> bool:
    """Regional managers with a region only reach entities of that region."""
    if actor.role != Role.REGIONAL_MANAGER or actor.region_id is None:
        return True
    return entity.region_id == actor.region_id
