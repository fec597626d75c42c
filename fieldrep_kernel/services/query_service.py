"""
Team/Period Query Service (``fieldrep_kernel.services.query_service``).

Responsibility
--------------
Read-only listings for review screens and reports: what is waiting for a
reviewer in a month, what a user owns, how many samples a representative
left with physicians, and per-state counts for a month.

Architecture position
---------------------
**Kernel services layer**.  Reads through the stores' ``find``; results
are ``ReviewQueueEntry`` projections, never a source of truth for state.

Invariants enforced
-------------------
* No mutation.
* Representatives only ever see their own submissions.
* A regional manager bound to a region only sees that region.
* An empty result is an empty list, never an error.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from fieldrep_kernel.domain.capabilities import (
    CapabilityMatrix,
    Operation,
    require_capability,
)
from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    VISIT_REPORT,
    ExpenseSheet,
    ReviewQueueEntry,
    VisitReport,
)
from fieldrep_kernel.domain.identity import Actor, Role
from fieldrep_kernel.domain.protocols import ExpenseSheetStore, VisitReportStore
from fieldrep_kernel.domain.values import ZERO, PeriodKey
from fieldrep_kernel.domain.workflow import SubmissionState
from fieldrep_kernel.exceptions import ForbiddenError
from fieldrep_kernel.logging_config import get_logger

logger = get_logger("services.query")

PENDING_ACTIONS: dict[SubmissionState, str] = {
    SubmissionState.CREATED: "validate",
    SubmissionState.VALIDATED: "reimburse",
}

ENTITY_TYPES = (VISIT_REPORT, EXPENSE_SHEET)


@dataclass(frozen=True)
class PeriodSummary:
    """Per-state counts and validated totals for one month, in the actor's scope."""
    period: PeriodKey
    visit_reports_by_state: dict[str, int] = field(default_factory=dict)
    expense_sheets_by_state: dict[str, int] = field(default_factory=dict)
    validated_total: Decimal = ZERO
    reimbursed_total: Decimal = ZERO


def to_queue_entry(entity: VisitReport | ExpenseSheet) -> ReviewQueueEntry:
    if isinstance(entity, VisitReport):
        entity_type, reference_date = VISIT_REPORT, entity.visit_date
    else:
        entity_type, reference_date = EXPENSE_SHEET, entity.period.first_day
    return ReviewQueueEntry(
        entity_type=entity_type,
        entity_id=entity.id,
        owner_id=entity.owner_id,
        region_id=entity.region_id,
        period=entity.period,
        reference_date=reference_date,
        state=entity.state,
        pending_action=PENDING_ACTIONS.get(entity.state),
        amount=entity.validated_amount,
        justification_count=entity.justification_count,
    )


class TeamPeriodQueryService:
    """Scoped, read-only queries over both submission types."""

    def __init__(
        self,
        visit_reports: VisitReportStore,
        expense_sheets: ExpenseSheetStore,
        capabilities: CapabilityMatrix | None = None,
    ) -> None:
        self._visit_reports = visit_reports
        self._expense_sheets = expense_sheets
        self._capabilities = capabilities

    def list_pending(
        self,
        actor: Actor | None,
        period: PeriodKey | str,
        entity_type: str | None = None,
    ) -> list[ReviewQueueEntry]:
        """Submissions of the month awaiting validation or reimbursement.

        Reviewers see everything in their scope; representatives see their
        own pending submissions.
        """
        require_capability(actor, Operation.LIST_PENDING, self._capabilities)
        key = PeriodKey.parse(period)
        owner_id, region_id = self._scope(actor)
        entries = self._collect(
            key, PENDING_ACTIONS.keys(), owner_id, region_id, entity_type
        )
        logger.debug(
            "pending_listed",
            extra={"period": str(key), "count": len(entries), **actor.log_fields()},
        )
        return entries

    def list_owned(
        self,
        actor: Actor | None,
        period: PeriodKey | str,
        states: Iterable[SubmissionState] | None = None,
        entity_type: str | None = None,
    ) -> list[ReviewQueueEntry]:
        """The actor's own submissions of the month, in any (or the given) state."""
        require_capability(actor, Operation.LIST_OWNED, self._capabilities)
        key = PeriodKey.parse(period)
        return self._collect(key, states, actor.id, None, entity_type)

    def sample_distribution(
        self,
        actor: Actor | None,
        period: PeriodKey | str,
        representative_id: str | None = None,
    ) -> dict[str, int]:
        """Total offered sample quantity per product for one representative."""
        require_capability(actor, Operation.SAMPLE_SUMMARY, self._capabilities)
        key = PeriodKey.parse(period)
        target = representative_id or actor.id
        if actor.role == Role.REPRESENTATIVE and target != actor.id:
            raise ForbiddenError(
                Operation.SAMPLE_SUMMARY.value,
                "representatives may only query their own samples",
                **actor.log_fields(),
            )
        _, region_id = self._scope(actor)
        totals: Counter[str] = Counter()
        for report in self._visit_reports.find(
            period=key, owner_id=target, region_id=region_id
        ):
            for sample in report.offered_samples:
                totals[sample.product_id] += sample.quantity
        return dict(sorted(totals.items()))

    def period_summary(self, actor: Actor | None, period: PeriodKey | str) -> PeriodSummary:
        """Counts per state and validated totals of the month in the actor's scope."""
        require_capability(actor, Operation.PERIOD_SUMMARY, self._capabilities)
        key = PeriodKey.parse(period)
        owner_id, region_id = self._scope(actor)
        reports = self._visit_reports.find(period=key, owner_id=owner_id, region_id=region_id)
        sheets = self._expense_sheets.find(period=key, owner_id=owner_id, region_id=region_id)

        validated_total = ZERO
        reimbursed_total = ZERO
        for sheet in sheets:
            if sheet.validated_amount is None:
                continue
            if sheet.state in (SubmissionState.VALIDATED, SubmissionState.REIMBURSED):
                validated_total += sheet.validated_amount
            if sheet.state == SubmissionState.REIMBURSED:
                reimbursed_total += sheet.validated_amount

        return PeriodSummary(
            period=key,
            visit_reports_by_state=dict(Counter(r.state.value for r in reports)),
            expense_sheets_by_state=dict(Counter(s.state.value for s in sheets)),
            validated_total=validated_total,
            reimbursed_total=reimbursed_total,
        )

    # -----------------------------------------------------------------

    @staticmethod
    def _scope(actor: Actor) -> tuple[str | None, str | None]:
        """(owner_id, region_id) filters implied by the actor's role."""
        if actor.role == Role.REPRESENTATIVE:
            return actor.id, None
        if actor.role == Role.REGIONAL_MANAGER:
            return None, actor.region_id
        return None, None

    def _collect(
        self,
        period: PeriodKey,
        states: Iterable[SubmissionState] | None,
        owner_id: str | None,
        region_id: str | None,
        entity_type: str | None,
    ) -> list[ReviewQueueEntry]:
        if entity_type is not None and entity_type not in ENTITY_TYPES:
            raise ValueError(f"Unknown entity type: {entity_type!r}")
        wanted = None if states is None else list(states)
        entities: list[VisitReport | ExpenseSheet] = []
        if entity_type in (None, VISIT_REPORT):
            entities.extend(
                self._visit_reports.find(
                    period=period, states=wanted, owner_id=owner_id, region_id=region_id
                )
            )
        if entity_type in (None, EXPENSE_SHEET):
            entities.extend(
                self._expense_sheets.find(
                    period=period, states=wanted, owner_id=owner_id, region_id=region_id
                )
            )
        entries = [to_queue_entry(e) for e in entities]
        return sorted(entries, key=lambda e: (e.reference_date, str(e.entity_id)))
