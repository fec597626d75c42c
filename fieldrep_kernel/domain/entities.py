"""
Field Reporting Domain Models.

The nouns of the approval workflow: visit reports, expense sheets, their
lines, the inputs representatives submit, the transition log and the
review-queue projection.  All entities are frozen; a transition produces a
new value via ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping, Sequence
from uuid import UUID

from fieldrep_kernel.domain.values import PeriodKey
from fieldrep_kernel.domain.workflow import SubmissionState

VISIT_REPORT = "visit_report"
EXPENSE_SHEET = "expense_sheet"


class VisitReason(str, Enum):
    """Why the representative visited the physician."""
    PERIODIC = "periodic"
    UPDATE = "update"
    FOLLOW_UP = "follow_up"
    DOCTOR_REQUEST = "doctor_request"
    OTHER = "other"


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class OfferedSample:
    """Samples of one product left with the physician (traceability record)."""
    product_id: str
    quantity: int


@dataclass(frozen=True)
class VisitReport:
    """One sales visit."""
    id: UUID
    visit_date: date
    reason_code: VisitReason
    narrative: str
    representative_id: str
    doctor_id: str
    presented_product_ids: tuple[str, ...]
    offered_samples: tuple[OfferedSample, ...] = ()
    reason_detail: str = ""
    confidence_score: int = 3
    impact_level: ImpactLevel | None = None
    is_substitute: bool = False
    substitute_name: str = ""
    competitor_notes: str = ""
    documentation_notes: str = ""
    region_id: str | None = None
    state: SubmissionState = SubmissionState.CREATED
    justification_count: int | None = None
    validated_amount: Decimal | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def owner_id(self) -> str:
        return self.representative_id

    @property
    def period(self) -> PeriodKey:
        return PeriodKey.of(self.visit_date)

    def samples_by_product(self) -> dict[str, int]:
        return {s.product_id: s.quantity for s in self.offered_samples}


@dataclass(frozen=True)
class FlatRateLine:
    """Quantity of a tariffed expense type (kilometres, nights, meals...)."""
    expense_type_id: str
    quantity: int


@dataclass(frozen=True)
class ItemizedLine:
    """A free-form expense with an explicit amount."""
    label: str
    line_date: date
    amount: Decimal


@dataclass(frozen=True)
class ExpenseSheet:
    """One representative's monthly expense claim."""
    id: UUID
    owner_id: str
    period: PeriodKey
    flat_rate_lines: tuple[FlatRateLine, ...] = ()
    itemized_lines: tuple[ItemizedLine, ...] = ()
    region_id: str | None = None
    state: SubmissionState = SubmissionState.CREATED
    justification_count: int = 0
    validated_amount: Decimal | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def quantities_by_type(self) -> dict[str, int]:
        return {line.expense_type_id: line.quantity for line in self.flat_rate_lines}


Submission = VisitReport | ExpenseSheet


def entity_type_of(entity: Submission) -> str:
    return VISIT_REPORT if isinstance(entity, VisitReport) else EXPENSE_SHEET


# ---------------------------------------------------------------------------
# Inputs (as entered by a representative; not yet validated)
# ---------------------------------------------------------------------------


@dataclass
class VisitReportInput:
    visit_date: date
    reason_code: VisitReason | str
    narrative: str
    doctor_id: str
    presented_product_ids: Sequence[str]
    offered_samples: Mapping[str, int] = field(default_factory=dict)
    reason_detail: str = ""
    confidence_score: int = 3
    impact_level: ImpactLevel | str | None = None
    is_substitute: bool = False
    substitute_name: str = ""
    competitor_notes: str = ""
    documentation_notes: str = ""


@dataclass
class ItemizedLineInput:
    label: str
    line_date: date | None
    amount: Decimal | int | str


@dataclass
class ExpenseSheetInput:
    month: PeriodKey | str
    flat_rate_lines: Mapping[str, int] = field(default_factory=dict)
    itemized_lines: Sequence[ItemizedLineInput] = ()


# ---------------------------------------------------------------------------
# Transition log and projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionRecord:
    """Append-only trace of one committed state transition."""
    entity_type: str
    entity_id: UUID
    action: str
    from_state: SubmissionState
    to_state: SubmissionState
    actor_id: str
    actor_role: str
    at: datetime
    justification_count: int | None = None
    validated_amount: Decimal | None = None


@dataclass(frozen=True)
class ReviewQueueEntry:
    """Read-only projection of a submission for listing screens.

    Never a source of truth for state.
    """
    entity_type: str
    entity_id: UUID
    owner_id: str
    region_id: str | None
    period: PeriodKey
    reference_date: date
    state: SubmissionState
    pending_action: str | None
    amount: Decimal | None
    justification_count: int | None
