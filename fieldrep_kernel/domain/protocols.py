"""
Collaborator contracts (``fieldrep_kernel.domain.protocols``).

Responsibility
--------------
Structural protocols for the two external collaborators of the kernel:
the persistence store (one per entity type) and the read-only reference
catalog.  Implementations live in ``fieldrep_kernel.stores``.

Invariants required of implementations
--------------------------------------
* ``compare_and_swap_state`` is atomic: it reads the current state, checks
  it equals ``expected_state``, writes the new state, the extra fields and
  the transition record, all or nothing.  It returns ``None`` when the
  state did not match, so that of two concurrent callers exactly one wins.
* ``replace_if_unchanged`` applies the same rule to edits, additionally
  requiring the entity version to match.
* Every successful write increments ``version``.
* Storage failures surface as ``CollaboratorUnavailableError``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable
from uuid import UUID

from fieldrep_kernel.domain.entities import (
    ExpenseSheet,
    TransitionRecord,
    VisitReport,
)
from fieldrep_kernel.domain.values import PeriodKey
from fieldrep_kernel.domain.workflow import SubmissionState


@runtime_checkable
class ReferenceCatalog(Protocol):
    """Read-only lookups of doctors, products and expense-type tariffs."""

    def doctor_exists(self, doctor_id: str) -> bool:
        ...

    def product_exists(self, product_id: str) -> bool:
        ...

    def expense_type_exists(self, expense_type_id: str) -> bool:
        ...

    def tariff_for(self, expense_type_id: str) -> Decimal:
        """Unit tariff in effect now; CatalogItemNotFoundError if unknown."""
        ...


@runtime_checkable
class VisitReportStore(Protocol):

    def get(self, entity_id: UUID) -> VisitReport:
        ...

    def create(self, entity: VisitReport) -> VisitReport:
        ...

    def compare_and_swap_state(
        self,
        entity_id: UUID,
        expected_state: SubmissionState,
        new_state: SubmissionState,
        extra_fields: Mapping[str, Any],
        record: TransitionRecord,
    ) -> VisitReport | None:
        ...

    def replace_if_unchanged(
        self,
        entity: VisitReport,
        expected_state: SubmissionState,
        expected_version: int,
    ) -> VisitReport | None:
        ...

    def delete_if_state(self, entity_id: UUID, expected_state: SubmissionState) -> bool:
        ...

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[VisitReport]:
        ...

    def transitions_for(self, entity_id: UUID) -> list[TransitionRecord]:
        ...


@runtime_checkable
class ExpenseSheetStore(Protocol):

    def get(self, entity_id: UUID) -> ExpenseSheet:
        ...

    def get_for_owner_period(self, owner_id: str, period: PeriodKey) -> ExpenseSheet | None:
        ...

    def create(self, entity: ExpenseSheet) -> ExpenseSheet:
        """Raise DuplicateExpenseSheetError if (owner, period) is taken."""
        ...

    def compare_and_swap_state(
        self,
        entity_id: UUID,
        expected_state: SubmissionState,
        new_state: SubmissionState,
        extra_fields: Mapping[str, Any],
        record: TransitionRecord,
    ) -> ExpenseSheet | None:
        ...

    def replace_if_unchanged(
        self,
        entity: ExpenseSheet,
        expected_state: SubmissionState,
        expected_version: int,
    ) -> ExpenseSheet | None:
        ...

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[ExpenseSheet]:
        ...

    def transitions_for(self, entity_id: UUID) -> list[TransitionRecord]:
        ...


def period_bounds(period: PeriodKey) -> tuple[date, date]:
    """Half-open [first_day, next_first_day) date range of a period."""
    return period.first_day, period.next_first_day
