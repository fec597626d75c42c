"""
Module: fieldrep_kernel.selectors.submission_selector
Responsibility: Read-only queries over visit reports, expense sheets, the
    transition log and the reference catalog.  Converts ORM rows to the
    frozen domain entities.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Read-only.
    - Period filters are half-open date ranges on visit_date for visit
      reports and exact (year, month) matches for expense sheets.
    - Multi-row results are ordered deterministically.

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from fieldrep_kernel.db.types import round_money
from fieldrep_kernel.domain.entities import (
    ExpenseSheet,
    TransitionRecord,
    VisitReport,
)
from fieldrep_kernel.domain.values import PeriodKey
from fieldrep_kernel.domain.workflow import STATE_RANK, SubmissionState
from fieldrep_kernel.models.catalog import DoctorModel, ExpenseTypeModel, ProductModel
from fieldrep_kernel.models.expense_sheet import ExpenseSheetModel
from fieldrep_kernel.models.transition import TransitionRecordModel
from fieldrep_kernel.models.visit_report import VisitReportModel
from fieldrep_kernel.selectors.base import BaseSelector


def _state_values(states: Iterable[SubmissionState] | None) -> list[str] | None:
    if states is None:
        return None
    return [SubmissionState(s).value for s in states]


class VisitReportSelector(BaseSelector[VisitReportModel]):
    """Visit report queries. Children are eager-loaded with selectin."""

    model = VisitReportModel

    def get(self, report_id: UUID) -> VisitReport | None:
        return self._one(report_id)

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[VisitReport]:
        stmt = select(VisitReportModel)
        if period is not None:
            stmt = stmt.where(
                VisitReportModel.visit_date >= period.first_day,
                VisitReportModel.visit_date < period.next_first_day,
            )
        state_values = _state_values(states)
        if state_values is not None:
            stmt = stmt.where(VisitReportModel.state.in_(state_values))
        if owner_id is not None:
            stmt = stmt.where(VisitReportModel.representative_id == owner_id)
        if region_id is not None:
            stmt = stmt.where(VisitReportModel.region_id == region_id)
        stmt = stmt.order_by(VisitReportModel.visit_date, VisitReportModel.id)
        return self._all(stmt)


class ExpenseSheetSelector(BaseSelector[ExpenseSheetModel]):
    """Expense sheet queries."""

    model = ExpenseSheetModel

    def get(self, sheet_id: UUID) -> ExpenseSheet | None:
        return self._one(sheet_id)

    def get_for_owner_period(self, owner_id: str, period: PeriodKey) -> ExpenseSheet | None:
        stmt = select(ExpenseSheetModel).where(
            ExpenseSheetModel.owner_id == owner_id,
            ExpenseSheetModel.year == period.year,
            ExpenseSheetModel.month == period.month,
        )
        return self._first(stmt)

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[ExpenseSheet]:
        stmt = select(ExpenseSheetModel)
        if period is not None:
            stmt = stmt.where(
                ExpenseSheetModel.year == period.year,
                ExpenseSheetModel.month == period.month,
            )
        state_values = _state_values(states)
        if state_values is not None:
            stmt = stmt.where(ExpenseSheetModel.state.in_(state_values))
        if owner_id is not None:
            stmt = stmt.where(ExpenseSheetModel.owner_id == owner_id)
        if region_id is not None:
            stmt = stmt.where(ExpenseSheetModel.region_id == region_id)
        stmt = stmt.order_by(
            ExpenseSheetModel.year,
            ExpenseSheetModel.month,
            ExpenseSheetModel.owner_id,
            ExpenseSheetModel.id,
        )
        return self._all(stmt)


class TransitionSelector(BaseSelector[TransitionRecordModel]):
    """Transition log queries, oldest first."""

    model = TransitionRecordModel

    def for_entity(self, entity_id: UUID) -> list[TransitionRecord]:
        stmt = select(TransitionRecordModel).where(
            TransitionRecordModel.entity_id == entity_id
        )
        records = self._all(stmt)
        # States only advance, so the source state breaks timestamp ties.
        return sorted(records, key=lambda r: (r.at, STATE_RANK[r.from_state]))


class CatalogSelector(BaseSelector[DoctorModel]):
    """Existence and tariff lookups on the reference tables."""

    model = DoctorModel

    def doctor_exists(self, doctor_id: str) -> bool:
        return self.session.get(DoctorModel, doctor_id) is not None

    def product_exists(self, product_id: str) -> bool:
        return self.session.get(ProductModel, product_id) is not None

    def expense_type_exists(self, expense_type_id: str) -> bool:
        return self.session.get(ExpenseTypeModel, expense_type_id) is not None

    def tariff_for(self, expense_type_id: str) -> Decimal | None:
        model = self.session.get(ExpenseTypeModel, expense_type_id)
        return round_money(model.tariff) if model is not None else None
