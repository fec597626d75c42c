"""
Contract tests for the store and catalog collaborators.

Each test runs against the in-memory and the SQLAlchemy implementations.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    ExpenseSheet,
    FlatRateLine,
    ItemizedLine,
    OfferedSample,
    TransitionRecord,
    VisitReason,
    VisitReport,
)
from fieldrep_kernel.domain.values import PeriodKey
from fieldrep_kernel.domain.workflow import SubmissionState
from fieldrep_kernel.exceptions import (
    CatalogItemNotFoundError,
    CollaboratorUnavailableError,
    DuplicateExpenseSheetError,
    EntityNotFoundError,
)
from fieldrep_kernel.stores.sql import SqlExpenseSheetStore

S = SubmissionState
NOW = datetime(2024, 3, 20, 9, 0, 0, tzinfo=timezone.utc)


def new_report(**overrides) -> VisitReport:
    fields = {
        "id": uuid4(),
        "visit_date": date(2024, 3, 12),
        "reason_code": VisitReason.FOLLOW_UP,
        "narrative": "Follow-up on the titration schedule",
        "representative_id": "u1",
        "doctor_id": "d1",
        "presented_product_ids": ("p2", "p1"),
        "offered_samples": (OfferedSample("p2", 4), OfferedSample("p1", 1)),
        "region_id": "north",
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return VisitReport(**fields)


def new_sheet(owner_id="u1", period=PeriodKey(2024, 3)) -> ExpenseSheet:
    return ExpenseSheet(
        id=uuid4(),
        owner_id=owner_id,
        period=period,
        flat_rate_lines=(FlatRateLine("km", 10), FlatRateLine("NUI", 1)),
        itemized_lines=(ItemizedLine("Parking", date(2024, 3, 5), Decimal("12.30")),),
        region_id="north",
        created_at=NOW,
        updated_at=NOW,
    )


def record_for(entity, action="validate", to_state=S.VALIDATED, **extra) -> TransitionRecord:
    return TransitionRecord(
        entity_type=EXPENSE_SHEET,
        entity_id=entity.id,
        action=action,
        from_state=entity.state,
        to_state=to_state,
        actor_id="acc1",
        actor_role="accountant",
        at=NOW,
        **extra,
    )


class TestVisitReportStore:

    def test_round_trip_keeps_line_order(self, backend):
        report = backend.visit_reports.create(new_report())
        stored = backend.visit_reports.get(report.id)

        assert stored.presented_product_ids == ("p2", "p1")
        assert stored.offered_samples == (OfferedSample("p2", 4), OfferedSample("p1", 1))
        assert stored.created_at == NOW
        assert stored.version == 1

    def test_get_unknown(self, backend):
        with pytest.raises(EntityNotFoundError):
            backend.visit_reports.get(uuid4())

    def test_compare_and_swap(self, backend):
        report = backend.visit_reports.create(new_report())
        updated = backend.visit_reports.compare_and_swap_state(
            report.id, S.CREATED, S.VALIDATED,
            {"justification_count": 1, "validated_amount": Decimal("20.00")},
            record_for(report),
        )
        assert updated.state == S.VALIDATED
        assert updated.version == 2
        assert updated.validated_amount == Decimal("20.00")
        assert updated.presented_product_ids == ("p2", "p1")

    def test_compare_and_swap_from_wrong_state(self, backend):
        report = backend.visit_reports.create(new_report())
        miss = backend.visit_reports.compare_and_swap_state(
            report.id, S.VALIDATED, S.REIMBURSED, {}, record_for(report, "reimburse")
        )
        assert miss is None
        assert backend.visit_reports.get(report.id).version == 1
        assert backend.visit_reports.transitions_for(report.id) == []

    def test_compare_and_swap_unknown(self, backend):
        ghost = new_report()
        with pytest.raises(EntityNotFoundError):
            backend.visit_reports.compare_and_swap_state(
                ghost.id, S.CREATED, S.VALIDATED, {}, record_for(ghost)
            )

    def test_replace_if_unchanged_checks_version(self, backend):
        report = backend.visit_reports.create(new_report())
        edited = new_report(id=report.id, presented_product_ids=("p3",), offered_samples=())

        assert backend.visit_reports.replace_if_unchanged(edited, S.CREATED, 7) is None
        updated = backend.visit_reports.replace_if_unchanged(edited, S.CREATED, 1)
        assert updated.presented_product_ids == ("p3",)
        assert updated.offered_samples == ()
        assert updated.version == 2

    def test_delete_if_state(self, backend):
        report = backend.visit_reports.create(new_report())
        assert backend.visit_reports.delete_if_state(report.id, S.VALIDATED) is False
        assert backend.visit_reports.delete_if_state(report.id, S.CREATED) is True
        with pytest.raises(EntityNotFoundError):
            backend.visit_reports.get(report.id)

    def test_find_filters(self, backend):
        march = backend.visit_reports.create(new_report())
        backend.visit_reports.create(new_report(visit_date=date(2024, 4, 1)))
        backend.visit_reports.create(new_report(representative_id="u2", region_id="south"))

        found = backend.visit_reports.find(period=PeriodKey(2024, 3), owner_id="u1")
        assert [r.id for r in found] == [march.id]
        assert len(backend.visit_reports.find(region_id="south")) == 1
        assert backend.visit_reports.find(states=[S.VALIDATED]) == []


class TestExpenseSheetStore:

    def test_round_trip(self, backend):
        sheet = backend.expense_sheets.create(new_sheet())
        stored = backend.expense_sheets.get(sheet.id)

        assert stored.period == PeriodKey(2024, 3)
        assert stored.quantities_by_type() == {"km": 10, "NUI": 1}
        assert stored.itemized_lines == sheet.itemized_lines
        assert stored.justification_count == 0

    def test_one_sheet_per_owner_and_month(self, backend):
        backend.expense_sheets.create(new_sheet())
        with pytest.raises(DuplicateExpenseSheetError):
            backend.expense_sheets.create(new_sheet())
        assert len(backend.expense_sheets.find(owner_id="u1")) == 1

    def test_get_for_owner_period(self, backend):
        sheet = backend.expense_sheets.create(new_sheet())
        assert backend.expense_sheets.get_for_owner_period("u1", PeriodKey(2024, 3)).id == sheet.id
        assert backend.expense_sheets.get_for_owner_period("u1", PeriodKey(2024, 4)) is None

    def test_transition_log_in_order(self, backend):
        sheet = backend.expense_sheets.create(new_sheet())
        validated = backend.expense_sheets.compare_and_swap_state(
            sheet.id, S.CREATED, S.VALIDATED,
            {"justification_count": 2, "validated_amount": Decimal("97.30")},
            record_for(sheet, justification_count=2, validated_amount=Decimal("97.30")),
        )
        backend.expense_sheets.compare_and_swap_state(
            sheet.id, S.VALIDATED, S.REIMBURSED, {},
            record_for(validated, "reimburse", S.REIMBURSED),
        )

        records = backend.expense_sheets.transitions_for(sheet.id)
        assert [r.to_state for r in records] == [S.VALIDATED, S.REIMBURSED]
        assert records[0].validated_amount == Decimal("97.30")
        assert records[0].at == NOW

    def test_replace_lines(self, backend):
        sheet = backend.expense_sheets.create(new_sheet())
        edited = ExpenseSheet(
            id=sheet.id, owner_id="u1", period=sheet.period,
            flat_rate_lines=(FlatRateLine("km", 42),), region_id="north",
            created_at=NOW, updated_at=NOW,
        )
        updated = backend.expense_sheets.replace_if_unchanged(edited, S.CREATED, 1)
        assert updated.quantities_by_type() == {"km": 42}
        assert updated.itemized_lines == ()


class TestReferenceCatalog:

    def test_lookups(self, backend):
        assert backend.catalog.doctor_exists("d1")
        assert not backend.catalog.doctor_exists("d9")
        assert backend.catalog.product_exists("p3")
        assert backend.catalog.expense_type_exists("NUI")
        assert backend.catalog.tariff_for("km") == Decimal("0.50")

    def test_unknown_tariff(self, backend):
        with pytest.raises(CatalogItemNotFoundError):
            backend.catalog.tariff_for("boat")


class _FailingSession:
    """Session stand-in whose every statement fails at the driver."""

    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    def get(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    def scalars(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    def rollback(self):
        pass

    def commit(self):
        pass

    def close(self):
        pass


class TestStorageFailure:

    def test_driver_error_becomes_collaborator_unavailable(self):
        store = SqlExpenseSheetStore(session_factory=_FailingSession)

        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            store.find(owner_id="u1")
        assert exc_info.value.collaborator == "database"
        assert exc_info.value.operation == "find"
        assert isinstance(exc_info.value.__cause__, OperationalError)
