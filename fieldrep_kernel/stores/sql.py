"""
SQLAlchemy collaborators (``fieldrep_kernel.stores.sql``).

Responsibility
--------------
Database-backed implementations of the store and catalog protocols.
Each operation runs in its own ``session_scope``: one transaction, commit
on success, rollback on any exception.

Architecture position
---------------------
**Kernel stores layer**.  Writes through ``fieldrep_kernel.models``,
reads through ``fieldrep_kernel.selectors``.

Invariants enforced
-------------------
* Compare-and-swap is a single guarded statement,
  ``UPDATE ... WHERE id = :id AND state = :expected``.  The database row
  lock serializes concurrent callers and the loser sees ``rowcount == 0``.
  The transition record is inserted in the same transaction.
* Edits are additionally guarded on ``version``.
* Deletes first take the same guarded row lock, then remove the lines
  and the report.
* Database failures other than integrity violations surface as
  ``CollaboratorUnavailableError``, with the driver error as ``__cause__``.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Generator, Iterable, Mapping
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from fieldrep_kernel.db.engine import session_scope
from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    VISIT_REPORT,
    ExpenseSheet,
    TransitionRecord,
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
from fieldrep_kernel.logging_config import get_logger
from fieldrep_kernel.models.expense_sheet import (
    ExpenseSheetModel,
    FlatRateLineModel,
    ItemizedLineModel,
)
from fieldrep_kernel.models.transition import TransitionRecordModel
from fieldrep_kernel.models.visit_report import (
    VisitReportModel,
    VisitReportProductModel,
    VisitReportSampleModel,
)
from fieldrep_kernel.selectors.submission_selector import (
    CatalogSelector,
    ExpenseSheetSelector,
    TransitionSelector,
    VisitReportSelector,
)

logger = get_logger("stores.sql")


class _SqlStore:
    entity_type: str = ""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _scope(self, operation: str) -> Generator[Session, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except IntegrityError:
            raise
        except DBAPIError as exc:
            logger.warning(
                "store_unavailable",
                extra={"entity_type": self.entity_type, "operation": operation},
            )
            raise CollaboratorUnavailableError(
                "database", operation, entity_type=self.entity_type
            ) from exc

    def _not_found(self, entity_id: UUID) -> EntityNotFoundError:
        return EntityNotFoundError(self.entity_type, str(entity_id))

    def transitions_for(self, entity_id: UUID) -> list[TransitionRecord]:
        with self._scope("transitions_for") as session:
            return TransitionSelector(session).for_entity(entity_id)


class SqlVisitReportStore(_SqlStore):
    entity_type = VISIT_REPORT

    def get(self, entity_id: UUID) -> VisitReport:
        with self._scope("get") as session:
            report = VisitReportSelector(session).get(entity_id)
        if report is None:
            raise self._not_found(entity_id)
        return report

    def create(self, entity: VisitReport) -> VisitReport:
        with self._scope("create") as session:
            session.add(VisitReportModel.from_dto(entity))
            session.flush()
        return entity

    def compare_and_swap_state(
        self,
        entity_id: UUID,
        expected_state: SubmissionState,
        new_state: SubmissionState,
        extra_fields: Mapping[str, Any],
        record: TransitionRecord,
    ) -> VisitReport | None:
        with self._scope("compare_and_swap_state") as session:
            result = session.execute(
                update(VisitReportModel)
                .where(
                    VisitReportModel.id == entity_id,
                    VisitReportModel.state == expected_state.value,
                )
                .values(
                    **dict(extra_fields),
                    state=new_state.value,
                    version=VisitReportModel.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if session.get(VisitReportModel, entity_id) is None:
                    raise self._not_found(entity_id)
                return None
            session.add(TransitionRecordModel.from_dto(record))
            session.flush()
            return VisitReportSelector(session).get(entity_id)

    def replace_if_unchanged(
        self,
        entity: VisitReport,
        expected_state: SubmissionState,
        expected_version: int,
    ) -> VisitReport | None:
        with self._scope("replace_if_unchanged") as session:
            values = VisitReportModel.header_values(entity)
            values["version"] = expected_version + 1
            result = session.execute(
                update(VisitReportModel)
                .where(
                    VisitReportModel.id == entity.id,
                    VisitReportModel.state == expected_state.value,
                    VisitReportModel.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            self._delete_lines(session, entity.id)
            products, samples = VisitReportModel.line_models(entity)
            session.add_all([*products, *samples])
            session.flush()
            return VisitReportSelector(session).get(entity.id)

    def delete_if_state(self, entity_id: UUID, expected_state: SubmissionState) -> bool:
        with self._scope("delete_if_state") as session:
            locked = session.execute(
                update(VisitReportModel)
                .where(
                    VisitReportModel.id == entity_id,
                    VisitReportModel.state == expected_state.value,
                )
                .values(version=VisitReportModel.version + 1)
                .execution_options(synchronize_session=False)
            )
            if locked.rowcount == 0:
                if session.get(VisitReportModel, entity_id) is None:
                    raise self._not_found(entity_id)
                return False
            self._delete_lines(session, entity_id)
            session.execute(
                delete(VisitReportModel)
                .where(VisitReportModel.id == entity_id)
                .execution_options(synchronize_session=False)
            )
            return True

    @staticmethod
    def _delete_lines(session: Session, report_id: UUID) -> None:
        for line_model in (VisitReportProductModel, VisitReportSampleModel):
            session.execute(
                delete(line_model)
                .where(line_model.report_id == report_id)
                .execution_options(synchronize_session=False)
            )

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[VisitReport]:
        with self._scope("find") as session:
            return VisitReportSelector(session).find(
                period=period, states=states, owner_id=owner_id, region_id=region_id
            )


class SqlExpenseSheetStore(_SqlStore):
    entity_type = EXPENSE_SHEET

    def get(self, entity_id: UUID) -> ExpenseSheet:
        with self._scope("get") as session:
            sheet = ExpenseSheetSelector(session).get(entity_id)
        if sheet is None:
            raise self._not_found(entity_id)
        return sheet

    def get_for_owner_period(self, owner_id: str, period: PeriodKey) -> ExpenseSheet | None:
        with self._scope("get_for_owner_period") as session:
            return ExpenseSheetSelector(session).get_for_owner_period(owner_id, period)

    def create(self, entity: ExpenseSheet) -> ExpenseSheet:
        duplicate = DuplicateExpenseSheetError(
            entity.owner_id, str(entity.period), entity_type=EXPENSE_SHEET
        )
        try:
            with self._scope("create") as session:
                selector = ExpenseSheetSelector(session)
                if selector.get_for_owner_period(entity.owner_id, entity.period) is not None:
                    raise duplicate
                session.add(ExpenseSheetModel.from_dto(entity))
                session.flush()
        except IntegrityError as exc:
            # A concurrent create won the unique (owner, year, month) slot.
            if self.get_for_owner_period(entity.owner_id, entity.period) is not None:
                raise duplicate from exc
            raise
        return entity

    def compare_and_swap_state(
        self,
        entity_id: UUID,
        expected_state: SubmissionState,
        new_state: SubmissionState,
        extra_fields: Mapping[str, Any],
        record: TransitionRecord,
    ) -> ExpenseSheet | None:
        with self._scope("compare_and_swap_state") as session:
            result = session.execute(
                update(ExpenseSheetModel)
                .where(
                    ExpenseSheetModel.id == entity_id,
                    ExpenseSheetModel.state == expected_state.value,
                )
                .values(
                    **dict(extra_fields),
                    state=new_state.value,
                    version=ExpenseSheetModel.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if session.get(ExpenseSheetModel, entity_id) is None:
                    raise self._not_found(entity_id)
                return None
            session.add(TransitionRecordModel.from_dto(record))
            session.flush()
            return ExpenseSheetSelector(session).get(entity_id)

    def replace_if_unchanged(
        self,
        entity: ExpenseSheet,
        expected_state: SubmissionState,
        expected_version: int,
    ) -> ExpenseSheet | None:
        with self._scope("replace_if_unchanged") as session:
            values = ExpenseSheetModel.header_values(entity)
            values["version"] = expected_version + 1
            result = session.execute(
                update(ExpenseSheetModel)
                .where(
                    ExpenseSheetModel.id == entity.id,
                    ExpenseSheetModel.state == expected_state.value,
                    ExpenseSheetModel.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            for line_model in (FlatRateLineModel, ItemizedLineModel):
                session.execute(
                    delete(line_model)
                    .where(line_model.sheet_id == entity.id)
                    .execution_options(synchronize_session=False)
                )
            flat_rate, itemized = ExpenseSheetModel.line_models(entity)
            session.add_all([*flat_rate, *itemized])
            session.flush()
            return ExpenseSheetSelector(session).get(entity.id)

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[ExpenseSheet]:
        with self._scope("find") as session:
            return ExpenseSheetSelector(session).find(
                period=period, states=states, owner_id=owner_id, region_id=region_id
            )


class SqlReferenceCatalog:
    """ReferenceCatalog reading the doctors, products and expense_types tables."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _selector(self, operation: str) -> Generator[CatalogSelector, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield CatalogSelector(session)
        except DBAPIError as exc:
            raise CollaboratorUnavailableError("reference_catalog", operation) from exc

    def doctor_exists(self, doctor_id: str) -> bool:
        with self._selector("doctor_exists") as selector:
            return selector.doctor_exists(doctor_id)

    def product_exists(self, product_id: str) -> bool:
        with self._selector("product_exists") as selector:
            return selector.product_exists(product_id)

    def expense_type_exists(self, expense_type_id: str) -> bool:
        with self._selector("expense_type_exists") as selector:
            return selector.expense_type_exists(expense_type_id)

    def tariff_for(self, expense_type_id: str) -> Decimal:
        with self._selector("tariff_for") as selector:
            tariff = selector.tariff_for(expense_type_id)
        if tariff is None:
            raise CatalogItemNotFoundError("expense_type", expense_type_id)
        return tariff
