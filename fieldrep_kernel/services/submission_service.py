"""
Submission Builder (``fieldrep_kernel.services.submission_service``).

Responsibility
--------------
Create, edit and delete visit reports and expense sheets on behalf of a
representative.  Every input is validated against the submission rules
and the reference catalog before anything is written; a created entity
always starts in ``created``.

Architecture position
---------------------
**Kernel services layer**.  Consults ``require_capability`` first, then
the pure rules in ``domain.validation``, then the stores.

Invariants enforced
-------------------
* A visit report presents between 1 and 2 distinct products.
* At most one expense sheet per (owner, month); the store enforces it
  atomically and this service pre-checks it for a clear error.
* Edits and deletes apply only to the owner's entities while ``created``;
  they are guarded on state (and version, for edits) so they cannot race
  a validation.
* The month of an expense sheet never changes.

Failure modes
-------------
* ``RoleNotPermittedError`` -- a non-representative tries to create; it is
  both a ``ValidationError`` and a ``ForbiddenError``.
* ``ForbiddenError`` -- capability, ownership, or entity no longer editable.
* ``ValidationError`` -- every violated rule, collected.
* ``DuplicateExpenseSheetError`` -- second sheet for the same month.
* ``ConcurrentModificationError`` -- another edit landed first.
* ``CollaboratorUnavailableError`` -- propagated from store or catalog.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID, uuid4

from fieldrep_kernel.domain.capabilities import (
    CapabilityMatrix,
    Operation,
    check_capability,
    require_capability,
)
from fieldrep_kernel.domain.clock import Clock, SystemClock
from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    VISIT_REPORT,
    ExpenseSheet,
    ExpenseSheetInput,
    FlatRateLine,
    ItemizedLine,
    OfferedSample,
    VisitReport,
    VisitReportInput,
)
from fieldrep_kernel.domain.identity import Actor, Role
from fieldrep_kernel.domain.protocols import (
    ExpenseSheetStore,
    ReferenceCatalog,
    VisitReportStore,
)
from fieldrep_kernel.domain.validation import (
    SubmissionRules,
    expense_sheet_violations,
    parse_impact,
    parse_reason,
    visit_report_violations,
)
from fieldrep_kernel.domain.values import PeriodKey, to_money
from fieldrep_kernel.domain.workflow import SubmissionState
from fieldrep_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateExpenseSheetError,
    ForbiddenError,
    RoleNotPermittedError,
    ValidationError,
)
from fieldrep_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.submission")


class SubmissionBuilder:
    """Validated creation and editing of representative submissions."""

    def __init__(
        self,
        visit_reports: VisitReportStore,
        expense_sheets: ExpenseSheetStore,
        catalog: ReferenceCatalog,
        clock: Clock | None = None,
        rules: SubmissionRules | None = None,
        capabilities: CapabilityMatrix | None = None,
    ) -> None:
        self._visit_reports = visit_reports
        self._expense_sheets = expense_sheets
        self._catalog = catalog
        self._clock = clock or SystemClock()
        self._rules = rules or SubmissionRules()
        self._capabilities = capabilities

    # -----------------------------------------------------------------
    # Visit reports
    # -----------------------------------------------------------------

    def create_visit_report(self, data: VisitReportInput, actor: Actor) -> VisitReport:
        """Validate and persist a new visit report owned by ``actor``."""
        self._require_submitter(actor, Operation.CREATE_VISIT_REPORT, VISIT_REPORT)
        with LogContext.bind(entity_type=VISIT_REPORT, **actor.log_fields()):
            self._check_visit_report(data, actor)
            now = self._clock.now()
            report = VisitReport(
                id=uuid4(),
                representative_id=actor.id,
                region_id=actor.region_id,
                created_at=now,
                **self._visit_report_fields(data, now),
            )
            created = self._visit_reports.create(report)
            logger.info(
                "visit_report_created",
                extra={
                    "report_id": str(created.id),
                    "visit_date": created.visit_date.isoformat(),
                    "product_count": len(created.presented_product_ids),
                    "sample_count": len(created.offered_samples),
                },
            )
            return created

    def update_visit_report(
        self, report_id: UUID, data: VisitReportInput, actor: Actor
    ) -> VisitReport:
        """Replace the content of a visit report that is still ``created``."""
        require_capability(
            actor, Operation.UPDATE_VISIT_REPORT, self._capabilities,
            entity_type=VISIT_REPORT, entity_id=str(report_id),
        )
        with LogContext.bind(
            entity_type=VISIT_REPORT, entity_id=str(report_id), **actor.log_fields()
        ):
            current = self._visit_reports.get(report_id)
            self._require_editable(
                current, actor, Operation.UPDATE_VISIT_REPORT, VISIT_REPORT,
                allow_administrator=False,
            )
            self._check_visit_report(data, actor, entity_id=report_id)
            now = self._clock.now()
            edited = replace(current, **self._visit_report_fields(data, now))
            updated = self._visit_reports.replace_if_unchanged(
                edited, SubmissionState.CREATED, current.version
            )
            if updated is None:
                self._edit_lost(self._visit_reports.get(report_id), actor, VISIT_REPORT,
                                Operation.UPDATE_VISIT_REPORT)
            logger.info(
                "visit_report_updated",
                extra={"report_id": str(report_id), "version": updated.version},
            )
            return updated

    def delete_visit_report(self, report_id: UUID, actor: Actor) -> None:
        """Delete an owned visit report that has not been validated yet."""
        require_capability(
            actor, Operation.DELETE_VISIT_REPORT, self._capabilities,
            entity_type=VISIT_REPORT, entity_id=str(report_id),
        )
        with LogContext.bind(
            entity_type=VISIT_REPORT, entity_id=str(report_id), **actor.log_fields()
        ):
            current = self._visit_reports.get(report_id)
            self._require_editable(
                current, actor, Operation.DELETE_VISIT_REPORT, VISIT_REPORT,
                allow_administrator=False,
            )
            if not self._visit_reports.delete_if_state(report_id, SubmissionState.CREATED):
                raise self._not_editable(
                    Operation.DELETE_VISIT_REPORT, VISIT_REPORT, report_id, actor
                )
            logger.info("visit_report_deleted", extra={"report_id": str(report_id)})

    def _require_submitter(self, actor: Actor | None, operation: Operation, entity_type: str) -> None:
        allowed, reason = check_capability(actor, operation, self._capabilities)
        if not allowed:
            raise RoleNotPermittedError(
                operation.value,
                reason,
                entity_type=entity_type,
                **(actor.log_fields() if actor is not None else {}),
            )

    def _check_visit_report(
        self, data: VisitReportInput, actor: Actor, entity_id: UUID | None = None
    ) -> None:
        violations = visit_report_violations(data, self._rules, self._catalog)
        if violations:
            logger.info(
                "visit_report_rejected",
                extra={"rules": [v.rule for v in violations]},
            )
            raise ValidationError(
                violations,
                entity_type=VISIT_REPORT,
                entity_id=None if entity_id is None else str(entity_id),
                **actor.log_fields(),
            )

    @staticmethod
    def _visit_report_fields(data: VisitReportInput, now) -> dict:
        """Normalized entity fields from an already validated input."""
        return {
            "visit_date": data.visit_date,
            "reason_code": parse_reason(data.reason_code),
            "narrative": data.narrative.strip(),
            "doctor_id": data.doctor_id,
            "presented_product_ids": tuple(data.presented_product_ids),
            "offered_samples": tuple(
                OfferedSample(product_id, quantity)
                for product_id, quantity in dict(data.offered_samples or {}).items()
            ),
            "reason_detail": (data.reason_detail or "").strip(),
            "confidence_score": data.confidence_score,
            "impact_level": (
                parse_impact(data.impact_level) if data.impact_level is not None else None
            ),
            "is_substitute": bool(data.is_substitute),
            "substitute_name": (data.substitute_name or "").strip() if data.is_substitute else "",
            "competitor_notes": (data.competitor_notes or "").strip(),
            "documentation_notes": (data.documentation_notes or "").strip(),
            "updated_at": now,
        }

    # -----------------------------------------------------------------
    # Expense sheets
    # -----------------------------------------------------------------

    def create_expense_sheet(self, data: ExpenseSheetInput, actor: Actor) -> ExpenseSheet:
        """Validate and persist the actor's expense sheet for ``data.month``."""
        self._require_submitter(actor, Operation.CREATE_EXPENSE_SHEET, EXPENSE_SHEET)
        with LogContext.bind(entity_type=EXPENSE_SHEET, **actor.log_fields()):
            self._check_expense_sheet(data, actor)
            period = PeriodKey.parse(data.month)
            if self._expense_sheets.get_for_owner_period(actor.id, period) is not None:
                raise DuplicateExpenseSheetError(
                    actor.id, str(period), entity_type=EXPENSE_SHEET, **actor.log_fields()
                )
            now = self._clock.now()
            flat_rate, itemized = self._expense_lines(data)
            sheet = ExpenseSheet(
                id=uuid4(),
                owner_id=actor.id,
                period=period,
                flat_rate_lines=flat_rate,
                itemized_lines=itemized,
                region_id=actor.region_id,
                created_at=now,
                updated_at=now,
            )
            created = self._expense_sheets.create(sheet)
            logger.info(
                "expense_sheet_created",
                extra={
                    "sheet_id": str(created.id),
                    "period": str(period),
                    "flat_rate_line_count": len(flat_rate),
                    "itemized_line_count": len(itemized),
                },
            )
            return created

    def update_expense_sheet(
        self, sheet_id: UUID, data: ExpenseSheetInput, actor: Actor
    ) -> ExpenseSheet:
        """Replace the lines of a sheet that is still ``created``.

        The owner or an administrator may edit; the month cannot change.
        """
        require_capability(
            actor, Operation.UPDATE_EXPENSE_SHEET, self._capabilities,
            entity_type=EXPENSE_SHEET, entity_id=str(sheet_id),
        )
        with LogContext.bind(
            entity_type=EXPENSE_SHEET, entity_id=str(sheet_id), **actor.log_fields()
        ):
            current = self._expense_sheets.get(sheet_id)
            self._require_editable(
                current, actor, Operation.UPDATE_EXPENSE_SHEET, EXPENSE_SHEET,
                allow_administrator=True,
            )
            self._check_expense_sheet(data, actor, entity_id=sheet_id)
            if PeriodKey.parse(data.month) != current.period:
                raise ValidationError.single(
                    "month_immutable",
                    "month",
                    f"The month of an expense sheet cannot change (is {current.period})",
                    entity_type=EXPENSE_SHEET,
                    entity_id=str(sheet_id),
                    **actor.log_fields(),
                )
            flat_rate, itemized = self._expense_lines(data)
            edited = replace(
                current,
                flat_rate_lines=flat_rate,
                itemized_lines=itemized,
                updated_at=self._clock.now(),
            )
            updated = self._expense_sheets.replace_if_unchanged(
                edited, SubmissionState.CREATED, current.version
            )
            if updated is None:
                self._edit_lost(self._expense_sheets.get(sheet_id), actor, EXPENSE_SHEET,
                                Operation.UPDATE_EXPENSE_SHEET)
            logger.info(
                "expense_sheet_updated",
                extra={"sheet_id": str(sheet_id), "version": updated.version},
            )
            return updated

    def _check_expense_sheet(
        self, data: ExpenseSheetInput, actor: Actor, entity_id: UUID | None = None
    ) -> None:
        violations = expense_sheet_violations(data, self._catalog)
        if violations:
            logger.info(
                "expense_sheet_rejected",
                extra={"rules": [v.rule for v in violations]},
            )
            raise ValidationError(
                violations,
                entity_type=EXPENSE_SHEET,
                entity_id=None if entity_id is None else str(entity_id),
                **actor.log_fields(),
            )

    @staticmethod
    def _expense_lines(
        data: ExpenseSheetInput,
    ) -> tuple[tuple[FlatRateLine, ...], tuple[ItemizedLine, ...]]:
        flat_rate = tuple(
            FlatRateLine(expense_type_id, quantity)
            for expense_type_id, quantity in dict(data.flat_rate_lines or {}).items()
        )
        itemized = tuple(
            ItemizedLine(line.label.strip(), line.line_date, to_money(line.amount))
            for line in data.itemized_lines or ()
        )
        return flat_rate, itemized

    # -----------------------------------------------------------------
    # Ownership and editability
    # -----------------------------------------------------------------

    def _require_editable(
        self,
        entity: VisitReport | ExpenseSheet,
        actor: Actor,
        operation: Operation,
        entity_type: str,
        *,
        allow_administrator: bool,
    ) -> None:
        is_admin = allow_administrator and actor.role == Role.ADMINISTRATOR
        if entity.owner_id != actor.id and not is_admin:
            raise ForbiddenError(
                operation.value,
                "only the owner may change this submission",
                entity_type=entity_type,
                entity_id=str(entity.id),
                **actor.log_fields(),
            )
        if entity.state != SubmissionState.CREATED:
            raise self._not_editable(operation, entity_type, entity.id, actor)

    @staticmethod
    def _not_editable(
        operation: Operation, entity_type: str, entity_id: UUID, actor: Actor
    ) -> ForbiddenError:
        return ForbiddenError(
            operation.value,
            "submission is no longer in the created state",
            entity_type=entity_type,
            entity_id=str(entity_id),
            **actor.log_fields(),
        )

    def _edit_lost(
        self,
        latest: VisitReport | ExpenseSheet,
        actor: Actor,
        entity_type: str,
        operation: Operation,
    ) -> None:
        """Raise the error matching why a guarded edit matched no row."""
        logger.warning(
            "submission_edit_conflict",
            extra={"state": latest.state.value, "version": latest.version},
        )
        if latest.state != SubmissionState.CREATED:
            raise self._not_editable(operation, entity_type, latest.id, actor)
        raise ConcurrentModificationError(
            entity_type, str(latest.id), **actor.log_fields()
        )
