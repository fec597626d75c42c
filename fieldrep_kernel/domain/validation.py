"""
Submission validation rules (``fieldrep_kernel.domain.validation``).

Responsibility
--------------
Field-level rules applied to representative-entered visit reports and
expense sheets before they are persisted: required fields, cardinality
limits and numeric ranges.  Functions return the list of violated rules
rather than stopping at the first one, so a form can flag every field at
once; the Submission Builder turns a non-empty list into a
``ValidationError``.

Architecture position
---------------------
**Kernel domain layer**.  The only collaborator touched is the read-only
reference catalog, for foreign-key existence checks.

Rule ids
--------
visit_date_required, reason_code_known, other_reason_requires_detail,
narrative_min_length, presented_products_count, presented_products_unique,
product_known, doctor_known, sample_quantity_range,
confidence_score_range, impact_level_known, substitute_requires_name,
month_format, flat_rate_quantity_non_negative, expense_type_known,
itemized_label_required, itemized_date_required,
itemized_amount_non_negative, justification_count_non_negative,
validated_amount_non_negative.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from fieldrep_kernel.domain.entities import (
    ExpenseSheetInput,
    ImpactLevel,
    VisitReason,
    VisitReportInput,
)
from fieldrep_kernel.domain.protocols import ReferenceCatalog
from fieldrep_kernel.domain.values import PeriodKey, parse_money
from fieldrep_kernel.exceptions import RuleViolation


@dataclass(frozen=True)
class SubmissionRules:
    """Tunable limits for submissions. Defaults are the business rules in force."""
    narrative_min_length: int = 10
    min_presented_products: int = 1
    # More than two products are not retained by the physician.
    max_presented_products: int = 2
    sample_quantity_min: int = 1
    sample_quantity_max: int = 100
    confidence_score_min: int = 1
    confidence_score_max: int = 5
    confidence_score_default: int = 3
    other_reason_codes: frozenset[str] = field(
        default_factory=lambda: frozenset({VisitReason.OTHER.value})
    )

    def __post_init__(self) -> None:
        if self.min_presented_products < 0:
            raise ValueError("min_presented_products cannot be negative")
        if self.max_presented_products < self.min_presented_products:
            raise ValueError("max_presented_products < min_presented_products")
        if self.sample_quantity_max < self.sample_quantity_min:
            raise ValueError("sample_quantity_max < sample_quantity_min")
        if not (
            self.confidence_score_min
            <= self.confidence_score_default
            <= self.confidence_score_max
        ):
            raise ValueError("confidence_score_default outside its range")


def is_whole_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


# ---------------------------------------------------------------------------
# Visit reports
# ---------------------------------------------------------------------------


def visit_report_violations(
    data: VisitReportInput,
    rules: SubmissionRules,
    catalog: ReferenceCatalog | None = None,
) -> list[RuleViolation]:
    """Return every rule the visit report input violates (empty when valid)."""
    violations: list[RuleViolation] = []

    def fail(rule: str, fld: str, message: str) -> None:
        violations.append(RuleViolation(rule, fld, message))

    if not isinstance(data.visit_date, date):
        fail("visit_date_required", "visit_date", "A visit date is required")

    reason = parse_reason(data.reason_code)
    if reason is None:
        fail("reason_code_known", "reason_code", f"Unknown visit reason {data.reason_code!r}")
    elif reason.value in rules.other_reason_codes and _blank(data.reason_detail):
        fail(
            "other_reason_requires_detail",
            "reason_detail",
            "Visit reason 'other' requires an elaboration",
        )

    narrative = data.narrative or ""
    if len(narrative.strip()) < rules.narrative_min_length:
        fail(
            "narrative_min_length",
            "narrative",
            f"Narrative must contain at least {rules.narrative_min_length} characters",
        )

    products = list(data.presented_product_ids or ())
    if not rules.min_presented_products <= len(products) <= rules.max_presented_products:
        fail(
            "presented_products_count",
            "presented_product_ids",
            f"Between {rules.min_presented_products} and {rules.max_presented_products} "
            f"presented products required, got {len(products)}",
        )
    if len(set(products)) != len(products):
        fail(
            "presented_products_unique",
            "presented_product_ids",
            "Presented products must not repeat",
        )

    samples = dict(data.offered_samples or {})
    for product_id, quantity in samples.items():
        if not is_whole_number(quantity) or not (
            rules.sample_quantity_min <= quantity <= rules.sample_quantity_max
        ):
            fail(
                "sample_quantity_range",
                f"offered_samples.{product_id}",
                f"Sample quantity must be an integer in "
                f"[{rules.sample_quantity_min}, {rules.sample_quantity_max}], got {quantity!r}",
            )

    score = data.confidence_score
    if not is_whole_number(score) or not (
        rules.confidence_score_min <= score <= rules.confidence_score_max
    ):
        fail(
            "confidence_score_range",
            "confidence_score",
            f"Confidence score must be in [{rules.confidence_score_min}, "
            f"{rules.confidence_score_max}], got {score!r}",
        )

    if data.impact_level is not None and parse_impact(data.impact_level) is None:
        fail("impact_level_known", "impact_level", f"Unknown impact level {data.impact_level!r}")

    if data.is_substitute and _blank(data.substitute_name):
        fail(
            "substitute_requires_name",
            "substitute_name",
            "The replacement physician's name is required",
        )

    if catalog is not None:
        if _blank(data.doctor_id) or not catalog.doctor_exists(data.doctor_id):
            fail("doctor_known", "doctor_id", f"Unknown doctor {data.doctor_id!r}")
        for product_id in dict.fromkeys([*products, *samples]):
            if _blank(product_id) or not catalog.product_exists(product_id):
                fail("product_known", "product_id", f"Unknown product {product_id!r}")
    elif _blank(data.doctor_id):
        fail("doctor_known", "doctor_id", "A doctor is required")

    return violations


def parse_reason(value: Any) -> VisitReason | None:
    if isinstance(value, VisitReason):
        return value
    try:
        return VisitReason(str(value).strip().lower())
    except ValueError:
        return None


def parse_impact(value: Any) -> ImpactLevel | None:
    if isinstance(value, ImpactLevel):
        return value
    try:
        return ImpactLevel(str(value).strip().lower())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Expense sheets
# ---------------------------------------------------------------------------


def parse_period(value: Any) -> PeriodKey | None:
    try:
        return PeriodKey.parse(value)
    except (ValueError, TypeError):
        return None


def expense_sheet_violations(
    data: ExpenseSheetInput,
    catalog: ReferenceCatalog | None = None,
) -> list[RuleViolation]:
    """Return every rule the expense sheet input violates (empty when valid)."""
    violations: list[RuleViolation] = []

    def fail(rule: str, fld: str, message: str) -> None:
        violations.append(RuleViolation(rule, fld, message))

    if parse_period(data.month) is None:
        fail("month_format", "month", f"Month must be formatted YYYY-MM, got {data.month!r}")

    for expense_type_id, quantity in dict(data.flat_rate_lines or {}).items():
        if not is_whole_number(quantity) or quantity < 0:
            fail(
                "flat_rate_quantity_non_negative",
                f"flat_rate_lines.{expense_type_id}",
                f"Quantity must be a non-negative integer, got {quantity!r}",
            )
        if catalog is not None and not catalog.expense_type_exists(expense_type_id):
            fail(
                "expense_type_known",
                f"flat_rate_lines.{expense_type_id}",
                f"Unknown expense type {expense_type_id!r}",
            )

    for index, line in enumerate(data.itemized_lines or ()):
        prefix = f"itemized_lines[{index}]"
        if _blank(line.label):
            fail("itemized_label_required", f"{prefix}.label", "A label is required")
        if not isinstance(line.line_date, date):
            fail("itemized_date_required", f"{prefix}.line_date", "A date is required")
        try:
            amount = parse_money(line.amount)
        except ValueError:
            amount = None
        if amount is None or amount < 0:
            fail(
                "itemized_amount_non_negative",
                f"{prefix}.amount",
                f"Amount must be a non-negative number, got {line.amount!r}",
            )

    return violations


# ---------------------------------------------------------------------------
# Reviewer-entered figures
# ---------------------------------------------------------------------------


def review_figure_violations(
    justification_count: Any,
    validated_amount: Any,
) -> list[RuleViolation]:
    """Rules shared by computed and reviewer-supplied validation figures."""
    violations: list[RuleViolation] = []
    if justification_count is not None and (
        not is_whole_number(justification_count) or justification_count < 0
    ):
        violations.append(
            RuleViolation(
                "justification_count_non_negative",
                "justification_count",
                f"Justification count must be a non-negative integer, got {justification_count!r}",
            )
        )
    if validated_amount is not None:
        try:
            amount: Decimal | None = parse_money(validated_amount)
        except ValueError:
            amount = None
        if amount is None or amount < 0:
            violations.append(
                RuleViolation(
                    "validated_amount_non_negative",
                    "validated_amount",
                    f"Validated amount must be a non-negative number, got {validated_amount!r}",
                )
            )
    return violations
