"""
Financial Aggregator (``fieldrep_kernel.domain.aggregation``).

Responsibility
--------------
Compute the default total of an expense sheet, its per-line breakdown and
the indicative total of a visit report.  These figures pre-fill the
reviewer's validation dialog; they are suggestions, never the persisted
``validated_amount``.

Architecture position
---------------------
**Kernel domain layer**.  Pure given the catalog: tariffs are read from
the ``ReferenceCatalog`` at computation time and never cached on a line.

Invariants enforced
-------------------
* ``compute_default_total(sheet) == sum(qty * tariff) + sum(itemized)``,
  rounded half-up to two decimals.
* The sheet is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from fieldrep_kernel.domain.entities import ExpenseSheet, VisitReport
from fieldrep_kernel.domain.protocols import ReferenceCatalog
from fieldrep_kernel.domain.values import CENT, ZERO, parse_money


@dataclass(frozen=True)
class ReviewRules:
    """Figures offered to reviewers.

    ``sample_unit_value`` is the indicative value of one offered sample,
    used to suggest a visit-report total.
    """
    sample_unit_value: Decimal = Decimal("10.00")
    currency: str = "EUR"

    def __post_init__(self) -> None:
        if self.sample_unit_value < 0:
            raise ValueError("sample_unit_value cannot be negative")


@dataclass(frozen=True)
class LineTotal:
    expense_type_id: str
    quantity: int
    tariff: Decimal
    total: Decimal


@dataclass(frozen=True)
class ExpenseTotals:
    """Per-line breakdown of an expense sheet.

    Subtotals and ``grand_total`` are each rounded once from exact sums, so
    ``grand_total`` is always the suggested validated amount.  Per-line
    ``total`` values are rounded for display.
    """
    flat_rate_lines: tuple[LineTotal, ...]
    flat_rate_total: Decimal
    itemized_total: Decimal
    grand_total: Decimal


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_line_totals(sheet: ExpenseSheet, catalog: ReferenceCatalog) -> ExpenseTotals:
    """Breakdown of the sheet at the tariffs currently in effect.

    Raises:
        CatalogItemNotFoundError: a flat-rate line references a type the
            catalog no longer knows.
    """
    lines = []
    flat_rate_exact = ZERO
    for line in sheet.flat_rate_lines:
        tariff = parse_money(catalog.tariff_for(line.expense_type_id))
        exact = tariff * line.quantity
        flat_rate_exact += exact
        lines.append(
            LineTotal(
                expense_type_id=line.expense_type_id,
                quantity=line.quantity,
                tariff=tariff,
                total=_round(exact),
            )
        )
    itemized_exact = sum((parse_money(item.amount) for item in sheet.itemized_lines), ZERO)
    return ExpenseTotals(
        flat_rate_lines=tuple(lines),
        flat_rate_total=_round(flat_rate_exact),
        itemized_total=_round(itemized_exact),
        grand_total=_round(flat_rate_exact + itemized_exact),
    )


def compute_default_total(sheet: ExpenseSheet, catalog: ReferenceCatalog) -> Decimal:
    """Suggested validated amount for an expense sheet."""
    return compute_line_totals(sheet, catalog).grand_total


def suggest_visit_report_total(report: VisitReport, rules: ReviewRules) -> Decimal:
    """Indicative total of a visit report: offered samples at unit value."""
    quantity = sum(sample.quantity for sample in report.offered_samples)
    return (quantity * rules.sample_unit_value).quantize(CENT, rounding=ROUND_HALF_UP)
