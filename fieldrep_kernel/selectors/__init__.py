"""Selectors for the field-reporting kernel (read side)."""

from fieldrep_kernel.selectors.submission_selector import (
    CatalogSelector,
    ExpenseSheetSelector,
    TransitionSelector,
    VisitReportSelector,
)

__all__ = [
    "VisitReportSelector",
    "ExpenseSheetSelector",
    "TransitionSelector",
    "CatalogSelector",
]
