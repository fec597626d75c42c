"""Persistence and catalog collaborators."""

from fieldrep_kernel.stores.memory import (
    InMemoryExpenseSheetStore,
    InMemoryVisitReportStore,
    StaticCatalog,
)
from fieldrep_kernel.stores.sql import (
    SqlExpenseSheetStore,
    SqlReferenceCatalog,
    SqlVisitReportStore,
)

__all__ = [
    "InMemoryVisitReportStore",
    "InMemoryExpenseSheetStore",
    "StaticCatalog",
    "SqlVisitReportStore",
    "SqlExpenseSheetStore",
    "SqlReferenceCatalog",
]
