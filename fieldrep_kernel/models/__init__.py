"""ORM models for the field-reporting kernel."""

from fieldrep_kernel.models.catalog import (
    DoctorModel,
    ExpenseTypeModel,
    ProductFamilyModel,
    ProductModel,
)
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

__all__ = [
    "DoctorModel",
    "ProductFamilyModel",
    "ProductModel",
    "ExpenseTypeModel",
    "VisitReportModel",
    "VisitReportProductModel",
    "VisitReportSampleModel",
    "ExpenseSheetModel",
    "FlatRateLineModel",
    "ItemizedLineModel",
    "TransitionRecordModel",
]
