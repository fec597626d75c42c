"""
Pure domain layer.

This module contains value objects, workflow definitions and pure rules
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (injected)

All domain objects are immutable and deterministic.
"""

from fieldrep_kernel.domain.aggregation import (
    ExpenseTotals,
    LineTotal,
    ReviewRules,
    compute_default_total,
    compute_line_totals,
    suggest_visit_report_total,
)
from fieldrep_kernel.domain.capabilities import (
    DEFAULT_CAPABILITIES,
    Operation,
    check_capability,
    require_capability,
)
from fieldrep_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    VISIT_REPORT,
    ExpenseSheet,
    ExpenseSheetInput,
    FlatRateLine,
    ImpactLevel,
    ItemizedLine,
    ItemizedLineInput,
    OfferedSample,
    ReviewQueueEntry,
    TransitionRecord,
    VisitReason,
    VisitReport,
    VisitReportInput,
)
from fieldrep_kernel.domain.identity import (
    Actor,
    Role,
    RoleResolver,
    StaticRoleResolver,
    role_from_user_type,
)
from fieldrep_kernel.domain.protocols import (
    ExpenseSheetStore,
    ReferenceCatalog,
    VisitReportStore,
)
from fieldrep_kernel.domain.validation import SubmissionRules
from fieldrep_kernel.domain.values import PeriodKey, parse_money, to_money
from fieldrep_kernel.domain.workflow import (
    EXPENSE_SHEET_WORKFLOW,
    VISIT_REPORT_WORKFLOW,
    SubmissionState,
    Transition,
    Workflow,
)

__all__ = [
    # Values
    "PeriodKey",
    "parse_money",
    "to_money",
    # Identity
    "Actor",
    "Role",
    "RoleResolver",
    "StaticRoleResolver",
    "role_from_user_type",
    # Capabilities
    "Operation",
    "DEFAULT_CAPABILITIES",
    "check_capability",
    "require_capability",
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Entities
    "VISIT_REPORT",
    "EXPENSE_SHEET",
    "VisitReason",
    "ImpactLevel",
    "OfferedSample",
    "VisitReport",
    "FlatRateLine",
    "ItemizedLine",
    "ExpenseSheet",
    "VisitReportInput",
    "ItemizedLineInput",
    "ExpenseSheetInput",
    "TransitionRecord",
    "ReviewQueueEntry",
    # Workflow
    "SubmissionState",
    "Transition",
    "Workflow",
    "VISIT_REPORT_WORKFLOW",
    "EXPENSE_SHEET_WORKFLOW",
    # Rules
    "SubmissionRules",
    "ReviewRules",
    "ExpenseTotals",
    "LineTotal",
    "compute_default_total",
    "compute_line_totals",
    "suggest_visit_report_total",
    # Collaborators
    "ReferenceCatalog",
    "VisitReportStore",
    "ExpenseSheetStore",
]
