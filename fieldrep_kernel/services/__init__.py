"""Services for the field-reporting kernel."""

from fieldrep_kernel.services.approval_service import ApprovalStateMachine
from fieldrep_kernel.services.query_service import PeriodSummary, TeamPeriodQueryService
from fieldrep_kernel.services.submission_service import SubmissionBuilder

__all__ = [
    "ApprovalStateMachine",
    "PeriodSummary",
    "SubmissionBuilder",
    "TeamPeriodQueryService",
]
