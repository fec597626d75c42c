"""
Workflow configuration schema.

The runtime artifact produced from a YAML configuration set: the
submission rules, the review figures, the capability matrix and the
legacy user-type mapping.  Every field is a frozen value; services take
the pieces they need.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fieldrep_kernel.domain.aggregation import ReviewRules
from fieldrep_kernel.domain.capabilities import DEFAULT_CAPABILITIES, Operation
from fieldrep_kernel.domain.identity import USER_TYPE_ROLES, Role, role_from_user_type
from fieldrep_kernel.domain.validation import SubmissionRules


@dataclass(frozen=True)
class WorkflowConfig:
    """Compiled configuration for the approval kernel."""

    config_id: str
    version: int
    checksum: str
    submission: SubmissionRules = field(default_factory=SubmissionRules)
    review: ReviewRules = field(default_factory=ReviewRules)
    capabilities: dict[Operation, frozenset[Role]] = field(
        default_factory=lambda: dict(DEFAULT_CAPABILITIES)
    )
    user_types: dict[str, Role] = field(default_factory=lambda: dict(USER_TYPE_ROLES))

    def role_for_user_type(self, user_type: str) -> Role:
        """Map a directory user type to a Role using this configuration."""
        return role_from_user_type(user_type, self.user_types)
