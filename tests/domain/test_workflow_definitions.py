"""Tests for the workflow tables."""

import pytest

from fieldrep_kernel.domain.capabilities import Operation
from fieldrep_kernel.domain.workflow import (
    EXPENSE_SHEET_WORKFLOW,
    STATE_RANK,
    VISIT_REPORT_WORKFLOW,
    SubmissionState,
    Transition,
    Workflow,
)

S = SubmissionState


class TestVisitReportWorkflow:

    def test_validate_then_reimburse(self):
        t = VISIT_REPORT_WORKFLOW.find_transition(S.CREATED, "validate")
        assert t.to_state == S.VALIDATED
        assert t.records_review
        assert VISIT_REPORT_WORKFLOW.find_transition(S.VALIDATED, "reimburse").to_state == (
            S.REIMBURSED
        )

    def test_no_close(self):
        assert "close" not in VISIT_REPORT_WORKFLOW.actions()

    def test_reimburse_requires_validated(self):
        assert VISIT_REPORT_WORKFLOW.find_transition(S.CREATED, "reimburse") is None


class TestExpenseSheetWorkflow:

    @pytest.mark.parametrize("from_state", [S.CREATED, S.VALIDATED])
    def test_close_from_open_states(self, from_state):
        t = EXPENSE_SHEET_WORKFLOW.find_transition(from_state, "close")
        assert t.to_state == S.CLOSED
        assert t.operation == Operation.CLOSE

    @pytest.mark.parametrize("terminal", [S.REIMBURSED, S.CLOSED])
    def test_terminal_states_accept_nothing(self, terminal):
        for action in EXPENSE_SHEET_WORKFLOW.actions():
            assert EXPENSE_SHEET_WORKFLOW.find_transition(terminal, action) is None

    def test_states_only_advance(self):
        for workflow in (VISIT_REPORT_WORKFLOW, EXPENSE_SHEET_WORKFLOW):
            for t in workflow.transitions:
                assert STATE_RANK[t.to_state] > STATE_RANK[t.from_state]


class TestWorkflowConstruction:

    def test_rejects_unknown_state(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="bad",
                entity_type="x",
                description="",
                initial_state=S.CREATED,
                states=(S.CREATED,),
                transitions=(Transition(S.CREATED, S.VALIDATED, "validate", Operation.VALIDATE),),
            )

    def test_rejects_outgoing_transition_from_terminal(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow(
                name="bad",
                entity_type="x",
                description="",
                initial_state=S.CREATED,
                states=(S.CREATED, S.CLOSED),
                transitions=(Transition(S.CLOSED, S.CREATED, "reopen", Operation.CLOSE),),
                terminal_states=(S.CLOSED,),
            )

    def test_rejects_action_gated_by_two_operations(self):
        with pytest.raises(ValueError, match="more than one operation"):
            Workflow(
                name="bad",
                entity_type="x",
                description="",
                initial_state=S.CREATED,
                states=(S.CREATED, S.VALIDATED, S.CLOSED),
                transitions=(
                    Transition(S.CREATED, S.CLOSED, "close", Operation.CLOSE),
                    Transition(S.VALIDATED, S.CLOSED, "close", Operation.REIMBURSE),
                ),
            )

    def test_operations_read_from_transitions(self):
        assert VISIT_REPORT_WORKFLOW.operations() == {
            "validate": Operation.VALIDATE,
            "reimburse": Operation.REIMBURSE,
        }
        assert EXPENSE_SHEET_WORKFLOW.operations() == {
            "validate": Operation.VALIDATE,
            "reimburse": Operation.REIMBURSE,
            "close": Operation.CLOSE,
        }

    def test_legacy_codes(self):
        assert [s.legacy_code for s in S] == ["CR", "VA", "RB", "CL"]
