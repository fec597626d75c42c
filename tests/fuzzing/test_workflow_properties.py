"""
Property-based tests for the approval workflow and the aggregator.

Properties:
- Observed states never regress: any sequence of actions by any actors
  yields a state history that follows the workflow order.
- A representative is refused validate/reimburse/close in every state.
- Validating twice succeeds once, whatever the action sequence before it.
- compute_default_total == sum(qty * tariff) + sum(itemized), rounded.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from fieldrep_kernel.domain.aggregation import compute_default_total
from fieldrep_kernel.domain.clock import DeterministicClock
from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    ExpenseSheet,
    ExpenseSheetInput,
    FlatRateLine,
    ItemizedLine,
    ItemizedLineInput,
)
from fieldrep_kernel.domain.identity import Actor, Role
from fieldrep_kernel.domain.values import PeriodKey
from fieldrep_kernel.domain.workflow import STATE_RANK, SubmissionState
from fieldrep_kernel.exceptions import (
    ForbiddenError,
    InvalidStateTransitionError,
)
from fieldrep_kernel.services import ApprovalStateMachine, SubmissionBuilder
from fieldrep_kernel.stores import (
    InMemoryExpenseSheetStore,
    InMemoryVisitReportStore,
    StaticCatalog,
)

pytestmark = pytest.mark.slow

TARIFFS = {"km": "0.50", "NUI": "80.00", "REP": "25.00"}

ACTORS = {
    "representative": Actor("u1", Role.REPRESENTATIVE, region_id="north"),
    "accountant": Actor("acc1", Role.ACCOUNTANT),
    "regional_manager": Actor("rm-north", Role.REGIONAL_MANAGER, region_id="north"),
    "administrator": Actor("admin1", Role.ADMINISTRATOR),
}

actions = st.sampled_from(["validate", "reimburse", "close"])
actors = st.sampled_from(sorted(ACTORS))
steps = st.lists(st.tuples(actions, actors), max_size=12)

money = st.decimals(
    min_value=Decimal("0.00"),
    max_value=Decimal("99999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


def _world():
    """A fresh in-memory kernel holding one Created expense sheet."""
    catalog = StaticCatalog(doctors=["d1"], products=["p1"], tariffs=TARIFFS)
    reports = InMemoryVisitReportStore()
    sheets = InMemoryExpenseSheetStore()
    clock = DeterministicClock(datetime(2024, 3, 20, tzinfo=timezone.utc))
    builder = SubmissionBuilder(reports, sheets, catalog, clock=clock)
    machine = ApprovalStateMachine(reports, sheets, catalog, clock=clock)
    sheet = builder.create_expense_sheet(
        ExpenseSheetInput(
            month="2024-03",
            flat_rate_lines={"km": 10},
            itemized_lines=[ItemizedLineInput("Parking", date(2024, 3, 5), "12.30")],
        ),
        ACTORS["representative"],
    )
    return machine, sheets, sheet


class TestStateMachineProperties:

    @given(steps=steps)
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_states_never_regress(self, steps):
        machine, sheets, sheet = _world()
        history = [sheet.state]

        for action, actor_name in steps:
            try:
                updated = machine.transition(EXPENSE_SHEET, sheet.id, action, ACTORS[actor_name])
            except (ForbiddenError, InvalidStateTransitionError):
                pass
            else:
                history.append(updated.state)

        ranks = [STATE_RANK[s] for s in history]
        assert ranks == sorted(ranks)
        assert len(history) == len(set(history))
        assert history[0] == SubmissionState.CREATED
        if SubmissionState.REIMBURSED in history:
            assert SubmissionState.VALIDATED in history
        assert [r.to_state for r in sheets.transitions_for(sheet.id)] == history[1:]

    @given(steps=steps, action=actions)
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_representative_always_forbidden(self, steps, action):
        machine, _, sheet = _world()
        for step_action, actor_name in steps:
            try:
                machine.transition(EXPENSE_SHEET, sheet.id, step_action, ACTORS[actor_name])
            except (ForbiddenError, InvalidStateTransitionError):
                pass

        with pytest.raises(ForbiddenError):
            machine.transition(EXPENSE_SHEET, sheet.id, action, ACTORS["representative"])

    @given(steps=steps)
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_validate_succeeds_exactly_once(self, steps):
        machine, _, sheet = _world()
        successes = 0
        closed_unvalidated = False
        for action, actor_name in [*steps, ("validate", "accountant"), ("validate", "accountant")]:
            try:
                machine.transition(EXPENSE_SHEET, sheet.id, action, ACTORS[actor_name])
            except (ForbiddenError, InvalidStateTransitionError):
                continue
            if action == "validate":
                successes += 1
            elif action == "close" and successes == 0:
                closed_unvalidated = True
        assert successes == (0 if closed_unvalidated else 1)


class TestDefaultTotalProperty:

    @given(
        quantities=st.dictionaries(st.sampled_from(sorted(TARIFFS)), st.integers(0, 10_000)),
        amounts=st.lists(money, max_size=8),
    )
    @settings(max_examples=200)
    def test_formula(self, quantities, amounts):
        catalog = StaticCatalog(tariffs=TARIFFS)
        sheet = ExpenseSheet(
            id=uuid4(),
            owner_id="u1",
            period=PeriodKey(2024, 3),
            flat_rate_lines=tuple(FlatRateLine(t, q) for t, q in quantities.items()),
            itemized_lines=tuple(
                ItemizedLine(f"line {i}", date(2024, 3, 1), a) for i, a in enumerate(amounts)
            ),
        )

        expected = sum(
            (q * Decimal(TARIFFS[t]) for t, q in quantities.items()), Decimal("0")
        ) + sum(amounts, Decimal("0"))

        total = compute_default_total(sheet, catalog)
        assert total == expected.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        assert total == compute_default_total(sheet, catalog)
