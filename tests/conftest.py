"""
Shared fixtures for the field-reporting kernel tests.

Service tests run twice through the ``backend`` fixture: once against the
in-memory stores and once against the SQLAlchemy stores on a temporary
SQLite file.
"""

import io
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import pytest
from sqlalchemy import update

from fieldrep_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from fieldrep_kernel.domain.clock import DeterministicClock
from fieldrep_kernel.domain.entities import (
    ExpenseSheetInput,
    ItemizedLineInput,
    VisitReason,
    VisitReportInput,
)
from fieldrep_kernel.domain.identity import Actor, Role
from fieldrep_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fieldrep_kernel.models import (
    DoctorModel,
    ExpenseTypeModel,
    ProductFamilyModel,
    ProductModel,
)
from fieldrep_kernel.services import (
    ApprovalStateMachine,
    SubmissionBuilder,
    TeamPeriodQueryService,
)
from fieldrep_kernel.stores import (
    InMemoryExpenseSheetStore,
    InMemoryVisitReportStore,
    SqlExpenseSheetStore,
    SqlReferenceCatalog,
    SqlVisitReportStore,
    StaticCatalog,
)

DOCTORS = ("d1", "d2")
PRODUCTS = ("p1", "p2", "p3")
TARIFFS = {"km": "0.50", "NUI": "80.00", "REP": "25.00"}


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=io.StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs() -> Callable[[], list[dict[str, Any]]]:
    """Capture JSON records emitted under the ``fieldrep`` logger.

    Returns a callable giving the parsed records seen so far.
    """
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fieldrep")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def records() -> list[dict[str, Any]]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield records
    root.removeHandler(handler)
    root.setLevel(previous_level)


# ---------------------------------------------------------------------------
# Clock and actors
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2024, 3, 20, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def representative():
    return Actor("u1", Role.REPRESENTATIVE, region_id="north")


@pytest.fixture
def other_representative():
    return Actor("u2", Role.REPRESENTATIVE, region_id="south")


@pytest.fixture
def accountant():
    return Actor("acc1", Role.ACCOUNTANT)


@pytest.fixture
def regional_manager():
    return Actor("rm-north", Role.REGIONAL_MANAGER, region_id="north")


@pytest.fixture
def other_regional_manager():
    return Actor("rm-south", Role.REGIONAL_MANAGER, region_id="south")


@pytest.fixture
def administrator():
    return Actor("admin1", Role.ADMINISTRATOR)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


def make_visit_input(**overrides) -> VisitReportInput:
    fields: dict[str, Any] = {
        "visit_date": date(2024, 3, 12),
        "reason_code": VisitReason.PERIODIC,
        "narrative": "Discussed new dosage guidelines with doctor",
        "doctor_id": "d1",
        "presented_product_ids": ["p1", "p2"],
        "offered_samples": {"p1": 3},
    }
    fields.update(overrides)
    return VisitReportInput(**fields)


def make_sheet_input(**overrides) -> ExpenseSheetInput:
    fields: dict[str, Any] = {
        "month": "2024-03",
        "flat_rate_lines": {"km": 10},
        "itemized_lines": [ItemizedLineInput("Parking", date(2024, 3, 5), "12.30")],
    }
    fields.update(overrides)
    return ExpenseSheetInput(**fields)


@pytest.fixture
def visit_form():
    """Factory for a valid VisitReportInput; keyword arguments override fields."""
    return make_visit_input


@pytest.fixture
def sheet_form():
    """Factory for a valid March 2024 ExpenseSheetInput (km=10, 12.30 itemized)."""
    return make_sheet_input


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


@dataclass
class Backend:
    """The three collaborators the services need, plus catalog control."""

    name: str
    visit_reports: Any
    expense_sheets: Any
    catalog: Any
    set_tariff: Callable[[str, str], None]


def memory_backend() -> Backend:
    catalog = StaticCatalog(doctors=DOCTORS, products=PRODUCTS, tariffs=TARIFFS)
    return Backend(
        name="memory",
        visit_reports=InMemoryVisitReportStore(),
        expense_sheets=InMemoryExpenseSheetStore(),
        catalog=catalog,
        set_tariff=catalog.set_tariff,
    )


def _seed_catalog() -> None:
    with session_scope() as session:
        session.add(ProductFamilyModel(id="cardio", label="Cardiology"))
        session.add_all(
            [
                DoctorModel(id="d1", last_name="Martin", first_name="Claire", region_id="north"),
                DoctorModel(id="d2", last_name="Durand", first_name="Paul", region_id="south"),
            ]
        )
        session.flush()
        session.add_all(
            [ProductModel(id=pid, name=pid.upper(), family_id="cardio") for pid in PRODUCTS]
        )
        session.add_all(
            [
                ExpenseTypeModel(id=type_id, label=type_id, tariff=Decimal(tariff))
                for type_id, tariff in TARIFFS.items()
            ]
        )


def _set_sql_tariff(expense_type_id: str, tariff: str) -> None:
    with session_scope() as session:
        session.execute(
            update(ExpenseTypeModel)
            .where(ExpenseTypeModel.id == expense_type_id)
            .values(tariff=Decimal(tariff))
        )


@pytest.fixture(params=["memory", "sql"])
def backend(request, tmp_path):
    if request.param == "memory":
        yield memory_backend()
        return

    init_engine_from_url(f"sqlite:///{tmp_path / 'fieldrep.db'}", pool_timeout=30)
    create_tables()
    _seed_catalog()
    factory = get_session_factory()
    yield Backend(
        name="sql",
        visit_reports=SqlVisitReportStore(factory),
        expense_sheets=SqlExpenseSheetStore(factory),
        catalog=SqlReferenceCatalog(factory),
        set_tariff=_set_sql_tariff,
    )
    reset_engine()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def builder(backend, clock):
    return SubmissionBuilder(
        backend.visit_reports, backend.expense_sheets, backend.catalog, clock=clock
    )


@pytest.fixture
def machine(backend, clock):
    return ApprovalStateMachine(
        backend.visit_reports, backend.expense_sheets, backend.catalog, clock=clock
    )


@pytest.fixture
def queries(backend):
    return TeamPeriodQueryService(backend.visit_reports, backend.expense_sheets)
