"""
In-memory collaborators (``fieldrep_kernel.stores.memory``).

Responsibility
--------------
Thread-safe dict-backed implementations of the store and catalog
protocols, for tests and for embedding the kernel without a database.

Architecture position
---------------------
**Kernel stores layer**.  Satisfies ``VisitReportStore``,
``ExpenseSheetStore`` and ``ReferenceCatalog`` from
``fieldrep_kernel.domain.protocols``.  Can be replaced with
``fieldrep_kernel.stores.sql``.

Invariants enforced
-------------------
* One lock per store: compare-and-swap, guarded edits, deletes and the
  (owner, month) uniqueness check all run under it, so of two concurrent
  transitions from the same state exactly one observes that state.
* The transition record is appended under the same lock as the state
  change.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from decimal import Decimal
from typing import Any, Generic, Iterable, Mapping, TypeVar
from uuid import UUID

from fieldrep_kernel.domain.entities import (
    EXPENSE_SHEET,
    VISIT_REPORT,
    ExpenseSheet,
    TransitionRecord,
    VisitReport,
)
from fieldrep_kernel.domain.values import PeriodKey, to_money
from fieldrep_kernel.domain.workflow import SubmissionState
from fieldrep_kernel.exceptions import (
    CatalogItemNotFoundError,
    DuplicateExpenseSheetError,
    EntityNotFoundError,
)

EntityT = TypeVar("EntityT", VisitReport, ExpenseSheet)


class _InMemoryStore(Generic[EntityT]):
    entity_type: str = ""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entities: dict[UUID, EntityT] = {}
        self._transitions: dict[UUID, list[TransitionRecord]] = {}

    def _require(self, entity_id: UUID) -> EntityT:
        entity = self._entities.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(self.entity_type, str(entity_id))
        return entity

    def get(self, entity_id: UUID) -> EntityT:
        with self._lock:
            return self._require(entity_id)

    def _insert(self, entity: EntityT) -> EntityT:
        if entity.id in self._entities:
            raise ValueError(f"{self.entity_type} {entity.id} already exists")
        self._entities[entity.id] = entity
        self._transitions[entity.id] = []
        return entity

    def create(self, entity: EntityT) -> EntityT:
        with self._lock:
            return self._insert(entity)

    def compare_and_swap_state(
        self,
        entity_id: UUID,
        expected_state: SubmissionState,
        new_state: SubmissionState,
        extra_fields: Mapping[str, Any],
        record: TransitionRecord,
    ) -> EntityT | None:
        with self._lock:
            current = self._require(entity_id)
            if current.state != expected_state:
                return None
            updated = replace(
                current,
                **dict(extra_fields),
                state=new_state,
                version=current.version + 1,
            )
            self._entities[entity_id] = updated
            self._transitions[entity_id].append(record)
            return updated

    def replace_if_unchanged(
        self,
        entity: EntityT,
        expected_state: SubmissionState,
        expected_version: int,
    ) -> EntityT | None:
        with self._lock:
            current = self._require(entity.id)
            if current.state != expected_state or current.version != expected_version:
                return None
            updated = replace(entity, version=current.version + 1)
            self._entities[entity.id] = updated
            return updated

    def transitions_for(self, entity_id: UUID) -> list[TransitionRecord]:
        with self._lock:
            return list(self._transitions.get(entity_id, ()))

    def _matching(
        self,
        period: PeriodKey | None,
        states: Iterable[SubmissionState] | None,
        owner_id: str | None,
        region_id: str | None,
    ) -> list[EntityT]:
        wanted = None if states is None else set(states)
        with self._lock:
            candidates = list(self._entities.values())
        return [
            e for e in candidates
            if (period is None or e.period == period)
            and (wanted is None or e.state in wanted)
            and (owner_id is None or e.owner_id == owner_id)
            and (region_id is None or e.region_id == region_id)
        ]


class InMemoryVisitReportStore(_InMemoryStore[VisitReport]):
    entity_type = VISIT_REPORT

    def delete_if_state(self, entity_id: UUID, expected_state: SubmissionState) -> bool:
        with self._lock:
            current = self._require(entity_id)
            if current.state != expected_state:
                return False
            del self._entities[entity_id]
            self._transitions.pop(entity_id, None)
            return True

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[VisitReport]:
        found = self._matching(period, states, owner_id, region_id)
        return sorted(found, key=lambda r: (r.visit_date, str(r.id)))


class InMemoryExpenseSheetStore(_InMemoryStore[ExpenseSheet]):
    entity_type = EXPENSE_SHEET

    def get_for_owner_period(self, owner_id: str, period: PeriodKey) -> ExpenseSheet | None:
        with self._lock:
            return self._find_owner_period(owner_id, period)

    def _find_owner_period(self, owner_id: str, period: PeriodKey) -> ExpenseSheet | None:
        for sheet in self._entities.values():
            if sheet.owner_id == owner_id and sheet.period == period:
                return sheet
        return None

    def create(self, entity: ExpenseSheet) -> ExpenseSheet:
        with self._lock:
            if self._find_owner_period(entity.owner_id, entity.period) is not None:
                raise DuplicateExpenseSheetError(
                    entity.owner_id,
                    str(entity.period),
                    entity_type=EXPENSE_SHEET,
                )
            return self._insert(entity)

    def find(
        self,
        *,
        period: PeriodKey | None = None,
        states: Iterable[SubmissionState] | None = None,
        owner_id: str | None = None,
        region_id: str | None = None,
    ) -> list[ExpenseSheet]:
        found = self._matching(period, states, owner_id, region_id)
        return sorted(found, key=lambda s: (s.period, s.owner_id, str(s.id)))


class StaticCatalog:
    """ReferenceCatalog backed by dicts.

    Tariffs can be changed with ``set_tariff``; aggregations always read
    the current value.
    """

    def __init__(
        self,
        doctors: Iterable[str] = (),
        products: Iterable[str] = (),
        tariffs: Mapping[str, Decimal | str | int] | None = None,
    ) -> None:
        self._doctors = set(doctors)
        self._products = set(products)
        self._tariffs: dict[str, Decimal] = {
            type_id: to_money(tariff) for type_id, tariff in (tariffs or {}).items()
        }

    def doctor_exists(self, doctor_id: str) -> bool:
        return doctor_id in self._doctors

    def product_exists(self, product_id: str) -> bool:
        return product_id in self._products

    def expense_type_exists(self, expense_type_id: str) -> bool:
        return expense_type_id in self._tariffs

    def tariff_for(self, expense_type_id: str) -> Decimal:
        try:
            return self._tariffs[expense_type_id]
        except KeyError:
            raise CatalogItemNotFoundError("expense_type", expense_type_id) from None

    def set_tariff(self, expense_type_id: str, tariff: Decimal | str | int) -> None:
        self._tariffs[expense_type_id] = to_money(tariff)

