"""
Read-only query base.

Selectors run inside a session owned by the caller (a store operation's
``session_scope``) and hand back frozen domain entities, never ORM rows.
They do not add, delete, flush or commit.
"""

from abc import ABC
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import Session

from fieldrep_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    model: ClassVar[type[Base]]

    def __init__(self, session: Session):
        self.session = session

    def _one(self, key: Any) -> Any | None:
        """Entity for a primary key, re-read from the database, or None."""
        row = self.session.get(self.model, key, populate_existing=True)
        return row.to_dto() if row is not None else None

    def _first(self, stmt: Select) -> Any | None:
        row = self.session.scalars(stmt).first()
        return row.to_dto() if row is not None else None

    def _all(self, stmt: Select) -> list[Any]:
        return [row.to_dto() for row in self.session.scalars(stmt)]
