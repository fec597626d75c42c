"""
Declarative bases for the ORM models.

All tables get a UUID primary key stored as text, so one schema serves
PostgreSQL in production and SQLite files under test.  Money annotations
map to ``Numeric(12, 2)``; datetimes are stored with their time zone.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fieldrep_kernel.db.types import UUIDString


class Base(DeclarativeBase):
    """Root of every mapped class; ``id`` defaults to a fresh uuid4."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(12, 2),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds ``created_at``/``updated_at``, both written from the service Clock."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
