"""
Module: fieldrep_kernel.db.types
Responsibility: Annotated type aliases for the column types shared by the
    ORM models, and the conversion from stored values back to domain money.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or stores/.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated
from uuid import UUID

from sqlalchemy import Numeric, String
from sqlalchemy.orm import mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column stored as String(36) on every dialect."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


# Money with two fractional digits
Money = Annotated[Decimal, mapped_column(Numeric(12, 2))]

# Catalog identifiers ("km", "NUI", doctor and product codes)
ShortCode = Annotated[str, mapped_column(String(50))]

# Principal identifiers from the user directory
PrincipalId = Annotated[str, mapped_column(String(100))]

# Lifecycle state values (created, validated, ...)
StateCode = Annotated[str, mapped_column(String(20))]

MONEY_DECIMAL_PLACES = 2


def round_money(value: Decimal | int | float | None) -> Decimal | None:
    """Quantize a value read from the database to cents (half-up).

    SQLite returns Numeric columns through float; quantizing restores the
    canonical two-digit Decimal.
    """
    if value is None:
        return None
    quantum = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
