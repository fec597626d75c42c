"""
Values -- Immutable domain value objects.

Responsibility:
    Period keys (a year-month pair) and money rounding.  Money is always a
    ``Decimal`` with two fractional digits, rounded half-up; float never
    appears in amount arithmetic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValueError on malformed period strings or out-of-range months.
    - ValueError when a money value cannot be read as a finite decimal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_money(value: Any) -> Decimal:
    """Read ``value`` as an exact, unrounded Decimal.

    Accepts Decimal, int or str.  Floats are converted through ``str`` so
    that ``12.3`` becomes ``Decimal("12.3")`` rather than its binary
    expansion.  Sign checks run on this value, since ``to_money("-0.004")``
    is zero.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a money amount: {value!r}")
    try:
        if isinstance(value, float):
            amount = Decimal(str(value))
        else:
            amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a money amount: {value!r}")
    return amount


def to_money(value: Any) -> Decimal:
    """Read ``value`` as a decimal amount rounded half-up to cents."""
    return parse_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, order=True)
class PeriodKey:
    """A (year, month) reporting period.

    Guarantees:
        - month is 1..12, year is 1..9999.
        - ``str(period)`` is the canonical ``YYYY-MM`` form.
        - Ordering is chronological.
    """

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1..12, got {self.month}")
        if not 1 <= self.year <= 9999:
            raise ValueError(f"year must be 1..9999, got {self.year}")

    @classmethod
    def parse(cls, value: "str | PeriodKey") -> "PeriodKey":
        """Parse ``YYYY-MM``; a PeriodKey is returned unchanged."""
        if isinstance(value, PeriodKey):
            return value
        match = _PERIOD_RE.match(value.strip()) if isinstance(value, str) else None
        if match is None:
            raise ValueError(f"Period must be formatted YYYY-MM, got {value!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def of(cls, day: date) -> "PeriodKey":
        return cls(day.year, day.month)

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def next_first_day(self) -> date:
        """First day of the following month (exclusive upper bound)."""
        if self.month == 12:
            return date(self.year + 1, 1, 1)
        return date(self.year, self.month + 1, 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"
