"""
Module: fieldrep_kernel.models.expense_sheet
Responsibility: ORM persistence for monthly expense sheets and their
    flat-rate and itemized lines.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - At most one sheet per (owner_id, year, month): UNIQUE constraint.
      A concurrent duplicate create surfaces as IntegrityError, which the
      store translates to DuplicateExpenseSheetError.
    - state is one of the lifecycle values (check constraint).
    - Flat-rate quantities and itemized amounts are non-negative.
    - An expense type appears at most once per sheet.

Audit relevance:
    Flat-rate lines store quantities only; their value is recomputed from
    the tariff in effect.  validated_amount is the reviewer's figure.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldrep_kernel.db.base import Base, TrackedBase
from fieldrep_kernel.db.types import Money, PrincipalId, ShortCode, StateCode, as_utc, round_money
from fieldrep_kernel.domain.entities import ExpenseSheet, FlatRateLine, ItemizedLine
from fieldrep_kernel.domain.values import PeriodKey
from fieldrep_kernel.domain.workflow import SubmissionState
from fieldrep_kernel.models.visit_report import STATE_CHECK


class ExpenseSheetModel(TrackedBase):
    """One representative's expense claim for one month."""

    __tablename__ = "expense_sheets"

    __table_args__ = (
        UniqueConstraint("owner_id", "year", "month", name="uq_expense_sheet_owner_month"),
        CheckConstraint(STATE_CHECK, name="ck_expense_sheets_valid_state"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_expense_sheets_month"),
        CheckConstraint(
            "justification_count >= 0",
            name="ck_expense_sheets_justification_count",
        ),
        Index("idx_expense_sheet_period", "year", "month"),
        Index("idx_expense_sheet_state", "state"),
        Index("idx_expense_sheet_region", "region_id"),
    )

    owner_id: Mapped[PrincipalId] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    month: Mapped[int] = mapped_column(nullable=False)
    region_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    state: Mapped[StateCode] = mapped_column(nullable=False, default="created")
    justification_count: Mapped[int] = mapped_column(nullable=False, default=0)
    validated_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    flat_rate_lines: Mapped[list["FlatRateLineModel"]] = relationship(
        back_populates="sheet",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FlatRateLineModel.position",
    )
    itemized_lines: Mapped[list["ItemizedLineModel"]] = relationship(
        back_populates="sheet",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ItemizedLineModel.position",
    )

    def to_dto(self) -> ExpenseSheet:
        return ExpenseSheet(
            id=self.id,
            owner_id=self.owner_id,
            period=PeriodKey(self.year, self.month),
            flat_rate_lines=tuple(
                FlatRateLine(line.expense_type_id, line.quantity)
                for line in self.flat_rate_lines
            ),
            itemized_lines=tuple(
                ItemizedLine(line.label, line.line_date, round_money(line.amount))
                for line in self.itemized_lines
            ),
            region_id=self.region_id,
            state=SubmissionState(self.state),
            justification_count=self.justification_count,
            validated_amount=round_money(self.validated_amount),
            version=self.version,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )

    @classmethod
    def from_dto(cls, dto: ExpenseSheet) -> "ExpenseSheetModel":
        flat_rate, itemized = cls.line_models(dto)
        return cls(
            id=dto.id,
            owner_id=dto.owner_id,
            year=dto.period.year,
            month=dto.period.month,
            created_at=dto.created_at,
            flat_rate_lines=flat_rate,
            itemized_lines=itemized,
            **cls.header_values(dto),
        )

    @staticmethod
    def header_values(dto: ExpenseSheet) -> dict:
        """Mutable column values of the sheet row (owner and month are fixed)."""
        return {
            "region_id": dto.region_id,
            "state": dto.state.value,
            "justification_count": dto.justification_count,
            "validated_amount": dto.validated_amount,
            "version": dto.version,
            "updated_at": dto.updated_at,
        }

    @staticmethod
    def line_models(
        dto: ExpenseSheet,
    ) -> tuple[list["FlatRateLineModel"], list["ItemizedLineModel"]]:
        flat_rate = [
            FlatRateLineModel(
                sheet_id=dto.id,
                expense_type_id=line.expense_type_id,
                quantity=line.quantity,
                position=index,
            )
            for index, line in enumerate(dto.flat_rate_lines)
        ]
        itemized = [
            ItemizedLineModel(
                sheet_id=dto.id,
                label=line.label,
                line_date=line.line_date,
                amount=line.amount,
                position=index,
            )
            for index, line in enumerate(dto.itemized_lines)
        ]
        return flat_rate, itemized

    def __repr__(self) -> str:
        return f"<ExpenseSheetModel {self.owner_id} {self.year}-{self.month:02d} [{self.state}]>"


class FlatRateLineModel(Base):
    """Quantity of one tariffed expense type on a sheet."""

    __tablename__ = "expense_sheet_flat_rate_lines"

    __table_args__ = (
        UniqueConstraint("sheet_id", "expense_type_id", name="uq_flat_rate_line_type"),
        CheckConstraint("quantity >= 0", name="ck_flat_rate_lines_quantity"),
        Index("idx_flat_rate_line_sheet", "sheet_id"),
    )

    sheet_id: Mapped[UUID] = mapped_column(ForeignKey("expense_sheets.id"), nullable=False)
    expense_type_id: Mapped[ShortCode] = mapped_column(
        ForeignKey("expense_types.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    sheet: Mapped[ExpenseSheetModel] = relationship(back_populates="flat_rate_lines")


class ItemizedLineModel(Base):
    """A free-form expense with its own amount."""

    __tablename__ = "expense_sheet_itemized_lines"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_itemized_lines_amount"),
        Index("idx_itemized_line_sheet", "sheet_id"),
    )

    sheet_id: Mapped[UUID] = mapped_column(ForeignKey("expense_sheets.id"), nullable=False)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    line_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    sheet: Mapped[ExpenseSheetModel] = relationship(back_populates="itemized_lines")
