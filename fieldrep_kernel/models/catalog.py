"""
Module: fieldrep_kernel.models.catalog
Responsibility: ORM persistence for the reference catalog: doctors,
    product families, products and tariffed expense types.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Catalog rows are keyed by their business code (``"km"``, ``"NUI"``,
      doctor and product codes), not by a generated UUID.
    - Expense type tariffs are money (Numeric(12, 2)) and non-negative.

Audit relevance:
    The kernel only reads these tables.  Tariffs are looked up when a
    default total is computed; a sheet never stores a copy of them.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldrep_kernel.db.base import Base
from fieldrep_kernel.db.types import Money, ShortCode


class DoctorModel(Base):
    """A physician who can be visited."""

    __tablename__ = "doctors"

    __table_args__ = (
        Index("idx_doctor_region", "region_id"),
    )

    id: Mapped[ShortCode] = mapped_column(primary_key=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    specialty: Mapped[str | None] = mapped_column(String(100), nullable=True)
    region_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<DoctorModel {self.id} {self.last_name}>"


class ProductFamilyModel(Base):
    __tablename__ = "product_families"

    id: Mapped[ShortCode] = mapped_column(primary_key=True)
    label: Mapped[str] = mapped_column(String(100), nullable=False)


class ProductModel(Base):
    """A medication that can be presented or sampled."""

    __tablename__ = "products"

    id: Mapped[ShortCode] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    family_id: Mapped[str | None] = mapped_column(
        ForeignKey("product_families.id"), nullable=True
    )

    family: Mapped[ProductFamilyModel | None] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<ProductModel {self.id} {self.name}>"


class ExpenseTypeModel(Base):
    """A flat-rate expense type and its unit tariff."""

    __tablename__ = "expense_types"

    __table_args__ = (
        CheckConstraint("tariff >= 0", name="ck_expense_types_tariff_non_negative"),
    )

    id: Mapped[ShortCode] = mapped_column(primary_key=True)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    tariff: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0.00"))

    def __repr__(self) -> str:
        return f"<ExpenseTypeModel {self.id} {self.tariff}>"
