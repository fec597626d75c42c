"""
Module: fieldrep_kernel.models.visit_report
Responsibility: ORM persistence for visit reports, their presented products
    and their offered samples.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - state is one of the lifecycle values (check constraint).
    - A product is presented at most once and sampled at most once per
      report (unique constraints).
    - Sample quantities are positive (check constraint); the upper bound
      is a configurable business rule enforced before writing.
    - version increases on every write; edits are guarded on it.

Audit relevance:
    justification_count and validated_amount are written only by the
    validate transition, in the same transaction as its TransitionRecord.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldrep_kernel.db.base import Base, TrackedBase
from fieldrep_kernel.db.types import PrincipalId, ShortCode, StateCode, as_utc, round_money
from fieldrep_kernel.domain.entities import (
    ImpactLevel,
    OfferedSample,
    VisitReason,
    VisitReport,
)
from fieldrep_kernel.domain.workflow import SubmissionState

STATE_CHECK = "state IN ('created', 'validated', 'reimbursed', 'closed')"


class VisitReportModel(TrackedBase):
    """One sales visit, as persisted."""

    __tablename__ = "visit_reports"

    __table_args__ = (
        CheckConstraint(STATE_CHECK, name="ck_visit_reports_valid_state"),
        CheckConstraint(
            "confidence_score BETWEEN 1 AND 5",
            name="ck_visit_reports_confidence_score",
        ),
        Index("idx_visit_report_owner_date", "representative_id", "visit_date"),
        Index("idx_visit_report_state", "state"),
        Index("idx_visit_report_region", "region_id"),
    )

    visit_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason_code: Mapped[str] = mapped_column(String(30), nullable=False)
    reason_detail: Mapped[str] = mapped_column(Text, nullable=False, default="")
    narrative: Mapped[str] = mapped_column(Text, nullable=False)
    representative_id: Mapped[PrincipalId] = mapped_column(nullable=False)
    doctor_id: Mapped[str] = mapped_column(ForeignKey("doctors.id"), nullable=False)
    region_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    confidence_score: Mapped[int] = mapped_column(nullable=False, default=3)
    impact_level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_substitute: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    substitute_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    competitor_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    documentation_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    state: Mapped[StateCode] = mapped_column(nullable=False, default="created")
    justification_count: Mapped[int | None] = mapped_column(nullable=True)
    validated_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    presented_products: Mapped[list["VisitReportProductModel"]] = relationship(
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="VisitReportProductModel.position",
    )
    offered_samples: Mapped[list["VisitReportSampleModel"]] = relationship(
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="VisitReportSampleModel.position",
    )

    def to_dto(self) -> VisitReport:
        return VisitReport(
            id=self.id,
            visit_date=self.visit_date,
            reason_code=VisitReason(self.reason_code),
            narrative=self.narrative,
            representative_id=self.representative_id,
            doctor_id=self.doctor_id,
            presented_product_ids=tuple(p.product_id for p in self.presented_products),
            offered_samples=tuple(
                OfferedSample(s.product_id, s.quantity) for s in self.offered_samples
            ),
            reason_detail=self.reason_detail,
            confidence_score=self.confidence_score,
            impact_level=ImpactLevel(self.impact_level) if self.impact_level else None,
            is_substitute=self.is_substitute,
            substitute_name=self.substitute_name,
            competitor_notes=self.competitor_notes,
            documentation_notes=self.documentation_notes,
            region_id=self.region_id,
            state=SubmissionState(self.state),
            justification_count=self.justification_count,
            validated_amount=round_money(self.validated_amount),
            version=self.version,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )

    @classmethod
    def from_dto(cls, dto: VisitReport) -> "VisitReportModel":
        products, samples = cls.line_models(dto)
        return cls(
            id=dto.id,
            created_at=dto.created_at,
            presented_products=products,
            offered_samples=samples,
            **cls.header_values(dto),
        )

    @staticmethod
    def header_values(dto: VisitReport) -> dict:
        """Column values of the report row (everything but id and created_at)."""
        return {
            "visit_date": dto.visit_date,
            "reason_code": dto.reason_code.value,
            "reason_detail": dto.reason_detail,
            "narrative": dto.narrative,
            "representative_id": dto.representative_id,
            "doctor_id": dto.doctor_id,
            "region_id": dto.region_id,
            "confidence_score": dto.confidence_score,
            "impact_level": dto.impact_level.value if dto.impact_level else None,
            "is_substitute": dto.is_substitute,
            "substitute_name": dto.substitute_name,
            "competitor_notes": dto.competitor_notes,
            "documentation_notes": dto.documentation_notes,
            "state": dto.state.value,
            "justification_count": dto.justification_count,
            "validated_amount": dto.validated_amount,
            "version": dto.version,
            "updated_at": dto.updated_at,
        }

    @staticmethod
    def line_models(
        dto: VisitReport,
    ) -> tuple[list["VisitReportProductModel"], list["VisitReportSampleModel"]]:
        products = [
            VisitReportProductModel(report_id=dto.id, product_id=product_id, position=index)
            for index, product_id in enumerate(dto.presented_product_ids)
        ]
        samples = [
            VisitReportSampleModel(
                report_id=dto.id,
                product_id=sample.product_id,
                quantity=sample.quantity,
                position=index,
            )
            for index, sample in enumerate(dto.offered_samples)
        ]
        return products, samples

    def __repr__(self) -> str:
        return f"<VisitReportModel {self.id} {self.visit_date} [{self.state}]>"


class VisitReportProductModel(Base):
    """A product presented during a visit."""

    __tablename__ = "visit_report_products"

    __table_args__ = (
        UniqueConstraint("report_id", "product_id", name="uq_visit_report_product"),
        Index("idx_visit_report_product_report", "report_id"),
    )

    report_id: Mapped[UUID] = mapped_column(ForeignKey("visit_reports.id"), nullable=False)
    product_id: Mapped[ShortCode] = mapped_column(ForeignKey("products.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    report: Mapped[VisitReportModel] = relationship(back_populates="presented_products")


class VisitReportSampleModel(Base):
    """Samples of one product left with the physician."""

    __tablename__ = "visit_report_samples"

    __table_args__ = (
        UniqueConstraint("report_id", "product_id", name="uq_visit_report_sample"),
        CheckConstraint("quantity > 0", name="ck_visit_report_samples_quantity_positive"),
        Index("idx_visit_report_sample_report", "report_id"),
        Index("idx_visit_report_sample_product", "product_id"),
    )

    report_id: Mapped[UUID] = mapped_column(ForeignKey("visit_reports.id"), nullable=False)
    product_id: Mapped[ShortCode] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    report: Mapped[VisitReportModel] = relationship(back_populates="offered_samples")
