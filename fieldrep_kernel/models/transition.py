"""
Module: fieldrep_kernel.models.transition
Responsibility: ORM persistence for the append-only transition log.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One row per committed transition, written in the same transaction
      as the state change it describes.
    - Rows are never updated or deleted by the kernel.

Audit relevance:
    The log records who moved which entity from which state to which, and
    the figures the reviewer entered, so final amounts can be
    reconstructed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fieldrep_kernel.db.base import Base
from fieldrep_kernel.db.types import PrincipalId, StateCode, as_utc, round_money
from fieldrep_kernel.domain.entities import TransitionRecord
from fieldrep_kernel.domain.workflow import SubmissionState


class TransitionRecordModel(Base):
    __tablename__ = "transition_records"

    __table_args__ = (
        Index("idx_transition_record_entity", "entity_type", "entity_id"),
        Index("idx_transition_record_actor", "actor_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    from_state: Mapped[StateCode] = mapped_column(nullable=False)
    to_state: Mapped[StateCode] = mapped_column(nullable=False)
    actor_id: Mapped[PrincipalId] = mapped_column(nullable=False)
    actor_role: Mapped[str] = mapped_column(String(30), nullable=False)
    at: Mapped[datetime] = mapped_column(nullable=False)
    justification_count: Mapped[int | None] = mapped_column(nullable=True)
    validated_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    def to_dto(self) -> TransitionRecord:
        return TransitionRecord(
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            action=self.action,
            from_state=SubmissionState(self.from_state),
            to_state=SubmissionState(self.to_state),
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            at=as_utc(self.at),
            justification_count=self.justification_count,
            validated_amount=round_money(self.validated_amount),
        )

    @classmethod
    def from_dto(cls, dto: TransitionRecord) -> "TransitionRecordModel":
        return cls(
            entity_type=dto.entity_type,
            entity_id=dto.entity_id,
            action=dto.action,
            from_state=dto.from_state.value,
            to_state=dto.to_state.value,
            actor_id=dto.actor_id,
            actor_role=dto.actor_role,
            at=dto.at,
            justification_count=dto.justification_count,
            validated_amount=dto.validated_amount,
        )

    def __repr__(self) -> str:
        return (
            f"<TransitionRecordModel {self.entity_type} {self.entity_id} "
            f"{self.from_state}->{self.to_state}>"
        )
