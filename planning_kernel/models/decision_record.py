"""
Module: planning_kernel.models.decision_record
Responsibility: ORM persistence for approve/reject decisions.
Architecture position: Kernel > Models.  May import from db/base.py,
    exceptions, and domain/ (for DTO conversion only).

Invariants enforced:
    - Append-only: ORM ``before_update`` / ``before_delete`` listeners raise
      ImmutabilityViolationError.
    - REJECTED rows always carry a non-empty justification (checked by the
      DTO before the row is built).

Audit relevance:
    Decision records are the evidence behind every validated, approved and
    rejected entity, and feed the compliance aggregator.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import Base, UUIDString
from planning_kernel.domain.clock import as_utc
from planning_kernel.domain.decisions import Decision, DecisionRecord
from planning_kernel.exceptions import ImmutabilityViolationError


class DecisionRecordModel(Base):
    """Persistent decision record. Append-only.

    Contract:
        Records are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "decision_records"

    __table_args__ = (
        Index("idx_decision_entity", "entity_type", "entity_id"),
        Index("idx_decision_decided_at", "decided_at"),
    )

    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # APPROVED or REJECTED
    decision: Mapped[str] = mapped_column(String(20), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)

    decided_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    justification: Mapped[str | None] = mapped_column(Text, nullable=True)

    from_state: Mapped[str] = mapped_column(String(30), nullable=False)
    to_state: Mapped[str] = mapped_column(String(30), nullable=False)

    # Entity version the decision was taken against
    entity_version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return f"<DecisionRecord {self.decision} on {self.entity_type}:{self.entity_id}>"

    def to_dto(self) -> DecisionRecord:
        """Convert ORM model to frozen domain DTO."""
        return DecisionRecord(
            record_id=self.id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            decision=Decision(self.decision),
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            decided_at=as_utc(self.decided_at),
            justification=self.justification,
            from_state=self.from_state,
            to_state=self.to_state,
            entity_version=self.entity_version,
        )

    @classmethod
    def from_dto(cls, dto: DecisionRecord) -> DecisionRecordModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.record_id,
            entity_type=str(getattr(dto.entity_type, "value", dto.entity_type)),
            entity_id=dto.entity_id,
            decision=dto.decision.value,
            actor_id=dto.actor_id,
            actor_role=dto.actor_role,
            decided_at=dto.decided_at,
            justification=dto.justification,
            from_state=str(getattr(dto.from_state, "value", dto.from_state)),
            to_state=str(getattr(dto.to_state, "value", dto.to_state)),
            entity_version=dto.entity_version,
        )


# =============================================================================
# Immutability listeners
# =============================================================================


@event.listens_for(DecisionRecordModel, "before_update")
def prevent_decision_update(mapper, connection, target):
    """Prevent updates to decision records."""
    raise ImmutabilityViolationError(
        entity_type="DecisionRecord",
        entity_id=str(target.id),
        reason="Decision records are immutable -- cannot modify",
    )


@event.listens_for(DecisionRecordModel, "before_delete")
def prevent_decision_delete(mapper, connection, target):
    """Prevent deletion of decision records."""
    raise ImmutabilityViolationError(
        entity_type="DecisionRecord",
        entity_id=str(target.id),
        reason="Decision records are immutable -- cannot delete",
    )
