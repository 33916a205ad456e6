"""
Module: planning_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEvent IS the activity log.  Every workflow action (create, edit,
    submit, approve, reject, resubmit, budget execution) produces one.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import Base, UUIDString
from planning_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Entity lifecycle
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    BUDGET_EXECUTION_RECORDED = "budget_execution_recorded"

    # Workflow transitions
    ENTITY_SUBMITTED = "entity_submitted"
    ENTITY_APPROVED = "entity_approved"
    ENTITY_REJECTED = "entity_rejected"
    ENTITY_RESUBMITTED = "entity_resubmitted"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Contract:
        AuditEvent rows are append-only, never updated or deleted.  Each
        row's hash includes the previous row's hash.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    # Monotonic sequence for ordering
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # "objective" or "project"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Hash of the previous audit event (null for first event)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # hash = H(entity_type + entity_id + action + payload_hash + prev_hash)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action_value} on {self.entity_type}:{self.entity_id}>"

    @property
    def action_value(self) -> str:
        """Action as a plain string (freshly loaded rows hold the raw value)."""
        return self.action.value if isinstance(self.action, AuditAction) else self.action

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None


@event.listens_for(AuditEvent, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to audit events."""
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot modify",
    )


@event.listens_for(AuditEvent, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletion of audit events."""
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot delete",
    )
