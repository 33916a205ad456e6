"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every workflow action
    (creation, edits, transitions, budget execution).  Provides chain
    validation for tamper detection and trace queries for review.

Architecture position:
    Kernel > Services -- imperative shell, called by WorkflowService and
    WorkflowEntityService.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Audit chain integrity: every event carries a cryptographic link to
      its predecessor, ``hash = H(..., payload_hash, prev_hash)``.
    - Append-only: audit events are never modified or deleted (ORM
      listeners on the AuditEvent model).

Failure modes:
    - AuditChainBrokenError: Recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.
    - IntegrityError: Concurrent insert race on sequence counter.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from planning_kernel.domain.clock import Clock, SystemClock, as_utc
from planning_kernel.domain.audit_trace import AuditTrace, AuditTraceEntry
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.workflow import WorkflowAction
from planning_kernel.exceptions import AuditChainBrokenError
from planning_kernel.logging_config import get_logger
from planning_kernel.models.audit_event import AuditAction, AuditEvent
from planning_kernel.services.sequence_service import SequenceService
from planning_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")

_TRANSITION_ACTIONS: dict[WorkflowAction, AuditAction] = {
    WorkflowAction.SUBMIT: AuditAction.ENTITY_SUBMITTED,
    WorkflowAction.APPROVE: AuditAction.ENTITY_APPROVED,
    WorkflowAction.REJECT: AuditAction.ENTITY_REJECTED,
    WorkflowAction.RESUBMIT: AuditAction.ENTITY_RESUBMITTED,
}


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Guarantees:
        - Every audit event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
          Tampering with any field is detectable by ``validate_chain()``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        Postconditions:
            - A new ``AuditEvent`` row is flushed to the session with a
              monotonically increasing ``seq`` and a valid chain link.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = payload or {}
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    # Domain-specific recording methods

    def record_entity_created(
        self, entity: WorkflowEntity, actor_id: UUID,
    ) -> AuditEvent:
        """Record that an objective or project was registered."""
        payload: dict[str, Any] = {
            "code": entity.code,
            "title": entity.title,
            "institution": entity.institution,
            "state": entity.state.value,
        }
        if entity.budget_assigned is not None:
            payload["budget_assigned"] = str(entity.budget_assigned)
        return self._create_audit_event(
            entity_type=entity.entity_type.value,
            entity_id=entity.id,
            action=AuditAction.ENTITY_CREATED,
            actor_id=actor_id,
            payload=payload,
        )

    def record_entity_updated(
        self,
        entity: WorkflowEntity,
        actor_id: UUID,
        changes: dict[str, Any],
    ) -> AuditEvent:
        """
        Record an edit of descriptive fields.

        ``changes`` maps field name to ``[old, new]``.
        """
        return self._create_audit_event(
            entity_type=entity.entity_type.value,
            entity_id=entity.id,
            action=AuditAction.ENTITY_UPDATED,
            actor_id=actor_id,
            payload={
                "code": entity.code,
                "version": entity.version,
                "changes": {k: [str(v) if v is not None else None for v in pair]
                            for k, pair in changes.items()},
            },
        )

    def record_transition(
        self,
        entity: WorkflowEntity,
        action: WorkflowAction,
        from_state: str,
        to_state: str,
        actor_id: UUID,
        actor_role: str,
        justification: str | None = None,
        decision_record_id: UUID | None = None,
    ) -> AuditEvent:
        """Record a workflow transition (and its decision, if any)."""
        payload: dict[str, Any] = {
            "code": entity.code,
            "from_state": from_state,
            "to_state": to_state,
            "actor_role": actor_role,
            "version": entity.version,
        }
        if justification is not None:
            payload["justification"] = justification
        if decision_record_id is not None:
            payload["decision_record_id"] = str(decision_record_id)
        return self._create_audit_event(
            entity_type=entity.entity_type.value,
            entity_id=entity.id,
            action=_TRANSITION_ACTIONS[action],
            actor_id=actor_id,
            payload=payload,
        )

    def record_budget_execution(
        self,
        entity: WorkflowEntity,
        actor_id: UUID,
        previous: Any,
        executed: Any,
    ) -> AuditEvent:
        """Record an update of a project's executed budget."""
        return self._create_audit_event(
            entity_type=entity.entity_type.value,
            entity_id=entity.id,
            action=AuditAction.BUDGET_EXECUTION_RECORDED,
            actor_id=actor_id,
            payload={
                "code": entity.code,
                "previous": str(previous) if previous is not None else None,
                "executed": str(executed),
            },
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns ``True`` only if every event's stored ``hash`` matches
              the recomputed value and every event's ``prev_hash`` matches
              its predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical(
                "audit_chain_broken",
                extra={"audit_event_id": str(events[0].id), "check": "genesis"},
            )
            raise AuditChainBrokenError(
                str(events[0].id), "None", events[0].prev_hash,
            )

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action_value,
                payload_hash=hash_payload(event.payload or {}),
                prev_hash=event.prev_hash,
            )

            if event.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_event_id": str(event.id), "check": "hash"},
                )
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical(
                        "audit_chain_broken",
                        extra={"audit_event_id": str(event.id), "check": "link"},
                    )
                    raise AuditChainBrokenError(
                        str(event.id), expected_prev, event.prev_hash or "None",
                    )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    # Trace and query methods

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Complete audit trace for an entity, in chronological order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=event.action_value,
                occurred_at=as_utc(event.occurred_at),
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(entity_type=entity_type, entity_id=entity_id, entries=entries)

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent audit events, newest first."""
        return list(
            self._session.execute(
                select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(limit)
            ).scalars().all()
        )
