"""
DecisionRecorder -- append-only persistence of approve/reject decisions.

Responsibility:
    Persists DecisionRecords produced by decision-bearing workflow
    transitions and reads them back.  Records are never updated or
    deleted.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by WorkflowService.apply inside its savepoint.

Invariants enforced:
    - Append-only (ORM listeners on DecisionRecordModel).
    - No partial writes visible: a record is flushed inside the caller's
      transaction and becomes visible only when that transaction commits.

Failure modes:
    - StorageFailureError: the database rejected or could not accept the
      write.  The original SQLAlchemyError is kept as ``__cause__``.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from planning_kernel.domain.decisions import DecisionRecord
from planning_kernel.exceptions import StorageFailureError
from planning_kernel.logging_config import get_logger
from planning_kernel.models.decision_record import DecisionRecordModel
from planning_kernel.services.base import BaseService

logger = get_logger("services.decision_recorder")


def _value(entity_type) -> str:
    return getattr(entity_type, "value", entity_type)


class DecisionRecorder(BaseService):
    """
    Append-only store for decision records.

    Non-goals:
        - Does NOT validate workflow legality; WorkflowService does.
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def record(self, record: DecisionRecord) -> UUID:
        """
        Append a decision record.

        Postconditions:
            - The record is flushed and readable in this transaction.

        Raises:
            StorageFailureError: If the write fails.

        Returns:
            The record id.
        """
        try:
            model = DecisionRecordModel.from_dto(record)
            self.session.add(model)
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "decision_record_storage_failed",
                extra={
                    "record_id": str(record.record_id),
                    "entity_id": str(record.entity_id),
                    "error": type(exc).__name__,
                },
            )
            raise StorageFailureError("record decision", str(exc)) from exc

        logger.info(
            "decision_recorded",
            extra={
                "record_id": str(model.id),
                "entity_type": model.entity_type,
                "entity_id": str(record.entity_id),
                "decision": record.decision.value,
                "actor_role": record.actor_role,
            },
        )
        return model.id

    def get(self, record_id: UUID) -> DecisionRecord | None:
        model = self.session.get(DecisionRecordModel, record_id)
        return model.to_dto() if model is not None else None

    def history_for(self, entity_type: str, entity_id: UUID) -> list[DecisionRecord]:
        """All decisions on one entity, oldest first."""
        models = self.session.execute(
            select(DecisionRecordModel)
            .where(
                DecisionRecordModel.entity_type == _value(entity_type),
                DecisionRecordModel.entity_id == entity_id,
            )
            .order_by(
                DecisionRecordModel.decided_at,
                DecisionRecordModel.entity_version,
            )
        ).scalars().all()
        return [m.to_dto() for m in models]

    def all_records(self, entity_type: str | None = None) -> list[DecisionRecord]:
        """Every decision (optionally of one entity type), oldest first."""
        stmt = select(DecisionRecordModel).order_by(
            DecisionRecordModel.decided_at,
            DecisionRecordModel.entity_version,
        )
        if entity_type is not None:
            stmt = stmt.where(DecisionRecordModel.entity_type == _value(entity_type))
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]
