"""
WorkflowService -- the only path by which a workflow entity changes state.

Responsibility:
    Loads the entity, validates the requested action with the pure
    transition planner, then applies the state change, the decision record
    (for approve/reject) and the audit event as one atomic unit.

Architecture position:
    Kernel > Services -- imperative shell around
    ``domain.transitions.plan_transition``.

Invariants enforced:
    - Check-then-act: every check (lookup, version, edge, role, ownership,
      justification) runs before any mutation.  A failed check leaves no
      trace in the database.
    - Atomicity: state + version bump + DecisionRecord + AuditEvent are
      flushed inside one savepoint.  Any failure rolls the savepoint back,
      so no entity is left in a decided state without its record.
    - Optimistic concurrency: the entity's ``version`` column guards the
      UPDATE.  Of two transactions racing on the same version, the second
      flush matches zero rows and surfaces ConcurrentModificationError.

Failure modes:
    - EntityNotFoundError, ConcurrentModificationError,
      InvalidTransitionError, UnauthorizedError,
      JustificationRequiredError (a ValidationError), StorageFailureError.
      None of them is retried here; the caller decides.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from planning_kernel.domain.clock import Clock, SystemClock
from planning_kernel.domain.decisions import DecisionRecord
from planning_kernel.domain.entities import TransitionResult
from planning_kernel.domain.permissions import Identity
from planning_kernel.domain.roles import Role
from planning_kernel.domain.transitions import TransitionPlan, plan_transition
from planning_kernel.domain.workflow import WorkflowAction
from planning_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    PlanningKernelError,
    StorageFailureError,
)
from planning_kernel.logging_config import LogContext, get_logger
from planning_kernel.models.workflow_entity import WorkflowEntityModel
from planning_kernel.services.auditor_service import AuditorService
from planning_kernel.services.base import BaseService
from planning_kernel.services.decision_recorder import DecisionRecorder

logger = get_logger("services.workflow")


class WorkflowService(BaseService):
    """
    Applies workflow actions to objectives and projects.

    Contract:
        ``apply`` either returns a TransitionResult with everything flushed
        in the caller's transaction, or raises a typed error with nothing
        flushed.  The caller commits.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT retry on ConcurrentModificationError.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        decision_recorder: DecisionRecorder | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._recorder = decision_recorder or DecisionRecorder(session)
        self._auditor = auditor or AuditorService(session, self._clock)

    def apply(
        self,
        entity_id: UUID,
        action: WorkflowAction | str,
        identity: Identity,
        justification: str | None = None,
        expected_version: int | None = None,
        acting_role: Role | str | None = None,
    ) -> TransitionResult:
        """
        Apply a workflow action.

        Args:
            entity_id: Target objective or project.
            action: submit, approve, reject or resubmit.
            identity: The acting user and all of their roles.
            justification: Free text; mandatory (non-blank) for reject.
            expected_version: If given, the version the caller last saw.
            acting_role: If given, the held role to act as.

        Returns:
            TransitionResult with the new entity snapshot and, for
            approve/reject, the persisted DecisionRecord.
        """
        with LogContext.bind(actor_id=str(identity.user_id), entity_id=str(entity_id)):
            model = self.session.get(WorkflowEntityModel, entity_id)
            if model is None:
                logger.warning(
                    "transition_denied",
                    extra={"action": str(getattr(action, "value", action)),
                           "error_code": EntityNotFoundError.code},
                )
                raise EntityNotFoundError(str(entity_id))

            snapshot = model.to_dto()
            try:
                plan = plan_transition(
                    snapshot,
                    action,
                    identity,
                    justification=justification,
                    expected_version=expected_version,
                    acting_role=acting_role,
                )
            except PlanningKernelError as exc:
                logger.warning(
                    "transition_denied",
                    extra={
                        "entity_type": snapshot.entity_type.value,
                        "state": snapshot.state.value,
                        "action": str(getattr(action, "value", action)),
                        "roles": list(identity.role_codes),
                        "error_code": exc.code,
                    },
                )
                raise

            return self._execute(model, plan, identity)

    def _execute(
        self,
        model: WorkflowEntityModel,
        plan: TransitionPlan,
        identity: Identity,
    ) -> TransitionResult:
        transition = plan.transition
        snapshot = plan.entity

        try:
            with self.session.begin_nested():
                model.state = transition.to_state.value
                model.updated_by_id = identity.user_id
                self.session.flush()

                record = None
                if transition.decision is not None:
                    record = DecisionRecord(
                        entity_type=snapshot.entity_type.value,
                        entity_id=snapshot.id,
                        decision=transition.decision,
                        actor_id=identity.user_id,
                        actor_role=plan.acting_role.value,
                        decided_at=self._clock.now(),
                        justification=plan.justification,
                        from_state=transition.from_state.value,
                        to_state=transition.to_state.value,
                        entity_version=snapshot.version,
                    )
                    self._recorder.record(record)

                updated = model.to_dto()
                self._auditor.record_transition(
                    updated,
                    transition.action,
                    from_state=transition.from_state.value,
                    to_state=transition.to_state.value,
                    actor_id=identity.user_id,
                    actor_role=plan.acting_role.value,
                    justification=plan.justification,
                    decision_record_id=record.record_id if record else None,
                )
        except StaleDataError as exc:
            logger.warning(
                "transition_conflict",
                extra={
                    "entity_type": snapshot.entity_type.value,
                    "action": transition.action.value,
                    "loaded_version": snapshot.version,
                },
            )
            raise ConcurrentModificationError(
                snapshot.entity_type.value,
                str(snapshot.id),
                expected_version=snapshot.version,
            ) from exc
        except StorageFailureError:
            logger.error(
                "transition_rolled_back",
                extra={
                    "entity_type": snapshot.entity_type.value,
                    "action": transition.action.value,
                },
            )
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "transition_rolled_back",
                extra={
                    "entity_type": snapshot.entity_type.value,
                    "action": transition.action.value,
                    "error": type(exc).__name__,
                },
            )
            raise StorageFailureError("apply transition", str(exc)) from exc

        logger.info(
            "workflow_transition_applied",
            extra={
                "entity_type": updated.entity_type.value,
                "code": updated.code,
                "action": transition.action.value,
                "from_state": transition.from_state.value,
                "to_state": transition.to_state.value,
                "acting_role": plan.acting_role.value,
                "version": updated.version,
                "decision": transition.decision.value if transition.decision else None,
            },
        )

        return TransitionResult(
            entity=updated,
            action=transition.action,
            from_state=transition.from_state,
            to_state=transition.to_state,
            acting_role=plan.acting_role.value,
            decision_record=record,
        )
