"""
Tests for WorkflowService -- the only path by which an entity changes state.

Covers:
- End-to-end objective and project scenarios
- Mandatory justification on reject, with no side effects on failure
- Role and ownership checks, multi-role actors
- Resubmission after rejection
- Atomicity: a failing decision write or audit write rolls back the state
- Structured log events
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from planning_kernel.domain.decisions import Decision
from planning_kernel.domain.permissions import Identity, resolve
from planning_kernel.domain.roles import Module, Role
from planning_kernel.domain.workflow import (
    OBJECTIVE_WORKFLOW,
    PROJECT_WORKFLOW,
    EntityState,
    WorkflowAction,
)
from planning_kernel.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    StorageFailureError,
    UnauthorizedError,
    ValidationError,
)
from planning_kernel.models.audit_event import AuditEvent
from planning_kernel.models.decision_record import DecisionRecordModel
from planning_kernel.services.auditor_service import AuditorService
from planning_kernel.services.decision_recorder import DecisionRecorder
from planning_kernel.services.workflow_service import WorkflowService


def count_decisions(session) -> int:
    return session.execute(select(func.count()).select_from(DecisionRecordModel)).scalar_one()


def count_audit_events(session) -> int:
    return session.execute(select(func.count()).select_from(AuditEvent)).scalar_one()


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


class TestEndToEnd:
    def test_objective_validated_without_justification(
        self, session, create_objective, workflow_service, entity_service,
        decision_recorder, planner, validator,
    ):
        objective = create_objective("OBJ-001")
        assert objective.state is EntityState.DRAFT

        submitted = workflow_service.apply(objective.id, WorkflowAction.SUBMIT, planner)
        assert submitted.to_state is EntityState.SENT_FOR_VALIDATION
        assert submitted.decision_record is None

        result = workflow_service.apply(objective.id, WorkflowAction.APPROVE, validator)
        session.commit()

        assert result.entity.state is EntityState.VALIDATED
        assert result.acting_role == "VALIDATOR"
        history = decision_recorder.history_for("objective", objective.id)
        assert len(history) == 1
        assert history[0].decision is Decision.APPROVED
        assert history[0].justification is None
        assert history[0].actor_id == validator.user_id
        assert entity_service.get(objective.id).state is EntityState.VALIDATED

    def test_project_reject_with_empty_justification_changes_nothing(
        self, session, create_project, workflow_service, entity_service,
        planner, reviewer,
    ):
        project = create_project("PRJ-002")
        workflow_service.apply(project.id, WorkflowAction.SUBMIT, planner)
        session.commit()
        events_before = count_audit_events(session)

        with pytest.raises(ValidationError):
            workflow_service.apply(
                project.id, WorkflowAction.REJECT, reviewer, justification="",
            )

        assert entity_service.get(project.id).state is EntityState.SENT_FOR_REVIEW
        assert count_decisions(session) == 0
        assert count_audit_events(session) == events_before

    def test_auditor_is_read_only_on_projects(self, auditor):
        caps = resolve(auditor, Module.PROJECTS)
        assert (caps.can_view, caps.can_edit, caps.can_approve) == (True, False, False)

    def test_project_rejection_then_resubmission_then_approval(
        self, session, create_project, workflow_service, decision_recorder,
        planner, reviewer,
    ):
        project = create_project()
        workflow_service.apply(project.id, "submit", planner)
        rejected = workflow_service.apply(
            project.id, "reject", reviewer, justification="Missing cost breakdown",
        )
        assert rejected.entity.state is EntityState.REJECTED
        assert rejected.decision_record.justification == "Missing cost breakdown"

        back = workflow_service.apply(project.id, "resubmit", planner)
        assert back.entity.state is EntityState.DRAFT

        workflow_service.apply(project.id, "submit", planner)
        approved = workflow_service.apply(project.id, "approve", reviewer)
        session.commit()

        assert approved.entity.state is EntityState.APPROVED
        decisions = [r.decision for r in decision_recorder.history_for("project", project.id)]
        assert decisions == [Decision.REJECTED, Decision.APPROVED]

    def test_observed_edges_are_table_edges(
        self, create_objective, create_project, workflow_service, planner,
        validator, reviewer,
    ):
        observed = set()
        objective = create_objective()
        project = create_project()
        steps = [
            (objective, "submit", planner, None),
            (objective, "reject", validator, "Indicator has no baseline"),
            (objective, "resubmit", planner, None),
            (objective, "submit", planner, None),
            (objective, "approve", validator, None),
            (project, "submit", planner, None),
            (project, "approve", reviewer, None),
        ]
        for target, action, actor, note in steps:
            result = workflow_service.apply(target.id, action, actor, justification=note)
            observed.add((result.entity.entity_type, result.from_state, result.to_state))

        allowed = {
            (wf.entity_type, a, b)
            for wf in (OBJECTIVE_WORKFLOW, PROJECT_WORKFLOW)
            for a, b in wf.edges()
        }
        assert observed <= allowed


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    def test_reviewer_cannot_validate_objectives(
        self, create_objective, workflow_service, planner, reviewer,
    ):
        objective = create_objective()
        workflow_service.apply(objective.id, "submit", planner)
        with pytest.raises(UnauthorizedError):
            workflow_service.apply(objective.id, "approve", reviewer)

    def test_validator_cannot_approve_projects(
        self, create_project, workflow_service, planner, validator,
    ):
        project = create_project()
        workflow_service.apply(project.id, "submit", planner)
        with pytest.raises(UnauthorizedError):
            workflow_service.apply(project.id, "approve", validator)

    def test_other_planner_cannot_submit(
        self, create_objective, workflow_service, entity_service, other_planner,
    ):
        objective = create_objective()
        with pytest.raises(UnauthorizedError):
            workflow_service.apply(objective.id, "submit", other_planner)
        assert entity_service.get(objective.id).state is EntityState.DRAFT

    def test_admin_submits_on_behalf_of_owner(
        self, create_objective, workflow_service, admin,
    ):
        objective = create_objective()
        result = workflow_service.apply(objective.id, "submit", admin)
        assert result.acting_role == "ADMIN"

    def test_admin_cannot_resubmit(
        self, create_objective, workflow_service, planner, validator, admin,
    ):
        objective = create_objective()
        workflow_service.apply(objective.id, "submit", planner)
        workflow_service.apply(objective.id, "reject", validator, justification="Vague")
        with pytest.raises(UnauthorizedError):
            workflow_service.apply(objective.id, "resubmit", admin)

    def test_secondary_role_is_honoured(
        self, create_project, workflow_service, planner,
    ):
        project = create_project()
        workflow_service.apply(project.id, "submit", planner)
        auditor_reviewer = Identity.of(uuid4(), ["AUDITOR", "REVISOR"])
        result = workflow_service.apply(project.id, "approve", auditor_reviewer)
        assert result.acting_role == Role.REVIEWER.value
        assert result.decision_record.actor_role == "REVIEWER"

    @pytest.mark.parametrize("code", ["PLANNER", "PLANIF"])
    def test_identity_from_provider_codes(
        self, create_objective, workflow_service, planner, code,
    ):
        objective = create_objective()
        owner = Identity(user_id=planner.user_id, roles=(code,))
        result = workflow_service.apply(objective.id, "submit", owner)
        assert result.entity.state is EntityState.SENT_FOR_VALIDATION
        assert result.acting_role == "PLANNER"

    def test_no_edge_is_invalid_transition(
        self, create_project, workflow_service, reviewer,
    ):
        project = create_project()
        with pytest.raises(InvalidTransitionError):
            workflow_service.apply(project.id, "approve", reviewer)

    def test_unknown_entity(self, db_engine, workflow_service, planner):
        with pytest.raises(EntityNotFoundError):
            workflow_service.apply(uuid4(), "submit", planner)


# ---------------------------------------------------------------------------
# Atomicity
# ---------------------------------------------------------------------------


class _UnavailableRecorder(DecisionRecorder):
    def record(self, record):
        raise StorageFailureError("record decision", "storage unavailable")


class _BrokenAuditor(AuditorService):
    def record_transition(self, *args, **kwargs):
        raise OperationalError("INSERT INTO audit_events", {}, Exception("disk I/O error"))


class TestAtomicity:
    def test_decision_write_failure_rolls_back_state(
        self, session, deterministic_clock, create_project, workflow_service,
        entity_service, planner, reviewer,
    ):
        project = create_project()
        workflow_service.apply(project.id, "submit", planner)
        session.commit()
        before = entity_service.get(project.id)

        failing = WorkflowService(
            session, clock=deterministic_clock, decision_recorder=_UnavailableRecorder(session),
        )
        with pytest.raises(StorageFailureError):
            failing.apply(project.id, "approve", reviewer)

        after = entity_service.get(project.id)
        assert after.state is EntityState.SENT_FOR_REVIEW
        assert after.version == before.version
        assert count_decisions(session) == 0

    def test_audit_write_failure_is_storage_failure(
        self, session, deterministic_clock, create_objective, workflow_service,
        entity_service, planner, validator,
    ):
        objective = create_objective()
        workflow_service.apply(objective.id, "submit", planner)
        session.commit()

        failing = WorkflowService(
            session,
            clock=deterministic_clock,
            auditor=_BrokenAuditor(session, deterministic_clock),
        )
        with pytest.raises(StorageFailureError) as exc_info:
            failing.apply(objective.id, "approve", validator)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert entity_service.get(objective.id).state is EntityState.SENT_FOR_VALIDATION
        assert count_decisions(session) == 0

    def test_session_usable_after_rollback(
        self, session, deterministic_clock, create_project, workflow_service,
        planner, reviewer,
    ):
        project = create_project()
        workflow_service.apply(project.id, "submit", planner)
        failing = WorkflowService(
            session, clock=deterministic_clock, decision_recorder=_UnavailableRecorder(session),
        )
        with pytest.raises(StorageFailureError):
            failing.apply(project.id, "approve", reviewer)

        result = workflow_service.apply(project.id, "approve", reviewer)
        session.commit()
        assert result.entity.state is EntityState.APPROVED


# ---------------------------------------------------------------------------
# Versions and logging
# ---------------------------------------------------------------------------


class TestVersionsAndLogging:
    def test_each_transition_bumps_version(
        self, create_objective, workflow_service, planner, validator,
    ):
        objective = create_objective()
        assert objective.version == 1
        first = workflow_service.apply(objective.id, "submit", planner)
        second = workflow_service.apply(objective.id, "approve", validator)
        assert (first.new_version, second.new_version) == (2, 3)
        assert second.decision_record.entity_version == 2

    def test_applied_transition_is_logged(
        self, captured_logs, create_objective, workflow_service, planner,
    ):
        objective = create_objective()
        workflow_service.apply(objective.id, "submit", planner)
        applied = [r for r in captured_logs() if r["message"] == "workflow_transition_applied"]
        assert len(applied) == 1
        assert applied[0]["to_state"] == "sent_for_validation"
        assert applied[0]["actor_id"] == str(planner.user_id)
        assert applied[0]["entity_id"] == str(objective.id)

    def test_denied_transition_is_logged_as_warning(
        self, captured_logs, create_objective, workflow_service, reviewer,
    ):
        objective = create_objective()
        with pytest.raises(UnauthorizedError):
            workflow_service.apply(objective.id, "submit", reviewer)
        denied = [r for r in captured_logs() if r["message"] == "transition_denied"]
        assert denied[0]["level"] == "WARNING"
        assert denied[0]["error_code"] == "UNAUTHORIZED"
