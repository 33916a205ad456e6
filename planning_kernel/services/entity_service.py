"""
WorkflowEntityService -- registration and editing of objectives and projects.

Responsibility:
    Creates workflow entities in their initial state, edits their
    descriptive fields while they are still editable, and records budget
    execution on approved projects.  Never changes ``state``: that is
    WorkflowService's job alone.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - New entities start in the workflow's initial state (draft), owned by
      the creating user.
    - Creation requires ``can_edit`` on the entity's module and the PLANNER
      or ADMIN role.
    - Details are editable only in draft or rejected.
    - Budget columns exist only on projects; amounts are never negative.
    - Every change writes an audit event in the same transaction.

Failure modes:
    - UnauthorizedError, ValidationError, DuplicateEntityCodeError,
      EntityLockedError, EntityNotFoundError, ConcurrentModificationError.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from planning_kernel.domain.clock import Clock, SystemClock
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.permissions import Identity, require
from planning_kernel.domain.roles import Role
from planning_kernel.domain.workflow import EntityState, EntityType, workflow_for
from planning_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateEntityCodeError,
    EntityLockedError,
    EntityNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from planning_kernel.logging_config import LogContext, get_logger
from planning_kernel.models.workflow_entity import WorkflowEntityModel
from planning_kernel.services.auditor_service import AuditorService
from planning_kernel.services.base import BaseService

logger = get_logger("services.entity")

_CREATOR_ROLES = frozenset({Role.PLANNER, Role.ADMIN})


def _parse_entity_type(entity_type: EntityType | str) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise ValidationError(
            f"Unknown entity type: {entity_type!r}", field="entity_type",
        ) from None


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} must not be blank", field=field)
    return text


def _parse_amount(value: Any, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} is not a valid amount", field=field) from None
    if not amount.is_finite():
        raise ValidationError(f"{field} is not a valid amount", field=field)
    if amount < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return amount


class WorkflowEntityService(BaseService):
    """
    Write-side service for objective and project records.

    Non-goals:
        - Does NOT move entities between workflow states.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    # Lookup

    def _load(self, entity_id: UUID) -> WorkflowEntityModel:
        model = self.session.get(WorkflowEntityModel, entity_id)
        if model is None:
            raise EntityNotFoundError(str(entity_id))
        return model

    def get(self, entity_id: UUID) -> WorkflowEntity:
        """
        Raises:
            EntityNotFoundError: If no entity has this id.
        """
        return self._load(entity_id).to_dto()

    def get_by_code(self, entity_type: EntityType | str, code: str) -> WorkflowEntity:
        """
        Raises:
            EntityNotFoundError: If no entity of this type has this code.
        """
        parsed = _parse_entity_type(entity_type)
        model = self.session.execute(
            select(WorkflowEntityModel).where(
                WorkflowEntityModel.entity_type == parsed.value,
                WorkflowEntityModel.code == code.strip(),
            )
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError(code, entity_type=parsed.value)
        return model.to_dto()

    # Commands

    def create(
        self,
        entity_type: EntityType | str,
        code: str,
        title: str,
        institution: str,
        identity: Identity,
        budget_assigned: Decimal | None = None,
    ) -> WorkflowEntity:
        """
        Register a new objective or project in draft.

        Raises:
            ValidationError: Unknown type, blank fields, or a budget on an
                objective.
            UnauthorizedError: Caller may not create entities of this type.
            DuplicateEntityCodeError: The code is already used.
        """
        parsed = _parse_entity_type(entity_type)
        workflow = workflow_for(parsed)

        require(identity, workflow.module, "can_edit")
        if not any(role in _CREATOR_ROLES for role in identity.roles):
            raise UnauthorizedError(
                action=f"create {parsed.value}",
                roles=identity.role_codes,
                reason="only a planner or an admin may register entities",
                module=workflow.module.value,
            )

        clean_code = _require_text(code, "code")
        clean_title = _require_text(title, "title")
        clean_institution = _require_text(institution, "institution")

        assigned = None
        if budget_assigned is not None:
            if parsed != EntityType.PROJECT:
                raise ValidationError(
                    "Only projects carry a budget", field="budget_assigned",
                )
            assigned = _parse_amount(budget_assigned, "budget_assigned")

        existing = self.session.execute(
            select(WorkflowEntityModel.id).where(
                WorkflowEntityModel.entity_type == parsed.value,
                WorkflowEntityModel.code == clean_code,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateEntityCodeError(parsed.value, clean_code)

        model = WorkflowEntityModel(
            entity_type=parsed.value,
            code=clean_code,
            title=clean_title,
            institution=clean_institution,
            state=workflow.initial_state.value,
            owner_id=identity.user_id,
            budget_assigned=assigned,
            budget_executed=None,
            created_by_id=identity.user_id,
        )
        self.session.add(model)
        self.session.flush()

        entity = model.to_dto()
        self._auditor.record_entity_created(entity, identity.user_id)

        with LogContext.bind(actor_id=str(identity.user_id), entity_id=str(model.id)):
            logger.info(
                "workflow_entity_created",
                extra={
                    "entity_type": parsed.value,
                    "code": clean_code,
                    "institution": clean_institution,
                },
            )
        return entity

    def update_details(
        self,
        entity_id: UUID,
        identity: Identity,
        title: str | None = None,
        institution: str | None = None,
        budget_assigned: Decimal | None = None,
        expected_version: int | None = None,
    ) -> WorkflowEntity:
        """
        Edit descriptive fields of a draft or rejected entity.

        Raises:
            EntityNotFoundError, ConcurrentModificationError,
            UnauthorizedError, EntityLockedError, ValidationError.
        """
        model = self._load(entity_id)
        entity = model.to_dto()

        if expected_version is not None and expected_version != entity.version:
            raise ConcurrentModificationError(
                entity.entity_type.value, str(entity.id),
                expected_version=expected_version, actual_version=entity.version,
            )

        require(identity, workflow_for(entity.entity_type).module, "can_edit")

        if not entity.is_editable:
            raise EntityLockedError(str(entity.id), entity.state.value)

        # Every argument is validated before the model is touched, so a
        # rejected edit leaves nothing dirty in the session.
        requested: dict[str, Any] = {}
        if title is not None:
            requested["title"] = _require_text(title, "title")
        if institution is not None:
            requested["institution"] = _require_text(institution, "institution")
        if budget_assigned is not None:
            if entity.entity_type != EntityType.PROJECT:
                raise ValidationError(
                    "Only projects carry a budget", field="budget_assigned",
                )
            requested["budget_assigned"] = _parse_amount(
                budget_assigned, "budget_assigned",
            )

        changes: dict[str, list[Any]] = {
            name: [getattr(model, name), value]
            for name, value in requested.items()
            if value != getattr(model, name)
        }
        if not changes:
            return entity

        for name, (_, value) in changes.items():
            setattr(model, name, value)
        model.updated_by_id = identity.user_id
        self._flush_versioned(entity)

        updated = model.to_dto()
        self._auditor.record_entity_updated(updated, identity.user_id, changes)
        logger.info(
            "workflow_entity_updated",
            extra={
                "entity_id": str(updated.id),
                "fields": sorted(changes),
                "version": updated.version,
            },
        )
        return updated

    def record_budget_execution(
        self,
        entity_id: UUID,
        identity: Identity,
        executed: Decimal,
    ) -> WorkflowEntity:
        """
        Set the executed budget of an approved project.

        Raises:
            EntityNotFoundError, UnauthorizedError, ValidationError,
            EntityLockedError.
        """
        model = self._load(entity_id)
        entity = model.to_dto()

        if entity.entity_type != EntityType.PROJECT:
            raise ValidationError(
                "Budget execution applies to projects only", field="entity_type",
            )
        require(identity, workflow_for(entity.entity_type).module, "can_edit")
        if entity.state != EntityState.APPROVED:
            raise EntityLockedError(str(entity.id), entity.state.value)

        amount = _parse_amount(executed, "budget_executed")
        previous = model.budget_executed
        model.budget_executed = amount
        model.updated_by_id = identity.user_id
        self._flush_versioned(entity)

        updated = model.to_dto()
        self._auditor.record_budget_execution(updated, identity.user_id, previous, amount)
        logger.info(
            "budget_execution_recorded",
            extra={
                "entity_id": str(updated.id),
                "budget_assigned": updated.budget_assigned,
                "budget_executed": amount,
            },
        )
        return updated

    def _flush_versioned(self, entity: WorkflowEntity) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationError(
                entity.entity_type.value, str(entity.id),
            ) from exc
