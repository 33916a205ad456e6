"""
Module: planning_kernel.selectors.entity_selector
Responsibility: Read access to objectives, projects and their decision
    history as frozen DTOs.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from planning_kernel.domain.compliance import AggregationScope
from planning_kernel.domain.decisions import DecisionRecord
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.permissions import Identity, has_module_access, require
from planning_kernel.domain.workflow import EntityState, EntityType, workflow_for
from planning_kernel.models.decision_record import DecisionRecordModel
from planning_kernel.models.workflow_entity import WorkflowEntityModel
from planning_kernel.selectors.base import BaseSelector


class EntitySelector(BaseSelector):
    """Queries over workflow entities."""

    def get(self, entity_id: UUID) -> WorkflowEntity | None:
        model = self.session.get(WorkflowEntityModel, entity_id)
        return model.to_dto() if model is not None else None

    def list_entities(
        self,
        scope: AggregationScope | None = None,
        states: Iterable[EntityState] | None = None,
    ) -> list[WorkflowEntity]:
        """Entities in scope, ordered by type then code."""
        stmt = select(WorkflowEntityModel).order_by(
            WorkflowEntityModel.entity_type, WorkflowEntityModel.code,
        )
        if scope is not None and scope.entity_type is not None:
            stmt = stmt.where(
                WorkflowEntityModel.entity_type == EntityType(scope.entity_type).value
            )
        if scope is not None and scope.institution is not None:
            stmt = stmt.where(WorkflowEntityModel.institution == scope.institution)
        if states is not None:
            stmt = stmt.where(
                WorkflowEntityModel.state.in_([EntityState(s).value for s in states])
            )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def visible_types(self, identity: Identity) -> tuple[EntityType, ...]:
        """Entity types whose module the identity may view."""
        return tuple(
            t for t in EntityType if has_module_access(identity, workflow_for(t).module)
        )

    def visible_to(
        self,
        identity: Identity,
        entity_type: EntityType | str | None = None,
        institution: str | None = None,
    ) -> list[WorkflowEntity]:
        """
        Entities the identity may view.

        Raises:
            UnauthorizedError: If ``entity_type`` is given and its module is
                not viewable by the identity.
        """
        if entity_type is not None:
            parsed = EntityType(entity_type)
            require(identity, workflow_for(parsed).module, "can_view")
            return self.list_entities(AggregationScope(parsed, institution))

        visible = set(self.visible_types(identity))
        return [
            e for e in self.list_entities(AggregationScope(institution=institution))
            if e.entity_type in visible
        ]

    def decision_history(self, entity_id: UUID) -> list[DecisionRecord]:
        """Decisions taken on one entity, oldest first."""
        models = self.session.execute(
            select(DecisionRecordModel)
            .where(DecisionRecordModel.entity_id == entity_id)
            .order_by(DecisionRecordModel.decided_at, DecisionRecordModel.entity_version)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def decision_records(
        self, entity_type: EntityType | str | None = None,
    ) -> list[DecisionRecord]:
        stmt = select(DecisionRecordModel).order_by(
            DecisionRecordModel.decided_at, DecisionRecordModel.entity_version,
        )
        if entity_type is not None:
            stmt = stmt.where(
                DecisionRecordModel.entity_type == EntityType(entity_type).value
            )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]
