"""
Workflow entity value objects (``planning_kernel.domain.entities``).

Frozen read-side snapshots of objectives and projects, and the result
returned by a successful workflow transition.  The ORM model converts
to these with ``to_dto()``; selectors and the compliance aggregator only
ever see these DTOs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from planning_kernel.domain.decisions import DecisionRecord
from planning_kernel.domain.workflow import (
    EntityState,
    EntityType,
    WorkflowAction,
    workflow_for,
)


@dataclass(frozen=True)
class WorkflowEntity:
    """Snapshot of an objective or project at a given version."""

    id: UUID
    entity_type: EntityType
    code: str
    title: str
    institution: str
    state: EntityState
    version: int
    owner_id: UUID
    budget_assigned: Decimal | None = None
    budget_executed: Decimal | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return workflow_for(self.entity_type).is_terminal(self.state)

    @property
    def is_draft(self) -> bool:
        return self.state == EntityState.DRAFT

    @property
    def is_editable(self) -> bool:
        """Details may be changed only before submission or after rejection."""
        return self.state in (EntityState.DRAFT, EntityState.REJECTED)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of ``WorkflowService.apply``."""

    entity: WorkflowEntity
    action: WorkflowAction
    from_state: EntityState
    to_state: EntityState
    acting_role: str
    decision_record: DecisionRecord | None = None

    @property
    def new_version(self) -> int:
        return self.entity.version
