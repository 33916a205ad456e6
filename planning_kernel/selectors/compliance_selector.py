"""
Module: planning_kernel.selectors.compliance_selector
Responsibility: Report and dashboard queries.  Loads entity and decision
    DTOs from the session and hands them to the pure aggregation functions
    in ``domain.compliance``.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no add/flush/commit.
    - Time windows ("today", "this week", "this month") are taken from the
      injected clock, in UTC.  Weeks start on the configured ``week_start``.
    - Audit traces are readable only with ``can_audit_system``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from planning_kernel.domain import compliance
from planning_kernel.domain.audit_trace import AuditTrace, AuditTraceEntry
from planning_kernel.domain.clock import Clock, SystemClock, as_utc
from planning_kernel.domain.compliance import (
    AggregationScope,
    DecisionSummary,
    RejectionReason,
)
from planning_kernel.domain.decisions import DecisionRecord
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.permissions import (
    Identity,
    accessible_modules,
    require,
)
from planning_kernel.domain.roles import Module, Role
from planning_kernel.domain.workflow import EntityState, EntityType
from planning_kernel.exceptions import EntityNotFoundError
from planning_kernel.logging_config import get_logger
from planning_kernel.models.audit_event import AuditEvent
from planning_kernel.selectors.base import BaseSelector
from planning_kernel.selectors.entity_selector import EntitySelector

logger = get_logger("selectors.compliance")


@dataclass(frozen=True)
class BudgetLine:
    """One project row of the budget summary report."""

    entity_id: UUID
    code: str
    title: str
    institution: str
    state: EntityState
    assigned: Decimal | None
    executed: Decimal | None
    variance_pct: Decimal | None


@dataclass(frozen=True)
class Dashboard:
    """Per-user landing summary, restricted to the modules the user can see."""

    user_id: UUID
    primary_role: Role | None
    modules: tuple[Module, ...]
    pending: dict[Role, int] = field(default_factory=dict)
    compliance_rate: float = 0.0
    decisions_today: int = 0
    decisions_this_month: int = 0
    state_breakdown: dict[EntityState, int] = field(default_factory=dict)

    @property
    def total_pending(self) -> int:
        return sum(self.pending.values())


class ComplianceSelector(BaseSelector):
    """Compliance, budget and activity metrics over persisted workflow data."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        week_start: str = "monday",
    ):
        super().__init__(session)
        if week_start not in compliance.WEEK_STARTS:
            raise ValueError(f"Unknown week start: {week_start!r}")
        self._clock = clock or SystemClock()
        self._week_start = week_start
        self._entities = EntitySelector(session)

    def _load(
        self, scope: AggregationScope | None,
    ) -> tuple[list[WorkflowEntity], list[DecisionRecord]]:
        entity_type = scope.entity_type if scope is not None else None
        return (
            self._entities.list_entities(scope),
            self._entities.decision_records(entity_type),
        )

    # Compliance

    def compliance_rate(self, scope: AggregationScope | None = None) -> float:
        entities, records = self._load(scope)
        return compliance.compliance_rate(entities, records, scope)

    def pending_count(self, role: Role | str, scope: AggregationScope | None = None) -> int:
        return compliance.pending_count(self._entities.list_entities(scope), role, scope)

    def state_breakdown(
        self, scope: AggregationScope | None = None,
    ) -> dict[EntityState, int]:
        return compliance.state_breakdown(self._entities.list_entities(scope), scope)

    # Budget

    def budget_variance(self, entity_id: UUID) -> Decimal | None:
        """
        Raises:
            EntityNotFoundError: If no entity has this id.
        """
        entity = self._entities.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(str(entity_id))
        return compliance.project_budget_variance(entity)

    def budget_summary(self, institution: str | None = None) -> list[BudgetLine]:
        """Budget position of every project, ordered by code."""
        projects = self._entities.list_entities(
            AggregationScope(EntityType.PROJECT, institution)
        )
        return [
            BudgetLine(
                entity_id=p.id,
                code=p.code,
                title=p.title,
                institution=p.institution,
                state=p.state,
                assigned=p.budget_assigned,
                executed=p.budget_executed,
                variance_pct=compliance.budget_variance(
                    p.budget_assigned, p.budget_executed,
                ),
            )
            for p in projects
        ]

    # Decision activity

    def count_in_window(
        self,
        start: datetime,
        end: datetime,
        scope: AggregationScope | None = None,
    ) -> int:
        entities, records = self._load(scope)
        scoped = _records_in_scope(records, scope, entities)
        return compliance.count_in_window(scoped, start, end)

    def decisions_today(self, scope: AggregationScope | None = None) -> int:
        window = compliance.day_window(self._clock.now())
        return self.count_in_window(window.start, window.end, scope)

    def decisions_this_week(self, scope: AggregationScope | None = None) -> int:
        window = compliance.week_window(self._clock.now(), self._week_start)
        return self.count_in_window(window.start, window.end, scope)

    def decisions_this_month(self, scope: AggregationScope | None = None) -> int:
        window = compliance.month_window(self._clock.now())
        return self.count_in_window(window.start, window.end, scope)

    def decision_summary(self, scope: AggregationScope | None = None) -> DecisionSummary:
        entities, records = self._load(scope)
        return compliance.decision_summary(records, scope, entities)

    def rejection_reasons(
        self, scope: AggregationScope | None = None,
    ) -> tuple[RejectionReason, ...]:
        entities, records = self._load(scope)
        return compliance.rejection_reasons(records, scope, entities)

    # Dashboards and audit

    def dashboard_for(self, identity: Identity) -> Dashboard:
        """Summary over the entity types the identity may view."""
        visible = set(self._entities.visible_types(identity))
        entities = [e for e in self._entities.list_entities() if e.entity_type in visible]
        records = [
            r for r in self._entities.decision_records()
            if EntityType(r.entity_type) in visible
        ]

        now = self._clock.now()
        today = compliance.day_window(now)
        month = compliance.month_window(now)

        dashboard = Dashboard(
            user_id=identity.user_id,
            primary_role=identity.primary_role,
            modules=accessible_modules(identity),
            pending={
                role: compliance.pending_count(entities, role) for role in identity.roles
            },
            compliance_rate=compliance.compliance_rate(entities, records),
            decisions_today=compliance.count_in_window(records, today.start, today.end),
            decisions_this_month=compliance.count_in_window(
                records, month.start, month.end,
            ),
            state_breakdown=compliance.state_breakdown(entities),
        )
        logger.debug(
            "dashboard_built",
            extra={
                "user_id": str(identity.user_id),
                "entity_count": len(entities),
                "total_pending": dashboard.total_pending,
            },
        )
        return dashboard

    def audit_trace(
        self,
        identity: Identity,
        entity_type: EntityType | str,
        entity_id: UUID,
    ) -> AuditTrace:
        """
        Audit trail of one entity, oldest first.

        Raises:
            UnauthorizedError: If the identity lacks ``can_audit_system``.
        """
        require(identity, Module.AUDIT, "can_audit_system")
        type_value = EntityType(entity_type).value
        events = self.session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == type_value,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return AuditTrace(
            entity_type=type_value,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=e.action_value,
                    occurred_at=as_utc(e.occurred_at),
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )


def _records_in_scope(
    records: list[DecisionRecord],
    scope: AggregationScope | None,
    entities: list[WorkflowEntity],
) -> list[DecisionRecord]:
    if scope is None or scope.institution is None:
        return records
    ids = {e.id for e in entities}
    return [r for r in records if r.entity_id in ids]
