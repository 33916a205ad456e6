"""
Pure domain layer.

This module contains the role registry, permission resolver, workflow
tables, decision DTOs and compliance aggregation, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from planning_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from planning_kernel.domain.compliance import (
    AggregationScope,
    DecisionSummary,
    RejectionReason,
    TimeWindow,
    budget_variance,
    compliance_rate,
    count_in_window,
    day_window,
    decision_summary,
    month_window,
    pending_count,
    rejection_reasons,
    state_breakdown,
    week_window,
)
from planning_kernel.domain.decisions import Decision, DecisionRecord
from planning_kernel.domain.entities import TransitionResult, WorkflowEntity
from planning_kernel.domain.permissions import (
    Identity,
    Permission,
    has_module_access,
    has_permission,
    permissions_for,
    require,
    resolve,
)
from planning_kernel.domain.roles import (
    CapabilitySet,
    ExportLevel,
    Module,
    Role,
    capabilities_for,
)
from planning_kernel.domain.transitions import TransitionPlan, plan_transition
from planning_kernel.domain.workflow import (
    OBJECTIVE_WORKFLOW,
    PROJECT_WORKFLOW,
    EntityState,
    EntityType,
    Transition,
    Workflow,
    WorkflowAction,
    can_transition,
    workflow_for,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Roles and permissions
    "Role",
    "Module",
    "ExportLevel",
    "CapabilitySet",
    "capabilities_for",
    "Identity",
    "Permission",
    "resolve",
    "require",
    "has_module_access",
    "has_permission",
    "permissions_for",
    # Workflow
    "EntityType",
    "EntityState",
    "WorkflowAction",
    "Transition",
    "Workflow",
    "OBJECTIVE_WORKFLOW",
    "PROJECT_WORKFLOW",
    "workflow_for",
    "can_transition",
    "TransitionPlan",
    "plan_transition",
    # Records
    "Decision",
    "DecisionRecord",
    "WorkflowEntity",
    "TransitionResult",
    # Compliance
    "AggregationScope",
    "TimeWindow",
    "DecisionSummary",
    "RejectionReason",
    "compliance_rate",
    "pending_count",
    "budget_variance",
    "count_in_window",
    "day_window",
    "week_window",
    "month_window",
    "decision_summary",
    "state_breakdown",
    "rejection_reasons",
]
