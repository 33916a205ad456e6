"""
Audit and compliance aggregation (``planning_kernel.domain.compliance``).

Responsibility
--------------
Pure read-side computations over entity snapshots and decision records:
compliance rate, pending work per role, budget variance, time-windowed
decision counts, and summaries for reports and dashboards.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over frozen DTOs.  ZERO I/O.
``selectors/compliance_selector`` loads the DTOs and delegates here.

Invariants enforced
-------------------
* ``compliance_rate`` is always in [0, 1] and is 0.0 when nothing was
  submitted.
* ``budget_variance`` is None when the assigned budget is zero or unknown.
* Time windows are UTC and inclusive at both ends.  Naive timestamps
  are read as UTC.
"""

from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable
from uuid import UUID

from planning_kernel.domain.clock import as_utc
from planning_kernel.domain.decisions import Decision, DecisionRecord
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.roles import Role, parse_role
from planning_kernel.domain.workflow import (
    SUCCESS_STATES,
    EntityState,
    EntityType,
    workflow_for,
)

_PERCENT = Decimal("0.01")
_ONE_MICROSECOND = timedelta(microseconds=1)

# date.weekday() of the first day of a reporting week
WEEK_STARTS: dict[str, int] = {"monday": 0, "sunday": 6}


@dataclass(frozen=True)
class AggregationScope:
    """Narrows an aggregation to one entity type and/or one institution."""

    entity_type: EntityType | None = None
    institution: str | None = None

    def matches(self, entity: WorkflowEntity) -> bool:
        if self.entity_type is not None and entity.entity_type != self.entity_type:
            return False
        if self.institution is not None and entity.institution != self.institution:
            return False
        return True


ALL = AggregationScope()


@dataclass(frozen=True)
class TimeWindow:
    """Closed UTC interval [start, end]."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= as_utc(moment) <= self.end


@dataclass(frozen=True)
class DecisionSummary:
    approved: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.approved + self.rejected


@dataclass(frozen=True)
class RejectionReason:
    """One rejection, as shown in a decision history panel."""

    entity_id: UUID
    entity_type: str
    actor_id: UUID
    actor_role: str
    decided_at: datetime
    justification: str


def _scoped(
    entities: Iterable[WorkflowEntity], scope: AggregationScope | None,
) -> list[WorkflowEntity]:
    scope = scope or ALL
    return [e for e in entities if scope.matches(e)]


def _scoped_records(
    records: Iterable[DecisionRecord],
    scope: AggregationScope | None,
    entities: Iterable[WorkflowEntity] = (),
) -> list[DecisionRecord]:
    """
    Records in scope.  Institution scoping needs the entities, since
    records do not carry the institution; records of unknown entities
    are then excluded.
    """
    scope = scope or ALL
    selected = []
    by_id = {e.id: e for e in entities} if scope.institution is not None else {}
    for record in records:
        if scope.entity_type is not None and record.entity_type != scope.entity_type:
            continue
        if scope.institution is not None:
            entity = by_id.get(record.entity_id)
            if entity is None or entity.institution != scope.institution:
                continue
        selected.append(record)
    return selected


# =========================================================================
# Compliance and pending work
# =========================================================================


def compliance_rate(
    entities: Iterable[WorkflowEntity],
    records: Iterable[DecisionRecord],
    scope: AggregationScope | None = None,
) -> float:
    """
    validated_or_approved / total_submitted within ``scope``.

    An entity counts as submitted when it is outside ``draft`` or has at
    least one decision record (a rejected-then-resubmitted draft still
    counts).  Returns 0.0 when nothing was submitted.
    """
    in_scope = _scoped(entities, scope)
    decided_ids = {r.entity_id for r in records}
    submitted = [
        e for e in in_scope
        if e.state != EntityState.DRAFT or e.id in decided_ids
    ]
    if not submitted:
        return 0.0
    succeeded = sum(1 for e in submitted if e.state in SUCCESS_STATES)
    return succeeded / len(submitted)


def awaits_role(entity: WorkflowEntity, role: Role) -> bool:
    """True if ``entity`` sits in a non-terminal state ``role`` can move on."""
    workflow = workflow_for(entity.entity_type)
    if workflow.is_terminal(entity.state):
        return False
    return any(t.permits(role) for t in workflow.outgoing(entity.state))


def pending_count(
    entities: Iterable[WorkflowEntity],
    role: Role | str,
    scope: AggregationScope | None = None,
) -> int:
    """Entities in scope awaiting an action ``role`` may take."""
    parsed = parse_role(role)
    if parsed is None:
        return 0
    return sum(1 for e in _scoped(entities, scope) if awaits_role(e, parsed))


def state_breakdown(
    entities: Iterable[WorkflowEntity],
    scope: AggregationScope | None = None,
) -> dict[EntityState, int]:
    """Number of entities in each state (states with no entity omitted)."""
    counts = Counter(e.state for e in _scoped(entities, scope))
    return {state: counts[state] for state in EntityState if counts[state]}


# =========================================================================
# Budget
# =========================================================================


def budget_variance(
    assigned: Decimal | None, executed: Decimal | None,
) -> Decimal | None:
    """
    (executed - assigned) / assigned * 100, rounded to two places.

    None when ``assigned`` is None or zero.  A missing ``executed`` amount
    means nothing has been executed yet.
    """
    if assigned is None or assigned == 0:
        return None
    spent = executed if executed is not None else Decimal("0")
    variance = (Decimal(spent) - Decimal(assigned)) / Decimal(assigned) * 100
    return variance.quantize(_PERCENT, rounding=ROUND_HALF_UP)


def project_budget_variance(entity: WorkflowEntity) -> Decimal | None:
    if entity.entity_type != EntityType.PROJECT:
        return None
    return budget_variance(entity.budget_assigned, entity.budget_executed)


# =========================================================================
# Time windows
# =========================================================================


def day_window(now: datetime) -> TimeWindow:
    """The UTC calendar day containing ``now``."""
    day = as_utc(now).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return TimeWindow(start, start + timedelta(days=1) - _ONE_MICROSECOND)


def week_window(now: datetime, week_start: str = "monday") -> TimeWindow:
    """
    The UTC week containing ``now``.

    ``week_start`` is "monday" (ISO weeks) or "sunday".
    """
    try:
        first_weekday = WEEK_STARTS[week_start]
    except KeyError:
        raise ValueError(f"Unknown week start: {week_start!r}") from None
    day = as_utc(now).date()
    first = day - timedelta(days=(day.weekday() - first_weekday) % 7)
    start = datetime.combine(first, time.min, tzinfo=timezone.utc)
    return TimeWindow(start, start + timedelta(days=7) - _ONE_MICROSECOND)


def month_window(now: datetime) -> TimeWindow:
    """The UTC calendar month containing ``now``."""
    moment = as_utc(now)
    days_in_month = calendar.monthrange(moment.year, moment.month)[1]
    start = datetime(moment.year, moment.month, 1, tzinfo=timezone.utc)
    return TimeWindow(start, start + timedelta(days=days_in_month) - _ONE_MICROSECOND)


def count_in_window(
    records: Iterable[DecisionRecord],
    start: datetime,
    end: datetime,
) -> int:
    """Records decided within [start, end], both ends inclusive."""
    window = TimeWindow(as_utc(start), as_utc(end))
    return sum(1 for r in records if window.contains(r.decided_at))


# =========================================================================
# Decision history
# =========================================================================


def decision_summary(
    records: Iterable[DecisionRecord],
    scope: AggregationScope | None = None,
    entities: Iterable[WorkflowEntity] = (),
) -> DecisionSummary:
    counts = Counter(r.decision for r in _scoped_records(records, scope, entities))
    return DecisionSummary(
        approved=counts[Decision.APPROVED],
        rejected=counts[Decision.REJECTED],
    )


def rejection_reasons(
    records: Iterable[DecisionRecord],
    scope: AggregationScope | None = None,
    entities: Iterable[WorkflowEntity] = (),
) -> tuple[RejectionReason, ...]:
    """Rejections in scope, newest first."""
    rejected = [
        r for r in _scoped_records(records, scope, entities) if r.is_rejection
    ]
    rejected.sort(key=lambda r: as_utc(r.decided_at), reverse=True)
    return tuple(
        RejectionReason(
            entity_id=r.entity_id,
            entity_type=str(getattr(r.entity_type, "value", r.entity_type)),
            actor_id=r.actor_id,
            actor_role=r.actor_role,
            decided_at=as_utc(r.decided_at),
            justification=r.justification or "",
        )
        for r in rejected
    )
