"""
Workflow state machine definitions (``planning_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the objective and project workflows: states,
actions, transitions, and which roles may trigger each transition.
The tables here are the sole authority on workflow legality.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* At most one transition per (from_state, action) pair.
* Decision-bearing transitions (approve, reject) are listed only for the
  deciding role of the entity type: VALIDATOR for objectives, REVIEWER
  for projects.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from planning_kernel.domain.decisions import Decision
from planning_kernel.domain.roles import Module, Role, parse_role


class EntityType(str, Enum):
    """Kinds of entity that move through a workflow."""

    OBJECTIVE = "objective"
    PROJECT = "project"


class EntityState(str, Enum):
    """Union of the objective and project workflow states."""

    DRAFT = "draft"
    SENT_FOR_VALIDATION = "sent_for_validation"
    VALIDATED = "validated"
    SENT_FOR_REVIEW = "sent_for_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkflowAction(str, Enum):
    """Actions a caller may request on a workflow entity."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RESUBMIT = "resubmit"


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``decision`` is set for decision-bearing edges, which
    produce a DecisionRecord.  ``requires_ownership`` means a non-ADMIN
    actor must own the entity.
    """

    from_state: EntityState
    to_state: EntityState
    action: WorkflowAction
    allowed_roles: frozenset[Role]
    decision: Decision | None = None
    justification_required: bool = False
    requires_ownership: bool = False

    @property
    def is_decision(self) -> bool:
        return self.decision is not None

    def permits(self, role: Role) -> bool:
        return role in self.allowed_roles


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one entity type.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """

    entity_type: EntityType
    module: Module
    initial_state: EntityState
    states: tuple[EntityState, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[EntityState, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Initial state {self.initial_state.value} not in workflow states"
            )
        seen: set[tuple[EntityState, WorkflowAction]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Transition {t.from_state.value}->{t.to_state.value} "
                    f"references a state outside the workflow"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"Duplicate transition for ({t.from_state.value}, {t.action.value})"
                )
            seen.add(key)

    def find(
        self, from_state: EntityState, action: WorkflowAction,
    ) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def outgoing(self, state: EntityState) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: EntityState) -> bool:
        return state in self.terminal_states

    def edges(self) -> frozenset[tuple[EntityState, EntityState]]:
        """All (from_state, to_state) pairs of the workflow."""
        return frozenset((t.from_state, t.to_state) for t in self.transitions)


_SUBMITTERS = frozenset({Role.PLANNER, Role.ADMIN})

OBJECTIVE_WORKFLOW = Workflow(
    entity_type=EntityType.OBJECTIVE,
    module=Module.OBJECTIVES,
    initial_state=EntityState.DRAFT,
    states=(
        EntityState.DRAFT,
        EntityState.SENT_FOR_VALIDATION,
        EntityState.VALIDATED,
        EntityState.REJECTED,
    ),
    transitions=(
        Transition(
            from_state=EntityState.DRAFT,
            to_state=EntityState.SENT_FOR_VALIDATION,
            action=WorkflowAction.SUBMIT,
            allowed_roles=_SUBMITTERS,
            requires_ownership=True,
        ),
        Transition(
            from_state=EntityState.SENT_FOR_VALIDATION,
            to_state=EntityState.VALIDATED,
            action=WorkflowAction.APPROVE,
            allowed_roles=frozenset({Role.VALIDATOR}),
            decision=Decision.APPROVED,
        ),
        Transition(
            from_state=EntityState.SENT_FOR_VALIDATION,
            to_state=EntityState.REJECTED,
            action=WorkflowAction.REJECT,
            allowed_roles=frozenset({Role.VALIDATOR}),
            decision=Decision.REJECTED,
            justification_required=True,
        ),
        Transition(
            from_state=EntityState.REJECTED,
            to_state=EntityState.DRAFT,
            action=WorkflowAction.RESUBMIT,
            allowed_roles=frozenset({Role.PLANNER}),
            requires_ownership=True,
        ),
    ),
    terminal_states=(EntityState.VALIDATED, EntityState.REJECTED),
)

PROJECT_WORKFLOW = Workflow(
    entity_type=EntityType.PROJECT,
    module=Module.PROJECTS,
    initial_state=EntityState.DRAFT,
    states=(
        EntityState.DRAFT,
        EntityState.SENT_FOR_REVIEW,
        EntityState.APPROVED,
        EntityState.REJECTED,
    ),
    transitions=(
        Transition(
            from_state=EntityState.DRAFT,
            to_state=EntityState.SENT_FOR_REVIEW,
            action=WorkflowAction.SUBMIT,
            allowed_roles=_SUBMITTERS,
            requires_ownership=True,
        ),
        Transition(
            from_state=EntityState.SENT_FOR_REVIEW,
            to_state=EntityState.APPROVED,
            action=WorkflowAction.APPROVE,
            allowed_roles=frozenset({Role.REVIEWER}),
            decision=Decision.APPROVED,
        ),
        Transition(
            from_state=EntityState.SENT_FOR_REVIEW,
            to_state=EntityState.REJECTED,
            action=WorkflowAction.REJECT,
            allowed_roles=frozenset({Role.REVIEWER}),
            decision=Decision.REJECTED,
            justification_required=True,
        ),
        Transition(
            from_state=EntityState.REJECTED,
            to_state=EntityState.DRAFT,
            action=WorkflowAction.RESUBMIT,
            allowed_roles=frozenset({Role.PLANNER}),
            requires_ownership=True,
        ),
    ),
    terminal_states=(EntityState.APPROVED, EntityState.REJECTED),
)

WORKFLOWS: dict[EntityType, Workflow] = {
    EntityType.OBJECTIVE: OBJECTIVE_WORKFLOW,
    EntityType.PROJECT: PROJECT_WORKFLOW,
}

# States counted as a positive outcome by compliance reporting
SUCCESS_STATES: frozenset[EntityState] = frozenset(
    {EntityState.VALIDATED, EntityState.APPROVED}
)


def workflow_for(entity_type: EntityType | str) -> Workflow:
    """
    Workflow definition for an entity type.

    Raises:
        ValueError: If ``entity_type`` is not a known entity type.
    """
    return WORKFLOWS[EntityType(entity_type)]


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def find_transition(
    entity_type: EntityType | str,
    from_state: EntityState | str,
    action: WorkflowAction | str,
) -> Transition | None:
    """Transition for (state, action), or None if no such edge exists."""
    parsed_type = _parse_enum(EntityType, entity_type)
    parsed_state = _parse_enum(EntityState, from_state)
    parsed_action = _parse_enum(WorkflowAction, action)
    if parsed_type is None or parsed_state is None or parsed_action is None:
        return None
    return WORKFLOWS[parsed_type].find(parsed_state, parsed_action)


def can_transition(
    entity_type: EntityType | str,
    from_state: EntityState | str,
    to_state: EntityState | str,
    actor_role: Role | str,
) -> bool:
    """
    True iff the table has an edge from -> to that ``actor_role`` may trigger.

    Ownership is not considered here; it depends on a concrete entity and
    is checked by ``plan_transition``.  Unknown inputs yield False.
    """
    parsed_type = _parse_enum(EntityType, entity_type)
    parsed_from = _parse_enum(EntityState, from_state)
    parsed_to = _parse_enum(EntityState, to_state)
    role = parse_role(actor_role)
    if None in (parsed_type, parsed_from, parsed_to, role):
        return False
    return any(
        t.to_state == parsed_to and t.permits(role)
        for t in WORKFLOWS[parsed_type].outgoing(parsed_from)
    )
