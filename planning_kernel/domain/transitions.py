"""
Transition planning (``planning_kernel.domain.transitions``).

Responsibility
--------------
Decide, without touching storage, whether a requested workflow action on
an entity snapshot is legal, and if so which edge fires and under which
role.  ``WorkflowService.apply`` calls this before any mutation.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.

Invariants enforced
-------------------
Checks run in a fixed order and the first failure wins:

1. ``expected_version`` mismatch -> ConcurrentModificationError
2. no edge for (state, action) -> InvalidTransitionError
3. no held role may trigger the edge, or a non-admin non-owner attempts a
   submission -> UnauthorizedError
4. mandatory justification missing or blank -> JustificationRequiredError

(Entity lookup, which precedes all of these, is the caller's job.)
"""

from __future__ import annotations

from dataclasses import dataclass

from planning_kernel.domain.decisions import normalize_justification
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.permissions import Identity
from planning_kernel.domain.roles import Role, parse_role
from planning_kernel.domain.workflow import Transition, WorkflowAction, workflow_for
from planning_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    JustificationRequiredError,
    UnauthorizedError,
)


@dataclass(frozen=True)
class TransitionPlan:
    """A validated, not yet applied, transition."""

    entity: WorkflowEntity
    transition: Transition
    acting_role: Role
    justification: str | None = None


def _blocked_by_ownership(
    transition: Transition,
    entity: WorkflowEntity,
    identity: Identity,
    role: Role,
) -> bool:
    return (
        transition.requires_ownership
        and role != Role.ADMIN
        and entity.owner_id != identity.user_id
    )


def select_acting_role(
    transition: Transition,
    entity: WorkflowEntity,
    identity: Identity,
    acting_role: Role | str | None = None,
) -> Role:
    """
    Pick the role under which ``identity`` performs ``transition``.

    With an explicit ``acting_role`` that role must be held, listed on the
    edge, and pass the ownership rule.  Otherwise the first held role (in
    identity order) that satisfies both is chosen.

    Raises:
        UnauthorizedError: If no acceptable role exists.
    """
    action = f"{transition.action.value} {entity.entity_type.value}"

    if acting_role is not None:
        role = parse_role(acting_role)
        if role is None or not identity.has_role(role):
            raise UnauthorizedError(
                action=action,
                roles=identity.role_codes,
                reason=f"acting role {acting_role!r} is not held",
            )
        candidates = [role]
    else:
        candidates = list(identity.roles)

    permitted = [r for r in candidates if transition.permits(r)]
    if not permitted:
        raise UnauthorizedError(
            action=action,
            roles=identity.role_codes,
            reason=(
                f"'{transition.action.value}' from '{transition.from_state.value}' "
                f"requires one of {sorted(r.value for r in transition.allowed_roles)}"
            ),
        )

    for role in permitted:
        if not _blocked_by_ownership(transition, entity, identity, role):
            return role

    raise UnauthorizedError(
        action=action,
        roles=identity.role_codes,
        reason="only the owning planner or an admin may do this",
    )


def plan_transition(
    entity: WorkflowEntity,
    action: WorkflowAction | str,
    identity: Identity,
    justification: str | None = None,
    expected_version: int | None = None,
    acting_role: Role | str | None = None,
) -> TransitionPlan:
    """
    Validate a requested action against an entity snapshot.

    Postconditions:
        - Returns a plan whose transition is an edge of the entity's
          workflow and whose acting role is held by ``identity``.
        - The plan's justification is trimmed (None when blank).

    Raises:
        ConcurrentModificationError: ``expected_version`` is stale.
        InvalidTransitionError: No edge for (state, action).
        UnauthorizedError: See ``select_acting_role``.
        JustificationRequiredError: Rejection without justification.
    """
    if expected_version is not None and expected_version != entity.version:
        raise ConcurrentModificationError(
            entity_type=entity.entity_type.value,
            entity_id=str(entity.id),
            expected_version=expected_version,
            actual_version=entity.version,
        )

    try:
        parsed_action = WorkflowAction(action)
    except ValueError:
        raise InvalidTransitionError(
            entity.entity_type.value, entity.state.value, str(action),
        ) from None

    transition = workflow_for(entity.entity_type).find(entity.state, parsed_action)
    if transition is None:
        raise InvalidTransitionError(
            entity.entity_type.value, entity.state.value, parsed_action.value,
        )

    role = select_acting_role(transition, entity, identity, acting_role)

    note = normalize_justification(justification)
    if transition.justification_required and note is None:
        raise JustificationRequiredError(entity.entity_type.value, str(entity.id))

    return TransitionPlan(
        entity=entity,
        transition=transition,
        acting_role=role,
        justification=note,
    )
