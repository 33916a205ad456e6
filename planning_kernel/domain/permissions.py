"""
Permission resolver (``planning_kernel.domain.permissions``).

Responsibility
--------------
Resolve what an identity (user id + role set) may do: the union of the
per-role capability sets for a module, plus the dotted permission catalog
used to gate individual operations.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.  Imports only from
``domain/roles`` and ``exceptions``.

Invariants enforced
-------------------
* Any-of semantics: a capability granted by any held role is granted.
* Monotonicity: adding a role never removes a capability.
* Empty role set resolves to ``CapabilitySet.NONE``.
* The permission catalog is derived from the capability table, so the
  two can never disagree.  ADMIN has no blanket bypass.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable
from uuid import UUID

from planning_kernel.domain.roles import (
    CapabilitySet,
    Module,
    Role,
    capabilities_for,
    parse_module,
    parse_roles,
)
from planning_kernel.exceptions import UnauthorizedError


@dataclass(frozen=True)
class Identity:
    """
    The acting user, passed explicitly to every guarded operation.

    ``roles[0]`` is the primary role and is used for display only;
    authorization always considers the full set.
    """

    user_id: UUID
    roles: tuple[Role, ...] = ()

    def __post_init__(self) -> None:
        # Role codes arrive verbatim from the identity provider
        object.__setattr__(self, "roles", parse_roles(self.roles))

    @classmethod
    def of(cls, user_id: UUID, roles: Iterable[Role | str]) -> Identity:
        """Build an identity from raw role codes (aliases accepted)."""
        return cls(user_id=user_id, roles=tuple(roles))

    @property
    def primary_role(self) -> Role | None:
        return self.roles[0] if self.roles else None

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def role_codes(self) -> tuple[str, ...]:
        return tuple(r.value for r in self.roles)


def resolve_roles(roles: Iterable[Role | str], module: Module | str) -> CapabilitySet:
    """Union of the capability sets of ``roles`` within ``module``."""
    resolved = CapabilitySet.NONE
    for role in parse_roles(roles):
        resolved = resolved.union(capabilities_for(role, module))
    return resolved


def resolve(identity: Identity, module: Module | str) -> CapabilitySet:
    """Effective capabilities of ``identity`` within ``module``."""
    return resolve_roles(identity.roles, module)


def has_module_access(identity: Identity, module: Module | str) -> bool:
    """A module is visible to an identity iff it may view it."""
    return resolve(identity, module).can_view


def accessible_modules(identity: Identity) -> tuple[Module, ...]:
    """Modules the identity may view, in declaration order (menu building)."""
    return tuple(m for m in Module if has_module_access(identity, m))


def require(identity: Identity, module: Module | str, capability: str) -> CapabilitySet:
    """
    Assert a capability, returning the resolved set on success.

    Raises:
        UnauthorizedError: If the identity's roles do not grant it.
        ValueError: If ``capability`` is not a known capability name.
    """
    resolved = resolve(identity, module)
    if not resolved.has(capability):
        parsed = parse_module(module)
        module_name = parsed.value if parsed is not None else str(module)
        raise UnauthorizedError(
            action=capability,
            roles=identity.role_codes,
            reason=f"'{capability}' is not granted on module '{module_name}'",
            module=module_name,
        )
    return resolved


# =========================================================================
# Dotted permission catalog
# =========================================================================


class Permission(str, Enum):
    """Fine-grained operation permissions, one per guarded operation."""

    # configuration
    INSTITUTION_VIEW = "configuration.institution.view"
    INSTITUTION_EDIT = "configuration.institution.edit"
    ROLE_ASSIGN = "configuration.user.assign_role"

    # objectives
    OBJECTIVE_VIEW = "objectives.objective.view"
    OBJECTIVE_CREATE = "objectives.objective.create"
    OBJECTIVE_EDIT = "objectives.objective.edit"
    OBJECTIVE_SUBMIT = "objectives.objective.submit"
    OBJECTIVE_VALIDATE = "objectives.validation.validate"

    # projects
    PROJECT_VIEW = "projects.project.view"
    PROJECT_CREATE = "projects.project.create"
    PROJECT_EDIT = "projects.project.edit"
    PROJECT_SUBMIT = "projects.project.submit"
    PROJECT_BUDGET_ASSIGN = "projects.budget.assign"
    PROJECT_VALIDATE = "projects.validation.validate"

    # reports
    REPORTS_VIEW = "reports.view"
    REPORTS_FILTER = "reports.filter"
    REPORTS_EXPORT = "reports.export"
    REPORTS_EXPORT_FULL = "reports.export.full"

    # users
    USER_VIEW = "users.user.view"
    USER_EDIT = "users.user.edit"
    USER_MANAGE = "users.user.manage"

    # audit
    AUDIT_LOG_VIEW = "audit.log.view"
    AUDIT_SYSTEM = "audit.system.inspect"
    AUDIT_EXPORT = "audit.export"


# Each permission is granted exactly when the capability it maps to is.
PERMISSION_REQUIREMENTS: dict[Permission, tuple[Module, str]] = {
    Permission.INSTITUTION_VIEW: (Module.CONFIGURATION, "can_view"),
    Permission.INSTITUTION_EDIT: (Module.CONFIGURATION, "can_edit"),
    Permission.ROLE_ASSIGN: (Module.CONFIGURATION, "can_manage_users"),
    Permission.OBJECTIVE_VIEW: (Module.OBJECTIVES, "can_view"),
    Permission.OBJECTIVE_CREATE: (Module.OBJECTIVES, "can_edit"),
    Permission.OBJECTIVE_EDIT: (Module.OBJECTIVES, "can_edit"),
    Permission.OBJECTIVE_SUBMIT: (Module.OBJECTIVES, "can_send_to_validation"),
    Permission.OBJECTIVE_VALIDATE: (Module.OBJECTIVES, "can_approve"),
    Permission.PROJECT_VIEW: (Module.PROJECTS, "can_view"),
    Permission.PROJECT_CREATE: (Module.PROJECTS, "can_edit"),
    Permission.PROJECT_EDIT: (Module.PROJECTS, "can_edit"),
    Permission.PROJECT_SUBMIT: (Module.PROJECTS, "can_send_to_review"),
    Permission.PROJECT_BUDGET_ASSIGN: (Module.PROJECTS, "can_edit"),
    Permission.PROJECT_VALIDATE: (Module.PROJECTS, "can_approve"),
    Permission.REPORTS_VIEW: (Module.REPORTS, "can_view"),
    Permission.REPORTS_FILTER: (Module.REPORTS, "can_view"),
    Permission.REPORTS_EXPORT: (Module.REPORTS, "can_export"),
    Permission.REPORTS_EXPORT_FULL: (Module.REPORTS, "can_export_full"),
    Permission.USER_VIEW: (Module.USERS, "can_view"),
    Permission.USER_EDIT: (Module.USERS, "can_edit"),
    Permission.USER_MANAGE: (Module.USERS, "can_manage_users"),
    Permission.AUDIT_LOG_VIEW: (Module.AUDIT, "can_view"),
    Permission.AUDIT_SYSTEM: (Module.AUDIT, "can_audit_system"),
    Permission.AUDIT_EXPORT: (Module.AUDIT, "can_export_full"),
}


def _role_grants(role: Role) -> frozenset[Permission]:
    granted = set()
    for permission, (module, capability) in PERMISSION_REQUIREMENTS.items():
        if capabilities_for(role, module).has(capability):
            granted.add(permission)
    return frozenset(granted)


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    role: _role_grants(role) for role in Role
}


def _parse_permission(permission: Permission | str) -> Permission | None:
    if isinstance(permission, Permission):
        return permission
    try:
        return Permission(permission)
    except ValueError:
        return None


def has_permission(identity: Identity, permission: Permission | str) -> bool:
    """Any-of check over the identity's roles.  Unknown permission -> False."""
    parsed = _parse_permission(permission)
    if parsed is None:
        return False
    return any(parsed in ROLE_PERMISSIONS[role] for role in identity.roles)


def permissions_for(identity: Identity) -> frozenset[Permission]:
    """All permissions granted to the identity."""
    granted: frozenset[Permission] = frozenset()
    for role in identity.roles:
        granted = granted | ROLE_PERMISSIONS[role]
    return granted
