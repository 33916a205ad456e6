"""
Role registry (``planning_kernel.domain.roles``).

Responsibility
--------------
Closed sets of roles and modules, the ``CapabilitySet`` value object, and
the static (role, module) capability table.  Everything here is a pure
lookup: no I/O, no per-record ACLs.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Fail-closed: an unknown role or module resolves to ``CapabilitySet.NONE``.
* REVIEWER never receives objectives capabilities; VALIDATOR never
  receives projects capabilities.
* ``CapabilitySet.union`` is monotone: OR per flag, max per export level.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum, IntEnum
from typing import Iterable


class Role(str, Enum):
    """Institutional roles.  A user may hold several."""

    ADMIN = "ADMIN"
    PLANNER = "PLANNER"
    REVIEWER = "REVIEWER"
    VALIDATOR = "VALIDATOR"
    AUDITOR = "AUDITOR"


# Legacy role codes still issued by the identity provider
ROLE_ALIASES: dict[str, Role] = {
    "PLANIF": Role.PLANNER,
    "TECNICO": Role.PLANNER,
    "REVISOR": Role.REVIEWER,
    "VALID": Role.VALIDATOR,
}


class Module(str, Enum):
    """Functional areas of the system that capabilities are granted on."""

    CONFIGURATION = "configuration"
    OBJECTIVES = "objectives"
    PROJECTS = "projects"
    REPORTS = "reports"
    USERS = "users"
    AUDIT = "audit"


MODULE_ALIASES: dict[str, Module] = {
    "configuracion": Module.CONFIGURATION,
    "objetivos": Module.OBJECTIVES,
    "proyectos": Module.PROJECTS,
    "reportes": Module.REPORTS,
    "usuarios": Module.USERS,
    "auditoria": Module.AUDIT,
}


class ExportLevel(IntEnum):
    """How much of a report a role may export.  Ordered."""

    NONE = 0
    LIMITED = 1
    FULL = 2


def parse_role(code: Role | str | None) -> Role | None:
    """Map a role code (canonical or legacy alias) to a Role, or None."""
    if isinstance(code, Role):
        return code
    if not isinstance(code, str):
        return None
    normalized = code.strip().upper()
    if normalized in Role.__members__:
        return Role[normalized]
    return ROLE_ALIASES.get(normalized)


def parse_roles(codes: Iterable[Role | str]) -> tuple[Role, ...]:
    """
    Parse an ordered role list, dropping unknown codes and duplicates.

    Order is preserved so the first entry stays the primary role.
    """
    roles: list[Role] = []
    for code in codes:
        role = parse_role(code)
        if role is not None and role not in roles:
            roles.append(role)
    return tuple(roles)


def parse_module(name: Module | str | None) -> Module | None:
    """Map a module name (canonical or legacy alias) to a Module, or None."""
    if isinstance(name, Module):
        return name
    if not isinstance(name, str):
        return None
    normalized = name.strip().lower()
    try:
        return Module(normalized)
    except ValueError:
        return MODULE_ALIASES.get(normalized)


@dataclass(frozen=True)
class CapabilitySet:
    """
    What a role set may do within one module.

    Contract: frozen; derived purely from (roles, module).
    Guarantees: ``union`` never removes a capability.
    """

    can_view: bool = False
    can_edit: bool = False
    can_approve: bool = False
    can_send_to_validation: bool = False
    can_send_to_review: bool = False
    can_manage_users: bool = False
    can_audit_system: bool = False
    export: ExportLevel = ExportLevel.NONE

    NONE = None  # replaced below with the all-false set

    @property
    def can_export(self) -> bool:
        return self.export >= ExportLevel.LIMITED

    @property
    def can_export_full(self) -> bool:
        return self.export >= ExportLevel.FULL

    def has(self, capability: str) -> bool:
        """
        Check a capability by name.

        Raises:
            ValueError: If ``capability`` is not a known capability name.
        """
        if capability not in CAPABILITY_NAMES:
            raise ValueError(f"Unknown capability: {capability!r}")
        return bool(getattr(self, capability))

    def union(self, other: CapabilitySet) -> CapabilitySet:
        return CapabilitySet(
            can_view=self.can_view or other.can_view,
            can_edit=self.can_edit or other.can_edit,
            can_approve=self.can_approve or other.can_approve,
            can_send_to_validation=(
                self.can_send_to_validation or other.can_send_to_validation
            ),
            can_send_to_review=self.can_send_to_review or other.can_send_to_review,
            can_manage_users=self.can_manage_users or other.can_manage_users,
            can_audit_system=self.can_audit_system or other.can_audit_system,
            export=max(self.export, other.export),
        )

    __or__ = union

    def includes(self, other: CapabilitySet) -> bool:
        """True when every capability of ``other`` is also granted here."""
        return self.union(other) == self

    def granted(self) -> tuple[str, ...]:
        """Names of the boolean capabilities that are granted."""
        return tuple(name for name in BOOLEAN_CAPABILITIES if getattr(self, name))


CapabilitySet.NONE = CapabilitySet()

BOOLEAN_CAPABILITIES: tuple[str, ...] = tuple(
    f.name for f in fields(CapabilitySet) if f.name != "export"
)

CAPABILITY_NAMES: frozenset[str] = frozenset(
    BOOLEAN_CAPABILITIES + ("can_export", "can_export_full")
)


# =========================================================================
# Capability table
# =========================================================================

_VIEW = CapabilitySet(can_view=True)
_VIEW_EDIT = CapabilitySet(can_view=True, can_edit=True)

_CAPABILITY_TABLE: dict[tuple[Role, Module], CapabilitySet] = {
    # configuration
    (Role.ADMIN, Module.CONFIGURATION): CapabilitySet(
        can_view=True, can_edit=True, can_manage_users=True,
    ),
    (Role.PLANNER, Module.CONFIGURATION): _VIEW,
    # objectives
    (Role.ADMIN, Module.OBJECTIVES): _VIEW_EDIT,
    (Role.PLANNER, Module.OBJECTIVES): CapabilitySet(
        can_view=True, can_edit=True, can_send_to_validation=True,
    ),
    (Role.VALIDATOR, Module.OBJECTIVES): CapabilitySet(
        can_view=True, can_approve=True,
    ),
    (Role.AUDITOR, Module.OBJECTIVES): _VIEW,
    # projects
    (Role.ADMIN, Module.PROJECTS): _VIEW_EDIT,
    (Role.PLANNER, Module.PROJECTS): CapabilitySet(
        can_view=True, can_edit=True, can_send_to_review=True,
    ),
    (Role.REVIEWER, Module.PROJECTS): CapabilitySet(
        can_view=True, can_approve=True,
    ),
    (Role.AUDITOR, Module.PROJECTS): _VIEW,
    # reports
    (Role.ADMIN, Module.REPORTS): CapabilitySet(can_view=True, export=ExportLevel.FULL),
    (Role.PLANNER, Module.REPORTS): CapabilitySet(can_view=True, export=ExportLevel.FULL),
    (Role.REVIEWER, Module.REPORTS): CapabilitySet(
        can_view=True, export=ExportLevel.LIMITED,
    ),
    (Role.VALIDATOR, Module.REPORTS): CapabilitySet(
        can_view=True, export=ExportLevel.LIMITED,
    ),
    (Role.AUDITOR, Module.REPORTS): CapabilitySet(can_view=True, export=ExportLevel.FULL),
    # users
    (Role.ADMIN, Module.USERS): CapabilitySet(
        can_view=True, can_edit=True, can_manage_users=True,
    ),
    # audit
    (Role.AUDITOR, Module.AUDIT): CapabilitySet(
        can_view=True, can_audit_system=True, export=ExportLevel.FULL,
    ),
}


def capabilities_for(role: Role | str, module: Module | str) -> CapabilitySet:
    """
    Capabilities of a single role within a module.

    Unknown roles and modules, and pairs absent from the table, yield
    ``CapabilitySet.NONE``.
    """
    parsed_role = parse_role(role)
    parsed_module = parse_module(module)
    if parsed_role is None or parsed_module is None:
        return CapabilitySet.NONE
    return _CAPABILITY_TABLE.get((parsed_role, parsed_module), CapabilitySet.NONE)


def capability_table() -> dict[tuple[Role, Module], CapabilitySet]:
    """Full role x module matrix, including the all-false cells."""
    return {
        (role, module): capabilities_for(role, module)
        for role in Role
        for module in Module
    }
