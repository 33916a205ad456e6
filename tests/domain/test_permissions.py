"""
Permission resolver: multi-role union, require(), and the dotted
permission catalog.
"""

from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from planning_kernel.domain.permissions import (
    PERMISSION_REQUIREMENTS,
    ROLE_PERMISSIONS,
    Identity,
    Permission,
    accessible_modules,
    has_module_access,
    has_permission,
    permissions_for,
    require,
    resolve,
    resolve_roles,
)
from planning_kernel.domain.roles import (
    CapabilitySet,
    ExportLevel,
    Module,
    Role,
    capabilities_for,
)
from planning_kernel.exceptions import UnauthorizedError

role_lists = st.lists(st.sampled_from(list(Role)), max_size=5)
modules = st.sampled_from(list(Module))


class TestResolve:
    def test_empty_role_list_resolves_to_nothing(self):
        identity = Identity(user_id=uuid4(), roles=())
        for module in Module:
            assert resolve(identity, module) == CapabilitySet.NONE

    def test_planner_and_reviewer_union_on_projects(self):
        identity = Identity.of(uuid4(), ["PLANNER", "REVIEWER"])
        caps = resolve(identity, Module.PROJECTS)
        assert caps.can_edit
        assert caps.can_send_to_review
        assert caps.can_approve

    def test_secondary_role_counts(self):
        identity = Identity.of(uuid4(), ["AUDITOR", "VALIDATOR"])
        assert identity.primary_role is Role.AUDITOR
        assert resolve(identity, Module.OBJECTIVES).can_approve

    def test_reviewer_plus_validator_reports_export_stays_limited(self):
        identity = Identity.of(uuid4(), ["REVIEWER", "VALIDATOR"])
        assert resolve(identity, Module.REPORTS).export is ExportLevel.LIMITED

    def test_aliases_are_accepted(self):
        assert resolve_roles(["PLANIF"], "proyectos") == capabilities_for(
            Role.PLANNER, Module.PROJECTS
        )

    @given(roles=role_lists, extra=st.sampled_from(list(Role)), module=modules)
    def test_adding_a_role_never_removes_a_capability(self, roles, extra, module):
        before = resolve_roles(roles, module)
        after = resolve_roles(roles + [extra], module)
        assert after.includes(before)

    @given(roles=role_lists, module=modules)
    def test_resolution_covers_each_single_role(self, roles, module):
        merged = resolve_roles(roles, module)
        for role in roles:
            assert merged.includes(capabilities_for(role, module))

    @given(roles=role_lists, module=modules)
    def test_role_order_does_not_matter(self, roles, module):
        assert resolve_roles(roles, module) == resolve_roles(list(reversed(roles)), module)


class TestIdentity:
    """Identities built straight from provider role codes."""

    def test_raw_codes_become_roles(self):
        identity = Identity(user_id=uuid4(), roles=("PLANNER", "revisor"))
        assert identity.roles == (Role.PLANNER, Role.REVIEWER)
        assert identity.role_codes == ("PLANNER", "REVIEWER")
        assert identity.primary_role is Role.PLANNER

    def test_legacy_alias_maps_to_canonical_role(self):
        identity = Identity(user_id=uuid4(), roles=("PLANIF",))
        assert identity.roles == (Role.PLANNER,)
        assert identity.has_role(Role.PLANNER)

    def test_unknown_codes_and_duplicates_dropped(self):
        identity = Identity(user_id=uuid4(), roles=("VALID", "GUEST", "VALIDATOR"))
        assert identity.roles == (Role.VALIDATOR,)

    def test_direct_and_factory_construction_agree(self):
        uid = uuid4()
        assert Identity(user_id=uid, roles=("TECNICO",)) == Identity.of(uid, ["PLANNER"])


class TestModuleAccess:
    def test_auditor_modules(self):
        identity = Identity.of(uuid4(), ["AUDITOR"])
        assert accessible_modules(identity) == (
            Module.OBJECTIVES,
            Module.PROJECTS,
            Module.REPORTS,
            Module.AUDIT,
        )

    def test_reviewer_cannot_open_objectives(self):
        identity = Identity.of(uuid4(), ["REVIEWER"])
        assert not has_module_access(identity, Module.OBJECTIVES)
        assert has_module_access(identity, Module.PROJECTS)


class TestRequire:
    def test_returns_resolved_set(self):
        identity = Identity.of(uuid4(), ["ADMIN"])
        caps = require(identity, Module.USERS, "can_manage_users")
        assert caps.can_manage_users

    def test_raises_with_structured_data(self):
        identity = Identity.of(uuid4(), ["AUDITOR"])
        with pytest.raises(UnauthorizedError) as exc_info:
            require(identity, Module.PROJECTS, "can_edit")
        assert exc_info.value.code == "UNAUTHORIZED"
        assert exc_info.value.module == "projects"
        assert exc_info.value.roles == ("AUDITOR",)

    def test_export_full_capability(self):
        identity = Identity.of(uuid4(), ["VALIDATOR"])
        require(identity, Module.REPORTS, "can_export")
        with pytest.raises(UnauthorizedError):
            require(identity, Module.REPORTS, "can_export_full")

    def test_unknown_capability_is_a_programming_error(self):
        identity = Identity.of(uuid4(), ["ADMIN"])
        with pytest.raises(ValueError):
            require(identity, Module.USERS, "can_fly")


class TestPermissionCatalog:
    def test_every_permission_is_mapped(self):
        assert set(PERMISSION_REQUIREMENTS) == set(Permission)

    @pytest.mark.parametrize("role", list(Role), ids=lambda r: r.value)
    def test_catalog_agrees_with_capability_table(self, role):
        for permission, (module, capability) in PERMISSION_REQUIREMENTS.items():
            expected = capabilities_for(role, module).has(capability)
            assert (permission in ROLE_PERMISSIONS[role]) is expected, permission

    def test_validator_can_validate_objectives_only(self):
        identity = Identity.of(uuid4(), ["VALID"])
        assert has_permission(identity, Permission.OBJECTIVE_VALIDATE)
        assert not has_permission(identity, "projects.validation.validate")

    def test_unknown_permission_is_denied(self):
        identity = Identity.of(uuid4(), ["ADMIN"])
        assert not has_permission(identity, "reports.delete")

    def test_auditor_permissions(self):
        identity = Identity.of(uuid4(), ["AUDITOR"])
        granted = permissions_for(identity)
        assert Permission.AUDIT_SYSTEM in granted
        assert Permission.REPORTS_EXPORT_FULL in granted
        assert Permission.PROJECT_EDIT not in granted

    def test_multi_role_permissions_are_a_union(self):
        identity = Identity.of(uuid4(), ["PLANNER", "AUDITOR"])
        assert permissions_for(identity) == (
            ROLE_PERMISSIONS[Role.PLANNER] | ROLE_PERMISSIONS[Role.AUDITOR]
        )
