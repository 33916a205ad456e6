"""
Role registry: the (role, module) capability matrix, aliases and the
fail-closed rule.
"""

import pytest

from planning_kernel.domain.roles import (
    BOOLEAN_CAPABILITIES,
    CapabilitySet,
    ExportLevel,
    Module,
    Role,
    capabilities_for,
    capability_table,
    parse_module,
    parse_role,
    parse_roles,
)

NONE = CapabilitySet.NONE
VIEW = CapabilitySet(can_view=True)
VIEW_EDIT = CapabilitySet(can_view=True, can_edit=True)
FULL_EXPORT = CapabilitySet(can_view=True, export=ExportLevel.FULL)
LIMITED_EXPORT = CapabilitySet(can_view=True, export=ExportLevel.LIMITED)
MANAGE = CapabilitySet(can_view=True, can_edit=True, can_manage_users=True)

EXPECTED = {
    # configuration
    (Role.ADMIN, Module.CONFIGURATION): MANAGE,
    (Role.PLANNER, Module.CONFIGURATION): VIEW,
    (Role.REVIEWER, Module.CONFIGURATION): NONE,
    (Role.VALIDATOR, Module.CONFIGURATION): NONE,
    (Role.AUDITOR, Module.CONFIGURATION): NONE,
    # objectives
    (Role.ADMIN, Module.OBJECTIVES): VIEW_EDIT,
    (Role.PLANNER, Module.OBJECTIVES): CapabilitySet(
        can_view=True, can_edit=True, can_send_to_validation=True,
    ),
    (Role.REVIEWER, Module.OBJECTIVES): NONE,
    (Role.VALIDATOR, Module.OBJECTIVES): CapabilitySet(can_view=True, can_approve=True),
    (Role.AUDITOR, Module.OBJECTIVES): VIEW,
    # projects
    (Role.ADMIN, Module.PROJECTS): VIEW_EDIT,
    (Role.PLANNER, Module.PROJECTS): CapabilitySet(
        can_view=True, can_edit=True, can_send_to_review=True,
    ),
    (Role.REVIEWER, Module.PROJECTS): CapabilitySet(can_view=True, can_approve=True),
    (Role.VALIDATOR, Module.PROJECTS): NONE,
    (Role.AUDITOR, Module.PROJECTS): VIEW,
    # reports
    (Role.ADMIN, Module.REPORTS): FULL_EXPORT,
    (Role.PLANNER, Module.REPORTS): FULL_EXPORT,
    (Role.REVIEWER, Module.REPORTS): LIMITED_EXPORT,
    (Role.VALIDATOR, Module.REPORTS): LIMITED_EXPORT,
    (Role.AUDITOR, Module.REPORTS): FULL_EXPORT,
    # users
    (Role.ADMIN, Module.USERS): MANAGE,
    (Role.PLANNER, Module.USERS): NONE,
    (Role.REVIEWER, Module.USERS): NONE,
    (Role.VALIDATOR, Module.USERS): NONE,
    (Role.AUDITOR, Module.USERS): NONE,
    # audit
    (Role.ADMIN, Module.AUDIT): NONE,
    (Role.PLANNER, Module.AUDIT): NONE,
    (Role.REVIEWER, Module.AUDIT): NONE,
    (Role.VALIDATOR, Module.AUDIT): NONE,
    (Role.AUDITOR, Module.AUDIT): CapabilitySet(
        can_view=True, can_audit_system=True, export=ExportLevel.FULL,
    ),
}


class TestCapabilityMatrix:
    """Every one of the 30 (role, module) cells resolves exactly."""

    @pytest.mark.parametrize(
        ("role", "module"),
        sorted(EXPECTED, key=lambda k: (k[1].value, k[0].value)),
        ids=lambda v: v.value,
    )
    def test_cell(self, role, module):
        assert capabilities_for(role, module) == EXPECTED[(role, module)]

    def test_matrix_has_thirty_cells(self):
        table = capability_table()
        assert len(table) == 30
        assert table == EXPECTED

    def test_reviewer_never_gets_objectives(self):
        assert capabilities_for(Role.REVIEWER, Module.OBJECTIVES) == NONE

    def test_validator_never_gets_projects(self):
        assert capabilities_for(Role.VALIDATOR, Module.PROJECTS) == NONE

    def test_auditor_is_read_only_on_projects(self):
        caps = capabilities_for(Role.AUDITOR, Module.PROJECTS)
        assert caps.can_view
        assert not caps.can_edit
        assert not caps.can_approve


class TestFailClosed:
    @pytest.mark.parametrize("role", ["GUEST", "", None, 42])
    def test_unknown_role_gets_nothing(self, role):
        assert capabilities_for(role, Module.PROJECTS) == NONE

    @pytest.mark.parametrize("module", ["billing", "", None])
    def test_unknown_module_gets_nothing(self, module):
        assert capabilities_for(Role.ADMIN, module) == NONE


class TestAliases:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("PLANIF", Role.PLANNER),
            ("TECNICO", Role.PLANNER),
            ("REVISOR", Role.REVIEWER),
            ("VALID", Role.VALIDATOR),
            ("planner", Role.PLANNER),
            (" AUDITOR ", Role.AUDITOR),
            (Role.ADMIN, Role.ADMIN),
        ],
    )
    def test_parse_role(self, code, expected):
        assert parse_role(code) is expected

    def test_alias_resolves_same_capabilities(self):
        assert capabilities_for("PLANIF", "objetivos") == capabilities_for(
            Role.PLANNER, Module.OBJECTIVES
        )

    def test_parse_roles_keeps_order_and_drops_duplicates(self):
        assert parse_roles(["REVISOR", "PLANIF", "PLANNER", "GUEST"]) == (
            Role.REVIEWER,
            Role.PLANNER,
        )

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("proyectos", Module.PROJECTS),
            ("Reportes", Module.REPORTS),
            ("audit", Module.AUDIT),
        ],
    )
    def test_parse_module(self, name, expected):
        assert parse_module(name) is expected


class TestCapabilitySet:
    def test_union_is_flagwise_or_and_max_export(self):
        merged = LIMITED_EXPORT | CapabilitySet(can_edit=True, export=ExportLevel.FULL)
        assert merged == CapabilitySet(
            can_view=True, can_edit=True, export=ExportLevel.FULL,
        )

    def test_union_with_none_is_identity(self):
        assert VIEW_EDIT.union(NONE) == VIEW_EDIT

    def test_includes(self):
        assert MANAGE.includes(VIEW)
        assert not VIEW.includes(MANAGE)

    def test_export_properties(self):
        assert LIMITED_EXPORT.can_export
        assert not LIMITED_EXPORT.can_export_full
        assert FULL_EXPORT.can_export_full
        assert not VIEW.can_export

    def test_has_rejects_unknown_capability(self):
        with pytest.raises(ValueError):
            VIEW.has("can_fly")

    def test_granted_lists_boolean_flags(self):
        assert MANAGE.granted() == ("can_view", "can_edit", "can_manage_users")
        assert set(BOOLEAN_CAPABILITIES) >= set(MANAGE.granted())
