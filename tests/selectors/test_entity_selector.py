"""Tests for EntitySelector visibility and history queries."""

import pytest

from planning_kernel.domain.compliance import AggregationScope
from planning_kernel.domain.workflow import EntityState, EntityType
from planning_kernel.exceptions import UnauthorizedError


@pytest.fixture
def portfolio(create_objective, create_project, workflow_service, planner, reviewer):
    objective = create_objective("OBJ-001", institution="MINEDU")
    project_a = create_project("PRJ-001", institution="MINEDU")
    project_b = create_project("PRJ-002", institution="MINSA")
    workflow_service.apply(project_b.id, "submit", planner)
    workflow_service.apply(project_b.id, "reject", reviewer, justification="Scope unclear")
    return objective, project_a, project_b


class TestListing:
    def test_ordered_by_type_then_code(self, entity_selector, portfolio):
        codes = [e.code for e in entity_selector.list_entities()]
        assert codes == ["OBJ-001", "PRJ-001", "PRJ-002"]

    def test_scope_and_states(self, entity_selector, portfolio):
        minedu_projects = entity_selector.list_entities(
            AggregationScope(EntityType.PROJECT, "MINEDU")
        )
        assert [e.code for e in minedu_projects] == ["PRJ-001"]
        rejected = entity_selector.list_entities(states=[EntityState.REJECTED])
        assert [e.code for e in rejected] == ["PRJ-002"]


class TestVisibility:
    def test_reviewer_sees_projects_only(self, entity_selector, reviewer, portfolio):
        assert entity_selector.visible_types(reviewer) == (EntityType.PROJECT,)
        assert {e.entity_type for e in entity_selector.visible_to(reviewer)} == {
            EntityType.PROJECT
        }

    def test_validator_cannot_list_projects(self, entity_selector, validator, portfolio):
        with pytest.raises(UnauthorizedError):
            entity_selector.visible_to(validator, entity_type="project")

    def test_auditor_sees_everything(self, entity_selector, auditor, portfolio):
        assert len(entity_selector.visible_to(auditor)) == 3

    def test_institution_filter(self, entity_selector, auditor, portfolio):
        visible = entity_selector.visible_to(auditor, institution="MINSA")
        assert [e.code for e in visible] == ["PRJ-002"]


class TestHistory:
    def test_decision_history(self, entity_selector, portfolio):
        _, _, rejected = portfolio
        history = entity_selector.decision_history(rejected.id)
        assert len(history) == 1
        assert history[0].justification == "Scope unclear"

    def test_decision_records_by_type(self, entity_selector, portfolio):
        assert len(entity_selector.decision_records("project")) == 1
        assert entity_selector.decision_records(EntityType.OBJECTIVE) == []
