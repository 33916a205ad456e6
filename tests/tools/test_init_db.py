"""Tests for scripts/init_db.py."""

from decimal import Decimal

import yaml
from sqlalchemy import create_engine, inspect

from planning_kernel.db.engine import reset_engine
from planning_kernel.domain.workflow import EntityType
from planning_kernel.services import AuditorService, DecisionRecorder, WorkflowEntityService
from scripts.init_db import main, seed_demo


class TestSeedDemo:
    """The demo seed drives both workflows through the real services."""

    def test_final_states(self, session):
        states = seed_demo(session)

        assert states == {"OBJ-001": "validated", "PRJ-002": "approved"}

    def test_project_history_and_budget(self, session):
        seed_demo(session)

        project = WorkflowEntityService(session).get_by_code(EntityType.PROJECT, "PRJ-002")
        history = DecisionRecorder(session).history_for(EntityType.PROJECT, project.id)

        assert [r.decision.value for r in history] == ["rejected", "approved"]
        assert history[0].justification == "Budget breakdown by quarter is missing"
        assert project.budget_assigned == Decimal("240000.00")
        assert project.budget_executed == Decimal("180000.00")

    def test_audit_chain_valid_after_seed(self, session):
        seed_demo(session)

        assert AuditorService(session).validate_chain() is True


class TestMain:
    """End-to-end runs of the CLI against a throwaway SQLite file."""

    def test_creates_tables(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'init.db'}"
        try:
            assert main(["--db-url", url]) == 0
        finally:
            reset_engine()

        tables = set(inspect(create_engine(url)).get_table_names())
        assert {"workflow_entities", "decision_records", "audit_events"} <= tables
        assert "Tables created." in capsys.readouterr().out

    def test_seed_demo_prints_states(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'init.db'}"
        try:
            assert main(["--db-url", url, "--drop", "--seed-demo"]) == 0
        finally:
            reset_engine()

        out = capsys.readouterr().out
        assert "Dropped all tables." in out
        assert "OBJ-001: validated" in out
        assert "PRJ-002: approved" in out
        assert "Compliance rate: 100%" in out
        assert "Decisions this week (monday start):" in out

    def test_week_start_comes_from_settings(self, tmp_path, capsys):
        settings = tmp_path / "settings.yaml"
        settings.write_text(yaml.safe_dump({
            "name": "cli-test",
            "version": "1",
            "database": {"url": "sqlite:///unused.db"},
            "reporting": {"week_start": "sunday"},
        }))
        url = f"sqlite:///{tmp_path / 'init.db'}"
        try:
            assert main(["--config", str(settings), "--db-url", url, "--seed-demo"]) == 0
        finally:
            reset_engine()

        assert "Decisions this week (sunday start):" in capsys.readouterr().out
