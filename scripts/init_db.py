#!/usr/bin/env python3
"""
Create the planning schema and optionally seed a small demo data set.

Settings come from planning_config (default.yaml plus the
PLANNING_DATABASE_URL / PLANNING_LOG_LEVEL overrides).  ``--db-url``
overrides both.

Usage:
  python3 scripts/init_db.py [--config PATH] [--db-url URL] [--drop] [--seed-demo]
"""

import argparse
import sys
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create planning tables and seed demo data")
    p.add_argument("--config", default=None, help="Settings YAML (default: planning_config/sets/default.yaml)")
    p.add_argument("--db-url", default=None, help="Database URL (overrides settings)")
    p.add_argument("--drop", action="store_true", help="Drop all tables before creating them")
    p.add_argument("--seed-demo", action="store_true", help="Register and decide a few demo entities")
    return p.parse_args(argv)


def seed_demo(session) -> dict[str, str]:
    """
    Walk OBJ-001 to validated and PRJ-002 through a rejection and back to
    approval.  Returns code -> final state.
    """
    from planning_kernel.domain.permissions import Identity
    from planning_kernel.domain.workflow import EntityType, WorkflowAction
    from planning_kernel.services import WorkflowEntityService, WorkflowService

    planner = Identity.of(uuid4(), ["PLANIF"])
    validator = Identity.of(uuid4(), ["VALID"])
    reviewer = Identity.of(uuid4(), ["REVISOR"])

    entities = WorkflowEntityService(session)
    workflow = WorkflowService(session)

    objective = entities.create(
        EntityType.OBJECTIVE, "OBJ-001", "Reduce dropout rate", "Ministry of Education", planner,
    )
    workflow.apply(objective.id, WorkflowAction.SUBMIT, planner)
    workflow.apply(objective.id, WorkflowAction.APPROVE, validator)

    project = entities.create(
        EntityType.PROJECT, "PRJ-002", "Rural school connectivity", "Ministry of Education",
        planner, budget_assigned=Decimal("250000.00"),
    )
    workflow.apply(project.id, WorkflowAction.SUBMIT, planner)
    workflow.apply(
        project.id, WorkflowAction.REJECT, reviewer,
        justification="Budget breakdown by quarter is missing",
    )
    workflow.apply(project.id, WorkflowAction.RESUBMIT, planner)
    entities.update_details(project.id, planner, budget_assigned=Decimal("240000.00"))
    workflow.apply(project.id, WorkflowAction.SUBMIT, planner)
    workflow.apply(project.id, WorkflowAction.APPROVE, reviewer)
    entities.record_budget_execution(project.id, planner, Decimal("180000.00"))

    return {
        "OBJ-001": entities.get(objective.id).state.value,
        "PRJ-002": entities.get(project.id).state.value,
    }


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from planning_config import get_active_config
    from planning_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from planning_kernel.logging_config import configure_logging
    from planning_kernel.selectors import ComplianceSelector

    settings = get_active_config(args.config)
    configure_logging(level=settings.logging.level)

    db = settings.database
    init_engine_from_url(
        args.db_url or db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )

    if args.drop:
        drop_tables()
        print("  Dropped all tables.")
    create_tables()
    print("  Tables created.")

    if args.seed_demo:
        with session_scope() as session:
            states = seed_demo(session)
            report = ComplianceSelector(session, week_start=settings.reporting.week_start)
            rate = report.compliance_rate()
            this_week = report.decisions_this_week()
        for code, state in states.items():
            print(f"  {code}: {state}")
        print(f"  Compliance rate: {rate:.0%}")
        print(f"  Decisions this week ({settings.reporting.week_start} start): {this_week}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
