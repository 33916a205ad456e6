"""
Pytest fixtures for the planning kernel test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Sessions, a deterministic clock and services wired to them
- One identity per role, plus multi-role identities
- Structured log capture

Environment Variables:
- DATABASE_URL: Run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are created and dropped per test.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Callable, Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from planning_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from planning_kernel.domain.clock import DeterministicClock
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.permissions import Identity
from planning_kernel.domain.workflow import EntityType, WorkflowAction
from planning_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from planning_kernel.selectors import ComplianceSelector, EntitySelector
from planning_kernel.services import (
    AuditorService,
    DecisionRecorder,
    WorkflowEntityService,
    WorkflowService,
)

TEST_TIME = datetime(2024, 3, 14, 10, 30, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture planning_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow_service):
            workflow_service.apply(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("planning_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Database
# =============================================================================


def get_database_url(tmp_path) -> str:
    """DATABASE_URL if set, otherwise a SQLite file private to the test."""
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'planning.db'}"


@pytest.fixture
def db_engine(tmp_path):
    """Engine with all tables created; disposed and dropped at teardown."""
    eng = init_engine_from_url(get_database_url(tmp_path), echo=False)
    drop_tables()
    create_tables()
    yield eng
    try:
        drop_tables()
    finally:
        reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """A session that commits for real.  Isolation comes from the per-test database."""
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture
def session_factory(db_engine):
    """Factory for additional independent sessions (concurrency tests)."""
    return get_session_factory()


# =============================================================================
# Clock and identities
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(TEST_TIME)


@pytest.fixture
def planner() -> Identity:
    return Identity.of(uuid4(), ["PLANNER"])


@pytest.fixture
def other_planner() -> Identity:
    return Identity.of(uuid4(), ["PLANNER"])


@pytest.fixture
def validator() -> Identity:
    return Identity.of(uuid4(), ["VALIDATOR"])


@pytest.fixture
def reviewer() -> Identity:
    return Identity.of(uuid4(), ["REVIEWER"])


@pytest.fixture
def auditor() -> Identity:
    return Identity.of(uuid4(), ["AUDITOR"])


@pytest.fixture
def admin() -> Identity:
    return Identity.of(uuid4(), ["ADMIN"])


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def auditor_service(session, deterministic_clock) -> AuditorService:
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def decision_recorder(session) -> DecisionRecorder:
    return DecisionRecorder(session)


@pytest.fixture
def entity_service(session, deterministic_clock, auditor_service) -> WorkflowEntityService:
    return WorkflowEntityService(session, deterministic_clock, auditor_service)


@pytest.fixture
def workflow_service(
    session, deterministic_clock, decision_recorder, auditor_service,
) -> WorkflowService:
    return WorkflowService(
        session,
        clock=deterministic_clock,
        decision_recorder=decision_recorder,
        auditor=auditor_service,
    )


@pytest.fixture
def entity_selector(session) -> EntitySelector:
    return EntitySelector(session)


@pytest.fixture
def compliance_selector(session, deterministic_clock) -> ComplianceSelector:
    return ComplianceSelector(session, deterministic_clock)


# =============================================================================
# Data builders
# =============================================================================


@pytest.fixture
def create_objective(entity_service, planner) -> Callable[..., WorkflowEntity]:
    """Register an objective in draft, owned by ``owner`` (default: planner)."""

    def _create(
        code: str = "OBJ-001",
        title: str = "Raise secondary completion rate",
        institution: str = "MINEDU",
        owner: Identity | None = None,
    ) -> WorkflowEntity:
        return entity_service.create(
            EntityType.OBJECTIVE, code, title, institution, owner or planner,
        )

    return _create


@pytest.fixture
def create_project(entity_service, planner) -> Callable[..., WorkflowEntity]:
    """Register a project in draft, owned by ``owner`` (default: planner)."""

    def _create(
        code: str = "PRJ-002",
        title: str = "Rural school connectivity",
        institution: str = "MINEDU",
        owner: Identity | None = None,
        budget_assigned: Decimal | None = Decimal("100000.00"),
    ) -> WorkflowEntity:
        return entity_service.create(
            EntityType.PROJECT, code, title, institution, owner or planner,
            budget_assigned=budget_assigned,
        )

    return _create


@pytest.fixture
def validated_objective(create_objective, workflow_service, planner, validator):
    """OBJ-001 walked to validated."""
    entity = create_objective()
    workflow_service.apply(entity.id, WorkflowAction.SUBMIT, planner)
    return workflow_service.apply(entity.id, WorkflowAction.APPROVE, validator).entity


@pytest.fixture
def approved_project(create_project, workflow_service, planner, reviewer):
    """PRJ-002 walked to approved."""
    entity = create_project()
    workflow_service.apply(entity.id, WorkflowAction.SUBMIT, planner)
    return workflow_service.apply(entity.id, WorkflowAction.APPROVE, reviewer).entity
