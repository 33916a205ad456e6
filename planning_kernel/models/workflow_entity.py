"""
Module: planning_kernel.models.workflow_entity
Responsibility: ORM persistence for objectives and projects, one
    declarative table keyed by entity type.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for DTO conversion only).

Invariants enforced:
    - (entity_type, code) is unique.
    - ``version`` is the SQLAlchemy version_id_col: every UPDATE is issued
      as ``... WHERE id = :id AND version = :loaded_version`` and bumps the
      counter, so a lost race matches zero rows and raises StaleDataError.
    - ``state`` is written only by WorkflowService.apply; the entity
      service edits descriptive fields only.

Failure modes:
    - IntegrityError on duplicate (entity_type, code).
    - StaleDataError when another transaction committed a newer version.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import TrackedBase, UUIDString
from planning_kernel.domain.clock import as_utc
from planning_kernel.domain.entities import WorkflowEntity
from planning_kernel.domain.workflow import EntityState, EntityType


class WorkflowEntityModel(TrackedBase):
    """
    Objective or project under workflow control.

    Contract:
        Rows are created in the workflow's initial state and move only along
        the transition table.  Rows are never deleted.

    Guarantees:
        - version starts at 1 and increases by exactly 1 per UPDATE.
        - budget columns are NULL for objectives.
    """

    __tablename__ = "workflow_entities"

    __table_args__ = (
        UniqueConstraint("entity_type", "code", name="uq_workflow_entity_code"),
        Index("idx_workflow_entity_state", "entity_type", "state"),
        Index("idx_workflow_entity_institution", "institution"),
    )

    # "objective" or "project"
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Human-facing code, e.g. OBJ-001
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # Owning institution code
    institution: Mapped[str] = mapped_column(String(100), nullable=False)

    state: Mapped[str] = mapped_column(String(30), nullable=False)

    # Optimistic lock counter
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    budget_assigned: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 2), nullable=True,
    )
    budget_executed: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 2), nullable=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<WorkflowEntity {self.entity_type}:{self.code} [{self.state}] v{self.version}>"

    def to_dto(self) -> WorkflowEntity:
        """Convert ORM model to frozen domain DTO."""
        return WorkflowEntity(
            id=self.id,
            entity_type=EntityType(self.entity_type),
            code=self.code,
            title=self.title,
            institution=self.institution,
            state=EntityState(self.state),
            version=self.version,
            owner_id=self.owner_id,
            budget_assigned=self.budget_assigned,
            budget_executed=self.budget_executed,
            created_at=as_utc(self.created_at) if self.created_at else None,
            updated_at=as_utc(self.updated_at) if self.updated_at else None,
        )
