"""
Decision record value objects (``planning_kernel.domain.decisions``).

Pure, frozen DTOs for approve/reject decisions.  A DecisionRecord is
created only as a side effect of a legal decision-bearing transition and
is never updated or deleted once persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4


class Decision(str, Enum):
    """Outcome of a decision-bearing transition."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def normalize_justification(text: str | None) -> str | None:
    """Trim a justification; blank or whitespace-only becomes None."""
    if text is None:
        return None
    stripped = text.strip()
    return stripped or None


@dataclass(frozen=True)
class DecisionRecord:
    """Immutable audit entry for an approve/reject action.

    ``entity_version`` is the entity version the decision was taken
    against.  ``justification`` is always present for REJECTED.
    """

    entity_type: str
    entity_id: UUID
    decision: Decision
    actor_id: UUID
    actor_role: str
    decided_at: datetime
    from_state: str
    to_state: str
    entity_version: int
    justification: str | None = None
    record_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.record_id is None:
            object.__setattr__(self, "record_id", uuid4())
        if self.decision == Decision.REJECTED and not normalize_justification(
            self.justification
        ):
            raise ValueError("A REJECTED decision record requires a justification")
        if self.decided_at.tzinfo is None:
            raise ValueError("decided_at must be timezone-aware")

    @property
    def is_approval(self) -> bool:
        return self.decision == Decision.APPROVED

    @property
    def is_rejection(self) -> bool:
        return self.decision == Decision.REJECTED
