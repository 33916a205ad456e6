"""
Module: planning_kernel.models.sequence_counter
Responsibility: Named counter rows backing SequenceService.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per sequence name; ``current_value`` only ever increases
      outside of test resets.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from planning_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g. "audit_event")
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
