"""ORM models for the planning kernel."""

from planning_kernel.models.audit_event import AuditAction, AuditEvent
from planning_kernel.models.decision_record import DecisionRecordModel
from planning_kernel.models.sequence_counter import SequenceCounter
from planning_kernel.models.workflow_entity import WorkflowEntityModel

__all__ = [
    "AuditAction",
    "AuditEvent",
    "DecisionRecordModel",
    "SequenceCounter",
    "WorkflowEntityModel",
]
