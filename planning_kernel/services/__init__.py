"""Write-side services.  Each flushes in the caller's transaction."""

from planning_kernel.services.auditor_service import AuditorService
from planning_kernel.services.decision_recorder import DecisionRecorder
from planning_kernel.services.entity_service import WorkflowEntityService
from planning_kernel.services.sequence_service import SequenceService
from planning_kernel.services.workflow_service import WorkflowService

__all__ = [
    "AuditorService",
    "DecisionRecorder",
    "SequenceService",
    "WorkflowEntityService",
    "WorkflowService",
]
