"""
Typed Exception Hierarchy for the Planning Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP layer, a CLI, a batch job) must react differently to a
denied action, an illegal transition, a missing justification and a lost
race.  Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE class attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        workflow.apply(entity_id, WorkflowAction.REJECT, identity)
    except JustificationRequiredError as e:
        return {"success": False, "message": str(e), "code": e.code}
    except ConcurrentModificationError:
        retry_against_fresh_state()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PlanningKernelError (base)
    |
    +-- AuthorizationError
    |   +-- UnauthorizedError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- EntityLockedError
    |
    +-- ValidationError
    |   +-- JustificationRequiredError
    |   +-- DuplicateEntityCodeError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- EntityNotFoundError
    |
    +-- StorageError
    |   +-- StorageFailureError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED                | Role set lacks capability / transition right
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_TRANSITION          | No edge for (state, action) in the table
                | ENTITY_LOCKED               | Edit attempted outside draft/rejected
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input
                | JUSTIFICATION_REQUIRED      | Reject without a non-blank justification
                | DUPLICATE_ENTITY_CODE       | Code already used for the entity type
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Lost race on the entity version
----------------|-----------------------------|-----------------------------------------
Lookup          | ENTITY_NOT_FOUND            | Unknown entity id or code
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_FAILURE             | Persistence unavailable (fatal to caller)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of a decision or audit row
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

- ValidationError / UnauthorizedError: surface inline to the user.
- ConcurrentModificationError / StorageFailureError: system errors, the
  caller decides whether to retry.  The kernel never retries on its own.
- AuditChainBrokenError: stop processing and investigate.
===============================================================================
"""


class PlanningKernelError(Exception):
    """
    Base exception for all planning kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PLANNING_KERNEL_ERROR"


# Authorization


class AuthorizationError(PlanningKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedError(AuthorizationError):
    """The actor's role set does not grant the requested action."""

    code: str = "UNAUTHORIZED"

    def __init__(
        self,
        action: str,
        roles: tuple[str, ...],
        reason: str = "",
        module: str | None = None,
    ):
        self.action = action
        self.roles = tuple(roles)
        self.reason = reason
        self.module = module
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Not authorized to {action} with roles {list(self.roles)}{detail}"
        )


# Workflow


class WorkflowError(PlanningKernelError):
    """Base exception for workflow state machine errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """No edge in the transition table for the requested move."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, from_state: str, action: str):
        self.entity_type = entity_type
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Invalid transition for {entity_type}: "
            f"cannot '{action}' from state '{from_state}'"
        )


class EntityLockedError(WorkflowError):
    """Entity details cannot be edited in its current state."""

    code: str = "ENTITY_LOCKED"

    def __init__(self, entity_id: str, state: str):
        self.entity_id = entity_id
        self.state = state
        super().__init__(
            f"Entity {entity_id} cannot be edited in state '{state}'"
        )


# Validation


class ValidationError(PlanningKernelError):
    """Malformed or incomplete input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class JustificationRequiredError(ValidationError):
    """A rejection was requested without a non-blank justification."""

    code: str = "JUSTIFICATION_REQUIRED"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"A justification is required to reject {entity_type} {entity_id}",
            field="justification",
        )


class DuplicateEntityCodeError(ValidationError):
    """An entity with this code already exists for the entity type."""

    code: str = "DUPLICATE_ENTITY_CODE"

    def __init__(self, entity_type: str, entity_code: str):
        self.entity_type = entity_type
        self.entity_code = entity_code
        super().__init__(
            f"{entity_type} with code '{entity_code}' already exists",
            field="code",
        )


# Concurrency


class ConcurrencyError(PlanningKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """The entity was modified by another transaction."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        versions = ""
        if expected_version is not None:
            versions = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent modification on {entity_type} {entity_id}: "
            f"entity was modified by another transaction{versions}"
        )


# Lookup


class EntityNotFoundError(PlanningKernelError):
    """Entity with the given id or code was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_ref: str, entity_type: str | None = None):
        self.entity_ref = entity_ref
        self.entity_type = entity_type
        kind = entity_type or "Entity"
        super().__init__(f"{kind} not found: {entity_ref}")


# Storage


class StorageError(PlanningKernelError):
    """Base exception for persistence errors."""

    code: str = "STORAGE_ERROR"


class StorageFailureError(StorageError):
    """Persistence is unavailable or rejected the write."""

    code: str = "STORAGE_FAILURE"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Storage failure during {operation}" + (f": {detail}" if detail else "")
        )


# Immutability


class ImmutabilityError(PlanningKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Audit


class AuditError(PlanningKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
