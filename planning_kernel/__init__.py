"""
Planning Kernel

Role-based authorization and workflow engine for institutional planning:
- Static role -> capability registry per module
- Any-of permission resolution over a user's role set
- Objective / project review state machines
- Append-only decision records and hash-chained audit trail
- Optimistic concurrency on workflow entities
- Compliance and pending-work aggregation
"""

__version__ = "0.1.0"
