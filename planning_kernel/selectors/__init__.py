"""Read-only selectors returning frozen DTOs."""

from planning_kernel.selectors.compliance_selector import (
    BudgetLine,
    ComplianceSelector,
    Dashboard,
)
from planning_kernel.selectors.entity_selector import EntitySelector

__all__ = [
    "BudgetLine",
    "ComplianceSelector",
    "Dashboard",
    "EntitySelector",
]
