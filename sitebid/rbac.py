"""
sitebid/rbac.py

Role-Based Access Control (RBAC) table for the marketplace.

Roles grant capabilities that do not depend on a particular resource
(who may create projects, who may bid, who may browse open projects, who
overrides ownership checks). Resource-specific rules (ownership, project
status) live in sitebid/authz.py, which consults this table.

Pure Python logic - no FastAPI imports, no database access.
"""

from enum import Enum
from typing import Set


class Capability(str, Enum):
    """Role-level capabilities in the SiteBid marketplace."""

    PROJECT_CREATE = "project:create"
    PROJECT_BROWSE_OPEN = "project:browse_open"
    BID_CREATE = "bid:create"
    OWNERSHIP_OVERRIDE = "ownership:override"


# ============================================================================
# Role to Capabilities Mapping
# ============================================================================

ROLE_CAPABILITIES: dict[str, Set[str]] = {
    "homeowner": {
        Capability.PROJECT_CREATE.value,
    },
    "contractor": {
        # Contractors see projects that are accepting or executing work
        Capability.PROJECT_BROWSE_OPEN.value,
        Capability.BID_CREATE.value,
    },
    "project_manager": {
        # Satisfies every ownership check unless a rule says otherwise
        Capability.OWNERSHIP_OVERRIDE.value,
    },
}


def role_capabilities(role: str) -> Set[str]:
    """
    Get the capability set for a role.

    Returns:
        Set of capability strings, empty for unknown roles.
    """
    role_lower = role.lower() if role else ""
    return set(ROLE_CAPABILITIES.get(role_lower, set()))


def has_role_capability(role: str, capability: str) -> bool:
    """Check if a role grants the capability. False for unknown roles."""
    return getattr(capability, "value", capability) in role_capabilities(role)


def is_superuser(role: str) -> bool:
    """project_manager overrides ownership checks."""
    return has_role_capability(role, Capability.OWNERSHIP_OVERRIDE)
