"""
sitebid/errors.py

Typed failures raised by the core (identity, authorization, workflow, loader).

Every failure carries a reason tag so the HTTP layer can map it to a specific
response; nothing in the core raises HTTPException directly.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class AuthReason(str, Enum):
    NOT_OWNER = "NotOwner"
    ROLE_NOT_PERMITTED = "RoleNotPermitted"
    RESOURCE_NOT_OPEN = "ResourceNotOpen"
    DUPLICATE_BID = "DuplicateBid"
    INVALID_ASSERTION = "InvalidAssertion"
    INACTIVE_ACCOUNT = "InactiveAccount"


class WorkflowReason(str, Enum):
    INVALID_TRANSITION = "InvalidTransition"
    PROJECT_ALREADY_COMMITTED = "ProjectAlreadyCommitted"
    DUPLICATE_BID = "DuplicateBid"


class SiteBidError(Exception):
    """Base class for every typed failure surfaced to the boundary layer."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)

    @property
    def tag(self) -> str:
        return self.reason.value if isinstance(self.reason, Enum) else str(self.reason)


class AuthError(SiteBidError):
    """Identity could not be established, or the caller may not do this."""


class WorkflowError(SiteBidError):
    """A state machine rule or cross-entity invariant rejected the change."""


class NotFound(SiteBidError):
    """The resource does not exist (or its owner chain is inactive)."""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__("NotFound", f"{resource_type.capitalize()} not found")


class Conflict(SiteBidError):
    """A unique value (e.g. registration email) is already taken."""

    def __init__(self, message: str):
        super().__init__("Conflict", message)
