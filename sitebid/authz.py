"""
sitebid/authz.py

Authorization Engine: who may view or mutate a project, bid or milestone.

Single source of truth for resource-level access decisions. Route handlers
and the service layer never compare roles or owner ids themselves; they call
authorize() / enforce() here.

authorize() is a pure function: every piece of state it looks at (ownership,
parent project status, whether the caller already holds a live bid) is
supplied by the Resource Loader before the call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from sitebid.config import IS_DEV
from sitebid.errors import AuthError, AuthReason
from sitebid.models import BidStatus, ProjectStatus
from sitebid.rbac import Capability, has_role_capability, is_superuser

if TYPE_CHECKING:
    from sitebid.auth_context import CallerContext


class ResourceType(str, Enum):
    PROJECT = "project"
    BID = "bid"
    MILESTONE = "milestone"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SET_STATUS = "set_status"
    MANAGE_PAYMENT = "manage_payment"


# Project statuses visible to contractors browsing the marketplace
CONTRACTOR_VISIBLE_STATUSES = {ProjectStatus.open, ProjectStatus.in_progress}


@dataclass(frozen=True)
class ProjectRef:
    """Minimal parent-project fields needed for ownership decisions."""
    id: str
    owner_id: str
    status: ProjectStatus


@dataclass(frozen=True)
class ResourceContext:
    """
    Everything authorize() may look at for one decision.

    Fields:
        project: The project itself (PROJECT) or the parent project (BID, MILESTONE)
        entity: The loaded Bid or Milestone, None for projects and creates
        caller_has_live_bid: Caller already holds a non-withdrawn bid on project
    """
    project: Optional[ProjectRef] = None
    entity: Any = None
    caller_has_live_bid: bool = False


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[AuthReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: AuthReason) -> Decision:
    return Decision(False, reason)


# ============================================================================
# Ownership helpers
# ============================================================================

def _owns_project(caller: "CallerContext", project: Optional[ProjectRef]) -> bool:
    return project is not None and project.owner_id == caller.user_id


def _owner_or_manager(caller: "CallerContext", project: Optional[ProjectRef]) -> Decision:
    if _owns_project(caller, project) or is_superuser(caller.role):
        return ALLOW
    return deny(AuthReason.NOT_OWNER)


# ============================================================================
# Per-resource rules
# ============================================================================

def _authorize_project(caller: "CallerContext", action: Action, ctx: ResourceContext) -> Decision:
    if action == Action.CREATE:
        if has_role_capability(caller.role, Capability.PROJECT_CREATE):
            return ALLOW
        return deny(AuthReason.ROLE_NOT_PERMITTED)

    if action == Action.VIEW:
        if _owns_project(caller, ctx.project) or is_superuser(caller.role):
            return ALLOW
        if (
            has_role_capability(caller.role, Capability.PROJECT_BROWSE_OPEN)
            and ctx.project is not None
            and ctx.project.status in CONTRACTOR_VISIBLE_STATUSES
        ):
            return ALLOW
        return deny(AuthReason.NOT_OWNER)

    # update / delete / set_status
    return _owner_or_manager(caller, ctx.project)


def _authorize_bid(
    caller: "CallerContext",
    action: Action,
    ctx: ResourceContext,
    target_status: Optional[BidStatus],
) -> Decision:
    bid = ctx.entity
    is_bidder = bid is not None and bid.contractor_id == caller.user_id

    if action == Action.CREATE:
        if not has_role_capability(caller.role, Capability.BID_CREATE):
            return deny(AuthReason.ROLE_NOT_PERMITTED)
        if ctx.project is None or ctx.project.status != ProjectStatus.open:
            return deny(AuthReason.RESOURCE_NOT_OPEN)
        if ctx.caller_has_live_bid:
            return deny(AuthReason.DUPLICATE_BID)
        return ALLOW

    if action == Action.VIEW:
        if is_bidder:
            return ALLOW
        return _owner_or_manager(caller, ctx.project)

    if action == Action.SET_STATUS:
        if target_status == BidStatus.withdrawn:
            # Withdrawing is the bidder's own act; no override
            return ALLOW if is_bidder else deny(AuthReason.NOT_OWNER)
        if target_status in (BidStatus.accepted, BidStatus.rejected):
            return _owner_or_manager(caller, ctx.project)
        # Any other target is rejected by the workflow; let parties through
        if is_bidder:
            return ALLOW
        return _owner_or_manager(caller, ctx.project)

    # Bids have no field updates or deletes in this system
    return deny(AuthReason.NOT_OWNER)


def _authorize_milestone(caller: "CallerContext", action: Action, ctx: ResourceContext) -> Decision:
    if action == Action.CREATE or action == Action.MANAGE_PAYMENT:
        # Assignment and payment stay with the project side, never the assignee
        return _owner_or_manager(caller, ctx.project)

    milestone = ctx.entity
    if milestone is not None and milestone.assignee_id and milestone.assignee_id == caller.user_id:
        return ALLOW

    # view / update / delete / set_status
    return _owner_or_manager(caller, ctx.project)


# ============================================================================
# Main Decision Function
# ============================================================================

def authorize(
    caller: "CallerContext",
    action: Action,
    resource_type: ResourceType,
    ctx: ResourceContext,
    *,
    target_status: Optional[Any] = None,
) -> Decision:
    """
    Decide whether caller may perform action on a resource.

    Pure function - no database access, no logging, no exceptions.

    Args:
        caller: Resolved identity (user_id, role, is_active)
        action: view/create/update/delete/set_status/manage_payment
        resource_type: project/bid/milestone
        ctx: Loaded resource and parent-project context
        target_status: Requested status for Action.SET_STATUS on bids

    Returns:
        ALLOW or Decision(False, reason)
    """
    if resource_type == ResourceType.PROJECT:
        return _authorize_project(caller, action, ctx)
    if resource_type == ResourceType.BID:
        return _authorize_bid(caller, action, ctx, target_status)
    if resource_type == ResourceType.MILESTONE:
        return _authorize_milestone(caller, action, ctx)
    raise ValueError(f"Unknown resource type: {resource_type}")


def enforce(
    caller: "CallerContext",
    action: Action,
    resource_type: ResourceType,
    ctx: ResourceContext,
    *,
    target_status: Optional[Any] = None,
) -> None:
    """
    Authorize or raise.

    Raises:
        AuthError: with the Deny reason tag
    """
    decision = authorize(caller, action, resource_type, ctx, target_status=target_status)
    if decision.allowed:
        return

    if IS_DEV:
        resource_id = ctx.entity.id if ctx.entity is not None else (ctx.project.id if ctx.project else None)
        print(f"[AUTHZ] Denied: user_id={caller.user_id}, role={caller.role}, "
              f"action={action.value}, resource={resource_type.value}:{resource_id}, "
              f"reason={decision.reason.value}")

    messages = {
        AuthReason.NOT_OWNER: "You do not have access to this resource",
        AuthReason.ROLE_NOT_PERMITTED: "Your role is not permitted to perform this action",
        AuthReason.RESOURCE_NOT_OPEN: "Project is not open for bids",
        AuthReason.DUPLICATE_BID: "You have already submitted a bid for this project",
    }
    raise AuthError(decision.reason, messages.get(decision.reason))
