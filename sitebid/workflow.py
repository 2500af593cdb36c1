"""
sitebid/workflow.py

Workflow Engine: status state machines for projects, bids and milestones,
and the bid-acceptance cascade.

Transition tables:

    Project:   draft -> open -> in_progress -> completed
               open | in_progress -> cancelled
    Bid:       pending -> accepted | rejected | withdrawn
    Milestone: pending -> in_progress -> completed
               pending | in_progress -> blocked, blocked -> in_progress

Terminal states have no outgoing edges. Writes go through the Repository the
caller passes in; the caller owns the transaction (commit/rollback).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Set

from sitebid.authz import ProjectRef
from sitebid.config import IS_DEV
from sitebid.errors import WorkflowError, WorkflowReason
from sitebid.models import Bid, BidStatus, Milestone, MilestoneStatus, Project, ProjectStatus
from sitebid.repository import Repository

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Transition tables
# ============================================================================

PROJECT_TRANSITIONS: Dict[ProjectStatus, Set[ProjectStatus]] = {
    ProjectStatus.draft: {ProjectStatus.open},
    ProjectStatus.open: {ProjectStatus.in_progress, ProjectStatus.cancelled},
    ProjectStatus.in_progress: {ProjectStatus.completed, ProjectStatus.cancelled},
    ProjectStatus.completed: set(),
    ProjectStatus.cancelled: set(),
}

BID_TRANSITIONS: Dict[BidStatus, Set[BidStatus]] = {
    BidStatus.pending: {BidStatus.accepted, BidStatus.rejected, BidStatus.withdrawn},
    BidStatus.accepted: set(),
    BidStatus.rejected: set(),
    BidStatus.withdrawn: set(),
}

MILESTONE_TRANSITIONS: Dict[MilestoneStatus, Set[MilestoneStatus]] = {
    MilestoneStatus.pending: {MilestoneStatus.in_progress, MilestoneStatus.blocked},
    MilestoneStatus.in_progress: {MilestoneStatus.completed, MilestoneStatus.blocked},
    MilestoneStatus.blocked: {MilestoneStatus.in_progress},
    MilestoneStatus.completed: set(),
}


def can_transition(table: Dict, current, target) -> bool:
    return target in table.get(current, set())


def check_transition(kind: str, table: Dict, current, target) -> None:
    """
    Raises:
        WorkflowError(InvalidTransition): target is not reachable from current
    """
    if not can_transition(table, current, target):
        raise WorkflowError(
            WorkflowReason.INVALID_TRANSITION,
            f"Cannot change {kind} status from {current.value} to {target.value}",
        )


# ============================================================================
# Projects
# ============================================================================

def transition_project(repo: Repository, project: Project, target: ProjectStatus, now: datetime) -> Project:
    """Move a project along its state machine with a guarded write."""
    check_transition("project", PROJECT_TRANSITIONS, project.status, target)

    updated = repo.update_project(
        project.id, {"status": target}, now, expected_status=project.status.value
    )
    if updated == 0:
        # Status changed under us (e.g. a bid was accepted concurrently)
        raise WorkflowError(
            WorkflowReason.INVALID_TRANSITION,
            "Project status changed; refresh and retry",
        )

    if IS_DEV:
        print(f"[WORKFLOW] Project {project.id}: {project.status.value} -> {target.value}")
    return project.copy(update={"status": target, "updated_at": now})


# ============================================================================
# Bids
# ============================================================================

def accept_bid(repo: Repository, bid: Bid, project: ProjectRef, now: datetime) -> Bid:
    """
    Bid acceptance cascade.

    1. Guard: the project must still be open with no accepted bid
    2. Project -> in_progress, accepted_bid_id = bid.id
    3. Bid -> accepted
    4. Every other pending bid on the project -> rejected

    All writes share the caller's transaction; any failure raises and the
    caller rolls back, so no partial cascade is ever committed.

    Raises:
        WorkflowError(ProjectAlreadyCommitted): project no longer open / lost the race
        WorkflowError(InvalidTransition): bid is not pending
    """
    if bid.status == BidStatus.accepted:
        check_transition("bid", BID_TRANSITIONS, bid.status, BidStatus.accepted)

    if project.status != ProjectStatus.open:
        raise WorkflowError(
            WorkflowReason.PROJECT_ALREADY_COMMITTED,
            "Project is no longer open; refresh and retry",
        )

    check_transition("bid", BID_TRANSITIONS, bid.status, BidStatus.accepted)

    # Re-reads project status at write time
    if repo.commit_project_to_bid(project.id, bid.id, now) == 0:
        print(f"[WORKFLOW] Acceptance lost race: project={project.id}, bid={bid.id}")
        raise WorkflowError(
            WorkflowReason.PROJECT_ALREADY_COMMITTED,
            "Another bid was accepted for this project; refresh and retry",
        )

    if repo.set_bid_status(bid.id, BidStatus.pending.value, BidStatus.accepted.value, now) == 0:
        raise WorkflowError(
            WorkflowReason.INVALID_TRANSITION,
            "Bid is no longer pending; refresh and retry",
        )

    rejected = repo.reject_pending_bids(project.id, bid.id, now)

    print(f"[WORKFLOW] Bid accepted: bid={bid.id}, project={project.id}, rejected_others={rejected}")
    return bid.copy(update={"status": BidStatus.accepted, "updated_at": now})


def transition_bid(repo: Repository, bid: Bid, project: ProjectRef, target: BidStatus, now: datetime) -> Bid:
    """Apply a bid status change; acceptance runs the full cascade."""
    if target == BidStatus.accepted:
        return accept_bid(repo, bid, project, now)

    check_transition("bid", BID_TRANSITIONS, bid.status, target)

    if repo.set_bid_status(bid.id, bid.status.value, target.value, now) == 0:
        raise WorkflowError(
            WorkflowReason.INVALID_TRANSITION,
            "Bid status changed; refresh and retry",
        )

    if IS_DEV:
        print(f"[WORKFLOW] Bid {bid.id}: {bid.status.value} -> {target.value}")
    return bid.copy(update={"status": target, "updated_at": now})


# ============================================================================
# Milestones
# ============================================================================

def milestone_actual_dates(
    milestone: Milestone,
    supplied_start: Optional[datetime] = None,
    supplied_end: Optional[datetime] = None,
) -> Dict[str, datetime]:
    """
    Client-supplied actual dates, kept only where the stored value is unset.
    An already-recorded actual date always wins.
    """
    fields: Dict[str, datetime] = {}
    if supplied_start is not None and milestone.actual_start_date is None:
        fields["actual_start_date"] = supplied_start
    if supplied_end is not None and milestone.actual_end_date is None:
        fields["actual_end_date"] = supplied_end
    return fields


def milestone_status_fields(
    milestone: Milestone,
    target: MilestoneStatus,
    now: datetime,
    supplied_start: Optional[datetime] = None,
    supplied_end: Optional[datetime] = None,
) -> Dict[str, object]:
    """
    Columns to write for a milestone status change, including date stamps.

    actual_start_date is stamped the first time the milestone enters
    in_progress, actual_end_date the first time it enters completed.
    """
    check_transition("milestone", MILESTONE_TRANSITIONS, milestone.status, target)

    fields: Dict[str, object] = {"status": target}
    fields.update(milestone_actual_dates(milestone, supplied_start, supplied_end))

    if target == MilestoneStatus.in_progress and milestone.actual_start_date is None:
        fields.setdefault("actual_start_date", now)
    if target == MilestoneStatus.completed and milestone.actual_end_date is None:
        fields.setdefault("actual_end_date", now)
    return fields


def transition_milestone(
    repo: Repository,
    milestone: Milestone,
    target: MilestoneStatus,
    now: datetime,
    extra_fields: Optional[Dict[str, object]] = None,
    supplied_start: Optional[datetime] = None,
    supplied_end: Optional[datetime] = None,
) -> Milestone:
    """
    Change milestone status (with date stamping) plus any other field edits
    in one guarded write.
    """
    fields = dict(extra_fields or {})
    fields.update(milestone_status_fields(milestone, target, now, supplied_start, supplied_end))

    if repo.update_milestone(milestone.id, fields, now, expected_status=milestone.status.value) == 0:
        raise WorkflowError(
            WorkflowReason.INVALID_TRANSITION,
            "Milestone status changed; refresh and retry",
        )

    if IS_DEV:
        print(f"[WORKFLOW] Milestone {milestone.id}: {milestone.status.value} -> {target.value}")

    refreshed = repo.get_milestone(milestone.id)
    return refreshed if refreshed is not None else milestone
