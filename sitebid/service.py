"""
sitebid/service.py

Mutation Facade: the operations the HTTP layer calls.

Every operation follows the same sequence on one transaction-scoped
Repository:

    load (Resource Loader) -> enforce (Authorization Engine)
        -> Workflow Engine for status changes -> persist -> commit

Any exception inside ``with self.repo.transaction():`` rolls back every write
of that operation before it propagates.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Tuple

from sitebid.auth_context import (
    CallerContext,
    create_access_token,
    hash_password,
    resolve,
    verify_password,
)
from sitebid.authz import (
    CONTRACTOR_VISIBLE_STATUSES,
    Action,
    ResourceContext,
    ResourceType,
    authorize,
    enforce,
)
from sitebid.config import IS_DEV
from sitebid.db import INTEGRITY_ERRORS
from sitebid.errors import AuthError, AuthReason, Conflict, NotFound, WorkflowError, WorkflowReason
from sitebid.loader import LoadedResource, load, load_bid_creation_context
from sitebid.models import (
    Bid,
    BidStatus,
    Milestone,
    MilestoneStatus,
    Project,
    ProjectStatus,
    User,
)
from sitebid.rbac import Capability, has_role_capability, is_superuser
from sitebid.repository import Repository
from sitebid.workflow import (
    Clock,
    milestone_actual_dates,
    transition_bid,
    transition_milestone,
    transition_project,
    utc_now,
)


# Milestone fields only the project owner or a project_manager may edit
MILESTONE_PAYMENT_FIELDS = ("assignee_id", "payment_amount", "is_paid")

# A project starts here; every later status is reached through the workflow
INITIAL_PROJECT_STATUSES = (ProjectStatus.draft, ProjectStatus.open)


def new_id() -> str:
    return str(uuid.uuid4())


class MarketplaceService:
    """Core operations for users, projects, bids and milestones."""

    def __init__(self, repo: Repository, clock: Clock = utc_now):
        self.repo = repo
        self.clock = clock

    def _load(self, resource_type: ResourceType, resource_id: str) -> LoadedResource:
        loaded = load(self.repo, resource_type, resource_id)
        if loaded is None:
            raise NotFound(resource_type.value, resource_id)
        return loaded

    # =====================================================================
    # Identity / accounts
    # =====================================================================

    def authenticate(self, assertion: Optional[str]) -> CallerContext:
        return resolve(assertion, self.repo)

    def register(self, fields: Dict[str, Any]) -> Tuple[str, User]:
        """
        Create an account and issue its first access token.

        Raises:
            Conflict: email already registered
        """
        fields = dict(fields)
        password = fields.pop("password")
        now = self.clock()
        user_id = new_id()

        try:
            with self.repo.transaction():
                if self.repo.get_credentials(fields["email"]) is not None:
                    raise Conflict("Email already registered")
                self.repo.insert_user({
                    "id": user_id,
                    **fields,
                    "password_hash": hash_password(password),
                    "specializations": [],
                    "is_active": True,
                    "created_at": now,
                    "updated_at": now,
                })
                user = self.repo.get_user(user_id)
        except INTEGRITY_ERRORS:
            # Lost a race with a concurrent registration of the same email
            raise Conflict("Email already registered")

        print(f"[AUTH] Registered user_id={user.id}, role={user.role.value}")
        return create_access_token(user.id, user.role), user

    def login(self, email: str, password: str) -> Tuple[str, User]:
        """
        Raises:
            AuthError(InvalidAssertion): unknown email or wrong password
            AuthError(InactiveAccount): account deactivated
        """
        with self.repo.transaction():
            creds = self.repo.get_credentials(email)
            if not creds or not verify_password(password, creds["password_hash"]):
                if IS_DEV:
                    print(f"[AUTH] Failed login for email={email}")
                raise AuthError(AuthReason.INVALID_ASSERTION, "Invalid credentials")
            if not creds["is_active"]:
                raise AuthError(AuthReason.INACTIVE_ACCOUNT, "Account inactive")
            user = self.repo.get_user(creds["id"])

        return create_access_token(user.id, user.role), user

    def get_profile(self, caller: CallerContext) -> User:
        with self.repo.transaction():
            user = self.repo.get_user(caller.user_id)
        if user is None:
            raise NotFound("user", caller.user_id)
        return user

    def update_profile(self, caller: CallerContext, fields: Dict[str, Any]) -> User:
        with self.repo.transaction():
            if fields:
                self.repo.update_user(caller.user_id, fields, self.clock())
            user = self.repo.get_user(caller.user_id)
        if user is None:
            raise NotFound("user", caller.user_id)
        return user

    def list_contractors(self) -> List[User]:
        with self.repo.transaction():
            return self.repo.list_contractors()

    def get_user(self, user_id: str) -> User:
        """Public profile; deactivated users are reported as missing."""
        with self.repo.transaction():
            user = self.repo.get_user(user_id)
        if user is None or not user.is_active:
            raise NotFound("user", user_id)
        return user

    # =====================================================================
    # Projects
    # =====================================================================

    def create_project(self, caller: CallerContext, fields: Dict[str, Any]) -> Project:
        """
        Raises:
            AuthError(RoleNotPermitted): caller's role cannot create projects
            WorkflowError(InvalidTransition): initial status other than draft/open
        """
        with self.repo.transaction():
            enforce(caller, Action.CREATE, ResourceType.PROJECT, ResourceContext())
            status = ProjectStatus(fields.get("status") or ProjectStatus.draft)
            if status not in INITIAL_PROJECT_STATUSES:
                raise WorkflowError(
                    WorkflowReason.INVALID_TRANSITION,
                    f"A new project must be draft or open, not {status.value}",
                )

            now = self.clock()
            project_id = new_id()
            values = {
                "id": project_id,
                **fields,
                "owner_id": caller.user_id,
                "status": status,
                "created_at": now,
                "updated_at": now,
            }
            self.repo.insert_project(values)
            project = self.repo.get_project(project_id)

        print(f"[PROJECTS] Created project_id={project.id}, owner_id={caller.user_id}, "
              f"status={project.status.value}")
        return project

    def get_project(self, caller: CallerContext, project_id: str) -> Project:
        with self.repo.transaction():
            loaded = self._load(ResourceType.PROJECT, project_id)
            enforce(caller, Action.VIEW, ResourceType.PROJECT, loaded.context())
        return loaded.entity

    def list_projects(self, caller: CallerContext) -> List[Project]:
        """
        Projects the caller may see:
        project_manager -> all, contractor -> open/in_progress, others -> own.
        """
        with self.repo.transaction():
            if is_superuser(caller.role):
                return self.repo.list_projects()
            if has_role_capability(caller.role, Capability.PROJECT_BROWSE_OPEN):
                return self.repo.list_projects(statuses=CONTRACTOR_VISIBLE_STATUSES)
            return self.repo.list_projects(owner_id=caller.user_id)

    def update_project(self, caller: CallerContext, project_id: str, fields: Dict[str, Any]) -> Project:
        """
        Partial update. A changed status goes through the project state machine;
        an unchanged status is ignored.

        Raises:
            AuthError(NotOwner), NotFound, WorkflowError(InvalidTransition)
        """
        fields = dict(fields)
        target = fields.pop("status", None)

        with self.repo.transaction():
            loaded = self._load(ResourceType.PROJECT, project_id)
            enforce(caller, Action.UPDATE, ResourceType.PROJECT, loaded.context())

            now = self.clock()
            project = loaded.entity
            if target is not None and ProjectStatus(target) != project.status:
                transition_project(self.repo, project, ProjectStatus(target), now)
            if fields:
                self.repo.update_project(project_id, fields, now)
            project = self.repo.get_project(project_id)

        if IS_DEV:
            print(f"[PROJECTS] Updated project_id={project_id}, fields={sorted(fields)}, "
                  f"user_id={caller.user_id}")
        return project

    def set_project_status(self, caller: CallerContext, project_id: str, target: ProjectStatus) -> Project:
        with self.repo.transaction():
            loaded = self._load(ResourceType.PROJECT, project_id)
            enforce(caller, Action.SET_STATUS, ResourceType.PROJECT, loaded.context())
            transition_project(self.repo, loaded.entity, ProjectStatus(target), self.clock())
            return self.repo.get_project(project_id)

    def delete_project(self, caller: CallerContext, project_id: str) -> None:
        with self.repo.transaction():
            loaded = self._load(ResourceType.PROJECT, project_id)
            enforce(caller, Action.DELETE, ResourceType.PROJECT, loaded.context())
            self.repo.delete_project(project_id)

        print(f"[PROJECTS] Deleted project_id={project_id}, user_id={caller.user_id}")

    # =====================================================================
    # Bids
    # =====================================================================

    def submit_bid(self, caller: CallerContext, project_id: str, fields: Dict[str, Any]) -> Bid:
        """
        Submit a bid on an open project as the calling contractor.

        Raises:
            NotFound: project missing (or owner inactive)
            AuthError(RoleNotPermitted | ResourceNotOpen | DuplicateBid)
            WorkflowError(DuplicateBid): a concurrent submission won the unique index
        """
        fields = {k: v for k, v in fields.items() if k != "project_id"}
        bid_id = new_id()

        try:
            with self.repo.transaction():
                ctx = load_bid_creation_context(self.repo, project_id, caller.user_id)
                if ctx is None:
                    raise NotFound("project", project_id)
                enforce(caller, Action.CREATE, ResourceType.BID, ctx)

                now = self.clock()
                self.repo.insert_bid({
                    "id": bid_id,
                    **fields,
                    "project_id": project_id,
                    "contractor_id": caller.user_id,
                    "status": BidStatus.pending,
                    "created_at": now,
                    "updated_at": now,
                })
                bid = self.repo.get_bid(bid_id)
        except INTEGRITY_ERRORS:
            print(f"[BIDS] Duplicate bid rejected by index: project_id={project_id}, "
                  f"contractor_id={caller.user_id}")
            raise WorkflowError(
                WorkflowReason.DUPLICATE_BID,
                "You have already submitted a bid for this project",
            )

        print(f"[BIDS] Submitted bid_id={bid.id}, project_id={project_id}, "
              f"contractor_id={caller.user_id}")
        return bid

    def get_bid(self, caller: CallerContext, bid_id: str) -> Bid:
        with self.repo.transaction():
            loaded = self._load(ResourceType.BID, bid_id)
            enforce(caller, Action.VIEW, ResourceType.BID, loaded.context())
        return loaded.entity

    def list_bids(self, caller: CallerContext, project_id: Optional[str] = None) -> List[Bid]:
        """contractor -> own bids, project_manager -> all, others -> bids on own projects."""
        with self.repo.transaction():
            if is_superuser(caller.role):
                return self.repo.list_bids(project_id=project_id)
            if has_role_capability(caller.role, Capability.BID_CREATE):
                return self.repo.list_bids(contractor_id=caller.user_id, project_id=project_id)
            return self.repo.list_bids(project_owner_id=caller.user_id, project_id=project_id)

    def set_bid_status(self, caller: CallerContext, bid_id: str, target: BidStatus) -> Bid:
        """
        Withdraw, reject or accept a bid. Acceptance runs the full cascade
        (project -> in_progress, other pending bids -> rejected) atomically.

        Raises:
            NotFound, AuthError(NotOwner),
            WorkflowError(InvalidTransition | ProjectAlreadyCommitted)
        """
        target = BidStatus(target)
        with self.repo.transaction():
            loaded = self._load(ResourceType.BID, bid_id)
            enforce(caller, Action.SET_STATUS, ResourceType.BID, loaded.context(), target_status=target)
            bid = transition_bid(self.repo, loaded.entity, loaded.project, target, self.clock())

        if IS_DEV:
            print(f"[BIDS] bid_id={bid_id} -> {target.value} by user_id={caller.user_id}")
        return bid

    # =====================================================================
    # Milestones
    # =====================================================================

    def _check_assignee(self, assignee_id: Optional[str]) -> None:
        if assignee_id is None:
            return
        assignee = self.repo.get_user(assignee_id)
        if assignee is None or not assignee.is_active:
            raise NotFound("user", assignee_id)

    def create_milestone(self, caller: CallerContext, project_id: str, fields: Dict[str, Any]) -> Milestone:
        fields = {k: v for k, v in fields.items() if k != "project_id"}
        position = fields.pop("order")
        milestone_id = new_id()

        with self.repo.transaction():
            loaded = self._load(ResourceType.PROJECT, project_id)
            enforce(caller, Action.CREATE, ResourceType.MILESTONE, ResourceContext(project=loaded.project))
            self._check_assignee(fields.get("assignee_id"))

            now = self.clock()
            self.repo.insert_milestone({
                "id": milestone_id,
                **fields,
                "project_id": project_id,
                "position": position,
                "status": MilestoneStatus.pending,
                "is_paid": False,
                "created_at": now,
                "updated_at": now,
            })
            milestone = self.repo.get_milestone(milestone_id)

        print(f"[MILESTONES] Created milestone_id={milestone.id}, project_id={project_id}, "
              f"order={milestone.order}")
        return milestone

    def get_milestone(self, caller: CallerContext, milestone_id: str) -> Milestone:
        with self.repo.transaction():
            loaded = self._load(ResourceType.MILESTONE, milestone_id)
            enforce(caller, Action.VIEW, ResourceType.MILESTONE, loaded.context())
        return loaded.entity

    def list_project_milestones(self, caller: CallerContext, project_id: str) -> List[Milestone]:
        """
        Milestones of a project in order. The caller needs view access to the
        project itself, or to at least one of its milestones (as assignee).
        """
        with self.repo.transaction():
            loaded = self._load(ResourceType.PROJECT, project_id)
            milestones = self.repo.list_milestones(project_id)

        visible = [
            m for m in milestones
            if authorize(
                caller, Action.VIEW, ResourceType.MILESTONE,
                ResourceContext(project=loaded.project, entity=m),
            )
        ]
        if not visible:
            enforce(caller, Action.VIEW, ResourceType.PROJECT, loaded.context())
        return visible

    def update_milestone(self, caller: CallerContext, milestone_id: str, fields: Dict[str, Any]) -> Milestone:
        """
        Partial update. A status change is applied by the Workflow Engine
        together with the field edits (one guarded write, dates stamped).
        Supplied actual dates only fill columns that are still unset.
        """
        fields = dict(fields)
        target = fields.pop("status", None)
        supplied_start = fields.pop("actual_start_date", None)
        supplied_end = fields.pop("actual_end_date", None)
        if "order" in fields:
            fields["position"] = fields.pop("order")

        with self.repo.transaction():
            loaded = self._load(ResourceType.MILESTONE, milestone_id)
            enforce(caller, Action.UPDATE, ResourceType.MILESTONE, loaded.context())
            if any(name in fields for name in MILESTONE_PAYMENT_FIELDS):
                enforce(caller, Action.MANAGE_PAYMENT, ResourceType.MILESTONE, loaded.context())
            if "assignee_id" in fields:
                self._check_assignee(fields["assignee_id"])

            now = self.clock()
            milestone = loaded.entity
            if target is not None and MilestoneStatus(target) != milestone.status:
                milestone = transition_milestone(
                    self.repo, milestone, MilestoneStatus(target), now,
                    extra_fields=fields,
                    supplied_start=supplied_start,
                    supplied_end=supplied_end,
                )
            else:
                fields.update(milestone_actual_dates(milestone, supplied_start, supplied_end))
                if fields:
                    self.repo.update_milestone(milestone_id, fields, now)
                milestone = self.repo.get_milestone(milestone_id)

        if IS_DEV:
            print(f"[MILESTONES] Updated milestone_id={milestone_id}, user_id={caller.user_id}")
        return milestone

    def set_milestone_status(
        self, caller: CallerContext, milestone_id: str, target: MilestoneStatus
    ) -> Milestone:
        with self.repo.transaction():
            loaded = self._load(ResourceType.MILESTONE, milestone_id)
            enforce(caller, Action.SET_STATUS, ResourceType.MILESTONE, loaded.context())
            return transition_milestone(self.repo, loaded.entity, MilestoneStatus(target), self.clock())

    def delete_milestone(self, caller: CallerContext, milestone_id: str) -> None:
        with self.repo.transaction():
            loaded = self._load(ResourceType.MILESTONE, milestone_id)
            enforce(caller, Action.DELETE, ResourceType.MILESTONE, loaded.context())
            self.repo.delete_milestone(milestone_id)

        print(f"[MILESTONES] Deleted milestone_id={milestone_id}, user_id={caller.user_id}")
