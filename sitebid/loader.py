"""
sitebid/loader.py

Resource Loader: fetch an entity plus the minimal parent-project context the
Authorization Engine needs, in a single query.

load() returns None instead of raising when the resource is missing, when its
parent project is gone, or when the project owner has been deactivated; the
service turns None into NotFound.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sitebid.authz import ProjectRef, ResourceContext, ResourceType
from sitebid.models import ProjectStatus
from sitebid.repository import (
    Repository,
    bid_from_row,
    milestone_from_row,
    project_from_row,
)


@dataclass(frozen=True)
class LoadedResource:
    resource_type: ResourceType
    entity: Any
    project: ProjectRef

    def context(self) -> ResourceContext:
        """Authorization context for view/update/delete/status actions."""
        entity = None if self.resource_type == ResourceType.PROJECT else self.entity
        return ResourceContext(project=self.project, entity=entity)


def _project_ref(row: Dict[str, Any], id_key: str, owner_key: str, status_key: str) -> ProjectRef:
    return ProjectRef(
        id=row[id_key],
        owner_id=row[owner_key],
        status=ProjectStatus(row[status_key]),
    )


def load(repo: Repository, resource_type: ResourceType, resource_id: str) -> Optional[LoadedResource]:
    """
    Load a project, bid or milestone with its ownership context.

    Args:
        repo: Repository bound to the request's connection
        resource_type: project/bid/milestone
        resource_id: Entity id

    Returns:
        LoadedResource, or None when not found / owner chain inactive
    """
    if resource_type == ResourceType.PROJECT:
        row = repo.fetch_project_row(resource_id)
        if not row or not row["owner_is_active"]:
            return None
        return LoadedResource(
            resource_type=resource_type,
            entity=project_from_row(row),
            project=_project_ref(row, "id", "owner_id", "status"),
        )

    if resource_type == ResourceType.BID:
        row = repo.fetch_bid_row(resource_id)
        if not row or not row["owner_is_active"]:
            return None
        return LoadedResource(
            resource_type=resource_type,
            entity=bid_from_row(row),
            project=_project_ref(row, "project_id", "project_owner_id", "project_status"),
        )

    if resource_type == ResourceType.MILESTONE:
        row = repo.fetch_milestone_row(resource_id)
        if not row or not row["owner_is_active"]:
            return None
        return LoadedResource(
            resource_type=resource_type,
            entity=milestone_from_row(row),
            project=_project_ref(row, "project_id", "project_owner_id", "project_status"),
        )

    raise ValueError(f"Unknown resource type: {resource_type}")


def load_bid_creation_context(
    repo: Repository,
    project_id: str,
    contractor_id: str,
) -> Optional[ResourceContext]:
    """
    Context for Action.CREATE on a bid: the target project and whether the
    caller already holds a non-withdrawn bid on it.
    """
    loaded = load(repo, ResourceType.PROJECT, project_id)
    if loaded is None:
        return None
    return ResourceContext(
        project=loaded.project,
        caller_has_live_bid=repo.has_live_bid(project_id, contractor_id),
    )
