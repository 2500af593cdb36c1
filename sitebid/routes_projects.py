"""
sitebid/routes_projects.py

Project endpoints. Access rules live in the Authorization Engine; handlers
only parse input, call the service and shape the response.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from sitebid.auth_context import CallerContext
from sitebid.dependencies import get_service, require_caller
from sitebid.models import Project
from sitebid.schemas import (
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectStatusRequest,
    ProjectUpdate,
)
from sitebid.service import MarketplaceService


router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
)


@router.get("", response_model=ProjectListResponse)
def list_projects(
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> ProjectListResponse:
    """
    List projects visible to the caller.

    - homeowner: own projects
    - contractor: open and in_progress projects
    - project_manager: all projects
    """
    projects = service.list_projects(caller)
    return ProjectListResponse(items=projects, total=len(projects))


@router.get("/{project_id}", response_model=Project)
def get_project(
    project_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Project:
    return service.get_project(caller, project_id)


@router.post("", response_model=Project, status_code=201)
def create_project(
    request: ProjectCreateRequest,
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Project:
    """
    Create a project owned by the caller (homeowners only).

    Raises:
        AuthError(RoleNotPermitted) -> 403
    """
    return service.create_project(caller, request.dict())


@router.put("/{project_id}", response_model=Project)
def update_project(
    request: ProjectUpdate,
    project_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Project:
    return service.update_project(caller, project_id, request.dict(exclude_unset=True))


@router.put("/{project_id}/status", response_model=Project)
def set_project_status(
    request: ProjectStatusRequest,
    project_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Project:
    return service.set_project_status(caller, project_id, request.status)


@router.delete("/{project_id}")
def delete_project(
    project_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> dict:
    service.delete_project(caller, project_id)
    return {"message": "Project deleted successfully"}
