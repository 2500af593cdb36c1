"""
sitebid/routes_milestones.py

Milestone endpoints. Status changes (via PUT /{id} or PUT /{id}/status)
stamp actual start/end dates in the Workflow Engine.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from sitebid.auth_context import CallerContext
from sitebid.dependencies import get_service, require_caller
from sitebid.models import Milestone
from sitebid.schemas import (
    MilestoneCreateRequest,
    MilestoneListResponse,
    MilestoneStatusRequest,
    MilestoneUpdate,
)
from sitebid.service import MarketplaceService


router = APIRouter(
    prefix="/api/milestones",
    tags=["milestones"],
)


@router.get("/project/{project_id}", response_model=MilestoneListResponse)
def list_project_milestones(
    project_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> MilestoneListResponse:
    milestones = service.list_project_milestones(caller, project_id)
    return MilestoneListResponse(items=milestones, total=len(milestones))


@router.get("/{milestone_id}", response_model=Milestone)
def get_milestone(
    milestone_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Milestone:
    return service.get_milestone(caller, milestone_id)


@router.post("", response_model=Milestone, status_code=201)
def create_milestone(
    request: MilestoneCreateRequest,
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Milestone:
    return service.create_milestone(caller, request.project_id, request.dict())


@router.put("/{milestone_id}", response_model=Milestone)
def update_milestone(
    request: MilestoneUpdate,
    milestone_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Milestone:
    return service.update_milestone(caller, milestone_id, request.dict(exclude_unset=True))


@router.put("/{milestone_id}/status", response_model=Milestone)
def set_milestone_status(
    request: MilestoneStatusRequest,
    milestone_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Milestone:
    return service.set_milestone_status(caller, milestone_id, request.status)


@router.delete("/{milestone_id}")
def delete_milestone(
    milestone_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> dict:
    service.delete_milestone(caller, milestone_id)
    return {"message": "Milestone deleted successfully"}
