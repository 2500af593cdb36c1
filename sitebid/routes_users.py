"""
sitebid/routes_users.py

Contractor directory and public user profiles.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from sitebid.auth_context import CallerContext
from sitebid.dependencies import get_service, require_caller
from sitebid.schemas import UserListResponse, UserResponse
from sitebid.service import MarketplaceService


router = APIRouter(
    prefix="/api/users",
    tags=["users"],
)


@router.get("/contractors", response_model=UserListResponse)
def list_contractors(
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> UserListResponse:
    """Active contractors, most experienced first."""
    contractors = service.list_contractors()
    return UserListResponse(
        items=[UserResponse.from_user(u) for u in contractors],
        total=len(contractors),
    )


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> UserResponse:
    return UserResponse.from_user(service.get_user(user_id))
