"""
sitebid/routes_auth.py

Registration, login and the caller's own profile.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sitebid.auth_context import CallerContext
from sitebid.dependencies import get_service, require_caller
from sitebid.schemas import (
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from sitebid.service import MarketplaceService


router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(
    request: RegisterRequest,
    service: MarketplaceService = Depends(get_service),
) -> TokenResponse:
    """
    Create an account and return an access token.

    Raises:
        Conflict (409): email already registered
        422: validation failure (email format, password length, role)
    """
    token, user = service.register(request.dict())
    return TokenResponse(token=token, user=UserResponse.from_user(user))


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginRequest,
    service: MarketplaceService = Depends(get_service),
) -> TokenResponse:
    token, user = service.login(request.email, request.password)
    return TokenResponse(token=token, user=UserResponse.from_user(user))


@router.get("/profile", response_model=UserResponse)
def get_profile(
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> UserResponse:
    return UserResponse.from_user(service.get_profile(caller))


@router.put("/profile", response_model=UserResponse)
def update_profile(
    request: ProfileUpdate,
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> UserResponse:
    """Update the caller's editable profile fields (email and role are fixed)."""
    user = service.update_profile(caller, request.dict(exclude_unset=True))
    return UserResponse.from_user(user)
