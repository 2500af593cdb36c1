"""
sitebid/schemas.py

Pydantic request/response schemas for the HTTP boundary.

Request schemas never accept owner_id, contractor_id or role overrides for
existing users: identity always comes from the resolved CallerContext.
Partial-update schemas forbid unknown keys so a client cannot smuggle in
columns such as status or accepted_bid_id.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, validator

from sitebid.models import (
    Bid,
    BidStatus,
    Milestone,
    MilestoneStatus,
    Project,
    ProjectCategory,
    ProjectStatus,
    Urgency,
    User,
    UserRole,
)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]+$")


def _trim(v):
    if isinstance(v, str):
        return v.strip()
    return v


def _reject_null(v):
    # Explicit null for a NOT NULL column
    if v is None:
        raise ValueError("field may not be null")
    return v


# ========================================================================
# AUTH / PROFILE SCHEMAS
# ========================================================================

class RegisterRequest(BaseModel):
    """Request schema for account registration.

    Security notes:
    - email is normalized (trimmed, lowercased) before the uniqueness check
    - password is only ever stored as a salted hash
    """
    email: str = Field(..., max_length=254, description="Login email (unique)")
    password: str = Field(..., min_length=8, max_length=100, description="Password (8-100 chars)")
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    role: UserRole = Field(..., description="homeowner, contractor or project_manager")
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=300)

    @validator("email", pre=True)
    def normalize_email(cls, v):
        """Trim and lowercase email."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @validator("email")
    def validate_email(cls, v):
        if not EMAIL_PATTERN.match(v):
            raise ValueError("email is not a valid address")
        return v

    @validator("first_name", "last_name", pre=True)
    def trim_names(cls, v):
        return _trim(v)

    @validator("phone")
    def validate_phone(cls, v):
        if v is not None and not PHONE_PATTERN.match(v):
            raise ValueError("phone may only contain digits, spaces, +, -, ( and )")
        return v


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1, max_length=100)

    @validator("email", pre=True)
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class UserResponse(BaseModel):
    """Public user data (never includes the password hash)."""
    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    years_experience: Optional[int] = None
    specializations: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(**user.dict())


class TokenResponse(BaseModel):
    token: str = Field(..., description="Bearer access token")
    user: UserResponse


class ProfileUpdate(BaseModel):
    """Editable profile fields. Email and role cannot be changed here."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=300)
    bio: Optional[str] = Field(None, max_length=2000)
    years_experience: Optional[int] = Field(None, ge=0, le=100)
    specializations: Optional[List[str]] = None

    class Config:
        extra = "forbid"

    @validator("first_name", "last_name", pre=True)
    def names_not_null(cls, v):
        return _trim(_reject_null(v))

    @validator("phone")
    def validate_phone(cls, v):
        if v is not None and not PHONE_PATTERN.match(v):
            raise ValueError("phone may only contain digits, spaces, +, -, ( and )")
        return v


class UserListResponse(BaseModel):
    items: List[UserResponse] = Field(default_factory=list)
    total: int = 0


# ========================================================================
# PROJECT SCHEMAS
# ========================================================================

class ProjectCreateRequest(BaseModel):
    """Request schema for creating a project.

    Security notes:
    - owner_id is taken from the caller, never from the body
    - a new project starts as draft or open; later statuses go through the workflow
    """
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    location: str = Field(..., min_length=1, max_length=300)
    category: ProjectCategory
    budget: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    urgency: Urgency = Urgency.medium
    status: ProjectStatus = ProjectStatus.draft
    expected_start_date: Optional[datetime] = None
    expected_end_date: Optional[datetime] = None

    class Config:
        extra = "forbid"

    @validator("title", "location", pre=True)
    def trim_text(cls, v):
        return _trim(v)

    @validator("status")
    def initial_status(cls, v):
        if v not in (ProjectStatus.draft, ProjectStatus.open):
            raise ValueError("a new project must be draft or open")
        return v


class ProjectUpdate(BaseModel):
    """Partial project update. A status change here goes through the workflow."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=5000)
    location: Optional[str] = Field(None, min_length=1, max_length=300)
    category: Optional[ProjectCategory] = None
    budget: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    urgency: Optional[Urgency] = None
    status: Optional[ProjectStatus] = None
    expected_start_date: Optional[datetime] = None
    expected_end_date: Optional[datetime] = None

    class Config:
        extra = "forbid"

    @validator("title", "description", "location", "category", "urgency", "status", pre=True)
    def required_columns_not_null(cls, v):
        return _trim(_reject_null(v))


class ProjectStatusRequest(BaseModel):
    status: ProjectStatus


class ProjectListResponse(BaseModel):
    items: List[Project] = Field(default_factory=list)
    total: int = 0


# ========================================================================
# BID SCHEMAS
# ========================================================================

class BidCreateRequest(BaseModel):
    """Request schema for submitting a bid. contractor_id is the caller."""
    project_id: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    estimated_duration: int = Field(..., ge=1, description="Estimated duration in days")
    description: str = Field(..., min_length=10, max_length=5000)
    proposed_start_date: Optional[datetime] = None
    warranty: Optional[str] = Field(None, max_length=500)
    valid_until: Optional[datetime] = None

    class Config:
        extra = "forbid"


class BidStatusRequest(BaseModel):
    status: BidStatus


class BidListResponse(BaseModel):
    items: List[Bid] = Field(default_factory=list)
    total: int = 0


# ========================================================================
# MILESTONE SCHEMAS
# ========================================================================

class MilestoneCreateRequest(BaseModel):
    project_id: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    order: int = Field(..., ge=1, description="Position within the project (1-based)")
    estimated_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    assignee_id: Optional[str] = None
    payment_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    notes: Optional[str] = Field(None, max_length=5000)

    class Config:
        extra = "forbid"

    @validator("title", pre=True)
    def trim_title(cls, v):
        return _trim(v)


class MilestoneUpdate(BaseModel):
    """
    Partial milestone update.

    actual_start_date / actual_end_date are honoured only while the stored
    value is still unset; once recorded they are never overwritten.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[MilestoneStatus] = None
    order: Optional[int] = Field(None, ge=1)
    estimated_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    assignee_id: Optional[str] = None
    payment_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    is_paid: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=5000)

    class Config:
        extra = "forbid"

    @validator("title", "status", "order", "is_paid", pre=True)
    def required_columns_not_null(cls, v):
        return _trim(_reject_null(v))


class MilestoneStatusRequest(BaseModel):
    status: MilestoneStatus


class MilestoneListResponse(BaseModel):
    items: List[Milestone] = Field(default_factory=list)
    total: int = 0
