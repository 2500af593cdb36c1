from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

# Enums
class UserRole(str, Enum):
    homeowner = "homeowner"
    contractor = "contractor"
    project_manager = "project_manager"

class ProjectStatus(str, Enum):
    draft = "draft"
    open = "open"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"

class BidStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    withdrawn = "withdrawn"

class MilestoneStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    blocked = "blocked"

class ProjectCategory(str, Enum):
    renovation = "renovation"
    new_construction = "new_construction"
    repair = "repair"
    landscaping = "landscaping"
    electrical = "electrical"
    plumbing = "plumbing"
    roofing = "roofing"
    flooring = "flooring"
    painting = "painting"
    other = "other"

class Urgency(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"

# Models
class User(BaseModel):
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

class Project(BaseModel):
    id: str
    owner_id: str
    title: str
    description: str
    location: str
    budget: Optional[Decimal] = None
    status: ProjectStatus = ProjectStatus.draft
    category: ProjectCategory
    urgency: Urgency = Urgency.medium
    expected_start_date: Optional[datetime] = None
    expected_end_date: Optional[datetime] = None
    accepted_bid_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Bid(BaseModel):
    id: str
    project_id: str
    contractor_id: str
    price: Decimal
    estimated_duration: int
    description: str
    status: BidStatus = BidStatus.pending
    proposed_start_date: Optional[datetime] = None
    warranty: Optional[str] = None
    valid_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Milestone(BaseModel):
    id: str
    project_id: str
    assignee_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: MilestoneStatus = MilestoneStatus.pending
    order: int
    estimated_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    payment_amount: Optional[Decimal] = None
    is_paid: bool = False
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
