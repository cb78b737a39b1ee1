from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from datetime import datetime
from models import (
    UserRole,
    ProjectStatus,
    ProposalStatus,
    ContractStatus,
    MilestoneStatus,
    PricingType,
)


class Account(BaseModel):
    """Identity resolved from the bearer token."""
    id: int
    role: UserRole


# ------- Auth -------
class UserSignup(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=1)
    role: UserRole = UserRole.CLIENT
    bio: Optional[str] = None
    skills: List[str] = []
    hourly_rate: Optional[float] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    bio: Optional[str] = None
    skills: List[str] = []
    hourly_rate: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


# ------- Projects -------
class ProjectCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    budget_min: float
    budget_max: float
    deadline: datetime
    required_skills: List[str] = []


class ProjectResponse(BaseModel):
    id: int
    client_id: int
    title: str
    description: str
    category: str
    budget_min: float
    budget_max: float
    deadline: datetime
    required_skills: List[str] = []
    status: ProjectStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProjectFilter(BaseModel):
    category: Optional[str] = None
    status: Optional[ProjectStatus] = None
    min_budget: Optional[float] = None
    skill: Optional[str] = None


# ------- Proposals -------
class ProposalCreate(BaseModel):
    cover_letter: str = Field(min_length=1)
    proposed_price: float = Field(gt=0)
    estimated_duration: int = Field(gt=0)


class ProposalResponse(BaseModel):
    id: int
    project_id: int
    freelancer_id: int
    cover_letter: str
    proposed_price: float
    estimated_duration: int
    status: ProposalStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MilestoneSpec(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    amount: float = Field(gt=0)
    due_date: datetime


class AcceptProposalRequest(BaseModel):
    milestones: List[MilestoneSpec] = Field(min_length=1)


# ------- Contracts & milestones -------
class MilestoneResponse(BaseModel):
    id: int
    contract_id: int
    title: str
    description: Optional[str] = None
    amount: float
    due_date: datetime
    order_index: int
    status: MilestoneStatus
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ContractResponse(BaseModel):
    id: int
    project_id: int
    proposal_id: int
    client_id: int
    freelancer_id: int
    total_amount: float
    status: ContractStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ContractWithMilestones(ContractResponse):
    milestones: List[MilestoneResponse] = []


class ContractFilter(BaseModel):
    status: Optional[ContractStatus] = None
    role: Optional[UserRole] = None


class AcceptProposalResult(BaseModel):
    proposal: ProposalResponse
    contract: ContractResponse
    milestones: List[MilestoneResponse]


# ------- Reviews -------
class ReviewCreate(BaseModel):
    contract_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class ReviewResponse(BaseModel):
    id: int
    contract_id: int
    reviewer_id: int
    reviewee_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ------- Services -------
class ServiceCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    pricing_type: PricingType
    price: float = Field(gt=0)
    delivery_days: int = Field(gt=0)


class ServiceResponse(BaseModel):
    id: int
    freelancer_id: int
    title: str
    description: str
    category: str
    pricing_type: PricingType
    price: float
    delivery_days: int
    rating: float
    total_reviews: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
