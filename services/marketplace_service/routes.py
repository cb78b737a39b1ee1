from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from database import get_db
from schemas import (
    Account, UserSignup, UserLogin, UserResponse, LoginResponse,
    ProjectCreate, ProjectResponse, ProjectFilter,
    ProposalCreate, ProposalResponse, AcceptProposalRequest, AcceptProposalResult,
    ContractResponse, ContractWithMilestones, ContractFilter, MilestoneResponse,
    ReviewCreate, ReviewResponse, ServiceCreate, ServiceResponse,
)
from crud import (
    create_user, authenticate_user, get_user_by_id,
    create_project, get_project_or_404, list_projects,
    create_proposal, list_project_proposals,
    list_contracts, list_contract_milestones,
    create_service, list_services,
)
from workflow import accept_proposal, submit_milestone, approve_milestone, create_review
from auth import create_access_token, get_current_account, require_role
from errors import MarketplaceError, success, INVALID_REQUEST, UNAUTHORIZED
from events import publish_event
from models import UserRole, ProjectStatus, ContractStatus
from datetime import datetime, timezone
from typing import Optional

auth_router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
router = APIRouter(prefix="/api/v1", tags=["marketplace"])

client_only = require_role(UserRole.CLIENT)
freelancer_only = require_role(UserRole.FREELANCER)


# ------- Auth -------
@auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(user_data: UserSignup, db: Session = Depends(get_db)):
    user = create_user(
        db,
        email=user_data.email,
        password=user_data.password,
        name=user_data.name,
        role=user_data.role,
        bio=user_data.bio,
        skills=user_data.skills,
        hourly_rate=user_data.hourly_rate,
    )
    return success(UserResponse.model_validate(user))


@auth_router.post("/login")
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user = authenticate_user(db, credentials.email, credentials.password)
    token = create_access_token(data={"sub": user.id, "role": user.role.value})
    return success(LoginResponse(token=token, user=UserResponse.model_validate(user)))


@auth_router.get("/me")
def me(account: Account = Depends(get_current_account), db: Session = Depends(get_db)):
    user = get_user_by_id(db, account.id)
    if not user:
        raise MarketplaceError(UNAUTHORIZED)
    return success(UserResponse.model_validate(user))


# ------- Projects -------
@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project_endpoint(
    project: ProjectCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(client_only),
):
    deadline = project.deadline
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    if deadline <= datetime.now(timezone.utc):
        raise MarketplaceError(INVALID_REQUEST)

    project_obj = create_project(db, account.id, **project.model_dump())
    return success(ProjectResponse.model_validate(project_obj))


@router.get("/projects")
def list_projects_endpoint(
    category: Optional[str] = None,
    status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
    min_budget: Optional[float] = None,
    skill: Optional[str] = None,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    filters = ProjectFilter(category=category, status=status_filter, min_budget=min_budget, skill=skill)
    projects = list_projects(db, filters)
    return success([ProjectResponse.model_validate(p) for p in projects])


@router.get("/projects/{project_id}")
def get_project_endpoint(
    project_id: int,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    return success(ProjectResponse.model_validate(get_project_or_404(db, project_id)))


# ------- Proposals -------
@router.post("/projects/{project_id}/proposals", status_code=status.HTTP_201_CREATED)
def create_proposal_endpoint(
    project_id: int,
    proposal: ProposalCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(freelancer_only),
):
    proposal_obj = create_proposal(db, project_id, account.id, **proposal.model_dump())
    publish_event("proposal.created", {
        "proposal_id": proposal_obj.id,
        "project_id": project_id,
        "freelancer_id": account.id,
        "client_id": proposal_obj.project.client_id,
    })
    return success(ProposalResponse.model_validate(proposal_obj))


@router.get("/projects/{project_id}/proposals")
def list_proposals_endpoint(
    project_id: int,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    proposals = list_project_proposals(db, project_id, account)
    return success([ProposalResponse.model_validate(p) for p in proposals])


@router.put("/proposals/{proposal_id}/accept")
def accept_proposal_endpoint(
    proposal_id: int,
    request: AcceptProposalRequest,
    db: Session = Depends(get_db),
    account: Account = Depends(client_only),
):
    proposal, contract, milestones = accept_proposal(db, proposal_id, account, request.milestones)
    publish_event("proposal.accepted", {
        "proposal_id": proposal.id,
        "project_id": proposal.project_id,
        "contract_id": contract.id,
        "client_id": contract.client_id,
        "freelancer_id": contract.freelancer_id,
    })
    result = AcceptProposalResult(
        proposal=ProposalResponse.model_validate(proposal),
        contract=ContractResponse.model_validate(contract),
        milestones=[MilestoneResponse.model_validate(m) for m in milestones],
    )
    return success(result)


# ------- Contracts & milestones -------
@router.get("/contracts")
def list_contracts_endpoint(
    status_filter: Optional[ContractStatus] = Query(None, alias="status"),
    role: Optional[UserRole] = None,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    contracts = list_contracts(db, account, ContractFilter(status=status_filter, role=role))
    return success([ContractWithMilestones.model_validate(c) for c in contracts])


@router.get("/contracts/{contract_id}/milestones")
def list_milestones_endpoint(
    contract_id: int,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    milestones = list_contract_milestones(db, contract_id, account)
    return success([MilestoneResponse.model_validate(m) for m in milestones])


@router.put("/milestones/{milestone_id}/submit")
def submit_milestone_endpoint(
    milestone_id: int,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    milestone = submit_milestone(db, milestone_id, account)
    publish_event("milestone.submitted", {
        "milestone_id": milestone.id,
        "contract_id": milestone.contract_id,
        "freelancer_id": account.id,
    })
    return success(MilestoneResponse.model_validate(milestone))


@router.put("/milestones/{milestone_id}/approve")
def approve_milestone_endpoint(
    milestone_id: int,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    milestone, contract_completed = approve_milestone(db, milestone_id, account)
    publish_event("milestone.approved", {
        "milestone_id": milestone.id,
        "contract_id": milestone.contract_id,
        "client_id": account.id,
        "amount": milestone.amount,
    })
    if contract_completed:
        publish_event("contract.completed", {"contract_id": milestone.contract_id})
    return success(MilestoneResponse.model_validate(milestone))


# ------- Reviews -------
@router.post("/reviews", status_code=status.HTTP_201_CREATED)
def create_review_endpoint(
    review: ReviewCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    review_obj = create_review(db, account, review.contract_id, review.rating, review.comment)
    publish_event("review.created", {
        "review_id": review_obj.id,
        "contract_id": review_obj.contract_id,
        "reviewer_id": review_obj.reviewer_id,
        "reviewee_id": review_obj.reviewee_id,
        "rating": review_obj.rating,
    })
    return success(ReviewResponse.model_validate(review_obj))


# ------- Services -------
@router.post("/services", status_code=status.HTTP_201_CREATED)
def create_service_endpoint(
    service: ServiceCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(freelancer_only),
):
    service_obj = create_service(db, account.id, **service.model_dump())
    return success(ServiceResponse.model_validate(service_obj))


@router.get("/services")
def list_services_endpoint(
    freelancer_id: Optional[int] = None,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    return success([ServiceResponse.model_validate(s) for s in list_services(db, freelancer_id)])
