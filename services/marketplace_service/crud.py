from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from models import (
    User,
    Project,
    Proposal,
    Contract,
    Milestone,
    Review,
    Service,
    UserRole,
    ProjectStatus,
)
from schemas import Account, ProjectFilter, ContractFilter
from auth import hash_password, verify_password
from errors import (
    MarketplaceError,
    EMAIL_ALREADY_EXISTS,
    INVALID_CREDENTIALS,
    PROJECT_NOT_FOUND,
    PROJECT_NOT_OPEN,
    PROPOSAL_ALREADY_EXISTS,
    CONTRACT_NOT_FOUND,
    FORBIDDEN,
)
from typing import Optional
import logging

logger = logging.getLogger(__name__)


# ------- Users -------
def get_user_by_email(db: Session, email: str):
    return db.query(User).filter(User.email == email).first()


def get_user_by_id(db: Session, user_id: int):
    return db.query(User).filter(User.id == user_id).first()


def create_user(
    db: Session,
    email: str,
    password: str,
    name: str,
    role: UserRole = UserRole.CLIENT,
    **kwargs
):
    if get_user_by_email(db, email):
        raise MarketplaceError(EMAIL_ALREADY_EXISTS)

    db_user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        role=role,
        **kwargs
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise MarketplaceError(EMAIL_ALREADY_EXISTS)
    db.refresh(db_user)
    logger.info("User %s signed up as %s", db_user.id, db_user.role.value)
    return db_user


def authenticate_user(db: Session, email: str, password: str):
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise MarketplaceError(INVALID_CREDENTIALS)
    return user


# ------- Projects -------
def create_project(db: Session, client_id: int, **kwargs):
    project = Project(client_id=client_id, status=ProjectStatus.OPEN, **kwargs)
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def get_project(db: Session, project_id: int):
    return db.query(Project).filter(Project.id == project_id).first()


def get_project_or_404(db: Session, project_id: int):
    project = get_project(db, project_id)
    if not project:
        raise MarketplaceError(PROJECT_NOT_FOUND)
    return project


def list_projects(db: Session, filters: ProjectFilter):
    query = db.query(Project)
    if filters.category:
        query = query.filter(Project.category == filters.category)
    if filters.status:
        query = query.filter(Project.status == filters.status)
    if filters.min_budget is not None:
        query = query.filter(Project.budget_max >= filters.min_budget)
    projects = query.order_by(Project.created_at.desc(), Project.id.desc()).all()

    # JSON containment differs per dialect, so skills are matched here
    if filters.skill:
        wanted = filters.skill.lower()
        projects = [
            p for p in projects
            if any(str(s).lower() == wanted for s in (p.required_skills or []))
        ]
    return projects


# ------- Proposals -------
def create_proposal(db: Session, project_id: int, freelancer_id: int, **kwargs):
    project = get_project_or_404(db, project_id)
    if project.status != ProjectStatus.OPEN:
        raise MarketplaceError(PROJECT_NOT_OPEN)

    existing = db.query(Proposal).filter(
        Proposal.project_id == project_id,
        Proposal.freelancer_id == freelancer_id,
    ).first()
    if existing:
        raise MarketplaceError(PROPOSAL_ALREADY_EXISTS)

    proposal = Proposal(project_id=project_id, freelancer_id=freelancer_id, **kwargs)
    db.add(proposal)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise MarketplaceError(PROPOSAL_ALREADY_EXISTS)
    db.refresh(proposal)
    return proposal


def get_proposal(db: Session, proposal_id: int):
    return db.query(Proposal).filter(Proposal.id == proposal_id).first()


def list_project_proposals(db: Session, project_id: int, account: Account):
    project = get_project_or_404(db, project_id)
    if project.client_id != account.id:
        raise MarketplaceError(FORBIDDEN)
    return (
        db.query(Proposal)
        .filter(Proposal.project_id == project_id)
        .order_by(Proposal.id)
        .all()
    )


# ------- Contracts -------
def get_contract(db: Session, contract_id: int):
    return db.query(Contract).filter(Contract.id == contract_id).first()


def list_contracts(db: Session, account: Account, filters: ContractFilter):
    query = db.query(Contract).options(selectinload(Contract.milestones))
    if filters.role == UserRole.CLIENT:
        query = query.filter(Contract.client_id == account.id)
    elif filters.role == UserRole.FREELANCER:
        query = query.filter(Contract.freelancer_id == account.id)
    else:
        query = query.filter(
            or_(Contract.client_id == account.id, Contract.freelancer_id == account.id)
        )
    if filters.status:
        query = query.filter(Contract.status == filters.status)
    return query.order_by(Contract.id).all()


def get_milestones(db: Session, contract_id: int):
    return (
        db.query(Milestone)
        .filter(Milestone.contract_id == contract_id)
        .order_by(Milestone.order_index)
        .all()
    )


def get_contract_for_project(db: Session, project_id: int, proposal_id: Optional[int] = None):
    criteria = [Contract.project_id == project_id]
    if proposal_id is not None:
        criteria.append(Contract.proposal_id == proposal_id)
    return db.query(Contract).filter(or_(*criteria)).first()


def get_review(db: Session, contract_id: int, reviewer_id: int):
    return db.query(Review).filter(
        Review.contract_id == contract_id,
        Review.reviewer_id == reviewer_id,
    ).first()


def list_contract_milestones(db: Session, contract_id: int, account: Account):
    contract = get_contract(db, contract_id)
    if not contract:
        raise MarketplaceError(CONTRACT_NOT_FOUND)
    if account.id not in (contract.client_id, contract.freelancer_id):
        raise MarketplaceError(FORBIDDEN)
    return get_milestones(db, contract_id)


# ------- Services -------
def create_service(db: Session, freelancer_id: int, **kwargs):
    service = Service(freelancer_id=freelancer_id, rating=0.0, total_reviews=0, **kwargs)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def list_services(db: Session, freelancer_id: Optional[int] = None):
    query = db.query(Service)
    if freelancer_id is not None:
        query = query.filter(Service.freelancer_id == freelancer_id)
    return query.order_by(Service.id).all()


def get_services_by_freelancer(db: Session, freelancer_id: int):
    return list_services(db, freelancer_id)
