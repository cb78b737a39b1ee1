"""Contract lifecycle: proposal acceptance, milestone transitions, completion and reviews.

Every operation takes the caller's :class:`~schemas.Account` explicitly and
raises :class:`~errors.MarketplaceError` for business-rule violations. All
checks run before the first write.
"""
from datetime import datetime, timezone
from typing import List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crud import (
    get_contract,
    get_contract_for_project,
    get_milestones,
    get_proposal,
    get_review,
    get_services_by_freelancer,
)
from database import run_in_transaction
from errors import (
    MarketplaceError,
    FORBIDDEN,
    PROPOSAL_NOT_FOUND,
    PROPOSAL_ALREADY_PROCESSED,
    MILESTONE_NOT_FOUND,
    MILESTONE_ALREADY_SUBMITTED,
    MILESTONE_ALREADY_APPROVED,
    PREVIOUS_MILESTONE_INCOMPLETE,
    CONTRACT_NOT_FOUND,
    CONTRACT_NOT_COMPLETED,
    ALREADY_REVIEWED,
    INTERNAL_SERVER_ERROR,
)
from models import (
    Contract,
    Milestone,
    Project,
    Proposal,
    Review,
    ContractStatus,
    MilestoneStatus,
    ProjectStatus,
    ProposalStatus,
)
from rating import apply_review
from schemas import Account, MilestoneSpec

logger = logging.getLogger(__name__)


# ------- Proposal acceptance -------
def _new_milestone(contract: Contract, index: int, spec: MilestoneSpec) -> Milestone:
    return Milestone(
        contract_id=contract.id,
        title=spec.title,
        description=spec.description,
        amount=spec.amount,
        due_date=spec.due_date,
        order_index=index,
        status=MilestoneStatus.PENDING,
    )


def accept_proposal(
    db: Session,
    proposal_id: int,
    account: Account,
    milestone_specs: List[MilestoneSpec],
) -> Tuple[Proposal, Contract, List[Milestone]]:
    """Turn a pending proposal into an active contract with ordered milestones.

    The proposal is accepted, its siblings rejected, the project moved to
    ``in_progress`` and the contract plus milestones created in a single
    transaction. Milestone ``order_index`` is the position in ``milestone_specs``.
    """
    proposal = get_proposal(db, proposal_id)
    if not proposal:
        raise MarketplaceError(PROPOSAL_NOT_FOUND)
    if proposal.status != ProposalStatus.PENDING:
        raise MarketplaceError(PROPOSAL_ALREADY_PROCESSED)
    project = proposal.project
    if project is None or project.client_id != account.id:
        raise MarketplaceError(FORBIDDEN)

    project_id = project.id
    freelancer_id = proposal.freelancer_id
    total_amount = proposal.proposed_price

    def _apply(tx: Session):
        # Conditional on the row still being pending so a concurrent accept loses
        accepted = (
            tx.query(Proposal)
            .filter(Proposal.id == proposal_id, Proposal.status == ProposalStatus.PENDING)
            .update({Proposal.status: ProposalStatus.ACCEPTED}, synchronize_session=False)
        )
        if accepted != 1:
            raise MarketplaceError(PROPOSAL_ALREADY_PROCESSED)

        tx.query(Proposal).filter(
            Proposal.project_id == project_id,
            Proposal.id != proposal_id,
        ).update({Proposal.status: ProposalStatus.REJECTED}, synchronize_session=False)

        tx.query(Project).filter(Project.id == project_id).update(
            {Project.status: ProjectStatus.IN_PROGRESS}, synchronize_session=False
        )

        contract = Contract(
            project_id=project_id,
            proposal_id=proposal_id,
            client_id=account.id,
            freelancer_id=freelancer_id,
            total_amount=total_amount,
            status=ContractStatus.ACTIVE,
        )
        tx.add(contract)
        tx.flush()

        milestones = []
        for index, spec in enumerate(milestone_specs):
            milestone = _new_milestone(contract, index, spec)
            tx.add(milestone)
            milestones.append(milestone)
        tx.flush()
        return contract, milestones

    try:
        contract, milestones = run_in_transaction(db, _apply)
    except MarketplaceError:
        raise
    except IntegrityError as exc:
        # A lost race leaves a committed contract behind; anything else is a fault
        if get_contract_for_project(db, project_id, proposal_id) is not None:
            logger.warning("Accepting proposal %s lost to a concurrent accept: %s", proposal_id, exc)
            raise MarketplaceError(PROPOSAL_ALREADY_PROCESSED) from exc
        logger.exception("Accepting proposal %s failed, transaction rolled back", proposal_id)
        raise MarketplaceError(INTERNAL_SERVER_ERROR) from exc
    except Exception as exc:
        logger.exception("Accepting proposal %s failed, transaction rolled back", proposal_id)
        raise MarketplaceError(INTERNAL_SERVER_ERROR) from exc

    db.refresh(proposal)
    db.refresh(contract)
    for milestone in milestones:
        db.refresh(milestone)

    logger.info(
        "Proposal %s accepted: contract %s created with %d milestones",
        proposal_id, contract.id, len(milestones),
    )
    return proposal, contract, milestones


# ------- Milestone state machine -------
def _load_milestone_and_contract(db: Session, milestone_id: int) -> Tuple[Milestone, Contract]:
    milestone = db.query(Milestone).filter(Milestone.id == milestone_id).first()
    if not milestone:
        raise MarketplaceError(MILESTONE_NOT_FOUND)
    contract = get_contract(db, milestone.contract_id)
    if not contract:
        raise MarketplaceError(MILESTONE_NOT_FOUND)
    return milestone, contract


def submit_milestone(db: Session, milestone_id: int, account: Account) -> Milestone:
    milestone, contract = _load_milestone_and_contract(db, milestone_id)
    if contract.freelancer_id != account.id:
        raise MarketplaceError(FORBIDDEN)
    if milestone.status in (MilestoneStatus.SUBMITTED, MilestoneStatus.APPROVED):
        raise MarketplaceError(MILESTONE_ALREADY_SUBMITTED)

    if milestone.order_index > 0:
        previous = db.query(Milestone).filter(
            Milestone.contract_id == milestone.contract_id,
            Milestone.order_index == milestone.order_index - 1,
        ).first()
        if not previous or previous.status != MilestoneStatus.APPROVED:
            raise MarketplaceError(PREVIOUS_MILESTONE_INCOMPLETE)

    milestone.status = MilestoneStatus.SUBMITTED
    milestone.submitted_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(milestone)
    logger.info("Milestone %s of contract %s submitted", milestone.id, contract.id)
    return milestone


def approve_milestone(db: Session, milestone_id: int, account: Account) -> Tuple[Milestone, bool]:
    """Approve a milestone from any non-approved state.

    Returns the milestone and whether this approval completed the contract.
    """
    milestone, contract = _load_milestone_and_contract(db, milestone_id)
    if contract.client_id != account.id:
        raise MarketplaceError(FORBIDDEN)
    if milestone.status == MilestoneStatus.APPROVED:
        raise MarketplaceError(MILESTONE_ALREADY_APPROVED)

    milestone.status = MilestoneStatus.APPROVED
    milestone.approved_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(milestone)
    logger.info("Milestone %s of contract %s approved", milestone.id, contract.id)

    completed = complete_contract_if_done(db, contract.id, contract.project_id, milestone.id)
    return milestone, completed


# ------- Completion -------
def complete_contract_if_done(
    db: Session,
    contract_id: int,
    project_id: int,
    approved_milestone_id: Optional[int] = None,
) -> bool:
    """Complete the contract and its project once every milestone is approved.

    The just-approved milestone counts as approved even if a stale read says
    otherwise. Returns True only for the call that moved the contract out of
    ``active``.
    """
    milestones = get_milestones(db, contract_id)
    all_approved = all(
        m.id == approved_milestone_id or m.status == MilestoneStatus.APPROVED
        for m in milestones
    )
    if not all_approved:
        return False

    updated = (
        db.query(Contract)
        .filter(Contract.id == contract_id, Contract.status == ContractStatus.ACTIVE)
        .update({Contract.status: ContractStatus.COMPLETED}, synchronize_session=False)
    )
    db.query(Project).filter(Project.id == project_id).update(
        {Project.status: ProjectStatus.COMPLETED}, synchronize_session=False
    )
    db.commit()
    if updated:
        logger.info("Contract %s completed", contract_id)
    return updated == 1


# ------- Reviews -------
def create_review(
    db: Session,
    account: Account,
    contract_id: int,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    """Review the other participant of a completed contract.

    A client's review also folds ``rating`` into the rolling average of every
    service the freelancer offers.
    """
    contract = get_contract(db, contract_id)
    if not contract:
        raise MarketplaceError(CONTRACT_NOT_FOUND)
    if contract.status != ContractStatus.COMPLETED:
        raise MarketplaceError(CONTRACT_NOT_COMPLETED)

    is_client = contract.client_id == account.id
    is_freelancer = contract.freelancer_id == account.id
    if not is_client and not is_freelancer:
        raise MarketplaceError(FORBIDDEN)
    reviewee_id = contract.freelancer_id if is_client else contract.client_id

    if get_review(db, contract_id, account.id):
        raise MarketplaceError(ALREADY_REVIEWED)

    def _apply(tx: Session):
        review = Review(
            contract_id=contract_id,
            reviewer_id=account.id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment,
        )
        tx.add(review)
        if is_client:
            for service in get_services_by_freelancer(tx, contract.freelancer_id):
                service.rating, service.total_reviews = apply_review(
                    service.rating, service.total_reviews, rating
                )
        tx.flush()
        return review

    try:
        review = run_in_transaction(db, _apply)
    except IntegrityError as exc:
        duplicate = db.query(Review.id).filter(
            Review.contract_id == contract_id,
            Review.reviewer_id == account.id,
        ).first()
        if duplicate is not None:
            raise MarketplaceError(ALREADY_REVIEWED) from exc
        logger.exception("Review on contract %s by user %s failed, transaction rolled back", contract_id, account.id)
        raise MarketplaceError(INTERNAL_SERVER_ERROR) from exc

    db.refresh(review)
    logger.info("Review %s posted on contract %s by user %s", review.id, contract_id, account.id)
    return review
