"""
Voting API endpoints.

Both vote endpoints go through the same VoteService.cast_vote; they only
differ in the response shape their clients expect.
"""
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from evote.api.deps import (
    ensure_same_voter,
    get_admin_actions,
    get_current_admin,
    get_current_voter,
    get_ledger,
    get_locks,
    require_voter,
)
from evote.chain.ledger_client import LedgerClient
from evote.core.database import get_db
from evote.core.locks import KeyedLock
from evote.schemas.results import ElectionResultsResponse
from evote.schemas.vote import (
    CastVoteRequest,
    CastVoteResponse,
    ElectionVoteRequest,
    ElectionVoteResponse,
    VoteStatusResponse,
    VotingRecordResponse,
)
from evote.services.admin_actions import AdminActionLog
from evote.services.results_service import ResultsService
from evote.services.vote_service import CastVote, VoteOutcome, VoteService


router = APIRouter()


def vote_message(outcome: VoteOutcome) -> str:
    if not outcome.change.changed:
        return "Vote already recorded"
    if outcome.is_revote:
        return "Vote changed successfully"
    return "Vote cast successfully"


@router.post("/cast-vote", response_model=CastVoteResponse)
async def cast_vote(
    request: CastVoteRequest,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    actions: AdminActionLog = Depends(get_admin_actions),
    locks: KeyedLock = Depends(get_locks),
    voter: Dict[str, Any] = Depends(require_voter)
) -> CastVoteResponse:
    """
    Cast or change a vote.

    ``isRevote`` and ``previousCandidateId`` in the body are ignored; the
    server decides from the voter's current ballot.
    """
    ensure_same_voter(voter, request.voter_id)

    vote_service = VoteService(db, locks, ledger=ledger, actions=actions)
    outcome = await vote_service.cast_vote(CastVote(
        voter_id=request.voter_id,
        election_id=request.election_id,
        candidate_id=request.candidate_id,
    ))

    previous = outcome.change.previous_candidate_id
    return CastVoteResponse(
        success=True,
        vote_count=outcome.vote_count,
        election_id=outcome.election.id,
        candidate_id=request.candidate_id,
        is_revote=outcome.is_revote,
        changed=outcome.change.changed,
        previous_candidate_id=UUID(previous) if previous and outcome.change.changed else None,
        votes=outcome.votes,
        total_votes=outcome.total_votes,
        blockchain_tx_hash=outcome.blockchain_tx_hash,
    )


@router.post("/{election_id}/vote", response_model=ElectionVoteResponse)
async def vote_in_election(
    election_id: UUID,
    request: ElectionVoteRequest,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    actions: AdminActionLog = Depends(get_admin_actions),
    locks: KeyedLock = Depends(get_locks),
    voter: Dict[str, Any] = Depends(require_voter)
) -> ElectionVoteResponse:
    """
    Cast or change a vote, addressed by election.
    """
    ensure_same_voter(voter, request.voter_id)

    vote_service = VoteService(db, locks, ledger=ledger, actions=actions)
    outcome = await vote_service.cast_vote(CastVote(
        voter_id=request.voter_id,
        election_id=election_id,
        candidate_id=request.candidate_id,
    ))

    return ElectionVoteResponse(
        message=vote_message(outcome),
        is_revoting=outcome.is_revote,
        voter_id=outcome.voter.id,
        candidate_id=request.candidate_id,
        candidate_name=outcome.candidate_name,
        election_id=outcome.election.id,
        election_title=outcome.election.title,
        has_voted=outcome.voter.has_voted,
        voting_history=[
            VotingRecordResponse.model_validate(record)
            for record in outcome.voter.voting_history
        ],
    )


@router.get("/{election_id}/results", response_model=ElectionResultsResponse)
async def get_results(
    election_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: Optional[Dict[str, Any]] = Depends(get_current_admin)
) -> ElectionResultsResponse:
    """
    Get results of a closed election.
    Voters need the results to be released; admins can preview.
    """
    results = await ResultsService(db).get_results(
        election_id,
        include_unreleased=admin is not None
    )
    return ElectionResultsResponse(**results)


@router.get("/{election_id}/status/{voter_id}", response_model=VoteStatusResponse)
async def get_vote_status(
    election_id: UUID,
    voter_id: UUID,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    locks: KeyedLock = Depends(get_locks),
    admin: Optional[Dict[str, Any]] = Depends(get_current_admin),
    voter: Optional[Dict[str, Any]] = Depends(get_current_voter)
) -> VoteStatusResponse:
    """
    Get a voter's status in an election, with the blockchain mirror's view.
    Available to the voter themselves and to admins.
    """
    if admin is None:
        if voter is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Voter authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )
        ensure_same_voter(voter, voter_id)

    vote_status = await VoteService(db, locks, ledger=ledger).get_vote_status(voter_id, election_id)
    return VoteStatusResponse(**vote_status)
