"""
Vote-related Pydantic schemas.
"""
from typing import Dict, Optional, List
from datetime import datetime
from uuid import UUID
from pydantic import Field

from evote.schemas.base import APIModel


class CastVoteRequest(APIModel):
    """
    Canonical vote request.
    ``is_revote`` and ``previous_candidate_id`` are accepted from older
    clients but ignored: the server decides from its own records.
    """

    election_id: UUID = Field(..., description="Election to vote in")
    candidate_id: UUID = Field(..., description="Candidate id assigned at election creation")
    voter_id: UUID = Field(..., description="Voter casting the vote")
    is_revote: Optional[bool] = Field(None, description="Ignored client hint")
    previous_candidate_id: Optional[UUID] = Field(None, description="Ignored client hint")


class ElectionVoteRequest(APIModel):
    """Vote request addressed by election path."""

    voter_id: UUID
    candidate_id: UUID


class VotingRecordResponse(APIModel):
    """One voting-history entry."""

    election_id: UUID
    candidate_id: Optional[UUID] = None
    voted_at: datetime
    is_revote: bool
    blockchain_tx_hash: Optional[str] = None


class CastVoteResponse(APIModel):
    """Response of the canonical vote endpoint."""

    success: bool = True
    vote_count: int = Field(..., description="New count for the chosen candidate")
    election_id: UUID
    candidate_id: UUID
    is_revote: bool
    changed: bool = Field(..., description="False when the same vote was repeated")
    previous_candidate_id: Optional[UUID] = None
    votes: Dict[str, int] = Field(default_factory=dict, description="Full tally after the vote")
    total_votes: int
    blockchain_tx_hash: Optional[str] = None


class ElectionVoteResponse(APIModel):
    """Response of the election-scoped vote endpoint."""

    message: str
    is_revoting: bool
    voter_id: UUID
    candidate_id: UUID
    candidate_name: str
    election_id: UUID
    election_title: str
    has_voted: Dict[str, bool]
    voting_history: List[VotingRecordResponse]


class BlockchainStatus(APIModel):
    """Mirror read-back; informational only."""

    has_voted: bool = False
    candidate_id: Optional[str] = None
    transaction_hash: Optional[str] = None
    timestamp: Optional[int] = None
    error: Optional[str] = None


class VoteStatusResponse(APIModel):
    """A voter's status in one election."""

    election_id: UUID
    voter_id: UUID
    has_voted: bool
    candidate_id: Optional[UUID] = None
    voted_at: Optional[datetime] = None
    is_revote: bool = False
    blockchain_tx_hash: Optional[str] = None
    blockchain: BlockchainStatus
