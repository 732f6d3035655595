"""
Results-related Pydantic schemas.
"""
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from pydantic import Field

from evote.models.election import ElectionStatus, ResultReleaseType
from evote.schemas.base import APIModel


class CandidateResult(APIModel):
    """Result for a single candidate."""

    candidate_id: UUID = Field(..., description="Candidate ID")
    name: str = Field(..., description="Candidate name")
    party: Optional[str] = Field(None, description="Party affiliation")
    votes: int = Field(..., description="Number of votes received")
    percentage: float = Field(..., description="Percentage of total votes")


class ElectionResultsResponse(APIModel):
    """Results of a closed election."""

    election_id: UUID
    election_title: str
    status: ElectionStatus
    total_votes: int = Field(..., description="Distinct voters who voted")
    results: List[CandidateResult] = Field(..., description="Sorted by votes, then ballot order")
    results_released: bool
    results_released_at: Optional[datetime] = None
    result_release_message: Optional[str] = None
    result_release_type: ResultReleaseType
