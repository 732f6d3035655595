"""
Election-related Pydantic schemas.
"""
from typing import Dict, Optional, List
from datetime import datetime
from uuid import UUID
from pydantic import Field, model_validator

from evote.models.election import ElectionStatus, ResultReleaseType
from evote.schemas.base import APIModel


class CandidateCreate(APIModel):
    """Schema for creating a candidate. Ids are assigned by the server."""

    name: str = Field(..., min_length=1, max_length=100, description="Candidate name")
    party: str = Field(..., min_length=1, max_length=100, description="Party affiliation")
    photo: Optional[str] = Field(None, max_length=500, description="URL to candidate photo")
    bio: Optional[str] = Field(None, description="Candidate biography")


class CandidateUpdate(APIModel):
    """Schema for updating a candidate."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    party: Optional[str] = Field(None, min_length=1, max_length=100)
    photo: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = None


class CandidateResponse(APIModel):
    """Schema for candidate response."""

    id: UUID
    election_id: UUID
    name: str
    party: str
    photo: Optional[str] = None
    bio: Optional[str] = None
    position: int


class ElectionCreate(APIModel):
    """Schema for creating an election."""

    title: str = Field(..., min_length=1, max_length=200, description="Election title")
    description: Optional[str] = Field(None, description="Election description")
    start_date: datetime = Field(..., description="Election start")
    end_date: datetime = Field(..., description="Election end")
    candidates: List[CandidateCreate] = Field(
        ...,
        min_length=2,
        description="List of candidates"
    )

    @model_validator(mode="after")
    def end_date_after_start_date(self):
        if self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class ElectionUpdate(APIModel):
    """Schema for updating election metadata."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ElectionStatusUpdate(APIModel):
    """Schema for updating election status."""

    status: ElectionStatus = Field(..., description="New status: upcoming, active, closed")


class ResultsRelease(APIModel):
    """Schema for releasing election results."""

    release_message: Optional[str] = Field(None, max_length=500)
    release_type: ResultReleaseType = Field(default=ResultReleaseType.STANDARD)


class ElectionResponse(APIModel):
    """
    Schema for election response.
    ``votes`` is only filled for admins or once results are public.
    """

    id: UUID
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    status: ElectionStatus
    candidates: List[CandidateResponse]
    total_candidates: int
    total_votes: int
    votes: Optional[Dict[str, int]] = None
    results_released: bool
    results_released_at: Optional[datetime] = None
    result_release_message: Optional[str] = None
    result_release_type: ResultReleaseType
    created_at: datetime
    updated_at: Optional[datetime] = None


class ElectionListResponse(APIModel):
    """Schema for election list response."""

    id: UUID
    title: str
    status: ElectionStatus
    start_date: datetime
    end_date: datetime
    total_candidates: int
    results_released: bool
