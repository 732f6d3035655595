"""
Candidate management API endpoints.
"""
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from evote.api.deps import get_admin_actions, require_admin
from evote.core.database import get_db
from evote.schemas.election import CandidateCreate, CandidateResponse, CandidateUpdate
from evote.services.admin_actions import AdminActionLog
from evote.services.election_service import ElectionService


router = APIRouter()


@router.get("/{election_id}/candidates", response_model=List[CandidateResponse])
async def list_candidates(
    election_id: UUID,
    db: AsyncSession = Depends(get_db)
) -> List[CandidateResponse]:
    """Get an election's candidates in ballot order."""
    candidates = await ElectionService(db).get_candidates(election_id)
    return [CandidateResponse.model_validate(c) for c in candidates]


@router.post(
    "/{election_id}/candidates",
    response_model=CandidateResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_candidate(
    election_id: UUID,
    candidate_data: CandidateCreate,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> CandidateResponse:
    """
    Add a candidate to an upcoming election (admin only).
    """
    candidate = await ElectionService(db, actions).add_candidate(election_id, candidate_data)
    return CandidateResponse.model_validate(candidate)


@router.put("/{election_id}/candidates/{candidate_id}", response_model=CandidateResponse)
async def update_candidate(
    election_id: UUID,
    candidate_id: UUID,
    candidate_data: CandidateUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin)
) -> CandidateResponse:
    """
    Update a candidate of an upcoming election (admin only).
    """
    candidate = await ElectionService(db).update_candidate(election_id, candidate_id, candidate_data)
    return CandidateResponse.model_validate(candidate)


@router.delete("/{election_id}/candidates/{candidate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_candidate(
    election_id: UUID,
    candidate_id: UUID,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> None:
    """
    Remove a candidate from an upcoming election (admin only).
    """
    await ElectionService(db, actions).remove_candidate(election_id, candidate_id)
