"""
Election management API endpoints.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from evote.api.deps import get_admin_actions, get_current_admin, require_admin
from evote.core.database import get_db
from evote.models.election import Election, ElectionStatus
from evote.schemas.election import (
    ElectionCreate,
    ElectionUpdate,
    ElectionResponse,
    ElectionStatusUpdate,
    ResultsRelease,
)
from evote.services.admin_actions import AdminActionLog
from evote.services.election_service import ElectionService


router = APIRouter()


def election_response(election: Election, show_votes: bool = False) -> ElectionResponse:
    """
    Serialize an election. Vote counts are only included for admins or
    once results are visible to voters.
    """
    response = ElectionResponse.model_validate(election)
    if not (show_votes or election.results_visible):
        response = response.model_copy(update={"votes": None})
    return response


@router.get("", response_model=List[ElectionResponse])
async def list_elections(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    admin: Optional[Dict[str, Any]] = Depends(get_current_admin)
) -> List[ElectionResponse]:
    """
    Get all elections, newest first.
    """
    status_enum = None
    if status_filter:
        try:
            status_enum = ElectionStatus(status_filter)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {status_filter}"
            )

    elections = await ElectionService(db).get_elections(status=status_enum)
    return [election_response(e, show_votes=admin is not None) for e in elections]


@router.post("", response_model=ElectionResponse, status_code=status.HTTP_201_CREATED)
async def create_election(
    election_data: ElectionCreate,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> ElectionResponse:
    """
    Create a new election (admin only).
    Candidate ids and ballot positions are assigned by the server.
    """
    election = await ElectionService(db, actions).create_election(election_data)
    return election_response(election, show_votes=True)


@router.get("/{election_id}", response_model=ElectionResponse)
async def get_election(
    election_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: Optional[Dict[str, Any]] = Depends(get_current_admin)
) -> ElectionResponse:
    """
    Get a specific election by ID.
    """
    election = await ElectionService(db).require_election(election_id)
    return election_response(election, show_votes=admin is not None)


@router.patch("/{election_id}", response_model=ElectionResponse)
async def update_election(
    election_id: UUID,
    election_data: ElectionUpdate,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> ElectionResponse:
    """
    Update election metadata (admin only, upcoming elections only).
    """
    election = await ElectionService(db, actions).update_election(election_id, election_data)
    return election_response(election, show_votes=True)


@router.put("/{election_id}/status", response_model=ElectionResponse)
async def update_election_status(
    election_id: UUID,
    status_update: ElectionStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> ElectionResponse:
    """
    Update election status (admin only).

    Valid transitions:
    - upcoming -> active, closed
    - active -> closed
    """
    election = await ElectionService(db, actions).update_status(election_id, status_update.status)
    return election_response(election, show_votes=True)


@router.put("/{election_id}/release-results", response_model=ElectionResponse)
async def release_results(
    election_id: UUID,
    release: Optional[ResultsRelease] = None,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> ElectionResponse:
    """
    Release results to voters (admin only).
    They become visible once the election is closed.
    """
    election = await ElectionService(db, actions).release_results(election_id, release)
    return election_response(election, show_votes=True)


@router.put("/{election_id}/unrelease-results", response_model=ElectionResponse)
async def unrelease_results(
    election_id: UUID,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> ElectionResponse:
    """
    Hide released results again (admin only).
    """
    election = await ElectionService(db, actions).unrelease_results(election_id)
    return election_response(election, show_votes=True)


@router.delete("/{election_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_election(
    election_id: UUID,
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> None:
    """
    Delete an election (admin only). Voter histories are kept.
    """
    await ElectionService(db, actions).delete_election(election_id)
