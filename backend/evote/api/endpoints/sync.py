"""
Admin/voter sync API endpoints.

Clients poll these to learn that something changed recently; the data
itself always comes from the election endpoints.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from evote.api.deps import get_admin_actions, get_current_admin, require_admin
from evote.api.endpoints.elections import election_response
from evote.core.database import get_db
from evote.schemas.sync import (
    AdminActionRecorded,
    AdminActionRequest,
    AdminActionResponse,
    SyncResponse,
)
from evote.services.admin_actions import AdminActionLog
from evote.services.election_service import ElectionService


router = APIRouter()


@router.get("/elections", response_model=SyncResponse)
async def sync_elections(
    db: AsyncSession = Depends(get_db),
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Optional[Dict[str, Any]] = Depends(get_current_admin)
) -> SyncResponse:
    """
    Get elections plus recent admin actions.
    ``forceRefresh`` is set when an admin acted within the recent window.
    """
    elections = await ElectionService(db).get_elections()
    recent = actions.recent()

    return SyncResponse(
        elections=[election_response(e, show_votes=admin is not None) for e in elections],
        last_updated=actions.last_updated,
        force_refresh=bool(recent),
        admin_actions=[AdminActionResponse(**a.to_dict()) for a in recent],
    )


@router.post("/admin-action", response_model=AdminActionRecorded)
async def record_admin_action(
    request: AdminActionRequest,
    actions: AdminActionLog = Depends(get_admin_actions),
    admin: Dict[str, Any] = Depends(require_admin)
) -> AdminActionRecorded:
    """
    Record an admin action so voter clients refresh (admin only).
    """
    entry = actions.record(request.action, request.data, request.timestamp)
    return AdminActionRecorded(
        success=True,
        message="Admin action recorded",
        action_id=entry.id,
    )
