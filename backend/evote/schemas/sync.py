"""
Admin/voter sync and admin authentication schemas.
"""
from typing import Any, Dict, List, Optional
from pydantic import Field

from evote.schemas.base import APIModel
from evote.schemas.election import ElectionResponse


class AdminLoginRequest(APIModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(APIModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str


class AdminActionRequest(APIModel):
    action: str = Field(..., min_length=1, max_length=64)
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[int] = Field(None, description="Epoch milliseconds")


class AdminActionResponse(APIModel):
    id: str
    action: str
    data: Dict[str, Any]
    timestamp: int


class AdminActionRecorded(APIModel):
    success: bool = True
    message: str
    action_id: str


class SyncResponse(APIModel):
    elections: List[ElectionResponse]
    last_updated: int
    force_refresh: bool
    admin_actions: List[AdminActionResponse]
