"""
API dependencies for authentication and shared services.
"""
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from evote.chain.ledger_client import LedgerClient
from evote.core.locks import KeyedLock
from evote.core.security import decode_token
from evote.services.admin_actions import AdminActionLog


security = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"
VOTER_ROLE = "voter"


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Dict[str, Any]]:
    """
    Get the admin claims from the JWT token.
    Returns None if no valid admin token is provided.
    """
    if not credentials:
        return None

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("role") != ADMIN_ROLE:
        return None

    return payload


async def require_admin(
    admin: Optional[Dict[str, Any]] = Depends(get_current_admin)
) -> Dict[str, Any]:
    """
    Require a valid admin token.
    Raises 401 if not authenticated.
    """
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return admin


async def get_current_voter(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Dict[str, Any]]:
    """
    Get the voter claims from the session token issued after OTP or
    biometric verification. Returns None without a valid voter token.
    """
    if not credentials:
        return None

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("role") != VOTER_ROLE or not payload.get("sub"):
        return None

    return payload


async def require_voter(
    voter: Optional[Dict[str, Any]] = Depends(get_current_voter)
) -> Dict[str, Any]:
    """
    Require a valid voter session token.
    Raises 401 if not authenticated.
    """
    if not voter:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Voter authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return voter


def ensure_same_voter(claims: Dict[str, Any], voter_id: UUID) -> None:
    """A voter token only acts for the voter it was issued to."""
    if claims.get("sub") != str(voter_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token does not belong to this voter",
        )


def get_admin_actions(request: Request) -> AdminActionLog:
    return request.app.state.admin_actions


def get_ledger(request: Request) -> LedgerClient:
    return request.app.state.ledger


def get_locks(request: Request) -> KeyedLock:
    return request.app.state.election_locks
