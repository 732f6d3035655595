"""
Biometric verification API endpoints: simulated fingerprint and WebAuthn.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from evote.api.endpoints.voters import voter_session
from evote.core.database import get_db
from evote.schemas.voter import (
    AadhaarRequest,
    FingerprintRequest,
    VoterSessionResponse,
    WebAuthnLoginRequest,
    WebAuthnOptionsResponse,
    WebAuthnRegisterRequest,
)
from evote.services.voter_service import VoterService


router = APIRouter()


@router.post("/fingerprint/simulate", response_model=VoterSessionResponse)
async def simulate_fingerprint(
    request: FingerprintRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterSessionResponse:
    """
    Register a simulated fingerprint for devices without WebAuthn.
    """
    voter = await VoterService(db).register_fingerprint(request.aadhaar_id, request.fingerprint_hash)
    return voter_session(voter, "Fingerprint registered successfully")


@router.post("/fingerprint/verify", response_model=VoterSessionResponse)
async def verify_fingerprint(
    request: FingerprintRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterSessionResponse:
    """
    Verify a simulated fingerprint. Repeated failures lock the account.
    """
    voter = await VoterService(db).verify_fingerprint(request.aadhaar_id, request.fingerprint_hash)
    return voter_session(voter, "Fingerprint verified successfully")


@router.post("/register/options", response_model=WebAuthnOptionsResponse)
async def webauthn_register_options(
    request: AadhaarRequest,
    db: AsyncSession = Depends(get_db)
) -> WebAuthnOptionsResponse:
    """Get a challenge for registering a platform authenticator."""
    options = await VoterService(db).webauthn_register_options(request.aadhaar_id)
    return WebAuthnOptionsResponse(**options)


@router.post("/register/verify", response_model=VoterSessionResponse)
async def webauthn_register_verify(
    request: WebAuthnRegisterRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterSessionResponse:
    """Store a new credential after the challenge is checked."""
    voter = await VoterService(db).webauthn_register_verify(request)
    return voter_session(voter, "Biometric credential registered")


@router.post("/login/options", response_model=WebAuthnOptionsResponse)
async def webauthn_login_options(
    request: AadhaarRequest,
    db: AsyncSession = Depends(get_db)
) -> WebAuthnOptionsResponse:
    """Get a challenge for authenticating with a registered credential."""
    options = await VoterService(db).webauthn_login_options(request.aadhaar_id)
    return WebAuthnOptionsResponse(**options)


@router.post("/login/verify", response_model=VoterSessionResponse)
async def webauthn_login_verify(
    request: WebAuthnLoginRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterSessionResponse:
    """Authenticate with a registered credential."""
    voter = await VoterService(db).webauthn_login_verify(request)
    return voter_session(voter, "Authentication successful")
