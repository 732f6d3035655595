"""
Voter registration, OTP login and administration API endpoints.
"""
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from evote.api.deps import VOTER_ROLE, require_admin
from evote.core.database import get_db
from evote.core.security import create_access_token
from evote.models.voter import Voter
from evote.schemas.voter import (
    AadhaarRequest,
    LegacyVoterImport,
    OTPIssuedResponse,
    OTPVerifyRequest,
    VoterCheckResponse,
    VoterRegisterRequest,
    VoterRegisterResponse,
    VoterResponse,
    VoterSessionResponse,
    VoterSummary,
)
from evote.services.voter_service import VoterService


router = APIRouter()


def voter_session(voter: Voter, message: str) -> VoterSessionResponse:
    """Build a session response with a voter-scoped token."""
    token = create_access_token(data={"sub": str(voter.id), "role": VOTER_ROLE})
    return VoterSessionResponse(
        message=message,
        voter=VoterResponse.model_validate(voter),
        access_token=token,
    )


@router.post("/register", response_model=VoterRegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_voter(
    request: VoterRegisterRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterRegisterResponse:
    """
    Register a voter by Aadhaar ID. The OTP is returned in the response.
    """
    voter_service = VoterService(db)
    voter, otp = await voter_service.register(request)

    return VoterRegisterResponse(
        message="Voter registered. Verify the OTP to continue.",
        voter_id=voter.id,
        otp=otp,
        otp_expires_at=voter.otp_expires_at,
    )


@router.post("/check", response_model=VoterCheckResponse)
async def check_voter(
    request: AadhaarRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterCheckResponse:
    """Check whether an Aadhaar ID is registered."""
    exists, is_verified = await VoterService(db).check(request.aadhaar_id)
    return VoterCheckResponse(exists=exists, is_verified=is_verified)


@router.post("/verify-otp", response_model=VoterSessionResponse)
async def verify_registration_otp(
    request: OTPVerifyRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterSessionResponse:
    """Verify the OTP issued at registration."""
    voter = await VoterService(db).verify_otp(request.aadhaar_id, request.otp)
    return voter_session(voter, "OTP verified successfully")


@router.post("/login", response_model=OTPIssuedResponse)
async def request_login_otp(
    request: AadhaarRequest,
    db: AsyncSession = Depends(get_db)
) -> OTPIssuedResponse:
    """Issue a fresh OTP for login."""
    voter, otp = await VoterService(db).request_login_otp(request.aadhaar_id)
    return OTPIssuedResponse(
        message="OTP generated",
        otp=otp,
        otp_expires_at=voter.otp_expires_at,
    )


@router.post("/login/verify", response_model=VoterSessionResponse)
async def verify_login_otp(
    request: OTPVerifyRequest,
    db: AsyncSession = Depends(get_db)
) -> VoterSessionResponse:
    """Complete an OTP login."""
    voter = await VoterService(db).verify_otp(request.aadhaar_id, request.otp)
    return voter_session(voter, "Login successful")


@router.get("", response_model=List[VoterSummary])
async def list_voters(
    db: AsyncSession = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin)
) -> List[VoterSummary]:
    """List registered voters (admin only)."""
    voters = await VoterService(db).list_voters()
    return [VoterSummary.model_validate(v) for v in voters]


@router.post("/import", response_model=VoterResponse, status_code=status.HTTP_201_CREATED)
async def import_legacy_voter(
    request: LegacyVoterImport,
    db: AsyncSession = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin)
) -> VoterResponse:
    """Import a voter document from an older schema version (admin only)."""
    voter = await VoterService(db).import_legacy(request.document)
    return VoterResponse.model_validate(voter)


@router.get("/{voter_id}", response_model=VoterResponse)
async def get_voter(
    voter_id: UUID,
    db: AsyncSession = Depends(get_db)
) -> VoterResponse:
    """Get a voter's profile and voting history."""
    voter = await VoterService(db).require_voter(voter_id)
    return VoterResponse.model_validate(voter)


@router.delete("/{voter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_voter(
    voter_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin)
) -> None:
    """Remove a voter (admin only). Election tallies are not changed."""
    await VoterService(db).delete_voter(voter_id)
