"""
Voter registration and verification schemas.
"""
from typing import Dict, List, Optional, Any
from datetime import datetime
from uuid import UUID
from pydantic import Field

from evote.schemas.base import APIModel
from evote.schemas.vote import VotingRecordResponse


AADHAAR_PATTERN = r"^\d{12}$"
PHONE_PATTERN = r"^\d{10}$"
OTP_PATTERN = r"^\d{4,8}$"


class VoterRegisterRequest(APIModel):
    """Register a voter by Aadhaar ID."""

    aadhaar_id: str = Field(..., pattern=AADHAAR_PATTERN, description="12-digit Aadhaar ID")
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, description="10-digit phone number")


class VoterRegisterResponse(APIModel):
    """Registration result. The OTP is returned directly (no SMS delivery)."""

    message: str
    voter_id: UUID
    otp: str
    otp_expires_at: datetime


class AadhaarRequest(APIModel):
    """Request identified by Aadhaar ID only."""

    aadhaar_id: str = Field(..., pattern=AADHAAR_PATTERN)


class VoterCheckResponse(APIModel):
    exists: bool
    is_verified: bool = False


class OTPVerifyRequest(APIModel):
    aadhaar_id: str = Field(..., pattern=AADHAAR_PATTERN)
    otp: str = Field(..., pattern=OTP_PATTERN)


class OTPIssuedResponse(APIModel):
    message: str
    otp: str
    otp_expires_at: datetime


class VoterResponse(APIModel):
    """Voter profile with voting history."""

    id: UUID
    aadhaar_id: str
    name: str
    phone: Optional[str] = None
    is_verified: bool
    otp_verified: bool
    biometric_verified: bool
    has_voted: Dict[str, bool]
    voting_history: List[VotingRecordResponse]
    last_login_at: Optional[datetime] = None
    created_at: datetime


class VoterSummary(APIModel):
    """Voter row for admin listings."""

    id: UUID
    aadhaar_id: str
    name: str
    is_verified: bool
    created_at: datetime


class VoterSessionResponse(APIModel):
    """Successful verification step with a voter session token."""

    message: str
    voter: VoterResponse
    access_token: str
    token_type: str = "bearer"


class FingerprintRequest(APIModel):
    """Simulated fingerprint registration or verification."""

    aadhaar_id: str = Field(..., pattern=AADHAAR_PATTERN)
    fingerprint_hash: str = Field(..., min_length=8, max_length=128)


class WebAuthnOptionsResponse(APIModel):
    challenge: str
    rp_id: str
    rp_name: str
    user_id: UUID
    timeout: int = 60000
    allow_credentials: List[str] = Field(default_factory=list)


class WebAuthnRegisterRequest(APIModel):
    """
    Credential produced by the browser. The attestation is not verified;
    the public key is stored as sent.
    """

    aadhaar_id: str = Field(..., pattern=AADHAAR_PATTERN)
    challenge: str
    credential_id: str = Field(..., min_length=1)
    public_key: str = Field(..., min_length=1)
    sign_count: int = Field(default=0, ge=0)


class WebAuthnLoginRequest(APIModel):
    aadhaar_id: str = Field(..., pattern=AADHAAR_PATTERN)
    challenge: str
    credential_id: str = Field(..., min_length=1)
    sign_count: int = Field(..., ge=0)


class LegacyVoterImport(APIModel):
    """Raw voter document from one of the historic schema versions."""

    document: Dict[str, Any]
