"""
Pydantic schemas for request/response validation.
"""
from evote.schemas.election import (
    CandidateCreate,
    CandidateUpdate,
    CandidateResponse,
    ElectionCreate,
    ElectionUpdate,
    ElectionStatusUpdate,
    ElectionResponse,
    ElectionListResponse,
    ResultsRelease,
)
from evote.schemas.vote import (
    CastVoteRequest,
    CastVoteResponse,
    ElectionVoteRequest,
    ElectionVoteResponse,
    VotingRecordResponse,
    VoteStatusResponse,
)
from evote.schemas.results import (
    CandidateResult,
    ElectionResultsResponse,
)
from evote.schemas.voter import (
    VoterRegisterRequest,
    VoterRegisterResponse,
    VoterResponse,
    OTPVerifyRequest,
    FingerprintRequest,
)
from evote.schemas.sync import (
    AdminLoginRequest,
    AdminActionRequest,
    SyncResponse,
    TokenResponse,
)

__all__ = [
    # Election
    "CandidateCreate",
    "CandidateUpdate",
    "CandidateResponse",
    "ElectionCreate",
    "ElectionUpdate",
    "ElectionStatusUpdate",
    "ElectionResponse",
    "ElectionListResponse",
    "ResultsRelease",
    # Vote
    "CastVoteRequest",
    "CastVoteResponse",
    "ElectionVoteRequest",
    "ElectionVoteResponse",
    "VotingRecordResponse",
    "VoteStatusResponse",
    # Results
    "CandidateResult",
    "ElectionResultsResponse",
    # Voter
    "VoterRegisterRequest",
    "VoterRegisterResponse",
    "VoterResponse",
    "OTPVerifyRequest",
    "FingerprintRequest",
    # Sync / admin
    "AdminLoginRequest",
    "AdminActionRequest",
    "SyncResponse",
    "TokenResponse",
]
