"""
Domain error taxonomy.

Services raise these; the application renders them as
``{"detail": ..., "code": ...}`` with the class's HTTP status.
"""
from fastapi import status


class VotingError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "voting_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(VotingError):
    """Election, candidate or voter does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidState(VotingError):
    """Operation not allowed in the resource's current state."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_state"


class ResultsNotReleased(InvalidState):
    """Election is closed but results are not public yet."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "results_not_released"


class AlreadyExists(VotingError):
    """Duplicate registration."""

    status_code = status.HTTP_409_CONFLICT
    code = "already_exists"


class VerificationFailed(VotingError):
    """OTP or biometric mismatch, expiry or missing verification."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "verification_failed"


class AccountLocked(VerificationFailed):
    """Too many failed verification attempts."""

    status_code = status.HTTP_423_LOCKED
    code = "account_locked"


class StorageError(VotingError):
    """Persistence failed; nothing was applied."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_error"
