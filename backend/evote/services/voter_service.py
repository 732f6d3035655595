"""
Voter registration and verification service.

Covers Aadhaar registration, OTP verification, the simulated fingerprint
flow and simplified WebAuthn. Only the challenge and the sign count are
checked; attestation statements and assertion signatures are not verified.
"""
import logging
import secrets
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from evote.core.config import settings
from evote.core.exceptions import (
    AccountLocked, AlreadyExists, InvalidState, NotFound, VerificationFailed,
)
from evote.core.security import generate_challenge, generate_otp, hash_aadhaar, pwd_context
from evote.core.timeutils import utcnow
from evote.models.voter import Voter, VotingRecord, VOTER_SCHEMA_VERSION
from evote.schemas.voter import (
    VoterRegisterRequest, WebAuthnLoginRequest, WebAuthnRegisterRequest,
)
from evote.services.voter_migration import LegacyDocumentError, upgrade_legacy_voter


logger = logging.getLogger(__name__)


class VoterService:
    """Service for voter operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_voter(self, voter_id: uuid.UUID) -> Optional[Voter]:
        """Get a voter by ID with voting history."""
        result = await self.db.execute(
            select(Voter)
            .options(selectinload(Voter.voting_history))
            .where(Voter.id == voter_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_aadhaar(self, aadhaar_id: str) -> Optional[Voter]:
        result = await self.db.execute(
            select(Voter)
            .options(selectinload(Voter.voting_history))
            .where(Voter.aadhaar_id == aadhaar_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_voter(self, voter_id: uuid.UUID) -> Voter:
        voter = await self.get_voter(voter_id)
        if not voter:
            raise NotFound("Voter not found")
        return voter

    async def require_by_aadhaar(self, aadhaar_id: str) -> Voter:
        voter = await self.get_by_aadhaar(aadhaar_id)
        if not voter:
            raise NotFound("Voter not found")
        return voter

    async def list_voters(self) -> List[Voter]:
        result = await self.db.execute(select(Voter).order_by(Voter.created_at.desc()))
        return list(result.scalars().all())

    # Registration and OTP

    def _issue_otp(self, voter: Voter) -> str:
        otp = generate_otp()
        voter.otp_hash = pwd_context.hash(otp)
        voter.otp_expires_at = utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        voter.otp_attempts = 0
        return otp

    async def register(self, data: VoterRegisterRequest) -> Tuple[Voter, str]:
        """
        Register a voter and issue the first OTP.

        Returns:
            Tuple of (voter, otp)
        """
        if await self.get_by_aadhaar(data.aadhaar_id):
            raise AlreadyExists("Voter with this Aadhaar ID is already registered")

        voter = Voter(
            aadhaar_id=data.aadhaar_id,
            aadhaar_hash=hash_aadhaar(data.aadhaar_id),
            name=data.name or "Voter",
            phone=data.phone,
            schema_version=VOTER_SCHEMA_VERSION,
            voting_history=[],
        )
        otp = self._issue_otp(voter)
        self.db.add(voter)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise AlreadyExists("Voter with this Aadhaar ID is already registered") from e

        logger.info("Voter %s registered", voter.id)
        return voter, otp

    async def check(self, aadhaar_id: str) -> Tuple[bool, bool]:
        """Returns (exists, is_verified)."""
        voter = await self.get_by_aadhaar(aadhaar_id)
        if not voter:
            return False, False
        return True, voter.is_verified

    async def request_login_otp(self, aadhaar_id: str) -> Tuple[Voter, str]:
        voter = await self.require_by_aadhaar(aadhaar_id)
        otp = self._issue_otp(voter)
        await self.db.commit()
        return voter, otp

    async def verify_otp(self, aadhaar_id: str, otp: str) -> Voter:
        """
        Check an OTP. Every attempt counts, including failed ones, and a
        successful check clears the OTP.
        """
        voter = await self.require_by_aadhaar(aadhaar_id)

        if voter.otp_attempts >= settings.OTP_MAX_ATTEMPTS:
            raise VerificationFailed("Too many attempts. Please request a new OTP.")

        if not voter.otp_hash or not voter.otp_expires_at or voter.otp_expires_at < utcnow():
            raise VerificationFailed("OTP has expired. Please request a new one.")

        voter.otp_attempts += 1
        if not pwd_context.verify(otp, voter.otp_hash):
            await self.db.commit()
            logger.info("OTP mismatch for voter %s (attempt %d)", voter.id, voter.otp_attempts)
            raise VerificationFailed("Invalid OTP. Please try again.")

        voter.otp_hash = None
        voter.otp_expires_at = None
        voter.otp_attempts = 0
        voter.otp_verified = True
        voter.refresh_verification()
        voter.last_login_at = utcnow()
        await self.db.commit()

        return voter

    # Simulated fingerprint

    def _ensure_unlocked(self, voter: Voter) -> None:
        if voter.is_locked:
            raise AccountLocked("Account is temporarily locked")

    async def register_fingerprint(self, aadhaar_id: str, fingerprint_hash: str) -> Voter:
        voter = await self.require_by_aadhaar(aadhaar_id)
        self._ensure_unlocked(voter)

        # Registered once; replacing it would let anyone with the Aadhaar ID take over
        if voter.fingerprint_hash:
            raise AlreadyExists("A fingerprint is already registered for this voter")

        voter.fingerprint_hash = fingerprint_hash
        voter.biometric_verified = True
        voter.biometric_attempts = 0
        voter.refresh_verification()
        await self.db.commit()

        logger.info("Fingerprint registered for voter %s", voter.id)
        return voter

    async def _biometric_failure(self, voter: Voter, message: str) -> None:
        voter.biometric_attempts += 1
        locked = voter.biometric_attempts >= settings.BIOMETRIC_MAX_ATTEMPTS
        if locked:
            voter.lock_until = utcnow() + timedelta(minutes=settings.BIOMETRIC_LOCK_MINUTES)
            logger.warning("Voter %s locked after %d failed biometric attempts", voter.id, voter.biometric_attempts)
        await self.db.commit()

        if locked:
            raise AccountLocked("Too many failed attempts. Account is temporarily locked")
        raise VerificationFailed(message)

    async def _biometric_success(self, voter: Voter) -> None:
        voter.biometric_attempts = 0
        voter.lock_until = None
        voter.biometric_verified = True
        voter.refresh_verification()
        voter.last_login_at = utcnow()
        await self.db.commit()

    async def verify_fingerprint(self, aadhaar_id: str, fingerprint_hash: str) -> Voter:
        voter = await self.require_by_aadhaar(aadhaar_id)
        self._ensure_unlocked(voter)

        if not voter.fingerprint_hash:
            raise InvalidState("No fingerprint registered for this voter")

        if not secrets.compare_digest(voter.fingerprint_hash, fingerprint_hash):
            await self._biometric_failure(voter, "Fingerprint verification failed")

        await self._biometric_success(voter)
        return voter

    # WebAuthn

    async def webauthn_register_options(self, aadhaar_id: str) -> Dict[str, Any]:
        voter = await self.require_by_aadhaar(aadhaar_id)

        voter.current_challenge = generate_challenge()
        await self.db.commit()

        return {
            "challenge": voter.current_challenge,
            "rp_id": settings.WEBAUTHN_RP_ID,
            "rp_name": settings.WEBAUTHN_RP_NAME,
            "user_id": voter.id,
            "allow_credentials": [],
        }

    def _check_challenge(self, voter: Voter, challenge: str) -> None:
        if not voter.current_challenge or not secrets.compare_digest(voter.current_challenge, challenge):
            raise VerificationFailed("Challenge mismatch")

    async def webauthn_register_verify(self, data: WebAuthnRegisterRequest) -> Voter:
        voter = await self.require_by_aadhaar(data.aadhaar_id)
        self._check_challenge(voter, data.challenge)

        if voter.get_webauthn_credential(data.credential_id):
            raise AlreadyExists("Credential already registered")

        voter.add_webauthn_credential(data.credential_id, data.public_key, data.sign_count)
        voter.current_challenge = None
        voter.biometric_verified = True
        voter.refresh_verification()
        await self.db.commit()

        logger.info("WebAuthn credential registered for voter %s", voter.id)
        return voter

    async def webauthn_login_options(self, aadhaar_id: str) -> Dict[str, Any]:
        voter = await self.require_by_aadhaar(aadhaar_id)
        self._ensure_unlocked(voter)

        credentials = voter.webauthn_credentials or []
        if not credentials:
            raise InvalidState("No credentials registered for this voter")

        voter.current_challenge = generate_challenge()
        await self.db.commit()

        return {
            "challenge": voter.current_challenge,
            "rp_id": settings.WEBAUTHN_RP_ID,
            "rp_name": settings.WEBAUTHN_RP_NAME,
            "user_id": voter.id,
            "allow_credentials": [c["credential_id"] for c in credentials],
        }

    async def webauthn_login_verify(self, data: WebAuthnLoginRequest) -> Voter:
        voter = await self.require_by_aadhaar(data.aadhaar_id)
        self._ensure_unlocked(voter)
        self._check_challenge(voter, data.challenge)

        credential = voter.get_webauthn_credential(data.credential_id)
        if not credential:
            raise VerificationFailed("Credential not found")

        # Authenticators without a counter always report 0
        stored = credential.get("sign_count", 0)
        if (stored or data.sign_count) and data.sign_count <= stored:
            voter.current_challenge = None
            await self._biometric_failure(voter, "Sign count did not increase")

        voter.update_sign_count(data.credential_id, data.sign_count)
        voter.current_challenge = None
        await self._biometric_success(voter)
        return voter

    # Administration

    async def delete_voter(self, voter_id: uuid.UUID) -> None:
        """Remove a voter. Election tallies and participation are left as they are."""
        voter = await self.require_voter(voter_id)
        await self.db.delete(voter)
        await self.db.commit()
        logger.info("Voter %s deleted", voter_id)

    async def import_legacy(self, document: Dict[str, Any]) -> Voter:
        """Import a voter document from one of the historic layouts."""
        try:
            upgraded = upgrade_legacy_voter(document)
        except LegacyDocumentError as e:
            raise InvalidState(str(e)) from e

        if await self.get_by_aadhaar(upgraded["aadhaar_id"]):
            raise AlreadyExists("Voter with this Aadhaar ID is already registered")

        history = upgraded.pop("voting_history")
        voter = Voter(
            aadhaar_hash=hash_aadhaar(upgraded["aadhaar_id"]),
            voting_history=[VotingRecord(**entry) for entry in history],
            **upgraded,
        )
        self.db.add(voter)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise AlreadyExists("Voter already imported") from e

        logger.info("Imported legacy voter %s with %d history entries", voter.id, len(history))
        return await self.require_voter(voter.id)
