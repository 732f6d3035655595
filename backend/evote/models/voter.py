"""
Voter database models, the Voter Ledger.
"""
import uuid
from typing import Dict, List, Optional

from sqlalchemy import (
    Column, String, DateTime, Boolean, Integer, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from evote.core.database import Base
from evote.core.timeutils import utcnow
from evote.models.election import GUID


# Current voter document layout; see services/voter_migration.py
VOTER_SCHEMA_VERSION = 3


class Voter(Base):
    """
    Registered voter with verification state and voting history.
    """

    __tablename__ = "voters"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    schema_version = Column(Integer, default=VOTER_SCHEMA_VERSION, nullable=False)

    # Identity
    aadhaar_id = Column(String(12), unique=True, nullable=False, index=True)
    aadhaar_hash = Column(String(64), nullable=False)
    name = Column(String(100), default="Voter", nullable=False)
    phone = Column(String(10), nullable=True)

    # OTP verification
    otp_hash = Column(String(200), nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    otp_attempts = Column(Integer, default=0, nullable=False)
    otp_verified = Column(Boolean, default=False, nullable=False)

    # Biometric verification
    fingerprint_hash = Column(String(128), nullable=True)
    webauthn_credentials = Column(JSON, nullable=True)
    current_challenge = Column(String(128), nullable=True)
    biometric_verified = Column(Boolean, default=False, nullable=False)
    biometric_attempts = Column(Integer, default=0, nullable=False)
    lock_until = Column(DateTime, nullable=True)

    is_verified = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    voting_history = relationship(
        "VotingRecord",
        back_populates="voter",
        cascade="all, delete-orphan",
        order_by="VotingRecord.voted_at",
    )

    def __repr__(self) -> str:
        return f"<Voter(id={self.id}, verified={self.is_verified})>"

    @property
    def has_voted(self) -> Dict[str, bool]:
        return {str(record.election_id): True for record in self.voting_history}

    @property
    def is_locked(self) -> bool:
        return self.lock_until is not None and utcnow() < self.lock_until

    def history_for(self, election_id: uuid.UUID) -> Optional["VotingRecord"]:
        for record in self.voting_history:
            if record.election_id == election_id:
                return record
        return None

    def refresh_verification(self) -> None:
        """Voter is verified once both the OTP and a biometric step passed."""
        self.is_verified = bool(self.otp_verified and self.biometric_verified)

    def add_webauthn_credential(self, credential_id: str, public_key: str, sign_count: int) -> None:
        """Add a WebAuthn credential."""
        credentials = list(self.webauthn_credentials or [])
        credentials.append({
            "credential_id": credential_id,
            "public_key": public_key,
            "sign_count": sign_count,
            "created_at": utcnow().isoformat()
        })
        # Reassign so the JSON column is flagged dirty
        self.webauthn_credentials = credentials

    def get_webauthn_credential(self, credential_id: str) -> Optional[dict]:
        """Get a specific WebAuthn credential."""
        for cred in self.webauthn_credentials or []:
            if cred["credential_id"] == credential_id:
                return cred
        return None

    def update_sign_count(self, credential_id: str, new_sign_count: int) -> bool:
        """Update the sign count for a WebAuthn credential."""
        updated = False
        credentials: List[dict] = []
        for cred in self.webauthn_credentials or []:
            if cred["credential_id"] == credential_id:
                cred = dict(cred, sign_count=new_sign_count)
                updated = True
            credentials.append(cred)
        if updated:
            self.webauthn_credentials = credentials
        return updated


class VotingRecord(Base):
    """
    One voting-history entry per (voter, election); a revote replaces it.
    election_id is kept without a foreign key so history survives election deletion.
    """

    __tablename__ = "voting_records"
    __table_args__ = (
        UniqueConstraint("voter_id", "election_id", name="uq_voting_records_voter_election"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    voter_id = Column(
        GUID(),
        ForeignKey("voters.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    election_id = Column(GUID(), nullable=False, index=True)
    # Nullable only for entries imported from legacy documents
    candidate_id = Column(GUID(), nullable=True)

    voted_at = Column(DateTime, default=utcnow, nullable=False)
    is_revote = Column(Boolean, default=False, nullable=False)
    blockchain_tx_hash = Column(String(66), nullable=True)

    voter = relationship("Voter", back_populates="voting_history")

    def __repr__(self) -> str:
        return f"<VotingRecord(voter={self.voter_id}, election={self.election_id}, revote={self.is_revote})>"
