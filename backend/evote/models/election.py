"""
Election, Candidate and participation database models.
"""
import uuid
from typing import Dict, List, Optional

from sqlalchemy import (
    Column, String, DateTime, Text, Integer, Boolean, ForeignKey, Enum,
    TypeDecorator, CHAR, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum

from evote.core.database import Base
from evote.core.timeutils import utcnow


class GUID(TypeDecorator):
    """Platform-independent GUID type for SQLite and PostgreSQL."""
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            from sqlalchemy.dialects.postgresql import UUID
            return dialect.type_descriptor(UUID())
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return str(value)
        else:
            if isinstance(value, uuid.UUID):
                return str(value)
            else:
                return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            return uuid.UUID(value)
        return value


class ElectionStatus(str, enum.Enum):
    """Election status enumeration."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    CLOSED = "closed"


class ResultReleaseType(str, enum.Enum):
    """How a results release is announced to voters."""
    STANDARD = "standard"
    URGENT = "urgent"
    FINAL = "final"


class Election(Base):
    """
    Election model, the Ballot Store.

    Per-candidate counters live on Candidate.vote_count and each voter's
    current choice lives in ElectionVoter, so ``votes``, ``voters`` and
    ``voter_candidate_map`` are views over those rows.
    """

    __tablename__ = "elections"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(ElectionStatus),
        default=ElectionStatus.UPCOMING,
        nullable=False
    )

    # Scheduling
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    # Results release gate, independent of status
    results_released = Column(Boolean, default=False, nullable=False)
    results_released_at = Column(DateTime, nullable=True)
    result_release_message = Column(Text, nullable=True)
    result_release_type = Column(
        Enum(ResultReleaseType),
        default=ResultReleaseType.STANDARD,
        nullable=False
    )

    # Bumped on every tally mutation
    version = Column(Integer, nullable=False)

    # Audit trail
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    candidates = relationship(
        "Candidate",
        back_populates="election",
        cascade="all, delete-orphan",
        order_by="Candidate.position",
    )
    participations = relationship(
        "ElectionVoter",
        back_populates="election",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Election(id={self.id}, title='{self.title}', status={self.status})>"

    @property
    def is_active(self) -> bool:
        return self.status == ElectionStatus.ACTIVE

    @property
    def results_visible(self) -> bool:
        """Whether voters may see results."""
        return self.status == ElectionStatus.CLOSED and bool(self.results_released)

    @property
    def total_candidates(self) -> int:
        return len(self.candidates) if self.candidates else 0

    @property
    def votes(self) -> Dict[str, int]:
        return {str(c.id): c.vote_count or 0 for c in self.candidates}

    @property
    def voters(self) -> List[str]:
        return [str(p.voter_id) for p in self.participations]

    @property
    def voter_candidate_map(self) -> Dict[str, str]:
        return {str(p.voter_id): str(p.candidate_id) for p in self.participations}

    @property
    def total_votes(self) -> int:
        """Distinct voters who have voted."""
        return len(self.participations)

    @property
    def tally_is_consistent(self) -> bool:
        return sum(self.votes.values()) == self.total_votes

    def get_candidate(self, candidate_id: uuid.UUID) -> Optional["Candidate"]:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None

    def participation_for(self, voter_id: uuid.UUID) -> Optional["ElectionVoter"]:
        for participation in self.participations:
            if participation.voter_id == voter_id:
                return participation
        return None


class Candidate(Base):
    """Candidate on an election's ballot."""

    __tablename__ = "candidates"
    __table_args__ = (
        CheckConstraint("vote_count >= 0", name="ck_candidates_vote_count_non_negative"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    election_id = Column(
        GUID(),
        ForeignKey("elections.id", ondelete="CASCADE"),
        nullable=False
    )

    name = Column(String(100), nullable=False)
    party = Column(String(100), nullable=False)
    photo = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)

    # Ballot order, 0-based
    position = Column(Integer, default=0, nullable=False)

    vote_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    election = relationship("Election", back_populates="candidates")

    def __repr__(self) -> str:
        return f"<Candidate(id={self.id}, name='{self.name}', votes={self.vote_count})>"


class ElectionVoter(Base):
    """
    A voter's participation in an election and current candidate choice.
    voter_id is not a foreign key: removing a voter leaves tallies intact.
    """

    __tablename__ = "election_voters"
    __table_args__ = (
        UniqueConstraint("election_id", "voter_id", name="uq_election_voters_election_voter"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    election_id = Column(
        GUID(),
        ForeignKey("elections.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    voter_id = Column(GUID(), nullable=False, index=True)
    candidate_id = Column(GUID(), nullable=False)

    first_voted_at = Column(DateTime, default=utcnow, nullable=False)
    last_voted_at = Column(DateTime, default=utcnow, nullable=False)

    election = relationship("Election", back_populates="participations")

    def __repr__(self) -> str:
        return f"<ElectionVoter(election={self.election_id}, voter={self.voter_id})>"
