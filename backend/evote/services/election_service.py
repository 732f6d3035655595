"""
Election management service.
"""
import logging
import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from evote.core.exceptions import InvalidState, NotFound
from evote.core.timeutils import to_naive_utc, utcnow
from evote.models.election import Election, Candidate, ElectionStatus, ResultReleaseType
from evote.schemas.election import (
    CandidateCreate, CandidateUpdate, ElectionCreate, ElectionUpdate, ResultsRelease,
)
from evote.services.admin_actions import AdminActionLog


logger = logging.getLogger(__name__)

MIN_CANDIDATES = 2

VALID_TRANSITIONS = {
    ElectionStatus.UPCOMING: [ElectionStatus.ACTIVE, ElectionStatus.CLOSED],
    ElectionStatus.ACTIVE: [ElectionStatus.CLOSED],
    ElectionStatus.CLOSED: [],
}


class ElectionService:
    """Service for election management operations."""

    def __init__(self, db: AsyncSession, actions: Optional[AdminActionLog] = None):
        self.db = db
        self.actions = actions

    def _record(self, action: str, **data) -> None:
        if self.actions is not None:
            self.actions.record(action, data)

    async def create_election(self, election_data: ElectionCreate) -> Election:
        """Create a new upcoming election with its candidates."""
        election = Election(
            title=election_data.title,
            description=election_data.description,
            start_date=to_naive_utc(election_data.start_date),
            end_date=to_naive_utc(election_data.end_date),
            status=ElectionStatus.UPCOMING,
        )

        # Ids and ballot positions are always assigned here
        for idx, candidate_data in enumerate(election_data.candidates):
            election.candidates.append(Candidate(
                name=candidate_data.name,
                party=candidate_data.party,
                photo=candidate_data.photo,
                bio=candidate_data.bio,
                position=idx,
                vote_count=0,
            ))

        self.db.add(election)
        await self.db.commit()

        logger.info("Election %s created with %d candidates", election.id, len(election.candidates))
        self._record("ELECTION_CREATED", electionId=str(election.id))

        return await self.get_election(election.id)

    async def get_election(self, election_id: uuid.UUID) -> Optional[Election]:
        """Get an election by ID with candidates and participation."""
        result = await self.db.execute(
            select(Election)
            .options(
                selectinload(Election.candidates),
                selectinload(Election.participations),
            )
            .where(Election.id == election_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_election(self, election_id: uuid.UUID) -> Election:
        election = await self.get_election(election_id)
        if not election:
            raise NotFound("Election not found")
        return election

    async def get_elections(self, status: Optional[ElectionStatus] = None) -> List[Election]:
        """Get all elections, newest start first, optionally filtered by status."""
        query = select(Election).options(
            selectinload(Election.candidates),
            selectinload(Election.participations),
        )

        if status:
            query = query.where(Election.status == status)

        query = query.order_by(Election.start_date.desc()).execution_options(populate_existing=True)
        result = await self.db.execute(query)

        return list(result.scalars().all())

    async def update_election(
        self,
        election_id: uuid.UUID,
        election_data: ElectionUpdate
    ) -> Election:
        """Update election metadata."""
        election = await self.require_election(election_id)

        if election.status != ElectionStatus.UPCOMING:
            raise InvalidState("Only upcoming elections can be modified")

        update_data = election_data.model_dump(exclude_unset=True)
        for field in ("start_date", "end_date"):
            if update_data.get(field) is not None:
                update_data[field] = to_naive_utc(update_data[field])

        start_date = update_data.get("start_date") or election.start_date
        end_date = update_data.get("end_date") or election.end_date
        if end_date <= start_date:
            raise InvalidState("End date must be after start date")

        for field, value in update_data.items():
            if value is not None:
                setattr(election, field, value)

        election.updated_at = utcnow()
        await self.db.commit()

        self._record("ELECTION_UPDATED", electionId=str(election.id))
        return election

    async def update_status(
        self,
        election_id: uuid.UUID,
        new_status: ElectionStatus
    ) -> Election:
        """Update election status with validation."""
        election = await self.require_election(election_id)

        if new_status not in VALID_TRANSITIONS.get(election.status, []):
            raise InvalidState(
                f"Invalid status transition from {election.status.value} to {new_status.value}"
            )

        if new_status == ElectionStatus.ACTIVE and len(election.candidates) < MIN_CANDIDATES:
            raise InvalidState(f"Election must have at least {MIN_CANDIDATES} candidates")

        previous = election.status
        election.status = new_status
        election.updated_at = utcnow()
        await self.db.commit()

        logger.info("Election %s status %s -> %s", election.id, previous.value, new_status.value)
        self._record("STATUS_CHANGED", electionId=str(election.id), status=new_status.value)

        return election

    async def release_results(
        self,
        election_id: uuid.UUID,
        release: Optional[ResultsRelease] = None
    ) -> Election:
        """Make results visible to voters once the election is closed."""
        election = await self.require_election(election_id)
        release = release or ResultsRelease()

        election.results_released = True
        election.results_released_at = utcnow()
        election.result_release_message = (
            release.release_message
            or f"Results for {election.title} have been officially released!"
        )
        election.result_release_type = release.release_type or ResultReleaseType.STANDARD
        election.updated_at = utcnow()
        await self.db.commit()

        logger.info("Results released for election %s", election.id)
        self._record(
            "RESULTS_RELEASED",
            electionId=str(election.id),
            releaseType=election.result_release_type.value,
        )

        return election

    async def unrelease_results(self, election_id: uuid.UUID) -> Election:
        """Hide results again."""
        election = await self.require_election(election_id)

        election.results_released = False
        election.results_released_at = None
        election.result_release_message = None
        election.result_release_type = ResultReleaseType.STANDARD
        election.updated_at = utcnow()
        await self.db.commit()

        logger.info("Results hidden for election %s", election.id)
        self._record("RESULTS_HIDDEN", electionId=str(election.id))

        return election

    async def delete_election(self, election_id: uuid.UUID) -> None:
        """
        Delete an election, its candidates and participation rows.
        Voter histories that reference it are kept.
        """
        election = await self.require_election(election_id)

        await self.db.delete(election)
        await self.db.commit()

        logger.info("Election %s deleted", election_id)
        self._record("ELECTION_DELETED", electionId=str(election_id))

    async def get_candidates(self, election_id: uuid.UUID) -> List[Candidate]:
        election = await self.require_election(election_id)
        return list(election.candidates)

    async def add_candidate(
        self,
        election_id: uuid.UUID,
        candidate_data: CandidateCreate
    ) -> Candidate:
        """Add a candidate at the end of the ballot."""
        election = await self.require_election(election_id)

        if election.status != ElectionStatus.UPCOMING:
            raise InvalidState("Candidates can only be added to upcoming elections")

        candidate = Candidate(
            name=candidate_data.name,
            party=candidate_data.party,
            photo=candidate_data.photo,
            bio=candidate_data.bio,
            position=max((c.position for c in election.candidates), default=-1) + 1,
            vote_count=0,
        )
        election.candidates.append(candidate)
        election.updated_at = utcnow()
        await self.db.commit()

        self._record("CANDIDATE_ADDED", electionId=str(election.id), candidateId=str(candidate.id))
        return candidate

    async def update_candidate(
        self,
        election_id: uuid.UUID,
        candidate_id: uuid.UUID,
        candidate_data: CandidateUpdate
    ) -> Candidate:
        """Update a candidate's details."""
        election = await self.require_election(election_id)

        if election.status != ElectionStatus.UPCOMING:
            raise InvalidState("Candidates can only be modified in upcoming elections")

        candidate = election.get_candidate(candidate_id)
        if not candidate:
            raise NotFound("Candidate not found in this election")

        for field, value in candidate_data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(candidate, field, value)

        election.updated_at = utcnow()
        await self.db.commit()

        return candidate

    async def remove_candidate(
        self,
        election_id: uuid.UUID,
        candidate_id: uuid.UUID
    ) -> None:
        """Remove a candidate from an election."""
        election = await self.require_election(election_id)

        if election.status != ElectionStatus.UPCOMING:
            raise InvalidState("Candidates can only be removed from upcoming elections")

        candidate = election.get_candidate(candidate_id)
        if not candidate:
            raise NotFound("Candidate not found in this election")

        if len(election.candidates) <= MIN_CANDIDATES:
            raise InvalidState(f"Election must keep at least {MIN_CANDIDATES} candidates")

        election.candidates.remove(candidate)
        for idx, remaining in enumerate(election.candidates):
            remaining.position = idx

        election.updated_at = utcnow()
        await self.db.commit()

        self._record("CANDIDATE_REMOVED", electionId=str(election.id), candidateId=str(candidate_id))
