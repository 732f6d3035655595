"""
Vote service: the tally reconciler.

Every transport (both HTTP vote endpoints, admin tooling, tests) goes
through VoteService.cast_vote, which applies a vote to the Ballot Store
and the Voter Ledger in one transaction.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession

from evote.chain.ledger_client import LedgerClient, LedgerError
from evote.core.config import settings
from evote.core.exceptions import (
    InvalidState, NotFound, StorageError, VerificationFailed,
)
from evote.core.locks import KeyedLock
from evote.core.timeutils import utcnow
from evote.models.election import Election, ElectionStatus, ElectionVoter
from evote.models.voter import Voter, VotingRecord
from evote.services.admin_actions import AdminActionLog
from evote.services.ballot import BallotChange, VoteDecision, apply_vote


logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 0.01


@dataclass(frozen=True)
class CastVote:
    """A single vote request, whatever transport it came from."""
    voter_id: uuid.UUID
    election_id: uuid.UUID
    candidate_id: uuid.UUID


@dataclass
class VoteOutcome:
    election: Election
    voter: Voter
    record: VotingRecord
    change: BallotChange
    candidate_name: str
    vote_count: int
    votes: Dict[str, int]
    total_votes: int
    # The voter had a ballot or history entry in this election before the call
    is_revote: bool = False
    blockchain_tx_hash: Optional[str] = None

    @property
    def decision(self) -> VoteDecision:
        return self.change.decision


class VoteService:
    """Service for vote operations."""

    def __init__(
        self,
        db: AsyncSession,
        locks: KeyedLock,
        ledger: Optional[LedgerClient] = None,
        actions: Optional[AdminActionLog] = None,
    ):
        self.db = db
        self.locks = locks
        self.ledger = ledger
        self.actions = actions

    async def cast_vote(self, command: CastVote) -> VoteOutcome:
        """
        Apply a first vote, a revote or a repeated vote.

        The Ballot Store and Voter Ledger are committed together or not at
        all. The blockchain mirror is written afterwards and never fails
        the vote.
        """
        async with self.locks.hold(str(command.election_id)):
            outcome = await self._apply_with_retry(command)

        if outcome.change.changed or not outcome.record.blockchain_tx_hash:
            outcome.blockchain_tx_hash = await self._mirror(outcome)
        else:
            outcome.blockchain_tx_hash = outcome.record.blockchain_tx_hash

        if self.actions is not None and outcome.change.changed:
            self.actions.record("VOTE_RECORDED", {"electionId": str(command.election_id)})

        return outcome

    async def _apply_with_retry(self, command: CastVote) -> VoteOutcome:
        attempts = max(1, settings.VOTE_MAX_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                return await self._apply(command)
            except (StaleDataError, IntegrityError, OperationalError) as e:
                # Another process changed this election or voter concurrently,
                # or holds the lock on it (sqlite "database is locked", deadlocks)
                await self.db.rollback()
                logger.warning(
                    "Concurrent tally update on election %s (attempt %d/%d): %s",
                    command.election_id, attempt, attempts, e.__class__.__name__
                )
                if attempt == attempts:
                    raise StorageError("Vote could not be recorded, please retry") from e
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error("Failed to persist vote on election %s: %s", command.election_id, e)
                raise StorageError("Vote could not be recorded, please retry") from e

    async def _apply(self, command: CastVote) -> VoteOutcome:
        # Admission checks raise before anything is mutated
        election = await self._load_election(command.election_id)
        if not election:
            raise NotFound("Election not found")

        if election.status != ElectionStatus.ACTIVE:
            raise InvalidState("Election is not active")

        candidate = election.get_candidate(command.candidate_id)
        if not candidate:
            raise NotFound("Candidate not found in this election")

        voter = await self._load_voter(command.voter_id)
        if not voter:
            raise NotFound("Voter not found")

        if settings.REQUIRE_VERIFIED_VOTER and not voter.is_verified:
            raise VerificationFailed("Voter verification required")

        now = utcnow()
        is_revote = (
            election.participation_for(voter.id) is not None
            or voter.history_for(election.id) is not None
        )

        # Ballot Store
        votes = election.votes
        change = apply_vote(
            votes,
            election.voter_candidate_map,
            str(voter.id),
            str(candidate.id),
        )

        if change.changed:
            for c in election.candidates:
                c.vote_count = votes.get(str(c.id), 0)

            participation = election.participation_for(voter.id)
            if participation is None:
                election.participations.append(ElectionVoter(
                    voter_id=voter.id,
                    candidate_id=candidate.id,
                    first_voted_at=now,
                    last_voted_at=now,
                ))
            else:
                participation.candidate_id = candidate.id
                participation.last_voted_at = now

            # Bumps the version column; concurrent writers get StaleDataError
            election.updated_at = now

        # Voter Ledger
        record = voter.history_for(election.id)
        if record is None:
            record = VotingRecord(
                election_id=election.id,
                candidate_id=candidate.id,
                voted_at=now,
                is_revote=False,
            )
            voter.voting_history.append(record)
        elif change.changed or record.candidate_id != candidate.id:
            record.candidate_id = candidate.id
            record.voted_at = now
            record.is_revote = True
            record.blockchain_tx_hash = None

        await self.db.commit()

        if change.decision == VoteDecision.REVOTE:
            logger.info(
                "Revote in election %s moved a vote from %s to %s",
                election.id, change.previous_candidate_id, candidate.id
            )
        elif change.decision == VoteDecision.FIRST_VOTE:
            logger.info("Vote recorded in election %s for candidate %s", election.id, candidate.id)

        return VoteOutcome(
            election=election,
            voter=voter,
            record=record,
            change=change,
            candidate_name=candidate.name,
            vote_count=candidate.vote_count,
            votes=election.votes,
            total_votes=election.total_votes,
            is_revote=is_revote,
        )

    async def _load_election(self, election_id: uuid.UUID) -> Optional[Election]:
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

    async def _load_voter(self, voter_id: uuid.UUID) -> Optional[Voter]:
        result = await self.db.execute(
            select(Voter)
            .options(selectinload(Voter.voting_history))
            .where(Voter.id == voter_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _mirror(self, outcome: VoteOutcome) -> Optional[str]:
        """Write the vote to the blockchain mirror; failures are logged only."""
        if self.ledger is None:
            return None

        # Captured before the call: a revote may replace the record meanwhile
        record_id = outcome.record.id
        candidate_id = outcome.record.candidate_id
        voted_at = outcome.record.voted_at

        try:
            result = await asyncio.wait_for(
                self.ledger.record_vote(
                    voter_id=str(outcome.voter.id),
                    election_id=str(outcome.election.id),
                    candidate_id=str(candidate_id),
                ),
                timeout=settings.BLOCKCHAIN_TIMEOUT_SECONDS,
            )
        except (LedgerError, asyncio.TimeoutError) as e:
            logger.warning("Blockchain mirror write failed for election %s: %s", outcome.election.id, e)
            return None
        except Exception:
            # The vote is already committed and must stand
            logger.exception("Unexpected blockchain mirror failure for election %s", outcome.election.id)
            return None

        tx_hash = result.get("transaction_hash") if isinstance(result, dict) else None
        if not tx_hash:
            return None

        # Only attach to the exact record version that was mirrored
        try:
            attached = await self.db.execute(
                update(VotingRecord)
                .where(
                    VotingRecord.id == record_id,
                    VotingRecord.candidate_id == candidate_id,
                    VotingRecord.voted_at == voted_at,
                )
                .values(blockchain_tx_hash=tx_hash)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("Could not attach mirror transaction to voting record: %s", e)
            return None

        if attached.rowcount == 0:
            logger.info(
                "Voting record in election %s changed before its mirror transaction was attached",
                outcome.election.id
            )
            return None

        return tx_hash

    async def get_vote_status(
        self,
        voter_id: uuid.UUID,
        election_id: uuid.UUID
    ) -> Dict[str, Any]:
        """
        A voter's status in one election, with the mirror's view for display.
        The Voter Ledger is authoritative; the mirror may lag or be missing.
        """
        voter = await self._load_voter(voter_id)
        if not voter:
            raise NotFound("Voter not found")

        record = voter.history_for(election_id)

        blockchain: Dict[str, Any] = {"has_voted": False}
        if self.ledger is not None:
            try:
                blockchain = await asyncio.wait_for(
                    self.ledger.get_vote_status(str(voter_id), str(election_id)),
                    timeout=settings.BLOCKCHAIN_TIMEOUT_SECONDS,
                )
            except (LedgerError, asyncio.TimeoutError) as e:
                logger.warning("Blockchain status read failed for election %s: %s", election_id, e)
                blockchain = {"has_voted": False, "error": "Blockchain mirror unavailable"}
            except Exception:
                logger.exception("Unexpected blockchain status failure for election %s", election_id)
                blockchain = {"has_voted": False, "error": "Blockchain mirror unavailable"}

        return {
            "election_id": election_id,
            "voter_id": voter_id,
            "has_voted": record is not None,
            "candidate_id": record.candidate_id if record else None,
            "voted_at": record.voted_at if record else None,
            "is_revote": record.is_revote if record else False,
            "blockchain_tx_hash": record.blockchain_tx_hash if record else None,
            "blockchain": blockchain,
        }
