"""
Tests for the tally reconciler.
"""
import asyncio
import uuid

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from sqlalchemy.exc import DatabaseError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from evote.chain.ledger_client import LedgerClient, LedgerError
from evote.core.config import settings
from evote.core.exceptions import InvalidState, NotFound, StorageError, VerificationFailed
from evote.core.locks import KeyedLock
from evote.models.election import ElectionStatus
from evote.services.ballot import VoteDecision
from evote.services.results_service import ResultsService
from evote.services.vote_service import CastVote, VoteService
from evote.services.voter_service import VoterService

from conftest import reload_election


def candidate_ids(election):
    return [c.id for c in election.candidates]


class TestCastVote:
    """Test cases for VoteService.cast_vote."""

    @pytest.mark.asyncio
    async def test_first_vote(self, test_db, vote_service, test_election, test_voter):
        a, b = candidate_ids(test_election)

        outcome = await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))

        assert outcome.decision == VoteDecision.FIRST_VOTE
        assert outcome.is_revote is False
        assert outcome.vote_count == 1
        assert outcome.votes == {str(a): 1, str(b): 0}
        assert outcome.total_votes == 1
        assert outcome.blockchain_tx_hash is not None

        election = await reload_election(test_db, test_election.id)
        assert election.voters == [str(test_voter.id)]
        assert election.voter_candidate_map == {str(test_voter.id): str(a)}

        voter = await VoterService(test_db).get_voter(test_voter.id)
        assert voter.has_voted == {str(test_election.id): True}
        assert len(voter.voting_history) == 1
        assert voter.voting_history[0].candidate_id == a
        assert voter.voting_history[0].is_revote is False
        assert voter.voting_history[0].blockchain_tx_hash == outcome.blockchain_tx_hash

    @pytest.mark.asyncio
    async def test_repeated_vote_is_idempotent(self, test_db, vote_service, test_election, test_voter):
        a, b = candidate_ids(test_election)
        command = CastVote(test_voter.id, test_election.id, a)

        first = await vote_service.cast_vote(command)
        second = await vote_service.cast_vote(command)

        assert second.decision == VoteDecision.UNCHANGED
        assert second.change.changed is False
        assert second.votes == first.votes == {str(a): 1, str(b): 0}
        assert second.blockchain_tx_hash == first.blockchain_tx_hash

        election = await reload_election(test_db, test_election.id)
        assert election.voter_candidate_map == {str(test_voter.id): str(a)}

        voter = await VoterService(test_db).get_voter(test_voter.id)
        assert len(voter.voting_history) == 1
        assert voter.voting_history[0].is_revote is False

    @pytest.mark.asyncio
    async def test_revote_moves_vote_and_replaces_history(
        self, test_db, vote_service, test_election, test_voter
    ):
        a, b = candidate_ids(test_election)

        await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))
        outcome = await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, b))

        assert outcome.decision == VoteDecision.REVOTE
        assert outcome.is_revote is True
        assert outcome.change.previous_candidate_id == str(a)
        assert outcome.votes == {str(a): 0, str(b): 1}
        assert outcome.total_votes == 1

        voter = await VoterService(test_db).get_voter(test_voter.id)
        assert len(voter.voting_history) == 1
        record = voter.voting_history[0]
        assert record.candidate_id == b
        assert record.is_revote is True

    @pytest.mark.asyncio
    async def test_concrete_scenario(
        self, test_db, vote_service, test_election, test_voter, second_voter
    ):
        a, b = candidate_ids(test_election)
        election_id = test_election.id

        outcome = await vote_service.cast_vote(CastVote(test_voter.id, election_id, a))
        assert outcome.votes == {str(a): 1, str(b): 0}
        assert outcome.voter.has_voted[str(election_id)] is True

        outcome = await vote_service.cast_vote(CastVote(test_voter.id, election_id, b))
        assert outcome.votes == {str(a): 0, str(b): 1}

        outcome = await vote_service.cast_vote(CastVote(second_voter.id, election_id, b))
        assert outcome.votes == {str(a): 0, str(b): 2}

        election = await reload_election(test_db, election_id)
        election.status = ElectionStatus.CLOSED
        election.results_released = True
        await test_db.commit()

        results = await ResultsService(test_db).get_results(election_id)

        assert results["total_votes"] == 2
        assert [(r["candidate_id"], r["votes"], r["percentage"]) for r in results["results"]] == [
            (b, 2, 100.0),
            (a, 0, 0),
        ]

    @pytest.mark.asyncio
    async def test_sum_of_votes_matches_voters(
        self, test_db, vote_service, test_election, test_voter, second_voter
    ):
        a, b = candidate_ids(test_election)
        election_id = test_election.id
        sequence = [
            (test_voter.id, a), (second_voter.id, a), (test_voter.id, b),
            (test_voter.id, b), (second_voter.id, b), (test_voter.id, a),
        ]

        for voter_id, candidate_id in sequence:
            await vote_service.cast_vote(CastVote(voter_id, election_id, candidate_id))
            election = await reload_election(test_db, election_id)
            assert election.tally_is_consistent

        assert election.votes == {str(a): 1, str(b): 1}

    @pytest.mark.asyncio
    async def test_floor_at_zero_with_drifted_counter(
        self, test_db, vote_service, test_election, test_voter
    ):
        a, b = candidate_ids(test_election)
        election_id = test_election.id
        await vote_service.cast_vote(CastVote(test_voter.id, election_id, a))

        # Simulate a counter that drifted below its participation
        election = await reload_election(test_db, election_id)
        election.candidates[0].vote_count = 0
        await test_db.commit()

        outcome = await vote_service.cast_vote(CastVote(test_voter.id, election_id, b))

        assert outcome.votes[str(a)] == 0
        assert outcome.votes[str(b)] == 1

    @pytest.mark.asyncio
    async def test_records_vote_admin_action(self, vote_service, action_log, test_election, test_voter):
        a, _ = candidate_ids(test_election)
        command = CastVote(test_voter.id, test_election.id, a)

        await vote_service.cast_vote(command)
        await vote_service.cast_vote(command)

        actions = action_log.snapshot()
        assert len(actions) == 1
        assert actions[0].action == "VOTE_RECORDED"
        assert actions[0].data == {"electionId": str(test_election.id)}


class TestAdmissionControl:
    """Rejected votes must not change anything."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [ElectionStatus.UPCOMING, ElectionStatus.CLOSED])
    async def test_inactive_election_rejected(self, test_db, vote_service, test_election, test_voter, status):
        a, b = candidate_ids(test_election)
        test_election.status = status
        await test_db.commit()

        with pytest.raises(InvalidState):
            await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))

        election = await reload_election(test_db, test_election.id)
        assert election.votes == {str(a): 0, str(b): 0}
        assert election.voters == []

        voter = await VoterService(test_db).get_voter(test_voter.id)
        assert voter.voting_history == []

    @pytest.mark.asyncio
    async def test_unknown_election(self, vote_service, test_voter):
        with pytest.raises(NotFound):
            await vote_service.cast_vote(CastVote(test_voter.id, uuid.uuid4(), uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_candidate_from_other_ballot_rejected(self, vote_service, test_election, test_voter):
        with pytest.raises(NotFound):
            await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_unknown_voter(self, vote_service, test_election):
        a, _ = candidate_ids(test_election)
        with pytest.raises(NotFound):
            await vote_service.cast_vote(CastVote(uuid.uuid4(), test_election.id, a))

    @pytest.mark.asyncio
    async def test_unverified_voter_rejected(self, test_db, vote_service, test_election, unverified_voter):
        a, _ = candidate_ids(test_election)

        with pytest.raises(VerificationFailed):
            await vote_service.cast_vote(CastVote(unverified_voter.id, test_election.id, a))

        election = await reload_election(test_db, test_election.id)
        assert election.total_votes == 0

    @pytest.mark.asyncio
    async def test_unverified_voter_allowed_when_not_required(
        self, vote_service, test_election, unverified_voter, monkeypatch
    ):
        monkeypatch.setattr(settings, "REQUIRE_VERIFIED_VOTER", False)
        a, _ = candidate_ids(test_election)

        outcome = await vote_service.cast_vote(CastVote(unverified_voter.id, test_election.id, a))

        assert outcome.vote_count == 1


class TestFailureHandling:
    """Storage and mirror failures."""

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back_everything(self, test_db, vote_service, test_election, test_voter):
        a, b = candidate_ids(test_election)
        election_id, voter_id = test_election.id, test_voter.id

        failure = DatabaseError("COMMIT", {}, Exception("disk I/O error"))
        with patch.object(test_db, "commit", AsyncMock(side_effect=failure)):
            with pytest.raises(StorageError):
                await vote_service.cast_vote(CastVote(voter_id, election_id, a))

        election = await reload_election(test_db, election_id)
        assert election.votes == {str(a): 0, str(b): 0}
        assert election.voters == []

        voter = await VoterService(test_db).get_voter(voter_id)
        assert voter.voting_history == []

    @pytest.mark.asyncio
    async def test_stale_version_is_retried(self, test_db, vote_service, test_election, test_voter):
        a, b = candidate_ids(test_election)
        election_id, voter_id = test_election.id, test_voter.id
        real_apply = VoteService._apply
        calls = {"count": 0}

        async def flaky_apply(self, command):
            calls["count"] += 1
            if calls["count"] == 1:
                raise StaleDataError("election row changed")
            return await real_apply(self, command)

        with patch.object(VoteService, "_apply", flaky_apply):
            outcome = await vote_service.cast_vote(CastVote(voter_id, election_id, a))

        assert calls["count"] == 2
        assert outcome.votes == {str(a): 1, str(b): 0}

    @pytest.mark.asyncio
    async def test_lock_contention_is_retried(self, test_db, vote_service, test_election, test_voter):
        a, b = candidate_ids(test_election)
        election_id, voter_id = test_election.id, test_voter.id
        real_commit = test_db.commit
        calls = {"count": 0}

        async def locked_once():
            calls["count"] += 1
            if calls["count"] == 1:
                raise OperationalError("COMMIT", {}, Exception("database is locked"))
            return await real_commit()

        with patch.object(test_db, "commit", locked_once):
            outcome = await vote_service.cast_vote(CastVote(voter_id, election_id, a))

        assert outcome.votes == {str(a): 1, str(b): 0}

        election = await reload_election(test_db, election_id)
        assert election.votes == {str(a): 1, str(b): 0}
        assert election.voters == [str(voter_id)]

        voter = await VoterService(test_db).get_voter(voter_id)
        assert len(voter.voting_history) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, test_db, vote_service, test_election, test_voter, monkeypatch):
        monkeypatch.setattr(settings, "VOTE_MAX_RETRIES", 2)
        a, b = candidate_ids(test_election)
        election_id, voter_id = test_election.id, test_voter.id
        calls = {"count": 0}

        async def always_stale(self, command):
            calls["count"] += 1
            raise StaleDataError("election row changed")

        with patch.object(VoteService, "_apply", always_stale):
            with pytest.raises(StorageError):
                await vote_service.cast_vote(CastVote(voter_id, election_id, a))

        assert calls["count"] == 2
        election = await reload_election(test_db, election_id)
        assert election.votes == {str(a): 0, str(b): 0}

    @pytest.mark.asyncio
    async def test_ledger_failure_does_not_fail_vote(self, test_db, vote_service, ledger, test_election, test_voter):
        a, _ = candidate_ids(test_election)
        ledger.record_vote = AsyncMock(side_effect=LedgerError("node unreachable"))

        outcome = await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))

        assert outcome.vote_count == 1
        assert outcome.blockchain_tx_hash is None
        voter = await VoterService(test_db).get_voter(test_voter.id)
        assert voter.voting_history[0].blockchain_tx_hash is None

    @pytest.mark.asyncio
    async def test_ledger_timeout_does_not_fail_vote(
        self, vote_service, ledger, test_election, test_voter, monkeypatch
    ):
        monkeypatch.setattr(settings, "BLOCKCHAIN_TIMEOUT_SECONDS", 0.01)
        a, _ = candidate_ids(test_election)

        async def slow_record(**kwargs):
            await asyncio.sleep(1)
            return {"transaction_hash": "0xlate"}

        ledger.record_vote = slow_record

        outcome = await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))

        assert outcome.vote_count == 1
        assert outcome.blockchain_tx_hash is None

    @pytest.mark.asyncio
    async def test_without_ledger(self, test_db, test_election, test_voter):
        a, _ = candidate_ids(test_election)
        service = VoteService(test_db, KeyedLock())

        outcome = await service.cast_vote(CastVote(test_voter.id, test_election.id, a))

        assert outcome.vote_count == 1
        assert outcome.blockchain_tx_hash is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["oops"], {"result": "0xnot-an-object"}])
    async def test_malformed_relay_response_does_not_fail_vote(self, test_db, test_election, test_voter, body):
        a, _ = candidate_ids(test_election)
        election_id, voter_id = test_election.id, test_voter.id
        relay = LedgerClient(
            mode="rpc",
            rpc_url="http://relay.test/rpc",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)),
        )
        service = VoteService(test_db, KeyedLock(), ledger=relay)

        outcome = await service.cast_vote(CastVote(voter_id, election_id, a))

        assert outcome.vote_count == 1
        assert outcome.blockchain_tx_hash is None
        election = await reload_election(test_db, election_id)
        assert election.total_votes == 1

    @pytest.mark.asyncio
    async def test_unexpected_ledger_error_does_not_fail_vote(self, vote_service, ledger, test_election, test_voter):
        a, _ = candidate_ids(test_election)
        ledger.record_vote = AsyncMock(side_effect=AttributeError("'list' object has no attribute 'get'"))

        outcome = await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))

        assert outcome.vote_count == 1
        assert outcome.blockchain_tx_hash is None

    @pytest.mark.asyncio
    async def test_late_mirror_result_not_attached_after_revote(
        self, test_db, vote_service, ledger, test_election, test_voter
    ):
        a, b = candidate_ids(test_election)
        election_id, voter_id = test_election.id, test_voter.id
        first_call_released = asyncio.Event()
        calls = []

        async def record_vote(voter_id, election_id, candidate_id):
            calls.append(candidate_id)
            if len(calls) == 1:
                await first_call_released.wait()
            return {"transaction_hash": f"0xtx-{candidate_id}", "timestamp": 0}

        ledger.record_vote = record_vote

        first = asyncio.create_task(vote_service.cast_vote(CastVote(voter_id, election_id, a)))
        while not calls:
            await asyncio.sleep(0)

        # The revote completes while the first mirror write is still in flight
        second = await vote_service.cast_vote(CastVote(voter_id, election_id, b))
        first_call_released.set()
        first_outcome = await first

        assert second.blockchain_tx_hash == f"0xtx-{b}"
        assert first_outcome.blockchain_tx_hash is None

        voter = await VoterService(test_db).get_voter(voter_id)
        record = voter.voting_history[0]
        assert record.candidate_id == b
        assert record.blockchain_tx_hash == f"0xtx-{b}"


class TestVoteStatus:
    """Test cases for get_vote_status."""

    @pytest.mark.asyncio
    async def test_status_after_vote(self, vote_service, test_election, test_voter):
        a, _ = candidate_ids(test_election)
        outcome = await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))

        status = await vote_service.get_vote_status(test_voter.id, test_election.id)

        assert status["has_voted"] is True
        assert status["candidate_id"] == a
        assert status["blockchain_tx_hash"] == outcome.blockchain_tx_hash
        assert status["blockchain"]["has_voted"] is True
        assert status["blockchain"]["candidate_id"] == str(a)

    @pytest.mark.asyncio
    async def test_status_before_vote(self, vote_service, test_election, test_voter):
        status = await vote_service.get_vote_status(test_voter.id, test_election.id)

        assert status["has_voted"] is False
        assert status["candidate_id"] is None
        assert status["blockchain"] == {"has_voted": False}

    @pytest.mark.asyncio
    async def test_status_when_mirror_unavailable(self, vote_service, ledger, test_election, test_voter):
        ledger.get_vote_status = AsyncMock(side_effect=LedgerError("node unreachable"))

        status = await vote_service.get_vote_status(test_voter.id, test_election.id)

        assert status["has_voted"] is False
        assert status["blockchain"]["error"] == "Blockchain mirror unavailable"

    @pytest.mark.asyncio
    async def test_status_when_mirror_misbehaves(self, vote_service, ledger, test_election, test_voter):
        a, _ = candidate_ids(test_election)
        await vote_service.cast_vote(CastVote(test_voter.id, test_election.id, a))
        ledger.get_vote_status = AsyncMock(side_effect=TypeError("unexpected payload"))

        status = await vote_service.get_vote_status(test_voter.id, test_election.id)

        assert status["has_voted"] is True
        assert status["blockchain"]["error"] == "Blockchain mirror unavailable"
