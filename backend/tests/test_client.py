"""
Tests for the voting API client and its optimistic local tally.
"""
import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from evote.client.voting_client import ErrorKind, LocalTally, VotingClient
from evote.core.security import create_access_token
from evote.main import app


ELECTION = "e1"
CANDIDATE_A = "a"
CANDIDATE_B = "b"


def voter_token(voter) -> str:
    return create_access_token({"sub": str(voter.id), "role": "voter"})


def seeded_client(handler) -> VotingClient:
    """Client whose local tally already holds one vote for A by voter v1."""
    client = VotingClient("http://test", transport=httpx.MockTransport(handler))
    client.tallies[ELECTION] = LocalTally({CANDIDATE_A: 1, CANDIDATE_B: 0}, {"v1": CANDIDATE_A})
    return client


class TestLocalTally:
    """Client-side tally bookkeeping."""

    def test_snapshot_and_restore(self):
        tally = LocalTally({CANDIDATE_A: 1}, {"v1": CANDIDATE_A})
        snapshot = tally.snapshot()

        tally.apply("v1", CANDIDATE_B)
        assert tally.votes == {CANDIDATE_A: 0, CANDIDATE_B: 1}

        tally.restore(snapshot)
        assert tally.votes == {CANDIDATE_A: 1}
        assert tally.voter_candidate_map == {"v1": CANDIDATE_A}

    def test_reconcile_takes_server_count(self):
        tally = LocalTally()
        change = tally.apply("v1", CANDIDATE_A)

        tally.reconcile("v1", CANDIDATE_A, change, {"voteCount": 7})

        assert tally.votes[CANDIDATE_A] == 7
        assert tally.total == 7

    def test_reconcile_prefers_full_server_tally(self):
        tally = LocalTally({CANDIDATE_A: 3, CANDIDATE_B: 0})
        change = tally.apply("v1", CANDIDATE_B)

        tally.reconcile("v1", CANDIDATE_B, change, {"votes": {CANDIDATE_A: 2, CANDIDATE_B: 4}, "voteCount": 4})

        assert tally.votes == {CANDIDATE_A: 2, CANDIDATE_B: 4}
        assert tally.voter_candidate_map == {"v1": CANDIDATE_B}

    def test_reconcile_applies_unknown_previous_choice(self):
        # This client never saw v1's first vote for A
        tally = LocalTally({CANDIDATE_A: 1, CANDIDATE_B: 0})
        change = tally.apply("v1", CANDIDATE_B)
        assert change.previous_candidate_id is None

        tally.reconcile("v1", CANDIDATE_B, change, {"previousCandidateId": CANDIDATE_A, "voteCount": 1})

        assert tally.votes == {CANDIDATE_A: 0, CANDIDATE_B: 1}
        assert tally.total == 1


class TestFailureRollback:
    """Every failure kind restores the local tally."""

    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request):
            return httpx.Response(400, json={"detail": "Election is not active", "code": "invalid_state"})

        client = seeded_client(handler)
        result = await client.cast_vote("v1", ELECTION, CANDIDATE_B)

        assert result.ok is False
        assert result.error_kind == ErrorKind.HTTP
        assert result.status_code == 400
        assert result.code == "invalid_state"
        assert result.message == "Election is not active"
        assert result.transaction_hash is None
        assert client.tally_for(ELECTION).votes == {CANDIDATE_A: 1, CANDIDATE_B: 0}
        assert client.tally_for(ELECTION).voter_candidate_map == {"v1": CANDIDATE_A}

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = seeded_client(handler)
        result = await client.cast_vote("v2", ELECTION, CANDIDATE_B)

        assert result.error_kind == ErrorKind.TIMEOUT
        assert result.transaction_hash is None
        assert client.tally_for(ELECTION).votes == {CANDIDATE_A: 1, CANDIDATE_B: 0}
        assert "v2" not in client.tally_for(ELECTION).voter_candidate_map

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = seeded_client(handler)
        result = await client.cast_vote("v1", ELECTION, CANDIDATE_B)

        assert result.error_kind == ErrorKind.NETWORK
        assert client.tally_for(ELECTION).votes == {CANDIDATE_A: 1, CANDIDATE_B: 0}

    @pytest.mark.asyncio
    async def test_unconfirmed_response(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "blockchainTxHash": "0xabc"})

        client = seeded_client(handler)
        result = await client.cast_vote("v1", ELECTION, CANDIDATE_B)

        assert result.error_kind == ErrorKind.INVALID_RESPONSE
        assert result.transaction_hash is None
        assert client.tally_for(ELECTION).votes == {CANDIDATE_A: 1, CANDIDATE_B: 0}

    @pytest.mark.asyncio
    async def test_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        client = seeded_client(handler)
        result = await client.cast_vote("v1", ELECTION, CANDIDATE_B)

        assert result.error_kind == ErrorKind.HTTP
        assert result.status_code == 502
        assert result.code is None


class TestSuccess:
    """Successful votes."""

    @pytest.mark.asyncio
    async def test_request_and_reconcile(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = request.read()
            return httpx.Response(200, json={
                "success": True,
                "voteCount": 5,
                "blockchainTxHash": "0x" + "1" * 64,
            })

        client = VotingClient("http://test/", transport=httpx.MockTransport(handler), token="tok")
        result = await client.cast_vote("v1", ELECTION, CANDIDATE_B)

        assert result.ok is True
        assert result.transaction_hash == "0x" + "1" * 64
        assert seen["path"] == "/api/voting/cast-vote"
        assert seen["auth"] == "Bearer tok"
        assert b'"voterId"' in seen["body"]
        assert client.tally_for(ELECTION).votes == {CANDIDATE_B: 5}

    @pytest.mark.asyncio
    async def test_revote_of_unseen_ballot_keeps_total(self):
        def handler(request):
            return httpx.Response(200, json={
                "success": True,
                "isRevote": True,
                "previousCandidateId": CANDIDATE_A,
                "voteCount": 1,
                "totalVotes": 1,
            })

        client = VotingClient("http://test", transport=httpx.MockTransport(handler))
        client.tallies[ELECTION] = LocalTally({CANDIDATE_A: 1, CANDIDATE_B: 0})

        result = await client.cast_vote("v1", ELECTION, CANDIDATE_B)

        assert result.ok is True
        assert client.tally_for(ELECTION).votes == {CANDIDATE_A: 0, CANDIDATE_B: 1}
        assert client.tally_for(ELECTION).total == 1

    @pytest.mark.asyncio
    async def test_against_api(self, client: AsyncClient, test_election, test_voter):
        a, b = [str(c.id) for c in test_election.candidates]
        election_id = str(test_election.id)
        voting = VotingClient("http://test", transport=ASGITransport(app=app), token=voter_token(test_voter))

        first = await voting.cast_vote(str(test_voter.id), election_id, a)
        second = await voting.cast_vote(str(test_voter.id), election_id, b)

        assert first.ok and second.ok
        assert second.data["isRevote"] is True
        assert voting.tally_for(election_id).votes == {a: 0, b: 1}

    @pytest.mark.asyncio
    async def test_api_rejection_rolls_back(self, client: AsyncClient, upcoming_election, test_voter):
        a = str(upcoming_election.candidates[0].id)
        election_id = str(upcoming_election.id)
        voting = VotingClient("http://test", transport=ASGITransport(app=app), token=voter_token(test_voter))

        result = await voting.cast_vote(str(test_voter.id), election_id, a)

        assert result.ok is False
        assert result.status_code == 400
        assert result.code == "invalid_state"
        assert voting.tally_for(election_id).votes == {}
