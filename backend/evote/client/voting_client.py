"""
HTTP client for the voting API with optimistic local tallies.

The local tally is updated before the request is sent so a UI can reflect
the vote at once. Any failure rolls the local copy back; the server's
answer always wins on success.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx

from evote.services.ballot import BallotChange, apply_vote


logger = logging.getLogger(__name__)

CAST_VOTE_PATH = "/api/voting/cast-vote"


class ErrorKind(str, enum.Enum):
    """Why a vote request failed."""
    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP = "http"
    INVALID_RESPONSE = "invalid_response"


@dataclass
class VoteResult:
    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    code: Optional[str] = None

    @classmethod
    def success(cls, data: Dict[str, Any]) -> "VoteResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None
    ) -> "VoteResult":
        return cls(ok=False, error_kind=kind, message=message, status_code=status_code, code=code)

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.data.get("blockchainTxHash")


Snapshot = Tuple[Dict[str, int], Dict[str, str]]


class LocalTally:
    """A client-side copy of one election's votes and voter choices."""

    def __init__(
        self,
        votes: Optional[Dict[str, int]] = None,
        voter_candidate_map: Optional[Dict[str, str]] = None
    ):
        self.votes: Dict[str, int] = dict(votes or {})
        self.voter_candidate_map: Dict[str, str] = dict(voter_candidate_map or {})

    def apply(self, voter_id: str, candidate_id: str) -> BallotChange:
        return apply_vote(self.votes, self.voter_candidate_map, voter_id, candidate_id)

    def snapshot(self) -> Snapshot:
        return dict(self.votes), dict(self.voter_candidate_map)

    def restore(self, snapshot: Snapshot) -> None:
        votes, voter_candidate_map = snapshot
        self.votes = dict(votes)
        self.voter_candidate_map = dict(voter_candidate_map)

    def reconcile(self, voter_id: str, candidate_id: str, change: BallotChange, data: Dict[str, Any]) -> None:
        """
        Bring the local copy in line with a confirmed vote.

        The server's full tally replaces the local one when present. Older
        servers only report the chosen candidate's count and the previous
        choice, which may be unknown to this client.
        """
        self.voter_candidate_map[voter_id] = candidate_id

        server_votes = data.get("votes")
        if isinstance(server_votes, dict):
            self.votes = {str(k): int(v) for k, v in server_votes.items()}
            return

        local_previous = change.previous_candidate_id if change.changed else None
        server_previous = data.get("previousCandidateId")
        if server_previous != local_previous:
            # Undo the local guess and apply the move the server made
            if local_previous is not None:
                self.votes[local_previous] = self.votes.get(local_previous, 0) + 1
            if server_previous:
                self.votes[server_previous] = max(0, self.votes.get(server_previous, 0) - 1)

        vote_count = data.get("voteCount")
        if isinstance(vote_count, int):
            self.votes[candidate_id] = vote_count

    @property
    def total(self) -> int:
        return sum(self.votes.values())


class VotingClient:
    """Client used by frontends and scripts to cast votes."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._token = token
        self.tallies: Dict[str, LocalTally] = {}

    def tally_for(self, election_id: str) -> LocalTally:
        if election_id not in self.tallies:
            self.tallies[election_id] = LocalTally()
        return self.tallies[election_id]

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    async def cast_vote(self, voter_id: str, election_id: str, candidate_id: str) -> VoteResult:
        """
        Cast a vote through the canonical endpoint.

        The local tally is changed optimistically and rolled back on any
        failure. A failed request never reports a transaction hash.
        """
        tally = self.tally_for(election_id)
        snapshot = tally.snapshot()
        change = tally.apply(voter_id, candidate_id)

        result = await self._post_vote(voter_id, election_id, candidate_id)

        if not result.ok:
            tally.restore(snapshot)
            logger.warning("Vote in election %s failed (%s): %s", election_id, result.error_kind.value, result.message)
            return result

        tally.reconcile(voter_id, candidate_id, change, result.data)
        return result

    async def _post_vote(self, voter_id: str, election_id: str, candidate_id: str) -> VoteResult:
        payload = {
            "electionId": election_id,
            "candidateId": candidate_id,
            "voterId": voter_id,
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                transport=self._transport,
                timeout=self.timeout,
            ) as client:
                response = await client.post(CAST_VOTE_PATH, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            return VoteResult.failure(ErrorKind.TIMEOUT, f"Request timed out: {e}")
        except httpx.HTTPError as e:
            return VoteResult.failure(ErrorKind.NETWORK, f"Request failed: {e}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            detail = body.get("detail") if isinstance(body, dict) else None
            code = body.get("code") if isinstance(body, dict) else None
            return VoteResult.failure(
                ErrorKind.HTTP,
                str(detail or response.reason_phrase),
                status_code=response.status_code,
                code=code,
            )

        if not isinstance(body, dict) or not body.get("success"):
            return VoteResult.failure(
                ErrorKind.INVALID_RESPONSE,
                "Server did not confirm the vote",
                status_code=response.status_code,
            )

        return VoteResult.success(body)
