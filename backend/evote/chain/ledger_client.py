"""
Blockchain mirror client.

The mirror is a best-effort, non-authoritative copy of vote records. It is
never consulted for admission control, only for display and verification.
"""
import hashlib
import logging
import time
from typing import Any, Dict, Optional

import httpx

from evote.core.config import settings
from evote.core.security import hash_voter_reference


logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """The mirror could not be written or read."""


class LedgerClient:
    """
    Client for the vote mirror.

    Modes:
    - ``mock``: in-memory record map, for development and demos
    - ``rpc``: JSON requests to a relay in front of the voting contract
    """

    def __init__(
        self,
        mode: Optional[str] = None,
        rpc_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mode = mode or settings.BLOCKCHAIN_MODE
        self.rpc_url = rpc_url or settings.BLOCKCHAIN_RPC_URL
        self.api_key = api_key if api_key is not None else settings.BLOCKCHAIN_API_KEY
        self.timeout = timeout or settings.BLOCKCHAIN_TIMEOUT_SECONDS
        self._transport = transport
        self._records: Dict[str, Dict[str, Any]] = {}

        if self.mode not in ("mock", "rpc"):
            raise ValueError(f"Unknown blockchain mode: {self.mode}")

    @staticmethod
    def vote_key(voter_id: str, election_id: str) -> str:
        """Mirror key: hashed voter reference plus election id."""
        return f"{hash_voter_reference(voter_id)}:{election_id}"

    async def record_vote(
        self,
        voter_id: str,
        election_id: str,
        candidate_id: str
    ) -> Dict[str, Any]:
        """
        Write (or overwrite, on revote) a voter's record.

        Returns:
            Dictionary with transaction_hash and timestamp
        """
        key = self.vote_key(voter_id, election_id)

        if self.mode == "mock":
            timestamp = int(time.time() * 1000)
            tx_hash = "0x" + hashlib.sha256(
                f"{key}:{candidate_id}:{time.time_ns()}".encode()
            ).hexdigest()
            self._records[key] = {
                "candidate_id": candidate_id,
                "timestamp": timestamp,
                "transaction_hash": tx_hash,
                "has_voted": True,
            }
            return {"transaction_hash": tx_hash, "timestamp": timestamp}

        result = await self._call("castVote", {
            "voterHash": hash_voter_reference(voter_id),
            "electionId": election_id,
            "candidateId": candidate_id,
        })
        if not result.get("transactionHash"):
            raise LedgerError("Relay response missing transactionHash")
        return {
            "transaction_hash": result["transactionHash"],
            "timestamp": result.get("timestamp"),
        }

    async def get_vote_status(self, voter_id: str, election_id: str) -> Dict[str, Any]:
        """Read back a voter's record for one election."""
        key = self.vote_key(voter_id, election_id)

        if self.mode == "mock":
            record = self._records.get(key)
            if not record:
                return {"has_voted": False}
            return dict(record)

        result = await self._call("getVotingStatus", {
            "voterHash": hash_voter_reference(voter_id),
            "electionId": election_id,
        })
        return {
            "has_voted": bool(result.get("hasVoted")),
            "candidate_id": result.get("candidateId"),
            "transaction_hash": result.get("transactionHash"),
            "timestamp": result.get("timestamp"),
        }

    async def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"X-API-Key": self.api_key} if self.api_key else {}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    self.rpc_url,
                    json={"method": method, "params": params},
                    headers=headers,
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise LedgerError(f"Relay request failed: {e}") from e
        except ValueError as e:
            raise LedgerError("Relay returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise LedgerError("Relay response is not a JSON object")
        if payload.get("error"):
            raise LedgerError(str(payload["error"]))

        result = payload.get("result") or {}
        if not isinstance(result, dict):
            raise LedgerError("Relay result is not a JSON object")
        return result
