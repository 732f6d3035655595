"""
Ballot Store mutation rules shared by the server reconciler and the API client.
"""
import enum
from dataclasses import dataclass
from typing import Dict, Optional


class VoteDecision(str, enum.Enum):
    """What applying a vote did to the ballot."""
    FIRST_VOTE = "first_vote"
    REVOTE = "revote"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class BallotChange:
    decision: VoteDecision
    candidate_id: str
    previous_candidate_id: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.decision != VoteDecision.UNCHANGED


def apply_vote(
    votes: Dict[str, int],
    voter_candidate_map: Dict[str, str],
    voter_id: str,
    candidate_id: str,
) -> BallotChange:
    """
    Apply one voter's choice to ``votes`` and ``voter_candidate_map`` in place.

    A repeated choice is a no-op. A changed choice moves one vote from the
    previous candidate (never below zero) to the new one.
    """
    previous = voter_candidate_map.get(voter_id)

    if previous == candidate_id:
        return BallotChange(VoteDecision.UNCHANGED, candidate_id, previous)

    if previous is not None:
        votes[previous] = max(0, votes.get(previous, 0) - 1)
        decision = VoteDecision.REVOTE
    else:
        decision = VoteDecision.FIRST_VOTE

    votes[candidate_id] = votes.get(candidate_id, 0) + 1
    voter_candidate_map[voter_id] = candidate_id

    return BallotChange(decision, candidate_id, previous)
