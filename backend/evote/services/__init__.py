"""
Business logic services.
"""
from evote.services.admin_actions import AdminActionLog
from evote.services.election_service import ElectionService
from evote.services.results_service import ResultsService
from evote.services.vote_service import CastVote, VoteOutcome, VoteService
from evote.services.voter_service import VoterService

__all__ = [
    "AdminActionLog",
    "CastVote",
    "ElectionService",
    "ResultsService",
    "VoteOutcome",
    "VoteService",
    "VoterService",
]
