"""
SQLAlchemy database models.
"""
from evote.models.election import Election, Candidate, ElectionVoter
from evote.models.voter import Voter, VotingRecord

__all__ = [
    "Election",
    "Candidate",
    "ElectionVoter",
    "Voter",
    "VotingRecord",
]
