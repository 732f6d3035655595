"""
Results service: builds election results from the Ballot Store.
"""
import uuid
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from evote.core.exceptions import InvalidState, NotFound, ResultsNotReleased
from evote.models.election import Election, ElectionStatus


class ResultsService:
    """Service for reading election results."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_results(
        self,
        election_id: uuid.UUID,
        include_unreleased: bool = False
    ) -> Dict[str, Any]:
        """
        Get the results of a closed election.

        Args:
            election_id: Election to report on
            include_unreleased: Admin preview, skips the release gate

        Returns:
            Dictionary matching ElectionResultsResponse
        """
        result = await self.db.execute(
            select(Election)
            .options(
                selectinload(Election.candidates),
                selectinload(Election.participations),
            )
            .where(Election.id == election_id)
            .execution_options(populate_existing=True)
        )
        election = result.scalar_one_or_none()

        if not election:
            raise NotFound("Election not found")

        if election.status != ElectionStatus.CLOSED:
            raise InvalidState("Results are available only after the election is closed")

        if not election.results_released and not include_unreleased:
            raise ResultsNotReleased("Results have not been released yet")

        total_votes = election.total_votes

        return {
            "election_id": election.id,
            "election_title": election.title,
            "status": election.status,
            "total_votes": total_votes,
            "results": self.rank_candidates(election, total_votes),
            "results_released": election.results_released,
            "results_released_at": election.results_released_at,
            "result_release_message": election.result_release_message,
            "result_release_type": election.result_release_type,
        }

    @staticmethod
    def rank_candidates(election: Election, total_votes: int) -> List[Dict[str, Any]]:
        """Rows sorted by votes descending; ties keep ballot order."""
        rows = []
        for candidate in election.candidates:
            votes = candidate.vote_count or 0
            percentage = round(votes / total_votes * 100, 2) if total_votes > 0 else 0
            rows.append({
                "candidate_id": candidate.id,
                "name": candidate.name,
                "party": candidate.party,
                "votes": votes,
                "percentage": percentage,
            })

        # candidates are loaded in position order and sort() is stable
        rows.sort(key=lambda row: row["votes"], reverse=True)
        return rows
