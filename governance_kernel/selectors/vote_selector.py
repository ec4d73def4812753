"""
Module: governance_kernel.selectors.vote_selector
Responsibility: Read access to votes for tallying and recusal checks.
Architecture position: Kernel > Selectors.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from governance_kernel.domain.voting import Vote
from governance_kernel.models.vote import VoteModel
from governance_kernel.selectors.base import BaseSelector


class VoteSelector(BaseSelector[VoteModel]):
    """Queries over ``votes``."""

    def votes_for(self, request_id: UUID, stage: str, cycle: int) -> Sequence[Vote]:
        """Live votes on one stage of one revision cycle, in casting order."""
        rows = self.session.execute(
            select(VoteModel)
            .where(
                VoteModel.request_id == request_id,
                VoteModel.stage == stage,
                VoteModel.cycle == cycle,
            )
            .order_by(VoteModel.cast_at, VoteModel.voter_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def vote_by_voter(
        self,
        request_id: UUID,
        stage: str,
        voter_id: str,
        cycle: int,
    ) -> Vote | None:
        model = self.session.execute(
            select(VoteModel).where(
                VoteModel.request_id == request_id,
                VoteModel.stage == stage,
                VoteModel.voter_id == voter_id,
                VoteModel.cycle == cycle,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None
