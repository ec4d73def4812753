"""
VoteService -- records reviewer ballots.

Responsibility:
    Stores one live vote per (request, stage, voter, cycle) under the
    configured re-vote policy.  Eligibility and stage checks happen in the
    workflow service before this is called.

Architecture position:
    Kernel > Services.  Flush only.

Invariants enforced:
    - OVERWRITE: a second ballot replaces the first in place (``cast_at``
      kept, ``updated_at`` set).
    - REJECT: a second ballot raises ``DuplicateVoteError`` and the stored
      vote is untouched.
    - A concurrent insert of the same key is resolved inside a SAVEPOINT, so
      the caller's transaction stays usable.

Failure modes:
    - DuplicateVoteError under the REJECT policy.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from governance_kernel.domain.clock import Clock
from governance_kernel.domain.voting import RecordedVote, RevotePolicy, Vote, VoteValue
from governance_kernel.exceptions import DuplicateVoteError
from governance_kernel.logging_config import get_logger
from governance_kernel.models.vote import VoteModel
from governance_kernel.services.base import BaseService

logger = get_logger("services.vote")


class VoteService(BaseService[VoteModel]):
    """Writes to ``votes``."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        revote_policy: RevotePolicy = RevotePolicy.OVERWRITE,
    ):
        super().__init__(session)
        self._clock = clock
        self._revote_policy = revote_policy

    @property
    def revote_policy(self) -> RevotePolicy:
        return self._revote_policy

    def record_vote(
        self,
        request_id,
        stage: str,
        voter_id: str,
        value: VoteValue,
        cycle: int,
        comment: str | None = None,
    ) -> RecordedVote:
        """
        Store a ballot.

        Returns:
            RecordedVote with ``replaced=True`` when an earlier ballot of the
            same voter, stage and cycle was overwritten.

        Raises:
            DuplicateVoteError: Under the REJECT policy when a ballot exists.
        """
        existing = self._load(request_id, stage, voter_id, cycle)
        if existing is not None:
            return self._revote(existing, value, comment)

        model = VoteModel(
            request_id=request_id,
            stage=stage,
            voter_id=voter_id,
            value=value.value,
            cycle=cycle,
            comment=comment,
            cast_at=self._clock.now(),
        )
        try:
            with self.session.begin_nested():
                self.session.add(model)
                self.session.flush()
        except IntegrityError:
            # Lost an insert race for the same key.
            existing = self._load(request_id, stage, voter_id, cycle)
            if existing is None:
                raise
            return self._revote(existing, value, comment)

        logger.info(
            "vote_recorded",
            extra={
                "request_id": str(request_id),
                "stage": stage,
                "voter_id": voter_id,
                "value": value.value,
                "cycle": cycle,
            },
        )
        return RecordedVote(vote=model.to_dto())

    def _load(self, request_id, stage: str, voter_id: str, cycle: int) -> VoteModel | None:
        return self.session.execute(
            select(VoteModel)
            .where(
                VoteModel.request_id == request_id,
                VoteModel.stage == stage,
                VoteModel.voter_id == voter_id,
                VoteModel.cycle == cycle,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _revote(
        self,
        existing: VoteModel,
        value: VoteValue,
        comment: str | None,
    ) -> RecordedVote:
        if self._revote_policy == RevotePolicy.REJECT:
            logger.warning(
                "vote_rejected_duplicate",
                extra={
                    "request_id": str(existing.request_id),
                    "stage": existing.stage,
                    "voter_id": existing.voter_id,
                    "cycle": existing.cycle,
                },
            )
            raise DuplicateVoteError(
                str(existing.request_id),
                existing.voter_id,
                existing.stage,
                existing.cycle,
            )

        previous = VoteValue(existing.value)
        existing.value = value.value
        existing.comment = comment
        existing.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "vote_replaced",
            extra={
                "request_id": str(existing.request_id),
                "stage": existing.stage,
                "voter_id": existing.voter_id,
                "previous_value": previous.value,
                "value": value.value,
                "cycle": existing.cycle,
            },
        )
        vote: Vote = existing.to_dto()
        return RecordedVote(vote=vote, replaced=True, previous_value=previous)
