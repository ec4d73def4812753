"""
Module: governance_kernel.models.vote
Responsibility: ORM persistence for reviewer votes.

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One live vote per (request_id, stage, voter_id, cycle): UNIQUE
      constraint.  A re-vote under the "overwrite" policy updates the row in
      place; under "reject" the service raises before touching it.
    - ``value`` limited to APPROVE / DENY / RETURN / ABSTAIN.

Failure modes:
    - IntegrityError on a concurrent duplicate insert.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from governance_kernel.db.base import Base, UUIDString
from governance_kernel.db.types import UTCDateTime

if TYPE_CHECKING:
    from governance_kernel.domain.voting import Vote


class VoteModel(Base):
    """One reviewer's ballot on one stage of one revision cycle."""

    __tablename__ = "votes"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "stage", "voter_id", "cycle",
            name="uq_votes_request_stage_voter_cycle",
        ),
        CheckConstraint(
            "value IN ('APPROVE', 'DENY', 'RETURN', 'ABSTAIN')",
            name="ck_votes_valid_value",
        ),
        Index("ix_votes_request_stage_cycle", "request_id", "stage", "cycle"),
    )

    request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    stage: Mapped[str] = mapped_column(String(50), nullable=False)
    voter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(String(20), nullable=False)
    cycle: Mapped[int] = mapped_column(nullable=False, default=1)
    comment: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    cast_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Vote {self.request_id} {self.stage}/c{self.cycle} "
            f"{self.voter_id}={self.value}>"
        )

    def to_dto(self) -> Vote:
        from governance_kernel.domain.voting import Vote as VoteDTO, VoteValue

        return VoteDTO(
            request_id=self.request_id,
            stage=self.stage,
            voter_id=self.voter_id,
            value=VoteValue(self.value),
            cast_at=self.cast_at,
            cycle=self.cycle,
            comment=self.comment,
            updated_at=self.updated_at,
        )
