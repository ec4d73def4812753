"""
Voting domain types (``governance_kernel.domain.voting``).

Responsibility
--------------
Vote records, tally results and the roster types used for eligibility.
Pure value objects; the arithmetic lives in ``governance_engines.tally``.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.

Invariants enforced
-------------------
* One live vote per ``(request_id, stage, voter_id, cycle)`` -- the DTO
  mirrors the DB unique constraint in ``models/vote.py``.
* ``VoteTallyResult`` is derived and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class VoteValue(str, Enum):
    """A reviewer's ballot."""

    APPROVE = "APPROVE"
    DENY = "DENY"
    RETURN = "RETURN"
    ABSTAIN = "ABSTAIN"


class VoteOutcome(str, Enum):
    """Result of tallying one stage."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    RETURNED = "RETURNED"
    DEADLOCKED = "DEADLOCKED"


DECISIVE_OUTCOMES: frozenset[VoteOutcome] = frozenset({
    VoteOutcome.APPROVED,
    VoteOutcome.DENIED,
    VoteOutcome.RETURNED,
})


class RevotePolicy(str, Enum):
    """What happens when a voter casts a second ballot in the same stage."""

    OVERWRITE = "overwrite"
    REJECT = "reject"


@dataclass(frozen=True)
class Vote:
    """One reviewer's live vote on a stage of a request."""

    request_id: UUID
    stage: str
    voter_id: str
    value: VoteValue
    cast_at: datetime | None = None
    cycle: int = 1
    comment: str | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class RecordedVote:
    """A stored vote and whether it replaced the voter's earlier ballot."""

    vote: Vote
    replaced: bool = False
    previous_value: VoteValue | None = None


@dataclass(frozen=True)
class VoteTallyResult:
    """Outcome and counts for one stage.

    ``majority_needed`` is ``floor(active_voters / 2) + 1``;
    ``active_voters`` excludes abstentions.
    """

    outcome: VoteOutcome
    approve_count: int
    deny_count: int
    return_count: int
    abstain_count: int
    total_eligible: int
    active_voters: int
    majority_needed: int
    all_votes_cast: bool

    @property
    def votes_cast(self) -> int:
        return (
            self.approve_count
            + self.deny_count
            + self.return_count
            + self.abstain_count
        )

    @property
    def is_decisive(self) -> bool:
        return self.outcome in DECISIVE_OUTCOMES


@dataclass(frozen=True)
class EligibleVoter:
    """A roster member of a stage's reviewer body, possibly recused."""

    voter_id: str
    recused: bool = False
    recusal_reason: str | None = None


@dataclass(frozen=True)
class EligibilityCheck:
    eligible: bool
    reason: str = ""
