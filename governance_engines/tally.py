"""
governance_engines.tally -- Majority vote tally for one review stage.

Responsibility:
    Count a stage's live votes and decide whether a majority has been
    reached.  Callers tally after every recorded vote and attempt the
    resolution transition only on a decisive outcome.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import governance_kernel/domain/ types.

Invariants enforced:
    - ``active_voters = total_eligible - abstain_count``;
      ``majority_needed = floor(active_voters / 2) + 1``.
    - ``active_voters <= 0`` is DEADLOCKED (a negative pool from malformed
      input is treated the same).
    - Precedence when several options reach the threshold: approve, then
      deny, then return.
    - Abstentions shrink the denominator and never count toward an outcome.
    - Total: never raises for any vote list and eligible count.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from governance_engines.tracer import traced_engine
from governance_kernel.domain.voting import Vote, VoteOutcome, VoteTallyResult, VoteValue

# Order matters: first option at or above the threshold wins.
_PRECEDENCE: tuple[tuple[VoteValue, VoteOutcome], ...] = (
    (VoteValue.APPROVE, VoteOutcome.APPROVED),
    (VoteValue.DENY, VoteOutcome.DENIED),
    (VoteValue.RETURN, VoteOutcome.RETURNED),
)


def majority_needed(active_voters: int) -> int:
    return active_voters // 2 + 1


@traced_engine("tally", "1.0", fingerprint_fields=("votes", "total_eligible"))
def tally(votes: Iterable[Vote], total_eligible: int) -> VoteTallyResult:
    """Tally one stage.

    Args:
        votes: Live votes for the stage and cycle (one per voter).
        total_eligible: Non-recused roster size.

    Returns:
        VoteTallyResult; ``all_votes_cast`` is ``len(votes) >= total_eligible``.
    """
    votes = list(votes)
    counts = Counter(VoteValue(vote.value) for vote in votes)

    abstain_count = counts[VoteValue.ABSTAIN]
    active_voters = total_eligible - abstain_count
    needed = majority_needed(active_voters)

    outcome = VoteOutcome.PENDING
    if active_voters <= 0:
        outcome = VoteOutcome.DEADLOCKED
    else:
        for value, candidate in _PRECEDENCE:
            if counts[value] >= needed:
                outcome = candidate
                break

    return VoteTallyResult(
        outcome=outcome,
        approve_count=counts[VoteValue.APPROVE],
        deny_count=counts[VoteValue.DENY],
        return_count=counts[VoteValue.RETURN],
        abstain_count=abstain_count,
        total_eligible=total_eligible,
        active_voters=active_voters,
        majority_needed=needed,
        all_votes_cast=len(votes) >= total_eligible,
    )
