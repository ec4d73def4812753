"""
governance_engines.eligibility -- Voter roster and recusal rules.

Responsibility:
    Turn a reviewer body's roster into the stage's eligible voters.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The roster and the prior
    stage's votes are supplied by the caller.

Invariants enforced:
    - The request owner never votes on their own request.
    - For the second stage, a member who cast a non-abstain vote in the
      first stage of the same cycle is recused (dual-role recusal).
      Abstaining does not recuse.
    - ``total_eligible`` counts non-recused members only.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from governance_kernel.domain.voting import EligibilityCheck, EligibleVoter, Vote, VoteValue

OWNER_RECUSAL = "Request owner cannot vote on own request"
DUAL_ROLE_RECUSAL = "Voted in the previous review stage (dual-role recusal)"
NOT_ON_ROSTER = "User does not have required role for this stage"


def determine_eligible_voters(
    roster: Iterable[str],
    owner_id: str,
    prior_stage_votes: Iterable[Vote] = (),
) -> tuple[EligibleVoter, ...]:
    """Roster members with their recusal status, in roster order.

    Args:
        roster: Active members of the stage's reviewer body.  Duplicates are
            collapsed.
        owner_id: The request owner.
        prior_stage_votes: First-stage votes of the current cycle; pass
            nothing when computing the first stage.
    """
    prior_voters = {
        vote.voter_id
        for vote in prior_stage_votes
        if VoteValue(vote.value) != VoteValue.ABSTAIN
    }

    voters: list[EligibleVoter] = []
    seen: set[str] = set()
    for member in roster:
        if member in seen:
            continue
        seen.add(member)

        if member == owner_id:
            voters.append(EligibleVoter(member, recused=True, recusal_reason=OWNER_RECUSAL))
        elif member in prior_voters:
            voters.append(EligibleVoter(member, recused=True, recusal_reason=DUAL_ROLE_RECUSAL))
        else:
            voters.append(EligibleVoter(member))
    return tuple(voters)


def count_eligible(voters: Sequence[EligibleVoter]) -> int:
    return sum(1 for voter in voters if not voter.recused)


def check_eligibility(voters: Sequence[EligibleVoter], voter_id: str) -> EligibilityCheck:
    for voter in voters:
        if voter.voter_id == voter_id:
            if voter.recused:
                return EligibilityCheck(False, voter.recusal_reason or "Recused")
            return EligibilityCheck(True)
    return EligibilityCheck(False, NOT_ON_ROSTER)
