"""
governance_engines.projection -- Read-only outcome and deadline hints.

Responsibility:
    "Could this stage still be approved?", "which option is leading?" and
    "how urgent is this deadline?" for display layers.  Hints are codes;
    rendering them into text is the caller's concern.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Nothing on a resolution path may import this module (enforced by
    tests/architecture/test_kernel_boundary.py).  Stages resolve only
    through ``governance_engines.tally``.

Invariants enforced:
    - ``remaining = active_voters - (approve + deny + return)``; an option is
      still possible when ``count + remaining >= majority_needed``.
    - Deadline urgency uses whole days rounded up: expired (< 0),
      critical (<= 3), warning (<= 7), otherwise normal.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum

from governance_kernel.domain.voting import VoteTallyResult


class ProjectionHint(str, Enum):
    APPROVAL_REACHED = "approval_reached"
    DENIAL_REACHED = "denial_reached"
    RETURN_REACHED = "return_reached"
    APPROVAL_ONLY_OPTION = "approval_only_option"
    DENIAL_ONLY_OPTION = "denial_only_option"
    RETURN_ONLY_OPTION = "return_only_option"
    APPROVAL_LEADING = "approval_leading"
    DENIAL_LEADING = "denial_leading"
    RETURN_LEADING = "return_leading"
    TOO_CLOSE_TO_CALL = "too_close_to_call"
    AWAITING_VOTES = "awaiting_votes"
    DEADLOCKED = "deadlocked"


class DeadlineUrgency(str, Enum):
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    NORMAL = "normal"


CRITICAL_DAYS = 3
WARNING_DAYS = 7


def _remaining(result: VoteTallyResult) -> int:
    decided = result.approve_count + result.deny_count + result.return_count
    return result.active_voters - decided


def is_approval_still_possible(result: VoteTallyResult) -> bool:
    return result.approve_count + _remaining(result) >= result.majority_needed


def is_denial_still_possible(result: VoteTallyResult) -> bool:
    return result.deny_count + _remaining(result) >= result.majority_needed


def is_return_still_possible(result: VoteTallyResult) -> bool:
    return result.return_count + _remaining(result) >= result.majority_needed


def projected_outcome(result: VoteTallyResult) -> ProjectionHint:
    """Best guess at where a stage is heading.

    Display only; never used to resolve a stage.
    """
    if result.active_voters <= 0:
        return ProjectionHint.DEADLOCKED

    needed = result.majority_needed
    if result.approve_count >= needed:
        return ProjectionHint.APPROVAL_REACHED
    if result.deny_count >= needed:
        return ProjectionHint.DENIAL_REACHED
    if result.return_count >= needed:
        return ProjectionHint.RETURN_REACHED

    approval = is_approval_still_possible(result)
    denial = is_denial_still_possible(result)
    ret = is_return_still_possible(result)
    if approval and not denial and not ret:
        return ProjectionHint.APPROVAL_ONLY_OPTION
    if denial and not approval and not ret:
        return ProjectionHint.DENIAL_ONLY_OPTION
    if ret and not approval and not denial:
        return ProjectionHint.RETURN_ONLY_OPTION

    counts = (result.approve_count, result.deny_count, result.return_count)
    top = max(counts)
    if top == 0:
        return ProjectionHint.AWAITING_VOTES
    if counts.count(top) > 1:
        return ProjectionHint.TOO_CLOSE_TO_CALL
    if result.approve_count == top:
        return ProjectionHint.APPROVAL_LEADING
    if result.deny_count == top:
        return ProjectionHint.DENIAL_LEADING
    return ProjectionHint.RETURN_LEADING


def days_remaining(deadline: datetime, now: datetime) -> int:
    """Whole days until ``deadline``, rounded up (negative once past)."""
    seconds = (deadline - now).total_seconds()
    return math.ceil(seconds / 86400)


def deadline_urgency(deadline: datetime, now: datetime) -> DeadlineUrgency:
    days = days_remaining(deadline, now)
    if days < 0:
        return DeadlineUrgency.EXPIRED
    if days <= CRITICAL_DAYS:
        return DeadlineUrgency.CRITICAL
    if days <= WARNING_DAYS:
        return DeadlineUrgency.WARNING
    return DeadlineUrgency.NORMAL
