"""
Kernel Invariants Contract.

These invariants hold regardless of configuration.  Configuration decides
*which* graph, roles and deadlines apply, never *whether* these rules apply.

The enforcement is distributed across StatusTransitionValidator,
RequestService, VoteService, DebounceService and the DB constraints in
governance_kernel.models.
"""

from enum import Enum, unique


@unique
class GovernanceInvariant(str, Enum):
    """Non-configurable guarantees of the review workflow."""

    VALIDATED_TRANSITIONS = "validated_transitions"
    """No status is persisted without a StatusTransitionValidator allow for
    the acting role."""

    CONDITIONAL_WRITES = "conditional_writes"
    """Every status change is an UPDATE guarded by the expected prior
    status.  Enforced by RequestService.compare_and_set_status."""

    TERMINAL_FINALITY = "terminal_finality"
    """A terminal status never changes again.  Enforced by the validator and
    by config validation (terminal states have no outgoing edges)."""

    ONE_VOTE_PER_STAGE = "one_vote_per_stage"
    """One live vote per (request, stage, voter, cycle).  Enforced by the
    votes unique constraint and VoteService."""

    NOTIFY_AFTER_WRITE = "notify_after_write"
    """Notifications follow a successful write and never roll it back."""


ALL_GOVERNANCE_INVARIANTS: frozenset[GovernanceInvariant] = frozenset(GovernanceInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "governance_engines",
    "governance_config",
    "governance_services",
    "governance_batch",
)
