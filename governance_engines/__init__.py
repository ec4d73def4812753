"""
Module: governance_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used on
    resolution paths: transition validation, tallying and eligibility.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import governance_kernel/domain/ (and sibling engine modules).
    MUST NOT import governance_services or governance_batch.

Invariants enforced:
    - Purity: engines never read the clock; ``now`` is always a parameter.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from governance_engines import StatusTransitionValidator, tally

    # Display-only hints live outside this surface on purpose:
    from governance_engines.projection import projected_outcome
"""

from governance_engines.eligibility import (
    check_eligibility,
    count_eligible,
    determine_eligible_voters,
)
from governance_engines.tally import majority_needed, tally
from governance_engines.transitions import StatusTransitionValidator

__all__ = [
    "StatusTransitionValidator",
    "check_eligibility",
    "count_eligible",
    "determine_eligible_voters",
    "majority_needed",
    "tally",
]
