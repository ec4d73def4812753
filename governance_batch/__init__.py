"""
governance_batch -- externally triggered sweeps over review requests.

The deadline sweep auto-approves requests whose statutory review deadline
has passed and warns reviewers as the deadline approaches.
"""

from governance_batch.domain.types import (
    SweepAction,
    SweepItemResult,
    SweepItemStatus,
    SweepResult,
)
from governance_batch.services.deadline_scheduler import DeadlineScheduler

__all__ = [
    "DeadlineScheduler",
    "SweepAction",
    "SweepItemResult",
    "SweepItemStatus",
    "SweepResult",
]
