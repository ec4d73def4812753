"""Pure types for the deadline sweep."""

from governance_batch.domain.types import (
    SweepAction,
    SweepItemResult,
    SweepItemStatus,
    SweepResult,
)

__all__ = [
    "SweepAction",
    "SweepItemResult",
    "SweepItemStatus",
    "SweepResult",
]
