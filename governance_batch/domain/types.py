"""
governance_batch.domain.types -- Pure frozen dataclasses for the deadline
sweep.  ZERO I/O.

Invariants enforced:
    - All DTOs are frozen; collections are tuples.
    - A lost race is SKIPPED with ``already_resolved=True``, never FAILED.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class SweepItemStatus(str, Enum):
    """Per-request result of one sweep pass."""

    SUCCEEDED = "succeeded"  # Auto-approved, or warning delivered
    SKIPPED = "skipped"  # Already resolved / already warned / nobody to notify
    FAILED = "failed"  # Error; left for the next sweep


class SweepAction(str, Enum):
    AUTO_APPROVE = "auto_approve"
    DEADLINE_WARNING = "deadline_warning"


@dataclass(frozen=True)
class SweepItemResult:
    """What the sweep did to one request."""

    request_id: UUID
    action: SweepAction
    status: SweepItemStatus
    from_status: str | None = None
    to_status: str | None = None
    advanced_to: str | None = None
    lead_days: int | None = None
    already_resolved: bool = False
    notified: bool = False
    message: str | None = None


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one ``DeadlineScheduler.run()``."""

    sweep_id: UUID
    started_at: datetime
    completed_at: datetime
    items: tuple[SweepItemResult, ...] = ()
    # Phases whose candidate query failed; their requests wait for the next sweep.
    failed_phases: tuple[SweepAction, ...] = ()

    def _count(self, action: SweepAction, status: SweepItemStatus) -> int:
        return sum(1 for i in self.items if i.action == action and i.status == status)

    @property
    def auto_approved_count(self) -> int:
        return self._count(SweepAction.AUTO_APPROVE, SweepItemStatus.SUCCEEDED)

    @property
    def already_resolved_count(self) -> int:
        return sum(1 for i in self.items if i.already_resolved)

    @property
    def warnings_sent_count(self) -> int:
        return self._count(SweepAction.DEADLINE_WARNING, SweepItemStatus.SUCCEEDED)

    @property
    def skipped_count(self) -> int:
        return sum(1 for i in self.items if i.status == SweepItemStatus.SKIPPED)

    @property
    def failed_count(self) -> int:
        failed_items = sum(1 for i in self.items if i.status == SweepItemStatus.FAILED)
        return failed_items + len(self.failed_phases)
