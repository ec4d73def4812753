"""
Review request domain types (``governance_kernel.domain.request``).

Pure value objects for the request aggregate and the actor acting on it.
ZERO I/O.  ORM models convert to these via ``to_dto()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from governance_kernel.domain.workflow import ActorRole, TransitionCheck


@dataclass(frozen=True)
class Actor:
    """Identity plus resolved role, as supplied by the identity collaborator."""

    actor_id: str
    role: ActorRole


SYSTEM_ACTOR = Actor(actor_id="system", role=ActorRole.SYSTEM)


@dataclass(frozen=True)
class ReviewRequest:
    """Immutable snapshot of an architectural review request.

    Contract:
        ``status`` is a member of the graph for ``workflow_version``; once
        terminal it never changes.  ``stage`` mirrors ``status`` for the
        multi-stage workflow and is ``None`` for the legacy one.
    """

    request_id: UUID
    owner_id: str
    description: str
    status: str
    workflow_version: int
    stage: str | None = None
    cycle: int = 1
    review_deadline: datetime | None = None
    auto_approved_reason: str | None = None
    submitted_at: datetime | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of attempting a status change on a stored request.

    ``applied`` is True only when this caller's conditional write won.
    ``already_resolved`` marks a lost race: the validator allowed the change
    but the stored status had moved on before the write.
    """

    check: TransitionCheck
    request: ReviewRequest | None
    from_status: str | None = None
    to_status: str | None = None
    applied: bool = False
    already_resolved: bool = False

    @property
    def allowed(self) -> bool:
        return self.check.allowed

    @property
    def reason(self) -> str:
        return self.check.reason
