"""
Notification domain types and collaborator protocols.

Responsibility
--------------
Names the workflow events that can trigger a notification, the result of a
dispatch attempt, and the two external collaborators the dispatcher talks
to: the identity directory (who holds a role) and the delivery gateway
(rendering + transport).  The core decides *whether* and *to whom*; the
gateway decides *how*.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Protocols only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol, runtime_checkable
from uuid import UUID

from governance_kernel.domain.request import Actor
from governance_kernel.domain.workflow import ActorRole


class NotificationEvent(str, Enum):
    """Workflow events that may produce a notification."""

    SUBMITTED = "submitted"
    STAGE_OPENED = "stage_opened"
    VOTE_CAST = "vote_cast"
    DECISION_REACHED = "decision_reached"
    DEADLINE_WARNING = "deadline_warning"
    AUTO_APPROVED = "auto_approved"


@dataclass(frozen=True)
class DispatchResult:
    """What a single ``NotificationDispatcher.dispatch`` call did.

    ``suppressed`` is set when debouncing skipped the send; ``failed``
    lists recipients whose delivery raised.
    """

    event: NotificationEvent
    request_id: UUID
    dispatched: bool
    recipients: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    suppressed: bool = False
    error: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class IdentityDirectory(Protocol):
    """Identity/role collaborator."""

    def get_actor(self, actor_id: str) -> Actor | None:
        """Resolve an identifier to an actor with its role."""
        ...

    def members_for_role(self, role: ActorRole) -> tuple[str, ...]:
        """Return identifiers of active members of a reviewer body."""
        ...


@runtime_checkable
class NotificationGateway(Protocol):
    """Rendering + delivery collaborator (email/SMS)."""

    def deliver(
        self,
        recipient_id: str,
        event: NotificationEvent,
        context: Mapping[str, Any],
    ) -> None:
        ...
