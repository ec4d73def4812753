"""
Kernel domain layer -- pure value objects for the review workflow.

ZERO I/O.  Nothing here imports from ``db/``, ``models/``, ``selectors/``
or ``services/``.
"""

from governance_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from governance_kernel.domain.notification import (
    DispatchResult,
    IdentityDirectory,
    NotificationEvent,
    NotificationGateway,
)
from governance_kernel.domain.request import (
    SYSTEM_ACTOR,
    Actor,
    ReviewRequest,
    TransitionOutcome,
)
from governance_kernel.domain.voting import (
    DECISIVE_OUTCOMES,
    EligibilityCheck,
    EligibleVoter,
    RecordedVote,
    RevotePolicy,
    Vote,
    VoteOutcome,
    VoteTallyResult,
    VoteValue,
)
from governance_kernel.domain.workflow import (
    ActorRole,
    RequestStatus,
    TransitionCheck,
    TransitionRejection,
    WorkflowDefinition,
    WorkflowVersion,
    map_legacy_status,
)

__all__ = [
    "Actor",
    "ActorRole",
    "Clock",
    "DECISIVE_OUTCOMES",
    "DeterministicClock",
    "DispatchResult",
    "EligibilityCheck",
    "EligibleVoter",
    "IdentityDirectory",
    "NotificationEvent",
    "NotificationGateway",
    "RecordedVote",
    "RequestStatus",
    "ReviewRequest",
    "RevotePolicy",
    "SYSTEM_ACTOR",
    "SystemClock",
    "TransitionCheck",
    "TransitionOutcome",
    "TransitionRejection",
    "Vote",
    "VoteOutcome",
    "VoteTallyResult",
    "VoteValue",
    "WorkflowDefinition",
    "WorkflowVersion",
    "map_legacy_status",
]
