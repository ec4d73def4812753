"""
Workflow domain types (``governance_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the review-request state machines.  Two workflow
versions coexist (1 = legacy single reviewer, 2 = multi-stage voting); each
is described by one ``WorkflowDefinition`` that carries its transition graph,
its actor-role allow-list and the stage bookkeeping the services need.
Definitions are built from configuration and injected, never hard-coded at
call sites.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer packages.

Invariants enforced
-------------------
* Terminal statuses have no outgoing edges (validated at config load).
* Role edges are a subset of the graph's edges (validated at config load).
* ``TransitionCheck`` is the only shape a transition decision takes; the
  validator never raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Mapping


class WorkflowVersion(IntEnum):
    """Discriminant selecting the transition graph for a request."""

    LEGACY = 1
    MULTI_STAGE = 2


class RequestStatus(str, Enum):
    """Every status either workflow version can hold."""

    # Multi-stage voting workflow (v2)
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    STAGE_A_REVIEW = "STAGE_A_REVIEW"
    STAGE_A_APPROVED = "STAGE_A_APPROVED"
    STAGE_A_DENIED = "STAGE_A_DENIED"
    STAGE_A_RETURNED = "STAGE_A_RETURNED"
    STAGE_B_REVIEW = "STAGE_B_REVIEW"
    STAGE_B_APPROVED = "STAGE_B_APPROVED"
    STAGE_B_DENIED = "STAGE_B_DENIED"
    STAGE_B_RETURNED = "STAGE_B_RETURNED"
    # Legacy workflow (v1)
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    # Shared
    CANCELLED = "cancelled"


class ActorRole(str, Enum):
    """Roles resolved by the identity collaborator."""

    OWNER = "owner"
    STAGE_A_REVIEWER = "stage_a_reviewer"
    STAGE_B_REVIEWER = "stage_b_reviewer"
    SYSTEM = "system"


class TransitionRejection(str, Enum):
    """Machine-readable reason a transition was denied."""

    INVALID_STATUS = "invalid_status"
    UNKNOWN_WORKFLOW_VERSION = "unknown_workflow_version"
    UNKNOWN_STATUS = "unknown_status"
    TERMINAL_STATUS = "terminal_status"
    EDGE_NOT_ALLOWED = "edge_not_allowed"
    UNKNOWN_ROLE = "unknown_role"
    ROLE_NOT_PERMITTED = "role_not_permitted"
    NOT_OWNER = "not_owner"


@dataclass(frozen=True)
class TransitionCheck:
    """Allow/deny decision for a status change.

    ``noop`` is set for same-status requests, which are always allowed and
    must not be written.
    """

    allowed: bool
    reason: str = ""
    code: TransitionRejection | None = None
    noop: bool = False

    @classmethod
    def allow(cls, reason: str = "", *, noop: bool = False) -> TransitionCheck:
        return cls(allowed=True, reason=reason, noop=noop)

    @classmethod
    def deny(cls, code: TransitionRejection, reason: str) -> TransitionCheck:
        return cls(allowed=False, reason=reason, code=code)


Edge = tuple[str, str]


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class WorkflowDefinition:
    """One versioned review workflow: graph, role allow-list and stage data.

    Contract:
        frozen; mappings are read-only views.
    Guarantees:
        ``initial_status`` is a member of ``states`` and terminal statuses have
        no outgoing edges once the definition has passed config validation.
    Non-goals:
        does not decide whether an actor may act on a *particular* request
        (ownership); the workflow service does.
    """

    version: int
    name: str
    states: frozenset[str]
    initial_status: str
    terminal_statuses: frozenset[str]
    edges: Mapping[str, frozenset[str]]
    role_edges: Mapping[ActorRole, frozenset[Edge]]
    role_denials: Mapping[ActorRole, str] = field(default_factory=dict)
    submit_status: str | None = None
    review_bodies: Mapping[str, ActorRole] = field(default_factory=dict)
    resolutions: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    auto_advance: Mapping[str, str] = field(default_factory=dict)
    owner_editable: frozenset[str] = frozenset()
    tracks_stage: bool = False
    voting_enabled: bool = False
    deadline_enabled: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "edges", _freeze(self.edges))
        object.__setattr__(self, "role_edges", _freeze(self.role_edges))
        object.__setattr__(self, "role_denials", _freeze(self.role_denials))
        object.__setattr__(self, "review_bodies", _freeze(self.review_bodies))
        object.__setattr__(
            self,
            "resolutions",
            _freeze({k: _freeze(v) for k, v in self.resolutions.items()}),
        )
        object.__setattr__(self, "auto_advance", _freeze(self.auto_advance))

    def __hash__(self) -> int:
        return hash((self.version, self.name))

    def allowed_next(self, status: str) -> frozenset[str]:
        return self.edges.get(status, frozenset())

    def is_known(self, status: str) -> bool:
        return status in self.states

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal_statuses

    def is_review_status(self, status: str) -> bool:
        return status in self.review_bodies

    def owner_can_edit(self, status: str) -> bool:
        return status in self.owner_editable

    def reviewer_role(self, review_status: str) -> ActorRole | None:
        return self.review_bodies.get(review_status)

    def review_status_for(self, role: ActorRole) -> str | None:
        for status, body in self.review_bodies.items():
            if body == role:
                return status
        return None

    def resolution_target(self, review_status: str, outcome: str) -> str | None:
        """Status a decisive vote outcome moves ``review_status`` to."""
        return self.resolutions.get(review_status, {}).get(outcome)

    def resolution_outcome(self, review_status: str, status: str) -> str | None:
        """Inverse of ``resolution_target``."""
        for outcome, target in self.resolutions.get(review_status, {}).items():
            if target == status:
                return outcome
        return None

    def auto_advance_target(self, status: str) -> str | None:
        return self.auto_advance.get(status)

    def stage_for(self, status: str) -> str | None:
        """Value stored in the request's ``stage`` column for ``status``."""
        return status if self.tracks_stage else None

    def role_permits(self, role: ActorRole, from_status: str, to_status: str) -> bool:
        return (from_status, to_status) in self.role_edges.get(role, frozenset())


_LEGACY_TO_MULTI_STAGE: Mapping[str, str] = MappingProxyType({
    RequestStatus.PENDING.value: RequestStatus.DRAFT.value,
    RequestStatus.IN_REVIEW.value: RequestStatus.STAGE_A_REVIEW.value,
    RequestStatus.APPROVED.value: RequestStatus.STAGE_B_APPROVED.value,
    RequestStatus.REJECTED.value: RequestStatus.STAGE_B_DENIED.value,
    RequestStatus.CANCELLED.value: RequestStatus.CANCELLED.value,
})


def map_legacy_status(status: str) -> str:
    """Map a v1 status onto its v2 equivalent (migration helper).

    Unknown values are returned unchanged.
    """
    return _LEGACY_TO_MULTI_STAGE.get(status, status)
