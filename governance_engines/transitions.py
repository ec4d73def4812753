"""
governance_engines.transitions -- Status transition validation.

Responsibility:
    Decide whether a review request may move from one status to another,
    first against the workflow graph and then against the acting role's
    allow-list.  One ``WorkflowDefinition`` per workflow version is injected
    at construction and selected once per call; no per-version branching
    happens here.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import governance_kernel/domain/ types.

Invariants enforced:
    - Never raises: every outcome is a ``TransitionCheck``.
    - Same-status requests are allowed as no-ops (``noop=True``) once the
      status is known, including terminal statuses.
    - Terminal statuses never transition.

Failure modes:
    Denials carry a ``TransitionRejection`` code:
    INVALID_STATUS, UNKNOWN_WORKFLOW_VERSION, UNKNOWN_STATUS,
    TERMINAL_STATUS, EDGE_NOT_ALLOWED, UNKNOWN_ROLE, ROLE_NOT_PERMITTED.
"""

from __future__ import annotations

from collections.abc import Mapping

from governance_kernel.domain.workflow import (
    ActorRole,
    TransitionCheck,
    TransitionRejection,
    WorkflowDefinition,
)

_DEFAULT_ROLE_DENIAL = "Role {role} cannot perform this transition"


def _normalize(status: str | None) -> str:
    if status is None:
        return ""
    return str(status).strip()


class StatusTransitionValidator:
    """Graph + role allow-list checks over injected workflow definitions.

    Contract:
        ``workflows`` maps workflow version to its definition and is not
        modified after construction.
    """

    def __init__(self, workflows: Mapping[int, WorkflowDefinition]):
        self._workflows = dict(workflows)

    @property
    def versions(self) -> tuple[int, ...]:
        return tuple(sorted(self._workflows))

    def for_version(self, workflow_version: int) -> WorkflowDefinition | None:
        return self._workflows.get(workflow_version)

    def can_transition(
        self,
        from_status: str | None,
        to_status: str | None,
        workflow_version: int,
    ) -> TransitionCheck:
        """Check the graph only."""
        from_ = _normalize(from_status)
        to = _normalize(to_status)
        if not from_ or not to:
            return TransitionCheck.deny(
                TransitionRejection.INVALID_STATUS,
                "Invalid status values",
            )

        workflow = self._workflows.get(workflow_version)
        if workflow is None:
            return TransitionCheck.deny(
                TransitionRejection.UNKNOWN_WORKFLOW_VERSION,
                f"Unknown workflow version {workflow_version!r}",
            )

        if not workflow.is_known(from_):
            return TransitionCheck.deny(
                TransitionRejection.UNKNOWN_STATUS,
                f'Unknown status "{from_}"',
            )

        if from_ == to:
            return TransitionCheck.allow("No-op: status unchanged", noop=True)

        if workflow.is_terminal(from_):
            return TransitionCheck.deny(
                TransitionRejection.TERMINAL_STATUS,
                f'Cannot transition from terminal status "{from_}"',
            )

        allowed_next = workflow.allowed_next(from_)
        if to not in allowed_next:
            return TransitionCheck.deny(
                TransitionRejection.EDGE_NOT_ALLOWED,
                f'Transition from "{from_}" to "{to}" is not allowed. '
                f"Allowed: {', '.join(sorted(allowed_next))}",
            )

        return TransitionCheck.allow()

    def validate_transition(
        self,
        from_status: str | None,
        to_status: str | None,
        workflow_version: int,
        actor_role: ActorRole | str | None,
    ) -> TransitionCheck:
        """Graph check, then the acting role's allow-list."""
        check = self.can_transition(from_status, to_status, workflow_version)
        if not check.allowed or check.noop:
            return check

        try:
            role = ActorRole(actor_role)
        except ValueError:
            return TransitionCheck.deny(
                TransitionRejection.UNKNOWN_ROLE,
                f"Unknown actor role {actor_role!r}",
            )

        workflow = self._workflows[workflow_version]
        if not workflow.role_permits(role, _normalize(from_status), _normalize(to_status)):
            reason = workflow.role_denials.get(role) or _DEFAULT_ROLE_DENIAL.format(
                role=role.value,
            )
            return TransitionCheck.deny(TransitionRejection.ROLE_NOT_PERMITTED, reason)

        return check
