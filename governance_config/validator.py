"""
Configuration Validator (``governance_config.validator``).

Responsibility
--------------
Structural checks run before a configuration is handed to any caller.  A
configuration with errors is never used.

Invariants enforced
-------------------
* Every edge, role edge, review status, resolution and auto-advance target
  references a known state.
* Role edges are a subset of the graph's edges.
* Terminal states have no outgoing edges.
* The initial status is a known, non-terminal state.
* Deadline and notification numbers are positive.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from governance_config.schema import GovernanceConfig
from governance_kernel.domain.voting import VoteOutcome
from governance_kernel.domain.workflow import WorkflowDefinition

_RESOLUTION_OUTCOMES = frozenset(
    o.value for o in (VoteOutcome.APPROVED, VoteOutcome.DENIED, VoteOutcome.RETURNED)
)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.  Warnings do not
    block loading.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_workflow(workflow: WorkflowDefinition) -> list[str]:
    """Return every structural error in one workflow definition."""
    errors: list[str] = []
    prefix = f"workflow v{workflow.version} ({workflow.name})"
    states = workflow.states

    def unknown(status: str, where: str) -> None:
        if status not in states:
            errors.append(f"{prefix}: {where} references unknown status {status!r}")

    unknown(workflow.initial_status, "initial_status")
    if workflow.initial_status in workflow.terminal_statuses:
        errors.append(f"{prefix}: initial status {workflow.initial_status!r} is terminal")
    if workflow.submit_status is not None:
        unknown(workflow.submit_status, "submit_status")

    for status in sorted(workflow.terminal_statuses):
        unknown(status, "terminal")
        if workflow.allowed_next(status):
            errors.append(f"{prefix}: terminal status {status!r} has outgoing edges")

    graph_edges: set[tuple[str, str]] = set()
    for from_status, targets in workflow.edges.items():
        unknown(from_status, "edges")
        for to_status in sorted(targets):
            unknown(to_status, f"edge {from_status}->{to_status}")
            graph_edges.add((from_status, to_status))

    for role, pairs in workflow.role_edges.items():
        for pair in sorted(pairs):
            if pair not in graph_edges:
                errors.append(
                    f"{prefix}: role {role.value} edge {pair[0]}->{pair[1]} "
                    "is not in the transition graph"
                )

    for status, body in workflow.review_bodies.items():
        unknown(status, f"review status for {body.value}")

    for status, mapping in workflow.resolutions.items():
        if status not in workflow.review_bodies:
            errors.append(f"{prefix}: resolutions for non-review status {status!r}")
        for outcome, target in mapping.items():
            if outcome not in _RESOLUTION_OUTCOMES:
                errors.append(f"{prefix}: unknown resolution outcome {outcome!r} on {status!r}")
            elif (status, target) not in graph_edges:
                errors.append(
                    f"{prefix}: resolution {status}->{target} is not in the transition graph"
                )

    for from_status, to_status in workflow.auto_advance.items():
        if (from_status, to_status) not in graph_edges:
            errors.append(
                f"{prefix}: auto-advance {from_status}->{to_status} "
                "is not in the transition graph"
            )

    for status in sorted(workflow.owner_editable):
        unknown(status, "owner_editable")

    if workflow.voting_enabled and not workflow.review_bodies:
        errors.append(f"{prefix}: voting enabled without review statuses")

    return errors


def validate_configuration(config: GovernanceConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()

    if not config.workflows:
        result.add_error("no workflows configured")

    for version, workflow in sorted(config.workflows.items()):
        if version != workflow.version:
            result.add_error(f"workflow keyed {version} declares version {workflow.version}")
        for error in validate_workflow(workflow):
            result.add_error(error)

    deadlines = config.deadlines
    if deadlines.review_period_days <= 0:
        result.add_error("deadlines.review_period_days must be positive")
    if any(d <= 0 for d in deadlines.warning_lead_days):
        result.add_error("deadlines.warning_lead_days must be positive")
    if any(d >= deadlines.review_period_days for d in deadlines.warning_lead_days):
        result.add_warning("a deadline warning lead time is not shorter than the review period")
    if not deadlines.auto_approved_reason:
        result.add_error("deadlines.auto_approved_reason must be non-empty")

    if config.notifications.vote_cast_cooldown_minutes < 0:
        result.add_error("notifications.vote_cast_cooldown_minutes must not be negative")

    for version in config.deadline_versions:
        workflow = config.workflows[version]
        for status in workflow.review_bodies:
            if workflow.resolution_target(status, VoteOutcome.APPROVED.value) is None:
                result.add_error(
                    f"workflow v{version}: deadline-enabled review status {status!r} "
                    "has no APPROVED resolution"
                )

    return result
