"""
Configuration schema (``governance_config.schema``).

Responsibility
--------------
Frozen dataclasses for everything the review workflow reads from
configuration: the per-version workflow definitions, the deadline policy,
the notification policy and the voting policy.

Architecture position
---------------------
**Config layer** -- pure data.  Workflow definitions themselves are the
kernel's ``WorkflowDefinition`` so engines can consume them without
importing this package.

Invariants enforced
-------------------
* Every object is frozen; callers hold one ``GovernanceConfig`` for the
  lifetime of a request or sweep.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import Mapping

from governance_kernel.domain.voting import RevotePolicy
from governance_kernel.domain.workflow import WorkflowDefinition


@dataclass(frozen=True)
class DeadlinePolicy:
    """Statutory review window and its warnings.

    ``warning_lead_days`` is kept in descending order (7, 3).
    """

    review_period_days: int = 30
    warning_lead_days: tuple[int, ...] = (7, 3)
    auto_approved_reason: str = "deadline_expired"

    @property
    def review_period(self) -> timedelta:
        return timedelta(days=self.review_period_days)

    @property
    def max_warning_lead(self) -> timedelta:
        return timedelta(days=max(self.warning_lead_days, default=0))


@dataclass(frozen=True)
class NotificationPolicy:
    vote_cast_cooldown_minutes: int = 30

    @property
    def vote_cast_cooldown(self) -> timedelta:
        return timedelta(minutes=self.vote_cast_cooldown_minutes)


@dataclass(frozen=True)
class VotingPolicy:
    revote_policy: RevotePolicy = RevotePolicy.OVERWRITE


@dataclass(frozen=True)
class GovernanceConfig:
    """The validated configuration set.

    Contract:
        ``workflows`` is keyed by workflow version and read-only.
    """

    config_id: str
    version: int
    workflows: Mapping[int, WorkflowDefinition]
    deadlines: DeadlinePolicy = field(default_factory=DeadlinePolicy)
    notifications: NotificationPolicy = field(default_factory=NotificationPolicy)
    voting: VotingPolicy = field(default_factory=VotingPolicy)
    checksum: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "workflows", MappingProxyType(dict(self.workflows)))

    def workflow(self, version: int) -> WorkflowDefinition | None:
        return self.workflows.get(version)

    @property
    def deadline_versions(self) -> tuple[int, ...]:
        """Workflow versions the deadline sweep applies to."""
        return tuple(sorted(v for v, wf in self.workflows.items() if wf.deadline_enabled))
