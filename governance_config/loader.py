"""
Configuration Loader (``governance_config.loader``).

Responsibility
--------------
Loads the YAML configuration set and parses it into the frozen dataclasses
of ``governance_config.schema`` and the kernel's ``WorkflowDefinition``.
Build/test tooling only: runtime callers use
``governance_config.get_active_config()``.

Invariants enforced
-------------------
* Required keys raise ``KeyError``; unknown enum values raise
  ``ValueError``.  There are no silent defaults for graph data.
* ``compute_checksum`` is deterministic over the parsed YAML.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from governance_config.schema import (
    DeadlinePolicy,
    GovernanceConfig,
    NotificationPolicy,
    VotingPolicy,
)
from governance_kernel.domain.voting import RevotePolicy
from governance_kernel.domain.workflow import ActorRole, WorkflowDefinition


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _edge_pairs(raw: Any) -> frozenset[tuple[str, str]]:
    pairs = set()
    for item in raw or ():
        if isinstance(item, str):
            from_status, _, to_status = item.partition("->")
        else:
            from_status, to_status = item
        pairs.add((str(from_status).strip(), str(to_status).strip()))
    return frozenset(pairs)


def parse_workflow(data: dict[str, Any]) -> WorkflowDefinition:
    """
    Parse one ``WorkflowDefinition``.

    Edges are ``{from: [to, ...]}``; role edges are lists of ``"FROM -> TO"``
    strings (or two-item lists) keyed by role name.
    """
    edges = {
        str(from_status): frozenset(str(t) for t in (targets or ()))
        for from_status, targets in (data.get("edges") or {}).items()
    }
    role_edges = {
        ActorRole(role): _edge_pairs(pairs)
        for role, pairs in (data.get("role_edges") or {}).items()
    }
    role_denials = {
        ActorRole(role): str(message)
        for role, message in (data.get("role_denials") or {}).items()
    }
    review_bodies = {
        str(status): ActorRole(role)
        for status, role in (data.get("review_statuses") or {}).items()
    }
    resolutions = {
        str(status): {str(outcome): str(target) for outcome, target in mapping.items()}
        for status, mapping in (data.get("resolutions") or {}).items()
    }

    return WorkflowDefinition(
        version=int(data["version"]),
        name=data["name"],
        states=frozenset(str(s) for s in data["states"]),
        initial_status=str(data["initial_status"]),
        terminal_statuses=frozenset(str(s) for s in data.get("terminal") or ()),
        edges=edges,
        role_edges=role_edges,
        role_denials=role_denials,
        submit_status=data.get("submit_status"),
        review_bodies=review_bodies,
        resolutions=resolutions,
        auto_advance={str(k): str(v) for k, v in (data.get("auto_advance") or {}).items()},
        owner_editable=frozenset(str(s) for s in data.get("owner_editable") or ()),
        tracks_stage=bool(data.get("tracks_stage", False)),
        voting_enabled=bool(data.get("voting_enabled", False)),
        deadline_enabled=bool(data.get("deadline_enabled", False)),
    )


def parse_deadline_policy(data: dict[str, Any] | None) -> DeadlinePolicy:
    if not data:
        return DeadlinePolicy()
    leads = data.get("warning_lead_days", DeadlinePolicy.warning_lead_days)
    return DeadlinePolicy(
        review_period_days=int(data.get("review_period_days", DeadlinePolicy.review_period_days)),
        warning_lead_days=tuple(sorted((int(d) for d in leads), reverse=True)),
        auto_approved_reason=str(
            data.get("auto_approved_reason", DeadlinePolicy.auto_approved_reason)
        ),
    )


def parse_notification_policy(data: dict[str, Any] | None) -> NotificationPolicy:
    if not data:
        return NotificationPolicy()
    return NotificationPolicy(
        vote_cast_cooldown_minutes=int(
            data.get(
                "vote_cast_cooldown_minutes",
                NotificationPolicy.vote_cast_cooldown_minutes,
            )
        ),
    )


def parse_voting_policy(data: dict[str, Any] | None) -> VotingPolicy:
    if not data:
        return VotingPolicy()
    return VotingPolicy(
        revote_policy=RevotePolicy(data.get("revote_policy", RevotePolicy.OVERWRITE.value)),
    )


def parse_config(data: dict[str, Any]) -> GovernanceConfig:
    workflows = [parse_workflow(w) for w in data["workflows"]]
    by_version: dict[int, WorkflowDefinition] = {}
    for workflow in workflows:
        if workflow.version in by_version:
            raise ValueError(f"Duplicate workflow version {workflow.version}")
        by_version[workflow.version] = workflow

    return GovernanceConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        workflows=by_version,
        deadlines=parse_deadline_policy(data.get("deadlines")),
        notifications=parse_notification_policy(data.get("notifications")),
        voting=parse_voting_policy(data.get("voting")),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> GovernanceConfig:
    return parse_config(load_yaml_file(path))
