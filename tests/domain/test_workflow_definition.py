"""
Tests for the pure workflow domain types.

Covers WorkflowDefinition lookups as loaded from the default configuration
set, TransitionCheck construction and the legacy status mapping.
"""

import dataclasses

import pytest

from governance_kernel.domain.workflow import (
    ActorRole,
    RequestStatus,
    TransitionCheck,
    TransitionRejection,
    WorkflowVersion,
    map_legacy_status,
)


@pytest.fixture
def multi_stage(config):
    return config.workflow(WorkflowVersion.MULTI_STAGE)


@pytest.fixture
def legacy(config):
    return config.workflow(WorkflowVersion.LEGACY)


class TestMultiStageDefinition:
    """The v2 graph, stage bookkeeping and role allow-list."""

    def test_initial_and_terminal(self, multi_stage):
        assert multi_stage.initial_status == RequestStatus.DRAFT.value
        assert multi_stage.terminal_statuses == frozenset({
            "STAGE_A_DENIED", "STAGE_B_APPROVED", "STAGE_B_DENIED", "cancelled",
        })

    def test_terminal_statuses_have_no_edges(self, multi_stage):
        for status in multi_stage.terminal_statuses:
            assert multi_stage.allowed_next(status) == frozenset()

    def test_review_bodies(self, multi_stage):
        assert multi_stage.reviewer_role("STAGE_A_REVIEW") == ActorRole.STAGE_A_REVIEWER
        assert multi_stage.reviewer_role("STAGE_B_REVIEW") == ActorRole.STAGE_B_REVIEWER
        assert multi_stage.reviewer_role("DRAFT") is None
        assert multi_stage.review_status_for(ActorRole.STAGE_B_REVIEWER) == "STAGE_B_REVIEW"
        assert multi_stage.review_status_for(ActorRole.OWNER) is None

    def test_resolution_round_trip(self, multi_stage):
        assert multi_stage.resolution_target("STAGE_A_REVIEW", "RETURNED") == "STAGE_A_RETURNED"
        assert multi_stage.resolution_outcome("STAGE_A_REVIEW", "STAGE_A_RETURNED") == "RETURNED"
        assert multi_stage.resolution_outcome("STAGE_A_REVIEW", "cancelled") is None
        assert multi_stage.resolution_target("DRAFT", "APPROVED") is None

    def test_stage_a_approval_auto_advances(self, multi_stage):
        assert multi_stage.auto_advance_target("STAGE_A_APPROVED") == "STAGE_B_REVIEW"
        assert multi_stage.auto_advance_target("STAGE_B_APPROVED") is None

    def test_stage_tracks_status(self, multi_stage):
        assert multi_stage.stage_for("STAGE_B_REVIEW") == "STAGE_B_REVIEW"

    def test_owner_editable(self, multi_stage):
        assert multi_stage.owner_can_edit("DRAFT")
        assert multi_stage.owner_can_edit("STAGE_B_RETURNED")
        assert not multi_stage.owner_can_edit("STAGE_A_REVIEW")

    def test_role_permits(self, multi_stage):
        assert multi_stage.role_permits(ActorRole.OWNER, "DRAFT", "SUBMITTED")
        assert multi_stage.role_permits(ActorRole.SYSTEM, "STAGE_A_APPROVED", "STAGE_B_REVIEW")
        assert not multi_stage.role_permits(ActorRole.SYSTEM, "STAGE_A_REVIEW", "STAGE_A_DENIED")
        assert not multi_stage.role_permits(
            ActorRole.STAGE_B_REVIEWER, "STAGE_A_REVIEW", "STAGE_A_APPROVED",
        )

    def test_mappings_are_read_only(self, multi_stage):
        with pytest.raises(TypeError):
            multi_stage.edges["DRAFT"] = frozenset()

    def test_definition_is_frozen(self, multi_stage):
        with pytest.raises(dataclasses.FrozenInstanceError):
            multi_stage.initial_status = "SUBMITTED"


class TestLegacyDefinition:
    def test_no_stage_tracking_or_voting(self, legacy):
        assert legacy.stage_for("in_review") is None
        assert not legacy.voting_enabled
        assert not legacy.deadline_enabled
        assert legacy.submit_status is None

    def test_return_goes_back_to_pending(self, legacy):
        assert legacy.resolution_target("in_review", "RETURNED") == "pending"


class TestTransitionCheck:
    def test_allow(self):
        check = TransitionCheck.allow()
        assert check.allowed
        assert check.code is None
        assert not check.noop

    def test_noop(self):
        assert TransitionCheck.allow("same", noop=True).noop

    def test_deny_carries_code(self):
        check = TransitionCheck.deny(TransitionRejection.TERMINAL_STATUS, "done")
        assert not check.allowed
        assert check.code == TransitionRejection.TERMINAL_STATUS
        assert check.reason == "done"


class TestMapLegacyStatus:
    @pytest.mark.parametrize(
        ("legacy_status", "expected"),
        [
            ("pending", "DRAFT"),
            ("in_review", "STAGE_A_REVIEW"),
            ("approved", "STAGE_B_APPROVED"),
            ("rejected", "STAGE_B_DENIED"),
            ("cancelled", "cancelled"),
        ],
    )
    def test_known_statuses(self, legacy_status, expected):
        assert map_legacy_status(legacy_status) == expected

    def test_unknown_passes_through(self):
        assert map_legacy_status("archived") == "archived"
