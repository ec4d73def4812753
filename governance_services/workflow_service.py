"""
governance_services.workflow_service -- Review request workflow.

Responsibility:
    The in-process entry point for request creation, status transitions
    and voting.  Thin coordinator: graph and role rules come from
    ``StatusTransitionValidator``, vote arithmetic from ``tally``,
    recusal from the eligibility engine, persistence from the kernel
    services, fan-out from ``NotificationDispatcher``.

Architecture position:
    Services layer.  May import from governance_engines/ (except
    ``projection``), governance_config/ and governance_kernel/.

Invariants enforced:
    - Every status change is validated for the acting role, then written as
      a compare-and-swap on the status the validation saw.  A lost race is
      reported as ``already_resolved`` and never retried.
    - An owner may only act on their own request.
    - Votes resolve a stage only through ``tally``; a decisive outcome is
      applied as the stage reviewer body's resolution edge.
    - Approvals that have an auto-advance target are advanced by the system
      actor in the same unit of work.
    - Notifications are dispatched after the write they describe; dispatch
      never raises.

Failure modes:
    - RequestNotFoundError for an unknown request id.
    - VotingClosedError, StageMismatchError, VoterNotEligibleError,
      DuplicateVoteError from ``cast_vote``.
    - ValueError from ``create_request`` for an unknown workflow version or
      an empty description.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Mapping
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from governance_config.schema import GovernanceConfig
from governance_engines.eligibility import (
    check_eligibility,
    count_eligible,
    determine_eligible_voters,
)
from governance_engines.tally import tally
from governance_engines.transitions import StatusTransitionValidator
from governance_kernel.domain.clock import Clock
from governance_kernel.domain.notification import IdentityDirectory, NotificationEvent
from governance_kernel.domain.request import (
    SYSTEM_ACTOR,
    Actor,
    ReviewRequest,
    TransitionOutcome,
)
from governance_kernel.domain.voting import (
    EligibleVoter,
    Vote,
    VoteOutcome,
    VoteTallyResult,
    VoteValue,
)
from governance_kernel.domain.workflow import (
    ActorRole,
    TransitionCheck,
    TransitionRejection,
    WorkflowDefinition,
)
from governance_kernel.exceptions import (
    StageMismatchError,
    VoterNotEligibleError,
    VotingClosedError,
)
from governance_kernel.logging_config import LogContext, get_logger
from governance_kernel.selectors.request_selector import RequestSelector
from governance_kernel.selectors.vote_selector import VoteSelector
from governance_kernel.services.request_service import RequestService
from governance_kernel.services.vote_service import VoteService
from governance_services.notification_dispatcher import NotificationDispatcher

logger = get_logger("services.workflow")

TRACE_TYPE_REVIEW_TRANSITION = "REVIEW_TRANSITION"
OUTCOME_APPLIED = "applied"
OUTCOME_REJECTED = "rejected"
OUTCOME_NOOP = "noop"
OUTCOME_ALREADY_RESOLVED = "already_resolved"

NOT_OWNER_REASON = "Owners can only act on their own requests"


def _emit_transition_trace(
    request: ReviewRequest,
    to_status: str,
    actor: Actor,
    outcome: str,
    reason: str,
    duration_ms: float,
) -> None:
    """Structured record of one transition attempt."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_REVIEW_TRANSITION,
        "request_id": str(request.request_id),
        "workflow_version": request.workflow_version,
        "from_status": request.status,
        "to_status": to_status,
        "actor_role": actor.role.value,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    record.update({k: v for k, v in LogContext.get_all().items() if k not in record})
    logger.info("review_transition", extra=record)


@dataclass(frozen=True)
class CastVoteResult:
    """What one ``cast_vote`` call did.

    ``resolution`` is set when the tally was decisive and a resolution
    transition was attempted.
    """

    request: ReviewRequest
    vote: Vote
    replaced: bool
    tally: VoteTallyResult
    resolution: TransitionOutcome | None = None

    @property
    def resolved(self) -> bool:
        return self.resolution is not None and self.resolution.applied


class WorkflowService:
    """Coordinates requests, transitions and votes within the caller's
    transaction.  Flushes; never commits."""

    def __init__(
        self,
        session: Session,
        config: GovernanceConfig,
        identity: IdentityDirectory,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        validator: StatusTransitionValidator | None = None,
    ):
        self._config = config
        self._identity = identity
        self._dispatcher = dispatcher
        self._clock = clock
        self._validator = validator or StatusTransitionValidator(config.workflows)
        self._requests = RequestService(session, clock)
        self._request_selector = RequestSelector(session)
        self._votes = VoteService(session, clock, config.voting.revote_policy)
        self._vote_selector = VoteSelector(session)

    @property
    def validator(self) -> StatusTransitionValidator:
        return self._validator

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def create_request(
        self,
        owner_id: str,
        description: str,
        workflow_version: int = 2,
    ) -> ReviewRequest:
        """Create a request in its workflow's initial status."""
        workflow = self._validator.for_version(workflow_version)
        if workflow is None:
            raise ValueError(f"Unknown workflow version {workflow_version!r}")
        if not owner_id:
            raise ValueError("owner_id is required")
        if not description or not description.strip():
            raise ValueError("description is required")

        request = ReviewRequest(
            request_id=uuid4(),
            owner_id=owner_id,
            description=description.strip(),
            status=workflow.initial_status,
            workflow_version=workflow.version,
            stage=workflow.stage_for(workflow.initial_status),
            created_at=self._clock.now(),
        )
        return self._requests.create(request)

    def get_request(self, request_id: UUID) -> ReviewRequest:
        return self._request_selector.get(request_id)

    def transition(
        self,
        request_id: UUID,
        to_status: str,
        actor: Actor,
    ) -> TransitionOutcome:
        """
        Validate and apply a status change for ``actor``.

        Returns:
            TransitionOutcome.  ``allowed=False`` carries the rejection code;
            ``already_resolved=True`` means another writer changed the status
            first.  ``request`` is the stored request after the call,
            including any automatic advancement.

        Raises:
            RequestNotFoundError: If the request does not exist.
        """
        with LogContext.bind(request_id=str(request_id), actor_id=actor.actor_id):
            request = self._request_selector.get(request_id)
            return self._transition_and_notify(request, to_status, actor)

    def submit(self, request_id: UUID, actor: Actor) -> TransitionOutcome:
        request = self._request_selector.get(request_id)
        workflow = self._validator.for_version(request.workflow_version)
        target = workflow.submit_status if workflow is not None else None
        if target is None:
            return TransitionOutcome(
                check=TransitionCheck.deny(
                    TransitionRejection.EDGE_NOT_ALLOWED,
                    f"Workflow version {request.workflow_version} has no submission step",
                ),
                request=request,
                from_status=request.status,
            )
        return self.transition(request_id, target, actor)

    def open_review(self, request_id: UUID, actor: Actor) -> TransitionOutcome:
        """Open the review stage the actor's body conducts."""
        request = self._request_selector.get(request_id)
        workflow = self._validator.for_version(request.workflow_version)
        target = workflow.review_status_for(actor.role) if workflow is not None else None
        if target is None:
            return TransitionOutcome(
                check=TransitionCheck.deny(
                    TransitionRejection.ROLE_NOT_PERMITTED,
                    f"Role {actor.role.value} does not conduct a review stage",
                ),
                request=request,
                from_status=request.status,
            )
        return self.transition(request_id, target, actor)

    def cancel(self, request_id: UUID, actor: Actor) -> TransitionOutcome:
        return self.transition(request_id, "cancelled", actor)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def cast_vote(
        self,
        request_id: UUID,
        actor: Actor,
        value: VoteValue | str,
        comment: str | None = None,
    ) -> CastVoteResult:
        """
        Record a ballot, tally the stage and resolve it on a majority.

        Raises:
            RequestNotFoundError: Unknown request.
            VotingClosedError: Request is not in a voting stage.
            StageMismatchError: Actor's body does not review this stage.
            VoterNotEligibleError: Actor is recused or not on the roster.
            DuplicateVoteError: Re-vote under the "reject" policy.
        """
        value = VoteValue(value)
        with LogContext.bind(request_id=str(request_id), actor_id=actor.actor_id):
            request = self._request_selector.get(request_id)
            workflow = self._voting_workflow(request)
            stage = request.status
            body = workflow.reviewer_role(stage)
            roster = tuple(self._identity.members_for_role(body))

            if actor.role != body and actor.actor_id not in roster:
                raise StageMismatchError(str(request_id), stage, actor.role.value)

            voters = self._eligible_voters(request, workflow, stage, roster)
            eligibility = check_eligibility(voters, actor.actor_id)
            if not eligibility.eligible:
                raise VoterNotEligibleError(str(request_id), actor.actor_id, eligibility.reason)

            recorded = self._votes.record_vote(
                request.request_id,
                stage,
                actor.actor_id,
                value,
                request.cycle,
                comment,
            )
            result = tally(
                self._vote_selector.votes_for(request.request_id, stage, request.cycle),
                count_eligible(voters),
            )
            logger.info(
                "stage_tallied",
                extra={
                    "stage": stage,
                    "cycle": request.cycle,
                    "outcome": result.outcome.value,
                    "approve_count": result.approve_count,
                    "deny_count": result.deny_count,
                    "return_count": result.return_count,
                    "abstain_count": result.abstain_count,
                    "total_eligible": result.total_eligible,
                },
            )

            self._dispatcher.dispatch(
                NotificationEvent.VOTE_CAST,
                request,
                stage=stage,
                context={"voter_id": actor.actor_id, "value": value.value},
            )

            resolution = None
            latest = request
            if result.is_decisive:
                target = workflow.resolution_target(stage, result.outcome.value)
                if target is not None:
                    resolution = self._transition_and_notify(
                        request,
                        target,
                        Actor(actor.actor_id, body),
                        context={"outcome": result.outcome.value},
                    )
                    latest = resolution.request or request

            return CastVoteResult(
                request=latest,
                vote=recorded.vote,
                replaced=recorded.replaced,
                tally=result,
                resolution=resolution,
            )

    def tally_stage(self, request_id: UUID) -> VoteTallyResult:
        """Current tally of the request's open stage (read only).

        Raises:
            VotingClosedError: Request is not in a voting stage.
        """
        request = self._request_selector.get(request_id)
        workflow = self._voting_workflow(request)
        stage = request.status
        roster = self._identity.members_for_role(workflow.reviewer_role(stage))
        voters = self._eligible_voters(request, workflow, stage, roster)
        return tally(
            self._vote_selector.votes_for(request.request_id, stage, request.cycle),
            count_eligible(voters),
        )

    def eligible_voters(self, request_id: UUID) -> tuple[EligibleVoter, ...]:
        """Roster of the open stage with recusals applied."""
        request = self._request_selector.get(request_id)
        workflow = self._voting_workflow(request)
        stage = request.status
        roster = self._identity.members_for_role(workflow.reviewer_role(stage))
        return self._eligible_voters(request, workflow, stage, roster)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _voting_workflow(self, request: ReviewRequest) -> WorkflowDefinition:
        workflow = self._validator.for_version(request.workflow_version)
        if (
            workflow is None
            or not workflow.voting_enabled
            or not workflow.is_review_status(request.status)
        ):
            raise VotingClosedError(
                str(request.request_id),
                request.status,
                request.workflow_version,
            )
        return workflow

    def _previous_stage(self, workflow: WorkflowDefinition, stage: str) -> str | None:
        """Review status whose approval auto-advances into ``stage``."""
        for review_status in workflow.review_bodies:
            approved = workflow.resolution_target(review_status, VoteOutcome.APPROVED.value)
            if approved is not None and workflow.auto_advance_target(approved) == stage:
                return review_status
        return None

    def _eligible_voters(
        self,
        request: ReviewRequest,
        workflow: WorkflowDefinition,
        stage: str,
        roster,
    ) -> tuple[EligibleVoter, ...]:
        previous = self._previous_stage(workflow, stage)
        prior_votes = (
            self._vote_selector.votes_for(request.request_id, previous, request.cycle)
            if previous is not None
            else ()
        )
        return determine_eligible_voters(roster, request.owner_id, prior_votes)

    def _check(self, request: ReviewRequest, to_status: str, actor: Actor) -> TransitionCheck:
        check = self._validator.validate_transition(
            request.status,
            to_status,
            request.workflow_version,
            actor.role,
        )
        if (
            check.allowed
            and not check.noop
            and actor.role == ActorRole.OWNER
            and actor.actor_id != request.owner_id
        ):
            return TransitionCheck.deny(TransitionRejection.NOT_OWNER, NOT_OWNER_REASON)
        return check

    def _fields_for(
        self,
        workflow: WorkflowDefinition,
        request: ReviewRequest,
        to_status: str,
    ) -> tuple[dict[str, Any], bool]:
        now = self._clock.now()
        fields: dict[str, Any] = {}
        increment_cycle = False

        if workflow.tracks_stage:
            fields["stage"] = workflow.stage_for(to_status)
        if to_status == workflow.submit_status:
            fields["submitted_at"] = now
            if workflow.deadline_enabled:
                fields["review_deadline"] = now + self._config.deadlines.review_period
            if request.status != workflow.initial_status:
                # Resubmission after a return starts a new cycle.
                increment_cycle = True
                fields["auto_approved_reason"] = None
        if workflow.is_terminal(to_status):
            fields["resolved_at"] = now
        return fields, increment_cycle

    def _apply(
        self,
        request: ReviewRequest,
        to_status: str,
        actor: Actor,
    ) -> TransitionOutcome:
        t0 = time.monotonic()
        check = self._check(request, to_status, actor)

        def trace(outcome: str, reason: str) -> None:
            _emit_transition_trace(
                request, to_status, actor, outcome, reason,
                (time.monotonic() - t0) * 1000,
            )

        if not check.allowed:
            trace(OUTCOME_REJECTED, check.reason)
            return TransitionOutcome(check, request, request.status, to_status)
        if check.noop:
            trace(OUTCOME_NOOP, check.reason)
            return TransitionOutcome(check, request, request.status, to_status)

        workflow = self._validator.for_version(request.workflow_version)
        fields, increment_cycle = self._fields_for(workflow, request, to_status)
        applied = self._requests.compare_and_set_status(
            request.request_id,
            request.status,
            to_status,
            increment_cycle=increment_cycle,
            **fields,
        )
        stored = self._request_selector.find(request.request_id)

        if not applied:
            trace(OUTCOME_ALREADY_RESOLVED, "Status changed before this write")
            return TransitionOutcome(
                check, stored, request.status, to_status, already_resolved=True,
            )

        trace(OUTCOME_APPLIED, check.reason)
        return TransitionOutcome(check, stored, request.status, to_status, applied=True)

    def _transition_and_notify(
        self,
        request: ReviewRequest,
        to_status: str,
        actor: Actor,
        context: Mapping[str, Any] | None = None,
    ) -> TransitionOutcome:
        outcome = self._apply(request, to_status, actor)
        if not outcome.applied or outcome.request is None:
            return outcome

        workflow = self._validator.for_version(request.workflow_version)
        self._notify_transition(workflow, outcome, context)

        advance_to = workflow.auto_advance_target(to_status)
        if advance_to is None:
            return outcome

        advanced = self._transition_and_notify(outcome.request, advance_to, SYSTEM_ACTOR)
        if advanced.request is not None:
            outcome = replace(outcome, request=advanced.request)
        return outcome

    def _notify_transition(
        self,
        workflow: WorkflowDefinition,
        outcome: TransitionOutcome,
        context: Mapping[str, Any] | None,
    ) -> None:
        request = outcome.request
        from_status = outcome.from_status
        to_status = outcome.to_status

        if to_status == workflow.submit_status:
            self._dispatcher.dispatch(NotificationEvent.SUBMITTED, request, context=context)
        elif workflow.is_review_status(to_status):
            self._dispatcher.dispatch(
                NotificationEvent.STAGE_OPENED, request, stage=to_status, context=context,
            )
        else:
            decided = workflow.resolution_outcome(from_status, to_status)
            if decided is not None:
                payload = {"outcome": decided, **(context or {})}
                self._dispatcher.dispatch(
                    NotificationEvent.DECISION_REACHED,
                    request,
                    stage=from_status,
                    context=payload,
                )
